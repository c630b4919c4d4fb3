import json
import os
import stat
import sys
from pathlib import Path

import pytest
from hexbytes import HexBytes
from web3 import Web3
from web3.datastructures import AttributeDict
from web3.exceptions import ContractLogicError, TimeExhausted

from zkvoting import ProofGenerationService, Zokrates

REPO_ROOT = Path(__file__).resolve().parents[1]
CIRCUIT_PATH = REPO_ROOT / "circuits" / "vote.zok"

VOTER_A = Web3.to_checksum_address("0x" + "a1" * 20)
VOTER_B = Web3.to_checksum_address("0x" + "b2" * 20)


# Stand-in for the ZoKrates CLI: same subcommands and flags, fake cryptography.
# The proving key id is embedded in proof.a[0] so `verify` can tell which keys produced a proof.
FAKE_ZOKRATES = r'''
import hashlib
import json
import os
import sys
import time
import uuid

FIELD = 21888242871839275222246405745257275088548364400416034234343447791930893895617


def h(n):
    return "0x" + format(n, "064x")


def commitment(choice):
    return int(hashlib.sha256(str(choice).encode()).hexdigest(), 16) % FIELD


def parse(rest):
    opts, arguments, i = {}, [], 0
    while i < len(rest):
        if rest[i] == "-a":
            arguments = rest[i + 1:]
            break
        opts[rest[i]] = rest[i + 1]
        i += 2
    return opts, arguments


def load(path):
    with open(path) as f:
        return json.load(f)


def dump(path, data):
    with open(path, "w") as f:
        json.dump(data, f)


def main(argv):
    stage = argv[0]
    log_path = os.environ.get("FAKE_ZOKRATES_LOG")
    if log_path:
        with open(log_path, "a") as f:
            f.write(json.dumps({"stage": stage, "cwd": os.getcwd(), "argv": argv}) + "\n")

    time.sleep(float(os.environ.get("FAKE_ZOKRATES_SLEEP", "0")))
    if os.environ.get("FAKE_ZOKRATES_FAIL_STAGE") == stage:
        print(f"Error: {stage} exploded")
        return 1

    opts, arguments = parse(argv[1:])

    if stage == "compile":
        if not os.path.exists(opts["-i"]):
            print(f"Error: cannot open {opts['-i']}")
            return 1
        with open(opts["-i"], "rb") as f:
            dump(opts["-o"], {"source": hashlib.sha256(f.read()).hexdigest()})
        dump(opts["-s"], {"inputs": [{"name": "voteChoice", "public": False}, {"name": "voteLimit", "public": True}]})
        print("Compilation done")
    elif stage == "setup":
        if not os.path.exists(opts["-i"]):
            print("Error: compiled program not found")
            return 1
        key_id = uuid.uuid4().hex
        dump(opts["-p"], {"key_id": key_id})
        dump(opts["-v"], {"key_id": key_id})
        print("Setup completed")
    elif stage == "compute-witness":
        if not os.path.exists(opts["-i"]):
            print("Error: compiled program not found")
            return 1
        try:
            choice, limit = (int(a) for a in arguments)
        except ValueError:
            print(f"Error: invalid arguments {arguments}")
            return 1
        if not 1 <= choice <= limit:
            print("Execution failed: Assertion failed at vote.zok:5:5")
            return 1
        dump(opts["-o"], {"voteChoice": choice, "voteLimit": limit})
        print("Witness file written")
    elif stage == "generate-proof":
        witness = load(opts["-w"])
        key_id = load(opts["-p"])["key_id"]
        c = commitment(witness["voteChoice"])
        limit = witness["voteLimit"]
        dump(opts["-j"], {
            "scheme": "g16",
            "curve": "bn128",
            "proof": {
                "a": [h(int(key_id, 16)), h(uuid.uuid4().int)],
                "b": [[h(1), h(2)], [h(3), h(4)]],
                "c": [h(c), h(limit)],
            },
            "inputs": [h(limit), h(c)],
        })
        print("Proof written")
    elif stage == "verify":
        key_id = load(opts["-v"])["key_id"]
        proof = load(opts["-j"])
        ok = (
            int(proof["proof"]["a"][0], 16) == int(key_id, 16)
            and proof["proof"]["c"][0] == proof["inputs"][1]
            and proof["proof"]["c"][1] == proof["inputs"][0]
        )
        print("PASSED" if ok else "FAILED")
    elif stage == "export-verifier":
        with open(opts["-o"], "w") as f:
            f.write("pragma solidity ^0.8.0;\ncontract Verifier {}\n")
    else:
        print(f"Error: unknown command {stage}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
'''


@pytest.fixture
def zokrates_bin(tmp_path, monkeypatch):
    """Path of an executable fake ZoKrates whose invocations are logged."""
    bin_path = tmp_path / "bin" / "zokrates"
    bin_path.parent.mkdir()
    bin_path.write_text(f"#!{sys.executable}\n{FAKE_ZOKRATES}", encoding="utf-8")
    bin_path.chmod(bin_path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    monkeypatch.setenv("FAKE_ZOKRATES_LOG", str(tmp_path / "zokrates_calls.jsonl"))
    monkeypatch.delenv("FAKE_ZOKRATES_FAIL_STAGE", raising=False)
    monkeypatch.delenv("FAKE_ZOKRATES_SLEEP", raising=False)
    return str(bin_path)


@pytest.fixture
def zokrates_calls(tmp_path):
    """Return the list of stages the fake ZoKrates ran so far."""
    log_path = tmp_path / "zokrates_calls.jsonl"

    def read():
        if not log_path.exists():
            return []
        return [json.loads(line) for line in log_path.read_text().splitlines()]

    return read


@pytest.fixture
def working_dir(tmp_path):
    return str(tmp_path / "proofs")


@pytest.fixture
def service(zokrates_bin, working_dir):
    return ProofGenerationService(
        zk_prover=Zokrates(zokrates_bin=zokrates_bin, stage_timeout=30),
        circuit_path=str(CIRCUIT_PATH),
        working_dir=working_dir,
    )


def proving_key_id(service: ProofGenerationService) -> int:
    provisioned = service.provisioned_circuit()
    with open(provisioned.path(provisioned.verification_key)) as f:
        return int(json.load(f)["key_id"], 16)


class FakeCall:
    def __init__(self, fn, *args):
        self.fn = fn
        self.args = args

    def call(self, *_):
        return self.fn(*self.args)

    def transact(self, transaction):
        return self.fn(*self.args, sender=transaction["from"])


class FakeFunctions:
    def __init__(self, contract):
        self.contract = contract

    def votes(self, address):
        return FakeCall(self.contract._votes, address)

    def vote(self, proof_points, inputs):
        return FakeCall(self.contract._vote, proof_points, inputs)


class FakeVotingContract:
    """In-memory ZkVoting: same revert reasons, same ``votes`` getter shape."""

    def __init__(self, vote_limit: int = 2, verifier=None):
        self.vote_limit = vote_limit
        self.verifier = verifier or (lambda proof_points, inputs: True)
        self.functions = FakeFunctions(self)
        self.records = {}
        self.receipts = {}
        self.reads = 0
        self.fail_reads = False
        self.fail_broadcast = False
        self.revert_when_mined = False

    def _votes(self, address):
        self.reads += 1
        if self.fail_reads:
            raise ConnectionError("node unreachable")
        return list(self.records.get(address, (False, 0)))

    def _vote(self, proof_points, inputs, sender):
        if self.fail_broadcast:
            raise ConnectionError("node unreachable")

        tx_hash = HexBytes(os.urandom(32))
        if self.revert_when_mined:
            self._mine(tx_hash, status=0)
            return tx_hash

        if self.records.get(sender, (False, 0))[0]:
            raise ContractLogicError("execution reverted: You have already voted")
        if inputs[0] != self.vote_limit:
            raise ContractLogicError("execution reverted: Unexpected vote limit")
        if not self.verifier(proof_points, inputs):
            raise ContractLogicError("execution reverted: Invalid proof")

        self.records[sender] = (True, inputs[1])
        self._mine(tx_hash, status=1)
        return tx_hash

    def _mine(self, tx_hash, status):
        self.receipts[Web3.to_hex(tx_hash)] = AttributeDict({
            "transactionHash": tx_hash,
            "status": status,
            "gasUsed": 210000,
            "effectiveGasPrice": 2,
            "blockNumber": len(self.receipts) + 1,
        })


class FakeEth:
    gas_price = 1
    accounts = [VOTER_A, VOTER_B]

    def __init__(self, contract: FakeVotingContract):
        self.contract = contract

    def wait_for_transaction_receipt(self, tx_hash, timeout=120):
        key = tx_hash if isinstance(tx_hash, str) else Web3.to_hex(tx_hash)
        receipt = self.contract.receipts.get(key)
        if receipt is None:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        return receipt


class FakeWeb3:
    def __init__(self, contract: FakeVotingContract):
        self.eth = FakeEth(contract)


@pytest.fixture
def ledger():
    return FakeVotingContract(vote_limit=2)


@pytest.fixture
def fake_w3(ledger):
    return FakeWeb3(ledger)
