import time
from dataclasses import dataclass, field
from logging import INFO, WARNING
from typing import Optional, Union

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from zkvoting.eligibility import EligibilityChecker
from zkvoting.exceptions import AlreadyVoted, ConfirmationTimeout, EligibilityCheckFailed, TransactionFailed
from zkvoting.logger import log
from zkvoting.proof import ProofArtifact, ProofHandle
from zkvoting.signers import VoterSigner
from zkvoting.utils import calculate_transaction_cost, store_vote_metrics

# Revert reason of ZkVoting.vote for a repeat voter
ALREADY_VOTED_REASON = "You have already voted"


def explorer_url(explorer_base_url: str, tx_hash: str) -> str:
    return f"{explorer_base_url}{tx_hash}"


@dataclass
class PendingVote:
    """A broadcast vote transaction that may not be mined yet.

    Abandoning it is local only: the transaction stays in flight on the ledger.
    """
    tx_hash: str
    voter: str
    explorer_url: str
    submitted_at: float
    client: "VoteSubmissionClient" = field(repr=False)

    def wait(self, timeout: Optional[float] = None):
        return self.client.wait_for_confirmation(self, timeout)


class VoteSubmissionClient:
    """Submits proofs to ``ZkVoting.vote`` and reports the ledger's verdict.

    Attributes:
        w3 (Web3): Connection to the node.
        contract: The deployed voting contract.
        checker (EligibilityChecker, optional): Used to classify a reverted receipt.
        explorer_base_url (str): Prefix of human-facing transaction links.
        receipt_timeout (float): Default confirmation wait in seconds.
        metrics_dir (str, optional): If set, vote transaction metrics are appended to a CSV file there.
    """

    def __init__(
        self,
        w3: Web3,
        contract,
        checker: Optional[EligibilityChecker] = None,
        explorer_base_url: str = "https://sepolia.etherscan.io/tx/",
        receipt_timeout: float = 120.0,
        metrics_dir: Optional[str] = None,
    ):
        self.w3 = w3
        self.contract = contract
        self.checker = checker
        self.explorer_base_url = explorer_base_url
        self.receipt_timeout = receipt_timeout
        self.metrics_dir = metrics_dir

    def submit_vote(self, proof: Union[ProofArtifact, ProofHandle], signer: VoterSigner) -> PendingVote:
        """Broadcast a vote and return as soon as the node accepted the transaction.

        A ``ProofHandle`` is consumed here. It is handed back only when the
        failure happened before the ledger evaluated the call, so the same
        proof can be retried.

        Raises:
            ProofAlreadySubmitted: If the handle was already consumed.
            AlreadyVoted: If the contract rejects the signer as a repeat voter.
            TransactionFailed: For any other rejection or broadcast failure.
        """
        handle = proof if isinstance(proof, ProofHandle) else None
        artifact = handle.consume() if handle is not None else proof

        proof_points, inputs = artifact.to_contract_args()
        contract_call = self.contract.functions.vote(proof_points, inputs)

        try:
            tx_hash = Web3.to_hex(signer.send(self.w3, contract_call))
        except ContractLogicError as e:
            if ALREADY_VOTED_REASON in str(e):
                log(WARNING, f"{signer.address} tried to vote twice")
                raise AlreadyVoted() from e
            raise TransactionFailed(f"Reverted: {e}") from e
        except (Web3Exception, ValueError, OSError) as e:
            if handle is not None:
                handle.release()
            raise TransactionFailed(f"Could not broadcast the vote: {e}") from e

        log(INFO, f"Vote of {signer.address} broadcast in transaction {tx_hash}")
        return PendingVote(
            tx_hash=tx_hash,
            voter=signer.address,
            explorer_url=explorer_url(self.explorer_base_url, tx_hash),
            submitted_at=time.time(),
            client=self,
        )

    def wait_for_confirmation(self, pending: PendingVote, timeout: Optional[float] = None):
        """Wait for the receipt of ``pending``.

        Raises:
            ConfirmationTimeout: If no receipt arrived within ``timeout``.
            AlreadyVoted: If the transaction reverted because the voter already voted.
            TransactionFailed: If the transaction reverted for another reason.
        """
        timeout = timeout if timeout is not None else self.receipt_timeout
        try:
            tx_receipt = self.w3.eth.wait_for_transaction_receipt(pending.tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise ConfirmationTimeout(f"No receipt after {timeout} seconds.", tx_hash=pending.tx_hash) from e
        except (Web3Exception, ValueError, OSError) as e:
            raise TransactionFailed(f"Could not fetch the receipt: {e}", tx_hash=pending.tx_hash) from e

        status = tx_receipt["status"]
        if self.metrics_dir is not None:
            cost_wei = calculate_transaction_cost(self.w3, tx_receipt)
            store_vote_metrics(self.metrics_dir, pending.tx_hash, status, cost_wei, time.time() - pending.submitted_at)

        if status != 1:
            if self._ledger_shows_voted(pending.voter):
                raise AlreadyVoted()
            raise TransactionFailed("The transaction reverted.", tx_hash=pending.tx_hash)

        log(INFO, f"Vote of {pending.voter} confirmed in block {tx_receipt['blockNumber']}")
        return tx_receipt

    def _ledger_shows_voted(self, voter: str) -> bool:
        # our transaction failed, so a recorded vote predates it
        if self.checker is None:
            return False
        try:
            return self.checker.has_voted(voter)
        except EligibilityCheckFailed as e:
            log(WARNING, f"Cannot classify reverted vote of {voter}: {e}")
            return False
