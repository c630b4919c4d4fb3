import argparse
import json
import logging
import sys
from logging import ERROR, INFO

from zkvoting.config import VotingConfig, load_config
from zkvoting.eligibility import EligibilityChecker
from zkvoting.exceptions import ZkVotingError
from zkvoting.logger import log, update_console_handler
from zkvoting.proof_service import ProofGenerationService
from zkvoting.signers import NodeAccountSigner
from zkvoting.smart_contract_manager import SmartContractManager
from zkvoting.utils import load_abi, write_abi
from zkvoting.vote_flow import VoteAttempt
from zkvoting.vote_submission import VoteSubmissionClient


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate zk-SNARK vote proofs and submit them to the ZkVoting contract.")
    add_parser_arguments(parser)
    args = parser.parse_args(argv)

    if args.verbose:
        update_console_handler(logging.DEBUG)

    try:
        config = update_configuration(load_config(args.project_dir), args)
        return args.handler(args, config)
    except ZkVotingError as e:
        log(ERROR, f"{e.kind}: {e}")
        return 1


def add_parser_arguments(parser: argparse.ArgumentParser):
    """Parse command line arguments."""
    parser.add_argument("--project_dir", type=str, default=".", help="Directory of the pyproject.toml holding [tool.zkvoting.config].")
    parser.add_argument("--zokrates_bin", type=str, default=None, help="Path of the ZoKrates binary.")
    parser.add_argument("--circuit_path", type=str, default=None, help="Path of the vote circuit source.")
    parser.add_argument("--working_dir", type=str, default=None, help="Directory for provisioned keys and proof runs.")
    parser.add_argument("--vote_limit", type=int, default=None, help="Number of choices of the vote.")
    parser.add_argument("--node_url", type=str, default=None, help="URL of the Ethereum node.")
    parser.add_argument("--contract_address", type=str, default=None, help="Address of the deployed ZkVoting contract.")
    parser.add_argument("--verbose", action="store_true", default=False, help="Show the output of every toolchain stage.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser("provision", help="Compile the circuit and generate its keys.")
    provision.set_defaults(handler=run_provision)

    prove = subparsers.add_parser("prove", help="Generate a proof for a vote choice.")
    prove.add_argument("--choice", type=int, required=True, help="Vote choice, from 1 to the vote limit.")
    prove.add_argument("--out", type=str, default=None, help="Write the proof to this file instead of stdout.")
    prove.set_defaults(handler=run_prove)

    deploy = subparsers.add_parser("deploy", help="Export the verifier and deploy the ZkVoting contract.")
    deploy.add_argument("--account_index", type=int, default=0, help="Node account paying for the deployment.")
    deploy.set_defaults(handler=run_deploy)

    has_voted = subparsers.add_parser("has-voted", help="Check whether an address has already voted.")
    has_voted.add_argument("address", type=str)
    has_voted.set_defaults(handler=run_has_voted)

    vote = subparsers.add_parser("vote", help="Check eligibility, generate a proof and submit the vote.")
    vote.add_argument("--choice", type=int, required=True, help="Vote choice, from 1 to the vote limit.")
    vote.add_argument("--account_index", type=int, default=0, help="Node account casting the vote.")
    vote.add_argument("--no_wait", action="store_true", default=False, help="Return after broadcast without waiting for the receipt.")
    vote.set_defaults(handler=run_vote)

    serve = subparsers.add_parser("serve", help="Serve the proof generation API.")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(handler=run_serve)


def update_configuration(config: VotingConfig, args) -> VotingConfig:
    """Overrides configuration with command line parameters."""
    return config.update(
        zokrates_bin=args.zokrates_bin,
        circuit_path=args.circuit_path,
        working_dir=args.working_dir,
        vote_limit=args.vote_limit,
        node_url=args.node_url,
        contract_address=args.contract_address,
    )


def load_voting_contract(config: VotingConfig):
    manager = SmartContractManager.from_config(config)
    contract = manager.load_contract(config.contract_address, load_abi(config.abi_path))
    return manager, contract


def run_provision(args, config: VotingConfig):
    provisioned = ProofGenerationService.from_config(config).provisioned_circuit()
    print(f"Circuit {provisioned.version} provisioned at {provisioned.key_dir}")
    return 0


def run_prove(args, config: VotingConfig):
    proof = ProofGenerationService.from_config(config).generate_proof(args.choice, config.vote_limit)
    proof_json = json.dumps(proof.to_dict(), indent=4)

    if args.out:
        with open(args.out, "w") as f:
            f.write(proof_json)
        print(f"Proof written to {args.out}")
    else:
        print(proof_json)
    return 0


def run_deploy(args, config: VotingConfig):
    service = ProofGenerationService.from_config(config)
    provisioned = service.provisioned_circuit()
    verifier_path = service.zk_prover.export_verifier(provisioned)

    manager = SmartContractManager.from_config(config)
    abi, bytecode = manager.compile_voting_contract(config.contract_source, verifier_path)
    deployer = NodeAccountSigner.from_index(manager.w3, args.account_index)
    contract_address = manager.deploy_voting_contract(abi, bytecode, deployer, config.vote_limit)

    write_abi(config.abi_path, abi)
    print(f"ZkVoting deployed at {contract_address}, ABI written to {config.abi_path}")
    return 0


def run_has_voted(args, config: VotingConfig):
    _, contract = load_voting_contract(config)
    voted = EligibilityChecker(contract).has_voted(args.address)
    print(f"{args.address} has {'already' if voted else 'not yet'} voted")
    return 0


def run_vote(args, config: VotingConfig):
    manager, contract = load_voting_contract(config)
    checker = EligibilityChecker(contract)
    submitter = VoteSubmissionClient(
        manager.w3,
        contract,
        checker=checker,
        explorer_base_url=config.explorer_base_url,
        receipt_timeout=config.receipt_timeout,
        metrics_dir=config.metrics_dir,
    )
    attempt = VoteAttempt(
        checker,
        ProofGenerationService.from_config(config),
        submitter,
        NodeAccountSigner.from_index(manager.w3, args.account_index),
        vote_limit=config.vote_limit,
    )

    attempt.run(args.choice, wait=not args.no_wait)
    if args.no_wait:
        print(f"Vote sent: {attempt.pending.explorer_url}")
    else:
        print(f"Vote submitted successfully! {attempt.pending.explorer_url}")
    return 0


def run_serve(args, config: VotingConfig):
    import uvicorn
    from zkvoting.api import create_app

    app = create_app(ProofGenerationService.from_config(config))
    log(INFO, f"Serving proof generation on http://{args.host}:{args.port}/api/generateProof")
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
