import os
import shutil
import time
from logging import INFO
from typing import Optional

import solcx
from solcx import compile_files
from web3 import Web3

from zkvoting.config import VotingConfig
from zkvoting.exceptions import LedgerConnectionError
from zkvoting.logger import log
from zkvoting.signers import VoterSigner
from zkvoting.utils import calculate_transaction_cost, store_deployment_metrics

SOLIDITY_VERSION = '0.8.0'
VOTING_CONTRACT_NAME = 'ZkVoting'


class SmartContractManager:
    """
    This class is responsible for managing the lifecycle of the voting contract on the Ethereum blockchain.
    It provides methods for compiling, deploying, and loading the contract.
    """
    def __init__(
        self,
        node_url: str = "http://127.0.0.1:7545",
        solidity_version: str = SOLIDITY_VERSION,
        w3: Optional[Web3] = None,
        metrics_dir: Optional[str] = None,
    ):
        self.solidity_version = solidity_version
        self.metrics_dir = metrics_dir

        self.w3 = w3 if w3 is not None else Web3(Web3.HTTPProvider(node_url))
        if not self.w3.is_connected():
            raise LedgerConnectionError(node_url)

    @classmethod
    def from_config(cls, config: VotingConfig) -> "SmartContractManager":
        return cls(
            node_url=config.node_url,
            solidity_version=config.solidity_version,
            metrics_dir=config.metrics_dir,
        )

    def compile_voting_contract(self, contract_source: str, verifier_path: str):
        """Compile ``ZkVoting.sol`` next to the ``verifier.sol`` exported by ZoKrates.

        Returns:
            tuple: (abi, bytecode) of the voting contract.
        """
        solcx.install_solc(version=self.solidity_version)

        build_dir = os.path.dirname(os.path.abspath(verifier_path))
        target = os.path.join(build_dir, os.path.basename(contract_source))
        shutil.copyfile(contract_source, target)

        compiled_sol = compile_files(
            [target],
            output_values=['abi', 'bin'],
            solc_version=self.solidity_version,
            allow_paths=[build_dir],
        )

        for name, contract_interface in compiled_sol.items():
            if name.endswith(f":{VOTING_CONTRACT_NAME}"):
                return contract_interface['abi'], contract_interface['bin']
        raise ValueError(f"{VOTING_CONTRACT_NAME} not found in compiled sources {list(compiled_sol)}")

    def deploy_voting_contract(self, abi, bytecode, deployer: VoterSigner, vote_limit: int) -> str:
        if not abi or not bytecode:
            raise ValueError("Contract must be compiled before deployment")

        Contract = self.w3.eth.contract(abi=abi, bytecode=bytecode)

        start_time = time.time()
        tx_hash = deployer.send(self.w3, Contract.constructor(vote_limit))
        tx_receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        execution_time = time.time() - start_time

        if self.metrics_dir is not None:
            transaction_cost = calculate_transaction_cost(self.w3, tx_receipt)
            store_deployment_metrics(self.metrics_dir, deployer.address, transaction_cost, execution_time)

        log(INFO, f"Account {deployer.address} deployed a contract at: {tx_receipt.contractAddress}")

        return tx_receipt.contractAddress

    def load_contract(self, contract_address: str, abi):
        if not contract_address:
            raise ValueError("Contract not deployed: no contract address configured")
        return self.w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=abi)
