from abc import ABC, abstractmethod

from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3


class VoterSigner(ABC):
    """Sends a contract call as a transaction on behalf of a voter.

    Keys never live in the voting core: either the node holds them (unlocked
    accounts) or the caller injects an already loaded account.
    """

    address: str

    @abstractmethod
    def send(self, w3: Web3, contract_call) -> HexBytes:
        """Broadcast ``contract_call`` and return the transaction hash."""
        pass


class NodeAccountSigner(VoterSigner):
    """An account unlocked on the node (Ganache, Hardhat, Anvil)."""

    def __init__(self, address: str):
        self.address = Web3.to_checksum_address(address)

    @classmethod
    def from_index(cls, w3: Web3, index: int) -> "NodeAccountSigner":
        return cls(w3.eth.accounts[index])

    def send(self, w3: Web3, contract_call) -> HexBytes:
        return contract_call.transact({"from": self.address})


class LocalAccountSigner(VoterSigner):
    """An ``eth_account`` account supplied by the caller; transactions are signed locally."""

    def __init__(self, account: LocalAccount):
        self.account = account
        self.address = account.address

    def send(self, w3: Web3, contract_call) -> HexBytes:
        transaction = contract_call.build_transaction({
            "from": self.address,
            "nonce": w3.eth.get_transaction_count(self.address),
        })
        signed = self.account.sign_transaction(transaction)
        return w3.eth.send_raw_transaction(signed.raw_transaction)
