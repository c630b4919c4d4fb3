from enum import Enum
from logging import DEBUG, WARNING

from web3 import Web3
from web3.exceptions import Web3Exception

from zkvoting.exceptions import EligibilityCheckFailed, InvalidInput
from zkvoting.logger import log


class EligibilityStatus(Enum):
    VOTED = "voted"
    NOT_VOTED = "not_voted"
    UNKNOWN = "unknown"

    @property
    def may_generate_proof(self) -> bool:
        # UNKNOWN counts as not eligible; the ledger stays the final authority
        return self is EligibilityStatus.NOT_VOTED


def to_voter_address(address: str) -> str:
    try:
        return Web3.to_checksum_address(address)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"'{address}' is not a valid address.") from e


class EligibilityChecker:
    """Fast pre-check of the ``votes(address)`` view of the voting contract.

    The answer may be stale by the time a vote is submitted; the contract
    re-checks atomically when it records the vote.
    """

    def __init__(self, contract):
        self.contract = contract

    def has_voted(self, address: str) -> bool:
        """Return whether ``address`` has a recorded vote.

        Raises:
            InvalidInput: If ``address`` is not an address.
            EligibilityCheckFailed: If the ledger cannot be read; never defaults to False.
        """
        voter = to_voter_address(address)
        try:
            vote_status = self.contract.functions.votes(voter).call()
        except (Web3Exception, ValueError, OSError) as e:
            log(WARNING, f"Error checking vote status of {voter}: {e}")
            raise EligibilityCheckFailed(str(e)) from e

        # Voter struct getter: (hasVoted, commitment)
        has_voted = vote_status[0] if isinstance(vote_status, (list, tuple)) else vote_status
        if not isinstance(has_voted, bool):
            raise EligibilityCheckFailed(f"Unexpected vote status {vote_status!r} for {voter}.")

        log(DEBUG, f"{voter} has voted: {has_voted}")
        return has_voted

    def status(self, address: str) -> EligibilityStatus:
        try:
            voted = self.has_voted(address)
        except EligibilityCheckFailed:
            return EligibilityStatus.UNKNOWN
        return EligibilityStatus.VOTED if voted else EligibilityStatus.NOT_VOTED
