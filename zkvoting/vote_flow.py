from enum import Enum, auto
from logging import INFO
from typing import Optional

from zkvoting.eligibility import EligibilityChecker
from zkvoting.exceptions import (
    AlreadyVoted,
    ConfirmationTimeout,
    EligibilityCheckFailed,
    TransactionFailed,
    ZkVotingError,
)
from zkvoting.logger import log
from zkvoting.proof import ProofHandle
from zkvoting.proof_service import ProofGenerationService, validate_vote
from zkvoting.signers import VoterSigner
from zkvoting.vote_submission import PendingVote, VoteSubmissionClient


class VoteState(Enum):
    """Lifecycle of a single vote attempt"""
    IDLE = auto()
    CHECKING_ELIGIBILITY = auto()
    INELIGIBLE = auto()
    GENERATING_PROOF = auto()
    PROOF_FAILED = auto()
    PROOF_READY = auto()
    SUBMITTING = auto()
    CONFIRMED = auto()
    REVERTED = auto()


TRANSITIONS = {
    VoteState.IDLE: {VoteState.CHECKING_ELIGIBILITY},
    VoteState.CHECKING_ELIGIBILITY: {VoteState.INELIGIBLE, VoteState.GENERATING_PROOF},
    VoteState.GENERATING_PROOF: {VoteState.PROOF_FAILED, VoteState.PROOF_READY},
    # back to PROOF_READY when the broadcast failed before reaching the ledger
    VoteState.PROOF_READY: {VoteState.SUBMITTING},
    VoteState.SUBMITTING: {VoteState.CONFIRMED, VoteState.REVERTED, VoteState.PROOF_READY},
}

TERMINAL_STATES = {VoteState.INELIGIBLE, VoteState.PROOF_FAILED, VoteState.CONFIRMED, VoteState.REVERTED}


class InvalidTransition(RuntimeError):
    pass


class VoteAttempt:
    """One voter casting one vote: check, generate, submit, confirm.

    Example of usage:
    .. code-block:: python
        attempt = VoteAttempt(checker, service, submitter, NodeAccountSigner(address), vote_limit=2)
        receipt = attempt.run(vote_choice=1)
    """

    def __init__(
        self,
        checker: EligibilityChecker,
        service: ProofGenerationService,
        submitter: VoteSubmissionClient,
        signer: VoterSigner,
        vote_limit: int,
    ):
        self.checker = checker
        self.service = service
        self.submitter = submitter
        self.signer = signer
        self.vote_limit = vote_limit

        self.state = VoteState.IDLE
        self.handle: Optional[ProofHandle] = None
        self.pending: Optional[PendingVote] = None
        self.receipt = None
        self.error: Optional[ZkVotingError] = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def _transition(self, new_state: VoteState) -> None:
        if new_state not in TRANSITIONS.get(self.state, set()):
            raise InvalidTransition(f"Cannot go from {self.state.name} to {new_state.name}")
        log(INFO, f"[{self.signer.address}] {self.state.name} -> {new_state.name}")
        self.state = new_state

    def _fail(self, new_state: VoteState, error: ZkVotingError) -> ZkVotingError:
        self._transition(new_state)
        self.error = error
        return error

    def check_eligibility(self) -> None:
        self._transition(VoteState.CHECKING_ELIGIBILITY)
        try:
            voted = self.checker.has_voted(self.signer.address)
        except EligibilityCheckFailed as e:
            raise self._fail(VoteState.INELIGIBLE, e)
        if voted:
            raise self._fail(VoteState.INELIGIBLE, AlreadyVoted())

    def generate_proof(self, vote_choice: int) -> ProofHandle:
        self._transition(VoteState.GENERATING_PROOF)
        try:
            artifact = self.service.generate_proof(vote_choice, self.vote_limit)
        except ZkVotingError as e:
            raise self._fail(VoteState.PROOF_FAILED, e)

        self.handle = ProofHandle(artifact)
        self._transition(VoteState.PROOF_READY)
        return self.handle

    def submit(self) -> PendingVote:
        self._transition(VoteState.SUBMITTING)
        try:
            self.pending = self.submitter.submit_vote(self.handle, self.signer)
        except AlreadyVoted as e:
            raise self._fail(VoteState.REVERTED, e)
        except TransactionFailed as e:
            # a released handle means the ledger never saw the call
            raise self._fail(VoteState.REVERTED if self.handle.consumed else VoteState.PROOF_READY, e)
        return self.pending

    def confirm(self, timeout: Optional[float] = None):
        if self.state is not VoteState.SUBMITTING or self.pending is None:
            raise InvalidTransition(f"Nothing to confirm in state {self.state.name}")
        try:
            self.receipt = self.pending.wait(timeout)
        except ConfirmationTimeout as e:
            # still SUBMITTING: the transaction may be mined later
            self.error = e
            raise
        except (AlreadyVoted, TransactionFailed) as e:
            raise self._fail(VoteState.REVERTED, e)

        self._transition(VoteState.CONFIRMED)
        return self.receipt

    def run(self, vote_choice: int, timeout: Optional[float] = None, wait: bool = True):
        """Run the whole attempt. Inputs are validated before the ledger is contacted.

        Returns the receipt, or the ``PendingVote`` right after broadcast when ``wait`` is False.
        """
        validate_vote(vote_choice, self.vote_limit)
        self.check_eligibility()
        self.generate_proof(vote_choice)
        pending = self.submit()
        if not wait:
            return pending
        return self.confirm(timeout)
