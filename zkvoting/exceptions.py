from typing import Optional


class ZkVotingError(Exception):
    """Base class for every failure surfaced by the voting core.

    Each subclass carries a ``kind`` used on the transport boundary and a
    user-facing ``message`` that is distinct from every other kind.
    """

    kind = "ZkVotingError"
    message = "The voting operation failed."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(self.message if detail is None else f"{self.message} {detail}")


class InvalidInput(ZkVotingError):
    kind = "InvalidInput"
    message = "The vote choice or vote limit is malformed or out of range."


class ToolchainStageFailed(ZkVotingError):
    """Raised when one of the ZoKrates stages exits with an error.

    Attributes:
        stage (str): Name of the stage that failed (compile, compute-witness, setup, generate-proof, ...).
        cause (str): Output of the failed command, or the underlying OS error.
    """

    kind = "ToolchainStageFailed"
    message = "Proof generation failed while running the circuit toolchain."

    def __init__(self, stage: str, cause: str = ""):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {cause}".strip())


class ToolchainStageTimeout(ToolchainStageFailed):
    kind = "ToolchainStageTimeout"
    message = "Proof generation took too long and was stopped."

    def __init__(self, stage: str, timeout: float):
        self.timeout = timeout
        super().__init__(stage, f"no result after {timeout} seconds")


class InvalidWitness(ToolchainStageFailed):
    """The inputs do not satisfy the circuit constraints (e.g. choice out of range)."""

    kind = "InvalidWitness"
    message = "The vote does not satisfy the circuit constraints."

    def __init__(self, cause: str = ""):
        super().__init__("compute-witness", cause)


class EligibilityCheckFailed(ZkVotingError):
    kind = "EligibilityCheckFailed"
    message = "Could not determine whether this address has already voted."


class AlreadyVoted(ZkVotingError):
    kind = "AlreadyVoted"
    message = "You have already voted. Multiple votes are not allowed."


class TransactionFailed(ZkVotingError):
    kind = "TransactionFailed"
    message = "The vote transaction was not accepted by the ledger."

    def __init__(self, detail: Optional[str] = None, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(detail)


class ConfirmationTimeout(TransactionFailed):
    """No receipt within the wait; the transaction is still in flight on the ledger."""

    kind = "ConfirmationTimeout"
    message = "The vote transaction was sent but is not confirmed yet."


class ProofAlreadySubmitted(ZkVotingError):
    kind = "ProofAlreadySubmitted"
    message = "This proof has already been submitted. Generate a new proof to vote again."


class LedgerConnectionError(ZkVotingError):
    kind = "LedgerConnectionError"
    message = "Failed to connect to the Ethereum node."


class ConfigurationError(ZkVotingError):
    kind = "ConfigurationError"
    message = "The voting configuration is invalid."
