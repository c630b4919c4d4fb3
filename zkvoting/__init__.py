from .proof import ProofArtifact, ProofHandle
from .zero_knowledge import ZkSNARK, SmartContractVerifier, ProvisionedCircuit
from .zokrates import Zokrates
from .proof_service import ProofGenerationService, validate_vote
from .eligibility import EligibilityChecker, EligibilityStatus
from .signers import VoterSigner, NodeAccountSigner, LocalAccountSigner
from .smart_contract_manager import SmartContractManager
from .vote_submission import VoteSubmissionClient, PendingVote
from .vote_flow import VoteAttempt, VoteState
from .config import VotingConfig, load_config
