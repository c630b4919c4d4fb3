import os
import threading
import time
import uuid
from logging import INFO, WARNING
from typing import Dict

from zkvoting.config import VotingConfig
from zkvoting.exceptions import InvalidInput, ToolchainStageFailed, ZkVotingError
from zkvoting.logger import log
from zkvoting.proof import ProofArtifact
from zkvoting.utils import circuit_version, cleanup_run_dir
from zkvoting.zero_knowledge import ProvisionedCircuit
from zkvoting.zokrates import Zokrates


def validate_vote(vote_choice, vote_limit) -> None:
    """Reject malformed or out-of-range votes before they reach the toolchain."""
    for name, value in (("voteChoice", vote_choice), ("voteLimit", vote_limit)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInput(f"{name} must be an integer, got {value!r}.")

    if vote_limit < 1:
        raise InvalidInput(f"voteLimit must be at least 1, got {vote_limit}.")
    if not 1 <= vote_choice <= vote_limit:
        raise InvalidInput(f"voteChoice must be between 1 and {vote_limit}, got {vote_choice}.")


class ProofGenerationService:
    """Turns a vote choice into a proof by driving the circuit toolchain.

    Every request runs in its own directory under ``<working_dir>/runs`` so
    concurrent requests never share a witness or proof file. Key material is
    provisioned once per circuit version under ``<working_dir>/circuits`` and
    reused by every later request.

    Attributes:
        zk_prover (Zokrates): Toolchain adapter.
        circuit_path (str): Vote circuit source.
        working_dir (str): Root of the provisioning cache and the run directories.
        reuse_provisioning (bool): If False, every request recompiles and re-runs setup.
        verify_proofs (bool): Check each proof with ``zokrates verify`` before returning it.
        keep_run_dirs (bool): Keep run directories for inspection instead of removing them.
    """

    def __init__(
        self,
        zk_prover: Zokrates,
        circuit_path: str,
        working_dir: str,
        reuse_provisioning: bool = True,
        verify_proofs: bool = False,
        keep_run_dirs: bool = False,
    ):
        self.zk_prover = zk_prover
        self.circuit_path = circuit_path
        self.working_dir = os.path.abspath(working_dir)
        self.reuse_provisioning = reuse_provisioning
        self.verify_proofs = verify_proofs
        self.keep_run_dirs = keep_run_dirs

        self._provisioned: Dict[str, ProvisionedCircuit] = {}
        self._provision_lock = threading.Lock()

        os.makedirs(self.working_dir, exist_ok=True)

    @classmethod
    def from_config(cls, config: VotingConfig) -> "ProofGenerationService":
        zk_prover = Zokrates(
            zokrates_bin=config.zokrates_bin,
            stage_timeout=config.stage_timeout,
            metrics_dir=config.metrics_dir,
        )
        return cls(
            zk_prover=zk_prover,
            circuit_path=config.circuit_path,
            working_dir=config.working_dir,
            reuse_provisioning=config.reuse_provisioning,
            verify_proofs=config.verify_proofs,
            keep_run_dirs=config.keep_run_dirs,
        )

    def provisioned_circuit(self) -> ProvisionedCircuit:
        """Return the key material for the current circuit, provisioning it on first use."""
        version = circuit_version(self.circuit_path)

        with self._provision_lock:
            cached = self._provisioned.get(version)
            if cached is not None:
                return cached

            key_dir = os.path.join(self.working_dir, "circuits", version)
            provisioned = ProvisionedCircuit(version=version, key_dir=key_dir)
            if provisioned.is_complete:
                log(INFO, f"Reusing provisioned circuit {version} from {key_dir}")
            else:
                provisioned = self.zk_prover.provision(self.circuit_path, key_dir)

            self._provisioned[version] = provisioned
            return provisioned

    def generate_proof(self, vote_choice: int, vote_limit: int) -> ProofArtifact:
        """Generate a proof that ``vote_choice`` lies in ``[1, vote_limit]``.

        Raises:
            InvalidInput: If the inputs are malformed; the toolchain is not invoked.
            InvalidWitness: If the circuit rejects the inputs.
            ToolchainStageFailed: If any stage fails, times out, or the proof does not verify.
        """
        validate_vote(vote_choice, vote_limit)

        run_id = uuid.uuid4().hex
        run_dir = os.path.join(self.working_dir, "runs", run_id)
        start_time = time.time()

        try:
            if self.reuse_provisioning:
                provisioned = self.provisioned_circuit()
                proof = self.zk_prover.prove((vote_choice, vote_limit), provisioned, run_dir)
            else:
                provisioned = ProvisionedCircuit(version=circuit_version(self.circuit_path), key_dir=run_dir)
                proof = self.zk_prover.run_pipeline(
                    vote_choice, vote_limit, circuit_path=self.circuit_path, working_dir=run_dir
                )

            if self.verify_proofs:
                proof_path = os.path.join(run_dir, "proof.json")
                if not self.zk_prover.verify_proof(provisioned, proof_path):
                    raise ToolchainStageFailed("verify", "the generated proof did not verify")

        except ZkVotingError as e:
            log(WARNING, f"Run {run_id} failed: {e}")
            raise
        finally:
            if not self.keep_run_dirs:
                cleanup_run_dir(run_dir)

        log(INFO, f"Run {run_id} produced a proof in {time.time() - start_time:.2f}s")
        return proof
