import os
import subprocess
import threading
import time
from logging import DEBUG, INFO, WARNING
from typing import Dict, Optional, Tuple

from zkvoting.exceptions import InvalidWitness, ToolchainStageFailed, ToolchainStageTimeout
from zkvoting.logger import log
from zkvoting.proof import ProofArtifact
from zkvoting.utils import circuit_version, store_proof_metrics
from zkvoting.zero_knowledge import ProvisionedCircuit, SmartContractVerifier, ZkSNARK

DEFAULT_ZOKRATES_BIN = "~/.zokrates/bin/zokrates"

# Output markers of a witness that does not satisfy the circuit
CONSTRAINT_VIOLATION_MARKERS = ("Execution failed", "Assertion failed", "Unsatisfied constraint")

_working_area_locks: Dict[str, threading.RLock] = {}
_registry_lock = threading.Lock()


def working_area_lock(path: str) -> threading.RLock:
    """Return the process-wide lock guarding the working area at ``path``."""
    key = os.path.realpath(path)
    with _registry_lock:
        return _working_area_locks.setdefault(key, threading.RLock())


class Zokrates(ZkSNARK, SmartContractVerifier):
    """A wrapper class for interacting with the ZoKrates zero-knowledge proof system.

    This class drives the four ZoKrates stages (compile, compute-witness, setup,
    generate-proof) and reads the resulting ``proof.json`` back into a ``ProofArtifact``.
    Every run against a working area holds that area's lock, so runs sharing a
    directory are serialized instead of overwriting each other's witness and keys.

    Example of usage:
    .. code-block:: python
        zokrates = Zokrates(working_dir="proofs/shared", circuit_path="circuits/vote.zok")

        # Reference flow: all four stages in one working area
        proof = zokrates.run_pipeline(vote_choice=1, vote_limit=2)

        # Provision once, then prove per vote in isolated run directories
        provisioned = zokrates.provision("circuits/vote.zok", "proofs/circuits/v1")
        proof = zokrates.prove((1, 2), provisioned, "proofs/runs/abc")
    """

    def __init__(
        self,
        zokrates_bin: str = DEFAULT_ZOKRATES_BIN,
        circuit_path: Optional[str] = None,
        working_dir: Optional[str] = None,
        stage_timeout: Optional[float] = None,
        metrics_dir: Optional[str] = None,
    ):
        """Initialize Zokrates.

        Args:
            zokrates_bin (str): Location of the ZoKrates binary, ``~`` is expanded.
            circuit_path (str, optional): Circuit source used by ``run_pipeline``.
            working_dir (str, optional): Working area used by ``run_pipeline``.
                If provided, the directory will be created if it doesn't exist.
            stage_timeout (float, optional): Upper bound in seconds for every stage.
            metrics_dir (str, optional): If set, stage durations are appended to a CSV file there.
        """
        self.zokrates_bin = os.path.expanduser(zokrates_bin)
        self.circuit_path = circuit_path
        self.working_dir = os.path.abspath(working_dir) if working_dir is not None else None
        self.stage_timeout = stage_timeout
        self.metrics_dir = metrics_dir

        if self.working_dir is not None:
            os.makedirs(self.working_dir, exist_ok=True)

    def _run_command(self, stage: str, args: Tuple[str, ...], cwd: str, check: bool = True) -> str:
        """Run one ZoKrates stage using subprocess.

        Args:
            stage (str): Stage name reported in logs and errors.
            args: Arguments following the binary, passed without a shell.
            cwd (str): Working area the stage runs in.
            check (bool): Raise on a non-zero exit code.

        Returns:
            str: Combined stdout and stderr of the command.

        Raises:
            ToolchainStageTimeout: If the stage runs longer than ``stage_timeout``.
            InvalidWitness: If compute-witness rejects the inputs.
            ToolchainStageFailed: If the stage cannot be started or exits with an error.
        """
        command = [self.zokrates_bin, *map(str, args)]
        os.makedirs(cwd, exist_ok=True)

        log(DEBUG, f"[{stage}] {' '.join(command)} (cwd={cwd})")
        start_time = time.time()
        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=cwd,
                timeout=self.stage_timeout,
            )
        except subprocess.TimeoutExpired as e:
            log(WARNING, f"[{stage}] timed out after {self.stage_timeout}s")
            raise ToolchainStageTimeout(stage, self.stage_timeout) from e
        except OSError as e:
            raise ToolchainStageFailed(stage, str(e)) from e

        execution_time = time.time() - start_time
        output = result.stdout.decode(errors="replace")
        log(DEBUG, f"[{stage}] exit={result.returncode} in {execution_time:.2f}s\n{output}")

        if self.metrics_dir is not None:
            store_proof_metrics(self.metrics_dir, stage, execution_time)

        if check and result.returncode != 0:
            if stage == "compute-witness" and any(m in output for m in CONSTRAINT_VIOLATION_MARKERS):
                raise InvalidWitness(output.strip())
            raise ToolchainStageFailed(stage, output.strip())
        return output

    def _compile(self, zok_file_path: str, provisioned: ProvisionedCircuit) -> None:
        self._run_command(
            "compile",
            ("compile", "-i", os.path.abspath(zok_file_path),
             "-o", provisioned.program, "-s", provisioned.abi_spec),
            cwd=provisioned.key_dir,
        )

    def _setup(self, provisioned: ProvisionedCircuit) -> None:
        self._run_command(
            "setup",
            ("setup", "-i", provisioned.program,
             "-p", provisioned.proving_key, "-v", provisioned.verification_key),
            cwd=provisioned.key_dir,
        )

    def _compute_witness(self, arguments: Tuple, provisioned: ProvisionedCircuit, run_dir: str) -> str:
        run_dir = os.path.abspath(run_dir)
        witness_path = os.path.join(run_dir, "witness")
        self._run_command(
            "compute-witness",
            ("compute-witness", "-i", provisioned.path(provisioned.program),
             "-s", provisioned.path(provisioned.abi_spec),
             "-o", witness_path, "-a", *arguments),
            cwd=run_dir,
        )
        return witness_path

    def _generate_proof(self, witness_path: str, provisioned: ProvisionedCircuit, run_dir: str) -> ProofArtifact:
        run_dir = os.path.abspath(run_dir)
        proof_path = os.path.join(run_dir, "proof.json")
        self._run_command(
            "generate-proof",
            ("generate-proof", "-i", provisioned.path(provisioned.program),
             "-w", witness_path, "-p", provisioned.path(provisioned.proving_key),
             "-j", proof_path),
            cwd=run_dir,
        )
        try:
            return ProofArtifact.from_file(proof_path)
        except (OSError, KeyError, ValueError) as e:
            raise ToolchainStageFailed("generate-proof", f"unreadable proof file: {e}") from e

    def run_pipeline(
        self,
        vote_choice: int,
        vote_limit: int,
        circuit_path: Optional[str] = None,
        working_dir: Optional[str] = None,
    ) -> ProofArtifact:
        """Run compile, compute-witness, setup and generate-proof in one working area.

        Each stage only starts once the previous one succeeded; the first failure
        aborts the run and no proof is returned.

        Args:
            vote_choice (int): Private circuit input.
            vote_limit (int): Public circuit input.
            circuit_path (str, optional): Overrides the circuit given at construction.
            working_dir (str, optional): Overrides the working area given at construction.
        """
        circuit_path = circuit_path or self.circuit_path
        working_dir = working_dir or self.working_dir
        if circuit_path is None or working_dir is None:
            raise ValueError("run_pipeline requires both circuit_path and working_dir")
        working_dir = os.path.abspath(working_dir)

        with working_area_lock(working_dir):
            provisioned = ProvisionedCircuit(version=circuit_version(circuit_path), key_dir=working_dir)
            os.makedirs(working_dir, exist_ok=True)

            self._compile(circuit_path, provisioned)
            witness_path = self._compute_witness((vote_choice, vote_limit), provisioned, working_dir)
            self._setup(provisioned)
            proof = self._generate_proof(witness_path, provisioned, working_dir)

        log(INFO, f"Proof generated in {working_dir}")
        return proof

    def provision(self, zok_file_path: str, key_dir: str) -> ProvisionedCircuit:
        """Compile the ZoKrates program and set up the proving and verification keys."""
        provisioned = ProvisionedCircuit(version=circuit_version(zok_file_path), key_dir=key_dir)

        with working_area_lock(key_dir):
            start_time = time.time()
            self._compile(zok_file_path, provisioned)
            self._setup(provisioned)

        log(INFO, f"Circuit {provisioned.version} provisioned in {time.time() - start_time:.2f}s at {key_dir}")
        return provisioned

    def prove(self, arguments: Tuple, provisioned: ProvisionedCircuit, run_dir: str) -> ProofArtifact:
        """Compute the witness for ``arguments`` and generate a proof with provisioned keys."""
        with working_area_lock(run_dir):
            witness_path = self._compute_witness(arguments, provisioned, run_dir)
            return self._generate_proof(witness_path, provisioned, run_dir)

    def verify_proof(self, provisioned: ProvisionedCircuit, proof_path: str) -> bool:
        output = self._run_command(
            "verify",
            ("verify", "-v", provisioned.path(provisioned.verification_key), "-j", os.path.abspath(proof_path)),
            cwd=provisioned.key_dir,
            check=False,
        )
        return "PASSED" in output

    def export_verifier(self, provisioned: ProvisionedCircuit) -> str:
        verifier_path = provisioned.path("verifier.sol")
        self._run_command(
            "export-verifier",
            ("export-verifier", "-i", provisioned.verification_key, "-o", "verifier.sol"),
            cwd=provisioned.key_dir,
        )
        return verifier_path
