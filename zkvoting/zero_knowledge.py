import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple, Any

from zkvoting.proof import ProofArtifact


@dataclass(frozen=True)
class ProvisionedCircuit:
    """Circuit-specific material produced once by compile + setup.

    Proving and verification keys belong to a circuit version, not to a vote,
    so the same provisioned circuit serves every proof for that version.
    """
    version: str
    key_dir: str
    program: str = "out"
    abi_spec: str = "abi.json"
    proving_key: str = "proving.key"
    verification_key: str = "verification.key"

    def __post_init__(self):
        # stages run with cwd=key_dir, so paths handed to them must not be relative
        object.__setattr__(self, "key_dir", os.path.abspath(self.key_dir))

    def path(self, name: str) -> str:
        return os.path.join(self.key_dir, name)

    @property
    def is_complete(self) -> bool:
        return all(
            os.path.exists(self.path(name))
            for name in (self.program, self.abi_spec, self.proving_key, self.verification_key)
        )


class ZkSNARK(ABC):
    """Abstract base class for zero-knowledge proof operations.

    This interface defines the standard operations that any zero-knowledge proof
    implementation should support, regardless of the underlying tool (ZoKrates, SnarkJS, etc.).
    """

    @abstractmethod
    def provision(self, program_file: str, key_dir: str) -> ProvisionedCircuit:
        """Compile the circuit and derive its proving and verification keys.

        Args:
            program_file (str): Path to the program file that defines the circuit
            key_dir (str): Directory receiving the compiled program and the keys
        """
        pass

    @abstractmethod
    def prove(self, arguments: Tuple[Any, ...], provisioned: ProvisionedCircuit, run_dir: str) -> ProofArtifact:
        """Generate a zero-knowledge proof with the given arguments.

        Args:
            arguments: Tuple of arguments required for the witness computation
            provisioned: Compiled program and keys returned by ``provision``
            run_dir: Working area holding this run's witness and proof

        Returns:
            The generated proof
        """
        pass

    @abstractmethod
    def verify_proof(self, provisioned: ProvisionedCircuit, proof_path: str) -> bool:
        """Verify a generated proof against the verification key of ``provisioned``."""
        pass


class SmartContractVerifier(ABC):
    """Interface for ZKP systems that support smart contract verification."""

    @abstractmethod
    def export_verifier(self, provisioned: ProvisionedCircuit) -> str:
        """Export a Solidity verifier for ``provisioned`` and return its path."""
        pass
