import threading
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from zkvoting.exceptions import ProofAlreadySubmitted
from zkvoting.utils import read_proof_file, proof_points_to_ints


@dataclass(frozen=True)
class ProofArtifact:
    """A Groth16 proof produced by ``zokrates generate-proof``.

    Attributes:
        a (Tuple[str, str]): G1 point, hex encoded.
        b (Tuple[Tuple[str, str], Tuple[str, str]]): G2 point, hex encoded.
        c (Tuple[str, str]): G1 point, hex encoded.
        inputs (Tuple[str, ...]): Public inputs in circuit order. For the vote circuit these
            are the vote limit followed by the commitment of the vote choice.
        scheme (str): Proving scheme reported by the toolchain.
        curve (str): Curve reported by the toolchain.
    """
    a: Tuple[str, str]
    b: Tuple[Tuple[str, str], Tuple[str, str]]
    c: Tuple[str, str]
    inputs: Tuple[str, ...]
    scheme: str = "g16"
    curve: str = "bn128"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProofArtifact":
        proof = data["proof"]
        return cls(
            a=tuple(proof["a"]),
            b=tuple(tuple(pair) for pair in proof["b"]),
            c=tuple(proof["c"]),
            inputs=tuple(data["inputs"]),
            scheme=data.get("scheme", "g16"),
            curve=data.get("curve", "bn128"),
        )

    @classmethod
    def from_file(cls, proof_file_path: str) -> "ProofArtifact":
        return cls.from_dict(read_proof_file(proof_file_path))

    def to_dict(self) -> Dict[str, Any]:
        """Transport shape: ``{"proof": {"a", "b", "c"}, "inputs": [...]}``."""
        return {
            "scheme": self.scheme,
            "curve": self.curve,
            "proof": {
                "a": list(self.a),
                "b": [list(pair) for pair in self.b],
                "c": list(self.c),
            },
            "inputs": list(self.inputs),
        }

    def to_contract_args(self):
        """Return ``([a, b, c], inputs)`` as integers, the argument shape of ``ZkVoting.vote``."""
        return proof_points_to_ints(self.to_dict())


class ProofHandle:
    """Single-use token wrapping a proof between generation and submission.

    Once consumed, the handle refuses to hand out its proof again so a stale
    proof cannot be submitted twice from the same client.
    """

    def __init__(self, artifact: ProofArtifact):
        self.artifact = artifact
        self._consumed = False
        self._lock = threading.Lock()

    @property
    def consumed(self) -> bool:
        return self._consumed

    def consume(self) -> ProofArtifact:
        with self._lock:
            if self._consumed:
                raise ProofAlreadySubmitted()
            self._consumed = True
            return self.artifact

    def release(self) -> None:
        """Give the proof back after a failure that never reached the ledger."""
        with self._lock:
            self._consumed = False
