import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from zkvoting.exceptions import ConfigurationError


@dataclass(frozen=True)
class VotingConfig:
    """Run configuration of the voting core.

    Loaded from the ``[tool.zkvoting.config]`` table of a ``pyproject.toml``;
    every field has a default so an empty table is valid.
    """
    # Circuit toolchain
    zokrates_bin: str = "~/.zokrates/bin/zokrates"
    circuit_path: str = "circuits/vote.zok"
    working_dir: str = "proofs"
    vote_limit: int = 2
    stage_timeout: Optional[float] = 300.0
    reuse_provisioning: bool = True
    verify_proofs: bool = False
    keep_run_dirs: bool = False

    # Ledger
    node_url: str = "http://127.0.0.1:7545"
    contract_address: Optional[str] = None
    abi_path: str = "abi/ZkVotingABI.json"
    contract_source: str = "contracts/ZkVoting.sol"
    solidity_version: str = "0.8.0"
    explorer_base_url: str = "https://sepolia.etherscan.io/tx/"
    receipt_timeout: float = 120.0

    metrics_dir: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.vote_limit, bool) or not isinstance(self.vote_limit, int) or self.vote_limit < 1:
            raise ConfigurationError(f"vote_limit must be a positive integer, got {self.vote_limit!r}")
        if self.stage_timeout is not None and self.stage_timeout <= 0:
            raise ConfigurationError(f"stage_timeout must be positive, got {self.stage_timeout!r}")
        if self.receipt_timeout <= 0:
            raise ConfigurationError(f"receipt_timeout must be positive, got {self.receipt_timeout!r}")

    def update(self, **overrides: Any) -> "VotingConfig":
        """Return a copy with the non-``None`` overrides applied (used for CLI flags)."""
        return from_dict({**self.__dict__, **{k: v for k, v in overrides.items() if v is not None}})


def from_dict(values: Dict[str, Any]) -> VotingConfig:
    known = {f.name for f in fields(VotingConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {unknown}")
    return replace(VotingConfig(), **values)


def load_config(project_dir: Union[str, Path] = ".") -> VotingConfig:
    """Load the configuration from ``<project_dir>/pyproject.toml``.

    A missing file or a file without a ``[tool.zkvoting.config]`` table yields the defaults.
    """
    pyproject = Path(project_dir) / "pyproject.toml"
    if not pyproject.exists():
        return VotingConfig()

    try:
        with open(pyproject, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Cannot parse {pyproject}: {e}") from e

    config = data.get("tool", {}).get("zkvoting", {}).get("config", {})
    return from_dict(config)
