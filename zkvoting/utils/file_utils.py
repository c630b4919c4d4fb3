import hashlib
import json
import os
import shutil
from logging import WARNING
from typing import Any, Dict, List

from zkvoting.logger import log


def read_proof_file(proof_file_path: str) -> Dict[str, Any]:
    """Read the ``proof.json`` written by ``zokrates generate-proof``."""
    try:
        with open(proof_file_path, "r") as proof_file:
            proof_data = json.load(proof_file)
    except FileNotFoundError as e:
        raise FileNotFoundError(f"Proof file not found: {proof_file_path}") from e

    if "proof" not in proof_data:
        raise KeyError("'proof' field is missing in the proof.json file.")
    if not proof_data.get("inputs"):
        raise ValueError("No public inputs found or inputs field is empty.")
    return proof_data


def proof_points_to_ints(data: Dict[str, Any]):
    proof_a = [int(x, 16) for x in data['proof']['a']]
    proof_b = [[int(x, 16) for x in pair] for pair in data['proof']['b']]
    proof_c = [int(x, 16) for x in data['proof']['c']]
    inputs = [int(x, 16) if isinstance(x, str) else x for x in data['inputs']]

    return [proof_a, proof_b, proof_c], inputs


def circuit_version(circuit_path: str) -> str:
    """Identify a circuit by the sha256 of its source, used as the provisioning cache key."""
    with open(circuit_path, "rb") as f:
        return hashlib.sha256(f.read()).hexdigest()[:16]


def load_abi(abi_path: str) -> List[Dict[str, Any]]:
    with open(abi_path, "r") as f:
        abi = json.load(f)
    # Hardhat/Truffle artifacts wrap the ABI
    if isinstance(abi, dict) and "abi" in abi:
        abi = abi["abi"]
    return abi


def write_abi(abi_path: str, abi: List[Dict[str, Any]]) -> None:
    dir_name = os.path.dirname(abi_path)
    if dir_name:
        os.makedirs(dir_name, exist_ok=True)
    with open(abi_path, "w") as f:
        json.dump(abi, f, indent=4)


def cleanup_run_dir(run_dir: str) -> None:
    """Remove a per-run working area and all its contents if it exists."""
    if os.path.exists(run_dir):
        try:
            shutil.rmtree(run_dir)
        except OSError as e:
            log(WARNING, f"Error while removing directory {run_dir}: {str(e)}")
