import csv
import os
from pathlib import Path


def _append_row(filepath: Path, header, row) -> None:
    filepath.parent.mkdir(parents=True, exist_ok=True)
    file_exists = filepath.exists()

    with open(filepath, 'a', newline='') as f:
        writer = csv.writer(f)
        if not file_exists:
            writer.writerow(header)
        writer.writerow(row)


def store_deployment_metrics(metrics_dir: str, deployer: str, cost_wei: int, execution_time: float):
    filepath = Path(metrics_dir) / "deployment_metrics.csv"
    _append_row(filepath, ['deployer', 'cost_wei', 'execution_time'], [deployer, cost_wei, execution_time])


def store_vote_metrics(metrics_dir: str, tx_hash: str, status: int, cost_wei: int, execution_time: float):
    filepath = Path(metrics_dir) / "vote_metrics.csv"
    _append_row(filepath, ['tx_hash', 'status', 'cost_wei', 'execution_time'], [tx_hash, status, cost_wei, execution_time])


def store_proof_metrics(metrics_dir: str, stage: str, execution_time: float):
    filepath = Path(metrics_dir) / "proof_metrics.csv"
    _append_row(filepath, ['pid', 'stage', 'execution_time'], [os.getpid(), stage, execution_time])


def calculate_transaction_cost(w3, tx_receipt) -> int:
    """
    Calculate the total cost of a transaction in wei
    """
    gas_price = tx_receipt.get("effectiveGasPrice") or w3.eth.gas_price
    return tx_receipt["gasUsed"] * gas_price
