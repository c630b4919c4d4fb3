from .file_utils import read_proof_file, proof_points_to_ints, circuit_version, load_abi, write_abi, cleanup_run_dir
from .metrics import store_deployment_metrics, store_vote_metrics, store_proof_metrics, calculate_transaction_cost
