"""Configuration constants and environment setup for asvToolkit."""

import os

# Default parameters
DEFAULT_THREADS = 1
DEFAULT_RANDOM_SEED = 42

# Output file names written by `asv denoise`
VARIANTS_FILE = "variants.tsv"
SEQUENCE_TABLE_FILE = "sequence_table.csv"
ERROR_MODEL_FILE = "error_model.tsv"
SUMMARY_FILE = "summary.json"


def setup_thread_limits(n_threads: int = 1) -> None:
    """
    Set environment variables to prevent thread oversubscription.

    Worker processes each run numpy; this should be called before
    numpy/scipy are imported to take effect.

    Args:
        n_threads: Number of threads to allow (default: 1)
    """
    thread_vars = [
        "OMP_NUM_THREADS",
        "OPENBLAS_NUM_THREADS",
        "MKL_NUM_THREADS",
        "VECLIB_MAXIMUM_THREADS",
        "NUMEXPR_NUM_THREADS",
    ]
    for var in thread_vars:
        os.environ[var] = str(n_threads)
