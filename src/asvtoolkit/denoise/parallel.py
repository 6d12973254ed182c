"""
Parallel sample processing.

Samples are independent within one pass: each worker receives the shared
(immutable) error model and its own unique sequences, and returns either
a SampleResult or the message of the DataError that stopped it. A
ConfigurationError is not captured and aborts the whole pass.
"""

import logging
import multiprocessing as mp
import warnings
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

from .config import DenoiseConfig
from .error_model import ErrorModel
from .exceptions import DataError, NonConvergenceWarning
from .models import SampleResult, UniqueSequence
from .partition import PartitionEngine

logger = logging.getLogger(__name__)


@dataclass
class PassOutcome:
    """Results of one Partition Engine pass over all samples."""
    results: Dict[str, SampleResult]
    failures: Dict[str, str]

    @property
    def n_succeeded(self) -> int:
        return len(self.results)


def get_optimal_workers(requested: int = 0, n_tasks: Optional[int] = None) -> int:
    """
    Get the number of worker processes to use.

    Args:
        requested: Requested workers, 0 means automatic
        n_tasks: Upper bound from the number of tasks

    Returns:
        Worker count
    """
    cpu_count = mp.cpu_count()

    if requested <= 0:
        workers = max(1, cpu_count - 1)
    else:
        workers = min(max(1, requested), cpu_count)

    if n_tasks is not None:
        workers = min(workers, max(1, n_tasks))
    return workers


def _worker_partition(
    sample: str,
    uniques: Sequence[UniqueSequence],
    error_model: ErrorModel,
    config: DenoiseConfig,
) -> Tuple[str, Optional[SampleResult], Optional[str]]:
    # the parent re-emits non-convergence from the result flag
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NonConvergenceWarning)
        try:
            result = PartitionEngine(error_model, config).run(sample, uniques)
        except DataError as e:
            return sample, None, str(e)
    return sample, result, None


def partition_samples(
    samples: Mapping[str, Sequence[UniqueSequence]],
    error_model: ErrorModel,
    config: Optional[DenoiseConfig] = None,
    num_workers: Optional[int] = None,
) -> PassOutcome:
    """
    Run the Partition Engine on every sample.

    Args:
        samples: Sample name -> unique sequences
        error_model: Model shared read-only by every sample
        config: Denoising configuration
        num_workers: Worker processes (default config.threads); 1 runs in-process, 0 picks automatically

    Returns:
        PassOutcome with results and failures in input order
    """
    config = config if config is not None else DenoiseConfig()
    if num_workers is None:
        num_workers = config.threads

    tasks = [(name, list(uniques), error_model, config) for name, uniques in samples.items()]

    if num_workers == 1 or len(tasks) <= 1:
        outputs = [_worker_partition(*task) for task in tasks]
    else:
        worker_count = get_optimal_workers(num_workers, len(tasks))
        logger.info(f"Using {worker_count} workers for {len(tasks)} samples")
        with mp.Pool(worker_count) as pool:
            outputs = pool.starmap(_worker_partition, tasks)

    results: Dict[str, SampleResult] = {}
    failures: Dict[str, str] = {}
    for name, result, error in outputs:
        if error is not None:
            logger.warning(f"Sample '{name}' failed: {error}")
            failures[name] = error
            continue
        if not result.converged:
            warnings.warn(
                f"Sample '{name}' reached max_partition_iterations; result is best-effort",
                NonConvergenceWarning,
            )
        results[name] = result

    return PassOutcome(results=results, failures=failures)

