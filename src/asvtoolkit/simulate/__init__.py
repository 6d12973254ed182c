"""Synthetic amplicon reads with known truth."""

from .amplicons import (
    SimulatedDataset,
    SimulatedSample,
    random_variants,
    run_amplicon_simulation,
    simulate_dataset,
)
from .read_errors import (
    BaseReadErrorModel,
    FixedRateErrorModel,
    QualityAwareErrorModel,
    get_read_error_model,
)

__all__ = [
    'SimulatedDataset',
    'SimulatedSample',
    'random_variants',
    'run_amplicon_simulation',
    'simulate_dataset',
    'BaseReadErrorModel',
    'FixedRateErrorModel',
    'QualityAwareErrorModel',
    'get_read_error_model',
]
