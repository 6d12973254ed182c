"""
Amplicon denoising engine.

Error-model learning and sample inference over dereplicated unique
sequences.
"""

from .config import DenoiseConfig, get_default_config
from .derep import dereplicate, derep_fastq, derep_fastq_files
from .error_model import ErrorModel, SubstitutionCounts
from .exceptions import ConfigurationError, DataError, DenoiseError, NonConvergenceWarning
from .learning import ErrorModelLearner, denoise, final_pass, learn_errors
from .models import (
    DenoiseResult,
    InferredVariant,
    IterationRecord,
    LearnerState,
    Partition,
    SampleResult,
    UniqueSequence,
)
from .partition import PartitionEngine, partition_sample
from .significance import SignificancePolicy, get_significance_policy

__all__ = [
    'DenoiseConfig',
    'get_default_config',
    'dereplicate',
    'derep_fastq',
    'derep_fastq_files',
    'ErrorModel',
    'SubstitutionCounts',
    'ConfigurationError',
    'DataError',
    'DenoiseError',
    'NonConvergenceWarning',
    'ErrorModelLearner',
    'denoise',
    'final_pass',
    'learn_errors',
    'DenoiseResult',
    'InferredVariant',
    'IterationRecord',
    'LearnerState',
    'Partition',
    'SampleResult',
    'UniqueSequence',
    'PartitionEngine',
    'partition_sample',
    'SignificancePolicy',
    'get_significance_policy',
]
