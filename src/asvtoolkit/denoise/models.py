"""
Core data structures for denoising.

Design:
1. Inputs (UniqueSequence) and outputs (InferredVariant, Partition) are
   frozen dataclasses.
2. Result containers are plain dataclasses with a fixed set of fields.
3. Sequences are indexed by their position in the sample's input list.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

import numpy as np

from .exceptions import DataError

if TYPE_CHECKING:
    import pandas as pd
    from .error_model import ErrorModel, SubstitutionCounts

BASES = "ACGT"
BASE_INDEX = {base: i for i, base in enumerate(BASES)}

# ASCII -> base code lookup, 255 marks an invalid symbol
_ENCODE_TABLE = np.full(256, 255, dtype=np.uint8)
for _base, _code in BASE_INDEX.items():
    _ENCODE_TABLE[ord(_base)] = _code
    _ENCODE_TABLE[ord(_base.lower())] = _code


def encode_sequence(seq: str) -> np.ndarray:
    """Encode a nucleotide string as uint8 codes (A=0, C=1, G=2, T=3)."""
    raw = np.frombuffer(seq.encode("ascii"), dtype=np.uint8)
    return _ENCODE_TABLE[raw]


# =============================================================================
# Input
# =============================================================================

@dataclass(frozen=True)
class UniqueSequence:
    """A dereplicated sequence with its read count and mean quality profile."""
    sequence: str
    abundance: int
    quality: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "quality", tuple(float(q) for q in self.quality))

    def __len__(self) -> int:
        return len(self.sequence)

    def validate(self, sample: Optional[str] = None, index: Optional[int] = None) -> None:
        """Raise DataError if this record cannot be denoised."""
        if not self.sequence:
            raise DataError("empty sequence", sample, index)
        if len(self.quality) != len(self.sequence):
            raise DataError(
                f"quality profile length {len(self.quality)} does not match "
                f"sequence length {len(self.sequence)}",
                sample, index,
            )
        try:
            whole = not isinstance(self.abundance, bool) and int(self.abundance) == self.abundance
        except (TypeError, ValueError, OverflowError):
            whole = False
        if not whole:
            raise DataError(f"abundance must be a whole number of reads, got {self.abundance}", sample, index)
        if int(self.abundance) < 1:
            raise DataError(f"abundance must be positive, got {self.abundance}", sample, index)
        try:
            codes = encode_sequence(self.sequence)
        except UnicodeEncodeError:
            raise DataError("sequence contains non-ASCII symbols", sample, index)
        if (codes == 255).any():
            bad = sorted(set(c for c in self.sequence.upper() if c not in BASE_INDEX))
            raise DataError(f"sequence contains non-ACGT symbols: {bad}", sample, index)
        if any(q < 0 or q != q for q in self.quality):
            raise DataError("quality scores must be non-negative numbers", sample, index)


# =============================================================================
# Output
# =============================================================================

@dataclass(frozen=True)
class Partition:
    """A cluster of unique sequences attributed to one center."""
    center: int
    members: Tuple[int, ...]
    abundance: int

    def __contains__(self, index: int) -> bool:
        return index in self.members


@dataclass(frozen=True)
class InferredVariant:
    """A denoised sequence variant (ASV)."""
    sequence: str
    abundance: int
    sample: str
    center_index: int
    members: Tuple[int, ...]
    log_pvalue: float = 0.0

    @property
    def n_uniques(self) -> int:
        return len(self.members)


@dataclass
class SampleResult:
    """Partition Engine output for one sample."""
    sample: str
    variants: List[InferredVariant]
    partitions: List[Partition]
    counts: "SubstitutionCounts"
    converged: bool
    rounds: int
    promotion_order: List[int] = field(default_factory=list)
    n_uniques: int = 0
    total_abundance: int = 0

    def assignment(self) -> np.ndarray:
        """Partition index of every input unique."""
        assign = np.full(self.n_uniques, -1, dtype=int)
        for k, part in enumerate(self.partitions):
            assign[list(part.members)] = k
        return assign


class LearnerState(Enum):
    """States of the error-model learning state machine."""
    INITIALIZING = "initializing"
    PARTITIONING = "partitioning"
    AGGREGATING = "aggregating"
    CONVERGED = "converged"
    ITERATION_CAP_REACHED = "iteration_cap_reached"

    @property
    def is_terminal(self) -> bool:
        return self in (LearnerState.CONVERGED, LearnerState.ITERATION_CAP_REACHED)


@dataclass(frozen=True)
class IterationRecord:
    """Diagnostics for one learning iteration."""
    iteration: int
    max_change: float
    n_samples: int
    n_failed: int
    n_variants: int
    n_substitutions: int
    mean_error_rate: float


@dataclass
class DenoiseResult:
    """
    Final output of a denoising run.

    `converged` is False whenever the learning loop or any sample's
    partition pass stopped at an iteration cap; such results are a
    best-effort answer.
    """
    samples: Dict[str, SampleResult]
    failures: Dict[str, str]
    error_model: "ErrorModel"
    learning_converged: bool
    iterations: int
    history: List[IterationRecord] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.learning_converged and all(r.converged for r in self.samples.values())

    @property
    def variants(self) -> Dict[str, List[InferredVariant]]:
        return {name: res.variants for name, res in self.samples.items()}

    def variants_frame(self) -> "pd.DataFrame":
        from asvtoolkit.process.tables import variants_frame
        return variants_frame(self)

    def sequence_table(self) -> "pd.DataFrame":
        from asvtoolkit.process.tables import make_sequence_table
        return make_sequence_table(self)
