"""
Sequencing error models for simulated amplicon reads.

- FixedRateErrorModel: every base is miscalled with the same probability
  and carries the same quality score
- QualityAwareErrorModel: a declining Illumina-like quality profile; each
  base is miscalled with probability 10^(-q/10)

Substitutions are drawn uniformly among the three other bases.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

_BASES = np.array(["A", "C", "G", "T"])


class BaseReadErrorModel(ABC):
    """Base class for read error models."""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    @abstractmethod
    def apply(self, sequence: str) -> Tuple[str, List[int]]:
        """
        Apply the model to a true sequence.

        Returns:
            (sequence with errors, per-base quality scores)
        """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    def _substitute(self, sequence: str, error_probs: np.ndarray) -> str:
        seq_array = np.array(list(sequence.upper()))
        errors = self.rng.random(len(seq_array)) < error_probs
        for i in np.where(errors)[0]:
            alternatives = _BASES[_BASES != seq_array[i]]
            seq_array[i] = self.rng.choice(alternatives)
        return "".join(seq_array)


class FixedRateErrorModel(BaseReadErrorModel):
    """Constant substitution rate and constant quality."""

    def __init__(self, error_rate: float = 0.01, quality: int = 30, rng: Optional[np.random.Generator] = None):
        super().__init__(rng)
        if not 0 <= error_rate < 1:
            raise ValueError(f"error_rate must lie in [0, 1), got {error_rate}")
        self.error_rate = error_rate
        self.quality = int(quality)

    def apply(self, sequence: str) -> Tuple[str, List[int]]:
        probs = np.full(len(sequence), self.error_rate)
        return self._substitute(sequence, probs), [self.quality] * len(sequence)

    @property
    def name(self) -> str:
        return "fixed"


class QualityAwareErrorModel(BaseReadErrorModel):
    """Illumina-like quality decay along the read; errors follow the qualities."""

    def __init__(
        self,
        start_quality: float = 38.0,
        end_quality: float = 25.0,
        jitter: int = 3,
        min_quality: int = 2,
        max_quality: int = 40,
        rng: Optional[np.random.Generator] = None,
    ):
        super().__init__(rng)
        self.start_quality = start_quality
        self.end_quality = end_quality
        self.jitter = jitter
        self.min_quality = min_quality
        self.max_quality = max_quality

    def quality_profile(self, length: int) -> np.ndarray:
        positions = np.arange(length)
        q = self.start_quality + (self.end_quality - self.start_quality) * positions / max(length - 1, 1)
        q = np.rint(q).astype(int)
        if self.jitter > 0:
            q = q + self.rng.integers(-self.jitter, self.jitter + 1, length)
        return np.clip(q, self.min_quality, self.max_quality)

    def apply(self, sequence: str) -> Tuple[str, List[int]]:
        q = self.quality_profile(len(sequence))
        probs = 10 ** (-q / 10)
        return self._substitute(sequence, probs), q.tolist()

    @property
    def name(self) -> str:
        return "quality_aware"


def get_read_error_model(name: str, **kwargs) -> BaseReadErrorModel:
    """
    Get a read error model by name.

    Args:
        name: Model name (fixed, quality_aware)
        **kwargs: Passed to the model

    Returns:
        Error model instance
    """
    models = {
        "fixed": FixedRateErrorModel,
        "quality_aware": QualityAwareErrorModel,
    }

    if name not in models:
        raise ValueError(f"Unknown error model: {name}. Available: {list(models.keys())}")

    return models[name](**kwargs)
