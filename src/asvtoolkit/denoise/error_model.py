"""
Quality-aware substitution error model.

The model stores P(observed base | reference base, quality bucket) as a
(4, 4, n_buckets) array indexed [ref, obs, bucket]. Each (ref, bucket)
row sums to one.

Quality scores are rounded and mapped onto buckets:
    bucket = round(q) * n_buckets // (max_quality + 1)
so that with the default n_buckets = max_quality + 1 every integer
quality gets its own bucket.

Models are immutable values: reestimate() and freeze() return new
objects and the underlying arrays are read-only.
"""

import logging
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .alignment import compare
from .exceptions import ConfigurationError, DataError
from .models import BASES, BASE_INDEX, UniqueSequence, encode_sequence

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUALITY = 40
N_BASES = len(BASES)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.flags.writeable = False
    return arr


def resolve_buckets(max_quality: int, n_buckets: Optional[int]) -> int:
    if max_quality is None or int(max_quality) < 0:
        raise ConfigurationError(f"max_quality must be >= 0, got {max_quality}")
    if n_buckets is None:
        return int(max_quality) + 1
    if int(n_buckets) < 1:
        raise ConfigurationError(f"quality_bucket_count must be >= 1, got {n_buckets}")
    return min(int(n_buckets), int(max_quality) + 1)


def quality_to_bucket(quality, max_quality: int, n_buckets: int) -> np.ndarray:
    """Map (mean) quality scores to bucket indices, clamping out-of-range values."""
    q = np.clip(np.rint(np.asarray(quality, dtype=float)), 0, max_quality).astype(np.int64)
    return q * n_buckets // (max_quality + 1)


class SubstitutionCounts:
    """Read-weighted (ref, obs, quality bucket) observations."""

    def __init__(self, max_quality: int, n_buckets: Optional[int] = None, counts: Optional[np.ndarray] = None):
        self.max_quality = int(max_quality)
        self.n_buckets = resolve_buckets(self.max_quality, n_buckets)
        shape = (N_BASES, N_BASES, self.n_buckets)
        if counts is None:
            self.counts = np.zeros(shape, dtype=np.int64)
        else:
            counts = np.asarray(counts, dtype=np.int64)
            if counts.shape != shape:
                raise ConfigurationError(f"counts shape {counts.shape} != expected {shape}")
            self.counts = counts.copy()

    def _check_compatible(self, other: "SubstitutionCounts") -> None:
        if (self.max_quality, self.n_buckets) != (other.max_quality, other.n_buckets):
            raise ConfigurationError(
                "Incompatible quality bucketing: "
                f"({self.max_quality}, {self.n_buckets}) vs ({other.max_quality}, {other.n_buckets})"
            )

    def add(self, ref_codes: np.ndarray, obs_codes: np.ndarray, quality, weight: int = 1) -> None:
        """Add aligned base triples, each counted `weight` times."""
        buckets = quality_to_bucket(quality, self.max_quality, self.n_buckets)
        np.add.at(self.counts, (ref_codes, obs_codes, buckets), int(weight))

    def __add__(self, other: "SubstitutionCounts") -> "SubstitutionCounts":
        self._check_compatible(other)
        return SubstitutionCounts(self.max_quality, self.n_buckets, self.counts + other.counts)

    @classmethod
    def merge(cls, items: Iterable["SubstitutionCounts"], max_quality: int, n_buckets: Optional[int] = None):
        merged = cls(max_quality, n_buckets)
        for item in items:
            merged = merged + item
        return merged

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    @property
    def substitutions(self) -> int:
        diag = sum(int(self.counts[b, b].sum()) for b in range(N_BASES))
        return self.total - diag

    def __repr__(self) -> str:
        return (
            f"SubstitutionCounts(max_quality={self.max_quality}, n_buckets={self.n_buckets}, "
            f"total={self.total}, substitutions={self.substitutions})"
        )


class ErrorModel:
    """
    Estimated substitution probabilities by quality bucket.

    Args:
        probs: (4, 4, n_buckets) array of P(obs | ref, bucket)
        defined: (4, n_buckets) mask of rows backed by evidence
        max_quality: Highest quality score represented
        frozen: True once the learning loop has finished with this model
    """

    def __init__(self, probs: np.ndarray, defined: np.ndarray, max_quality: int, frozen: bool = False):
        probs = np.asarray(probs, dtype=float)
        defined = np.asarray(defined, dtype=bool)
        if probs.ndim != 3 or probs.shape[:2] != (N_BASES, N_BASES):
            raise ConfigurationError(f"Malformed error table with shape {probs.shape}")
        n_buckets = probs.shape[2]
        if defined.shape != (N_BASES, n_buckets):
            raise ConfigurationError(f"Malformed coverage mask with shape {defined.shape}")
        if n_buckets != resolve_buckets(max_quality, n_buckets):
            raise ConfigurationError(f"{n_buckets} buckets exceed max_quality {max_quality}")
        if np.any(probs < 0) or np.any(probs > 1):
            raise ConfigurationError("Error probabilities must lie in [0, 1]")
        sums = probs.sum(axis=1)
        if not np.allclose(sums[defined], 1.0, atol=1e-6):
            raise ConfigurationError("Error probabilities do not sum to 1 for every quality bucket")

        self.max_quality = int(max_quality)
        self.n_buckets = n_buckets
        self.frozen = frozen
        self.defined = _readonly(defined)
        self.probs = _readonly(_fill_undefined(probs, defined))
        with np.errstate(divide="ignore"):
            self.log_probs = _readonly(np.log(self.probs))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_counts(
        cls,
        counts: SubstitutionCounts,
        pseudocount: float = 1.0,
        enforce_monotonicity: bool = False,
    ) -> "ErrorModel":
        """Maximum-likelihood estimate per bucket with Laplace smoothing."""
        if pseudocount < 0:
            raise ConfigurationError(f"pseudocount must be >= 0, got {pseudocount}")
        raw = counts.counts.astype(float)
        row_totals = raw.sum(axis=1)                        # (ref, bucket)
        defined = row_totals > 0
        if not defined.any():
            raise ConfigurationError("No base observations available to estimate an error model")

        denom = row_totals + N_BASES * pseudocount
        probs = np.zeros_like(raw)
        for r in range(N_BASES):
            for b in np.nonzero(defined[r])[0]:
                if denom[r, b] > 0:
                    probs[r, :, b] = (raw[r, :, b] + pseudocount) / denom[r, b]

        if enforce_monotonicity:
            probs = _monotone(probs, defined)

        return cls(probs, defined, counts.max_quality)

    @classmethod
    def from_error_rate(
        cls,
        error_rate: float,
        max_quality: int = DEFAULT_MAX_QUALITY,
        n_buckets: Optional[int] = None,
    ) -> "ErrorModel":
        """Uniform model: every substitution has probability error_rate / 3."""
        if not 0 <= error_rate < 1:
            raise ConfigurationError(f"error_rate must lie in [0, 1), got {error_rate}")
        n_buckets = resolve_buckets(max_quality, n_buckets)
        probs = np.full((N_BASES, N_BASES, n_buckets), error_rate / (N_BASES - 1))
        for b in range(N_BASES):
            probs[b, b, :] = 1.0 - error_rate
        return cls(probs, np.ones((N_BASES, n_buckets), dtype=bool), max_quality)

    @classmethod
    def initialize(
        cls,
        samples: Mapping[str, Sequence[UniqueSequence]],
        max_quality: Optional[int] = None,
        quality_bucket_count: Optional[int] = None,
        pseudocount: float = 1.0,
    ) -> "ErrorModel":
        """
        Conservative prior from the input itself.

        The most abundant unique of each sample is taken as the only true
        sequence; every base of every other unique is counted against it, so
        all real variation is treated as error.

        Raises:
            ConfigurationError: If no sample supplies a usable sequence
        """
        if not samples:
            raise ConfigurationError("No samples supplied")

        usable = {}
        for name, uniques in samples.items():
            if not uniques:
                logger.warning(f"Sample '{name}' has no sequences; skipped for error-model prior")
                continue
            try:
                for i, uniq in enumerate(uniques):
                    uniq.validate(name, i)
            except DataError as e:
                logger.warning(f"Skipping malformed sample for error-model prior: {e}")
                continue
            usable[name] = uniques

        if not usable:
            raise ConfigurationError("No usable sequences supplied to initialize the error model")

        if max_quality is None:
            max_quality = max(
                int(np.ceil(max(u.quality))) for uniques in usable.values() for u in uniques
            )
        counts = SubstitutionCounts(max_quality, quality_bucket_count)

        for uniques in usable.values():
            abundances = np.array([u.abundance for u in uniques])
            center = uniques[int(np.argmax(abundances))]
            center_codes = encode_sequence(center.sequence)
            for uniq in uniques:
                codes = encode_sequence(uniq.sequence)
                pairs = compare(center.sequence, uniq.sequence)
                quality = np.asarray(uniq.quality)[pairs.query_pos]
                counts.add(center_codes[pairs.ref_pos], codes[pairs.query_pos], quality, uniq.abundance)

        logger.info(
            f"Initial error model from {len(usable)} samples: "
            f"{counts.total} base observations, {counts.substitutions} treated as errors"
        )
        return cls.from_counts(counts, pseudocount)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def bucket(self, quality) -> np.ndarray:
        return quality_to_bucket(quality, self.max_quality, self.n_buckets)

    def check_coverage(self, ref_codes: Optional[Iterable[int]] = None) -> None:
        """Raise ConfigurationError if a reference base has no defined bucket."""
        refs = range(N_BASES) if ref_codes is None else set(int(r) for r in ref_codes)
        for r in refs:
            if not self.defined[r].any():
                raise ConfigurationError(
                    f"Error model has no quality bucket for reference base '{BASES[r]}'"
                )

    def evaluate(self, reference_base: str, observed_base: str, quality: float) -> float:
        """P(observed_base | reference_base, quality)."""
        try:
            r = BASE_INDEX[reference_base.upper()]
            o = BASE_INDEX[observed_base.upper()]
        except KeyError:
            raise ConfigurationError(f"Unknown base pair {reference_base}->{observed_base}")
        self.check_coverage([r])
        return float(self.probs[r, o, int(self.bucket(quality))])

    def log_lookup(self, ref_codes: np.ndarray, obs_codes: np.ndarray, buckets: np.ndarray) -> np.ndarray:
        """Vectorised log P(obs | ref, bucket)."""
        return self.log_probs[ref_codes, obs_codes, buckets]

    def error_rates(self) -> np.ndarray:
        """(4, n_buckets) probability that a reference base is miscalled."""
        return 1.0 - np.stack([self.probs[b, b] for b in range(N_BASES)])

    def mean_error_rate(self) -> float:
        rates = self.error_rates()
        if not self.defined.any():
            return float("nan")
        return float(rates[self.defined].mean())

    # ------------------------------------------------------------------
    # Re-estimation and convergence
    # ------------------------------------------------------------------

    def reestimate(
        self,
        counts: SubstitutionCounts,
        pseudocount: float = 1.0,
        enforce_monotonicity: bool = False,
    ) -> "ErrorModel":
        """New model estimated from pooled counts; the receiver is unchanged."""
        if (counts.max_quality, counts.n_buckets) != (self.max_quality, self.n_buckets):
            raise ConfigurationError("Substitution counts use a different quality bucketing")
        return ErrorModel.from_counts(counts, pseudocount, enforce_monotonicity)

    def max_change(self, other: "ErrorModel") -> float:
        """Maximum absolute difference of any probability cell."""
        if self.probs.shape != other.probs.shape or self.max_quality != other.max_quality:
            raise ConfigurationError("Cannot compare error models with different bucketing")
        return float(np.max(np.abs(self.probs - other.probs)))

    def freeze(self) -> "ErrorModel":
        return ErrorModel(self.probs, self.defined, self.max_quality, frozen=True)

    def empty_counts(self) -> SubstitutionCounts:
        return SubstitutionCounts(self.max_quality, self.n_buckets)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def to_frame(self) -> pd.DataFrame:
        """Long table: bucket, min_quality, ref, obs, probability, defined."""
        lower = np.array([
            int(np.ceil(b * (self.max_quality + 1) / self.n_buckets)) for b in range(self.n_buckets)
        ])
        rows = []
        for r in range(N_BASES):
            for o in range(N_BASES):
                for b in range(self.n_buckets):
                    rows.append({
                        "bucket": b,
                        "min_quality": int(lower[b]),
                        "ref": BASES[r],
                        "obs": BASES[o],
                        "probability": float(self.probs[r, o, b]),
                        "defined": bool(self.defined[r, b]),
                    })
        df = pd.DataFrame(rows)
        df.attrs["max_quality"] = self.max_quality
        return df

    @classmethod
    def from_frame(cls, df: pd.DataFrame, max_quality: Optional[int] = None) -> "ErrorModel":
        required = ["bucket", "ref", "obs", "probability", "defined"]
        missing = [col for col in required if col not in df.columns]
        if missing:
            raise ConfigurationError(f"Error model table is missing columns: {missing}")
        if max_quality is None:
            max_quality = df.attrs.get("max_quality")
        if max_quality is None:
            raise ConfigurationError("max_quality is required to rebuild an error model")
        n_buckets = int(df["bucket"].max()) + 1
        probs = np.zeros((N_BASES, N_BASES, n_buckets))
        defined = np.zeros((N_BASES, n_buckets), dtype=bool)
        for row in df.itertuples(index=False):
            r, o, b = BASE_INDEX[row.ref], BASE_INDEX[row.obs], int(row.bucket)
            probs[r, o, b] = row.probability
            if _as_bool(row.defined):
                defined[r, b] = True
        return cls(probs, defined, int(max_quality))

    def __repr__(self) -> str:
        return (
            f"ErrorModel(max_quality={self.max_quality}, n_buckets={self.n_buckets}, "
            f"defined={int(self.defined.sum())}/{self.defined.size}, frozen={self.frozen})"
        )


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _fill_undefined(probs: np.ndarray, defined: np.ndarray) -> np.ndarray:
    """Copy each undefined (ref, bucket) row from the nearest defined bucket."""
    filled = probs.copy()
    n_buckets = probs.shape[2]
    for r in range(N_BASES):
        have = np.nonzero(defined[r])[0]
        if len(have) == 0:
            continue
        for b in range(n_buckets):
            if defined[r, b]:
                continue
            # nearest bucket; ties resolve to the lower quality
            nearest = have[np.argmin(np.abs(have - b))]
            filled[r, :, b] = probs[r, :, nearest]
    return filled


def _monotone(probs: np.ndarray, defined: np.ndarray) -> np.ndarray:
    """Make error rates non-increasing as quality increases."""
    out = probs.copy()
    for r in range(N_BASES):
        have = np.nonzero(defined[r])[0]
        for prev, b in zip(have[::-1][:-1], have[::-1][1:]):
            # prev is the higher-quality neighbour of b
            if out[r, r, b] > out[r, r, prev]:
                out[r, :, b] = out[r, :, prev]
    return out
