"""
Significance policies for promoting a unique sequence to a new variant.

A policy turns (observed abundance, expected abundance under the error
model) into a log p-value and decides admission with a Bonferroni
correction over the number of sequences tested:

    admit  <=>  log(p) + log(n_tests) < log(omega_a)

All arithmetic is done in log space; p-values of 1e-300 and below are
routine for real variants.
"""

import math
from abc import ABC, abstractmethod

import numpy as np
from scipy import special, stats

from .exceptions import ConfigurationError

# Below this expectation the tail probability is replaced by its leading term
_SMALL_EXPECTATION = 1e-8


def _small_mean_log_tail(abundance: int, log_expected: float) -> float:
    """log P(X >= a | X >= 1) ~ (a - 1) * log(E) - log(a!) for E -> 0."""
    return (abundance - 1) * log_expected - special.gammaln(abundance + 1)


class SignificancePolicy(ABC):
    """Base class for abundance significance tests."""

    def __init__(self, omega_a: float = 1e-40):
        if not 0 < omega_a < 1:
            raise ConfigurationError(f"omega_a must lie in (0, 1), got {omega_a}")
        self.omega_a = omega_a
        self.log_omega_a = math.log(omega_a)

    @abstractmethod
    def log_pvalue(self, abundance: int, log_expected: float, parent_abundance: int) -> float:
        """
        Log p-value that `abundance` reads arose as errors.

        Args:
            abundance: Observed reads of the candidate
            log_expected: log of the expected reads under the error model
            parent_abundance: Reads in the candidate's current partition
        """

    def log_pvalues(self, abundances, log_expected, parent_abundances) -> np.ndarray:
        """Vectorised log_pvalue over arrays of candidates."""
        return np.array([
            self.log_pvalue(int(a), float(e), int(p))
            for a, e, p in zip(abundances, log_expected, parent_abundances)
        ], dtype=float)

    def admits(self, log_pvalue: float, n_tests: int) -> bool:
        return log_pvalue + math.log(max(1, n_tests)) < self.log_omega_a

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(omega_a={self.omega_a:g})"


class PoissonAbundancePolicy(SignificancePolicy):
    """
    Abundance p-value from a Poisson with mean E, conditioned on the
    sequence having been observed at least once:

        p = P(X >= a) / P(X >= 1),  X ~ Poisson(E)
    """

    def log_pvalue(self, abundance: int, log_expected: float, parent_abundance: int) -> float:
        if abundance <= 1:
            return 0.0
        if log_expected == -math.inf:
            return -math.inf
        if log_expected < math.log(_SMALL_EXPECTATION):
            return min(0.0, _small_mean_log_tail(abundance, log_expected))
        expected = math.exp(log_expected)
        log_tail = stats.poisson.logsf(abundance - 1, expected)
        if not math.isfinite(log_tail):
            # sf underflowed; the first term dominates the tail
            log_tail = stats.poisson.logpmf(abundance, expected)
        log_norm = math.log(-math.expm1(-expected))
        return min(0.0, float(log_tail - log_norm))

    def log_pvalues(self, abundances, log_expected, parent_abundances) -> np.ndarray:
        a = np.asarray(abundances, dtype=float)
        le = np.asarray(log_expected, dtype=float)
        out = np.zeros(len(a))

        small = (a > 1) & (le < math.log(_SMALL_EXPECTATION))
        out[small] = (a[small] - 1) * le[small] - special.gammaln(a[small] + 1)

        regular = (a > 1) & ~small
        expected = np.exp(le[regular])
        log_tail = np.asarray(stats.poisson.logsf(a[regular] - 1, expected), dtype=float)
        underflow = ~np.isfinite(log_tail)
        log_tail[underflow] = stats.poisson.logpmf(a[regular][underflow], expected[underflow])
        out[regular] = log_tail - np.log(-np.expm1(-expected))
        return np.minimum(out, 0.0)

    @property
    def name(self) -> str:
        return "poisson"


class BinomialAbundancePolicy(SignificancePolicy):
    """
    Abundance p-value from Binomial(n = partition reads, p = lambda),
    conditioned on at least one success.
    """

    def log_pvalue(self, abundance: int, log_expected: float, parent_abundance: int) -> float:
        if abundance <= 1:
            return 0.0
        if log_expected == -math.inf:
            return -math.inf
        n = max(int(parent_abundance), abundance)
        log_p = min(0.0, log_expected - math.log(n))
        if log_expected < math.log(_SMALL_EXPECTATION):
            return min(0.0, _small_mean_log_tail(abundance, log_expected))
        p = math.exp(log_p)
        log_tail = stats.binom.logsf(abundance - 1, n, p)
        log_norm = math.log(-math.expm1(n * math.log1p(-p))) if p < 1 else 0.0
        value = float(log_tail - log_norm)
        if not math.isfinite(value):
            return _small_mean_log_tail(abundance, log_expected)
        return min(0.0, value)

    @property
    def name(self) -> str:
        return "binomial"


_POLICIES = {
    "poisson": PoissonAbundancePolicy,
    "binomial": BinomialAbundancePolicy,
}


def get_significance_policy(name: str, **kwargs) -> SignificancePolicy:
    """
    Look up a significance policy by name.

    Args:
        name: Policy name (poisson, binomial)
        **kwargs: Passed to the policy (e.g. omega_a)

    Returns:
        Policy instance
    """
    if name not in _POLICIES:
        raise ConfigurationError(
            f"Unknown significance policy: {name}. Available: {list(_POLICIES.keys())}"
        )
    return _POLICIES[name](**kwargs)


def available_policies() -> list:
    return list(_POLICIES.keys())
