"""Tests for abundance significance policies."""

import math

import numpy as np
import pytest
from scipy import stats

from asvtoolkit.denoise import ConfigurationError, get_significance_policy
from asvtoolkit.denoise.significance import BinomialAbundancePolicy, PoissonAbundancePolicy


class TestPoissonPolicy:
    """Test the conditional Poisson abundance p-value."""

    def test_singletons_are_never_significant(self):
        """Test abundance one gives p = 1."""
        policy = PoissonAbundancePolicy()
        assert policy.log_pvalue(1, math.log(1e-30), 1000) == 0.0

    def test_matches_direct_computation(self):
        """Test against a direct scipy calculation."""
        policy = PoissonAbundancePolicy()
        expected = 0.5
        direct = stats.poisson.sf(4, expected) / (1 - math.exp(-expected))
        assert policy.log_pvalue(5, math.log(expected), 100) == pytest.approx(math.log(direct))

    def test_small_expectation_is_finite(self):
        """Test tiny expectations stay finite."""
        policy = PoissonAbundancePolicy()
        value = policy.log_pvalue(50, math.log(1e-25), 1000)
        assert math.isfinite(value)
        assert value < -2000

    def test_vectorised_agrees_with_scalar(self):
        """Test vector and scalar paths agree."""
        policy = PoissonAbundancePolicy()
        abundances = np.array([1, 2, 5, 30, 200, 3])
        log_expected = np.log(np.array([0.3, 1e-12, 0.8, 5.0, 1e-3, 2.0]))
        parents = np.full(len(abundances), 1000)
        vector = policy.log_pvalues(abundances, log_expected, parents)
        scalar = [policy.log_pvalue(int(a), float(e), 1000) for a, e in zip(abundances, log_expected)]
        assert np.allclose(vector, scalar)
        assert np.all(vector <= 0)
        assert np.all(np.isfinite(vector))

    def test_admission_uses_bonferroni(self):
        """Test admission includes the uniques count."""
        policy = PoissonAbundancePolicy(omega_a=1e-40)
        log_p = math.log(1e-42)
        assert policy.admits(log_p, 10)
        assert not policy.admits(log_p, 1000)

    def test_invalid_threshold(self):
        """Test omega_a must lie in (0, 1)."""
        with pytest.raises(ConfigurationError):
            PoissonAbundancePolicy(omega_a=0)


class TestBinomialPolicy:
    """Test the binomial alternative."""

    def test_values(self):
        """Test binomial p-values."""
        policy = BinomialAbundancePolicy()
        assert policy.log_pvalue(1, math.log(0.1), 1000) == 0.0
        strong = policy.log_pvalue(100, math.log(0.5), 1000)
        weak = policy.log_pvalue(3, math.log(0.5), 1000)
        assert strong < weak <= 0.0


class TestRegistry:
    """Test policy lookup."""

    def test_lookup(self):
        """Test policy lookup by name."""
        policy = get_significance_policy("poisson", omega_a=1e-10)
        assert policy.name == "poisson"
        assert policy.omega_a == 1e-10
        assert get_significance_policy("binomial").name == "binomial"

    def test_unknown(self):
        """Test unknown policy names."""
        with pytest.raises(ConfigurationError):
            get_significance_policy("fisher")
