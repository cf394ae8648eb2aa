"""
Tests for the NBD evaluators.

Verifies:
  1. Continuous NBD equals the discrete pmf at integer n (n = 0..90).
  2. Log-space and direct Γ branches agree across n + k = 100.
  3. Normalization and the n = 0 value p^k.
  4. Domain errors and mode dispatch in nbd_probability.
"""

import math

import numpy as np
import pytest

from ancestor_histogram import AncestorMode
from mult_common import NumericDomainError
from nbd_functions import continuous_nbd, nbd_pmf, nbd_probability


# -----------------------------------------------------------------------
# Continuous vs discrete
# -----------------------------------------------------------------------
class TestContinuousMatchesDiscrete:

    @pytest.mark.parametrize("mu,k", [(10.0, 2.0), (5.5, 0.7), (30.0, 3.0), (1.2, 4.5)])
    def test_integer_points(self, mu, k):
        n = np.arange(0, 91, dtype=float)
        disc = nbd_pmf(n, mu, k)
        cont = continuous_nbd(n, mu, k)
        np.testing.assert_allclose(cont, disc, rtol=1e-9, atol=0.0)

    def test_zero_multiplicity_is_p_to_the_k(self):
        mu, k = 12.0, 2.5
        p = k / (k + mu)
        assert continuous_nbd(0.0, mu, k) == pytest.approx(p ** k, rel=1e-12)
        assert nbd_pmf(0, mu, k) == pytest.approx(p ** k, rel=1e-12)

    def test_scalar_in_scalar_out(self):
        assert isinstance(continuous_nbd(3.0, 4.0, 2.0), float)
        assert isinstance(nbd_pmf(3, 4.0, 2.0), float)

    def test_normalized_over_integers(self):
        n = np.arange(0, 400, dtype=float)
        assert np.sum(continuous_nbd(n, 5.0, 2.0)) == pytest.approx(1.0, abs=1e-9)

    def test_discrete_truncates_real_argument(self):
        assert nbd_pmf(10.7, 8.0, 1.5) == nbd_pmf(10.0, 8.0, 1.5)


# -----------------------------------------------------------------------
# Branch agreement around n + k = 100
# -----------------------------------------------------------------------
class TestBranches:

    @pytest.mark.parametrize("k", [2.5, 13.5, 40.0])
    def test_log_and_direct_agree(self, k):
        n = np.arange(95.0, 105.01, 0.25) - k
        n = n[n >= 0]
        mu = 80.0
        log_b = continuous_nbd(n, mu, k, method="log")
        direct = continuous_nbd(n, mu, k, method="direct")
        np.testing.assert_allclose(log_b, direct, rtol=1e-6, atol=0.0)

    def test_auto_switches_at_threshold(self):
        k, mu = 10.0, 50.0
        below, above = 89.5, 90.5          # n + k = 99.5 / 100.5
        assert continuous_nbd(below, mu, k) == continuous_nbd(below, mu, k, method="direct")
        assert continuous_nbd(above, mu, k) == continuous_nbd(above, mu, k, method="log")

    def test_log_branch_survives_large_arguments(self):
        # Γ(n+k) overflows here; the log branch must stay finite
        val = continuous_nbd(2000.0, 1800.0, 300.0)
        assert math.isfinite(val) and val > 0.0

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            continuous_nbd(3.0, 2.0, 1.0, method="fast")


# -----------------------------------------------------------------------
# Domain and dispatch
# -----------------------------------------------------------------------
class TestDomain:

    @pytest.mark.parametrize("mu,k", [(0.0, 1.0), (-2.0, 1.0), (3.0, 0.0), (3.0, -1.0)])
    def test_rejects_non_positive_parameters(self, mu, k):
        with pytest.raises(NumericDomainError):
            continuous_nbd(4.0, mu, k)
        with pytest.raises(NumericDomainError):
            nbd_pmf(4, mu, k)

    def test_rejects_negative_multiplicity(self):
        with pytest.raises(NumericDomainError):
            continuous_nbd(-1.0, 3.0, 1.0)

    def test_domain_error_is_value_error(self):
        assert issubclass(NumericDomainError, ValueError)

    @pytest.mark.parametrize("mode", list(AncestorMode))
    def test_zero_below_threshold(self, mode):
        out = nbd_probability(np.array([0.0, 1e-7, 1e-6]), 5.0, 2.0, mode=mode)
        assert np.all(out == 0.0)

    def test_dispatch(self):
        mu, k = 7.0, 1.3
        assert nbd_probability(4.6, mu, k, mode=AncestorMode.CONTINUOUS) == continuous_nbd(4.6, mu, k)
        assert nbd_probability(4.6, mu, k, mode=AncestorMode.ROUND) == nbd_pmf(4.0, mu, k)
        assert nbd_probability(4.6, mu, k, mode="truncate") == nbd_pmf(4.0, mu, k)
