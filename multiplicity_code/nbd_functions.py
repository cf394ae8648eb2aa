# nbd_functions.py: Negative Binomial emission per ancestor
#
#   discrete   : P(n) = Γ(n+k)/(Γ(n+1)Γ(k)) p^k (1-p)^n,  p = k/(k+μ),  n ∈ ℕ
#   continuous : same expression with (μ/k)^n (1+μ/k)^-(n+k), n ∈ ℝ⁺
#
# The continuous form is the analytic continuation needed when the ancestor
# count (and therefore k·N_anc) is not an integer. Above n+k = 100 it is
# evaluated in log space (lnΓ) so Γ(n+k) never overflows.

from __future__ import annotations

from typing import Literal
import numpy as np
from scipy.special import gamma, gammaln
from scipy.stats import nbinom

from ancestor_histogram import AncestorMode
from mult_common import LOG_BRANCH_THRESHOLD, MULT_ALMOST_ZERO, NumericDomainError

Method = Literal["auto", "log", "direct"]


def _check_domain(n: np.ndarray, mu: np.ndarray, k: np.ndarray) -> None:
    if np.any(~(mu > 0.0)):
        raise NumericDomainError(f"[NBD] mu must be > 0 (got min {np.nanmin(mu):g})")
    if np.any(~(k > 0.0)):
        raise NumericDomainError(f"[NBD] k must be > 0 (got min {np.nanmin(k):g})")
    if np.any(n < 0.0):
        raise NumericDomainError(f"[NBD] multiplicity must be >= 0 (got {np.min(n):g})")


def nbd_pmf(n, mu, k) -> np.ndarray | float:
    """
    Discrete NBD with mean mu and shape k.

    Non-integer n is truncated toward zero first (integer-argument pdf
    evaluated at a real abscissa).
    """
    n_, mu_, k_ = np.broadcast_arrays(np.asarray(n, float), np.asarray(mu, float),
                                      np.asarray(k, float))
    _check_domain(n_, mu_, k_)
    p = 1.0 / (1.0 + mu_ / k_)
    out = nbinom.pmf(np.trunc(n_), k_, p)
    return float(out) if np.ndim(out) == 0 else out


def _log_power_term(n: np.ndarray, mu: np.ndarray, k: np.ndarray) -> np.ndarray:
    r = mu / k
    return n * np.log(r) - (n + k) * np.log1p(r)


def continuous_nbd(n, mu, k, method: Method = "auto") -> np.ndarray | float:
    """
    Analytic continuation of the NBD to real n.

    method="auto" picks the log branch where n+k > 100 and the direct Γ
    branch elsewhere; "log"/"direct" force one branch everywhere.
    """
    n_, mu_, k_ = np.broadcast_arrays(np.asarray(n, float), np.asarray(mu, float),
                                      np.asarray(k, float))
    _check_domain(n_, mu_, k_)
    if method == "auto":
        use_log = (n_ + k_) > LOG_BRANCH_THRESHOLD
    elif method == "log":
        use_log = np.ones(n_.shape, dtype=bool)
    elif method == "direct":
        use_log = np.zeros(n_.shape, dtype=bool)
    else:
        raise ValueError(f"[NBD] unknown method '{method}'")

    out = np.zeros(n_.shape)
    if np.any(use_log):
        a, m, kk = n_[use_log], mu_[use_log], k_[use_log]
        F = gammaln(a + kk) - gammaln(a + 1.0) - gammaln(kk)
        out[use_log] = np.exp(F + _log_power_term(a, m, kk))
    direct = ~use_log
    if np.any(direct):
        a, m, kk = n_[direct], mu_[direct], k_[direct]
        F = gamma(a + kk) / (gamma(a + 1.0) * gamma(kk))
        out[direct] = F * np.exp(_log_power_term(a, m, kk))
    return float(out) if out.ndim == 0 else out


def nbd_probability(n, mu, k, mode: AncestorMode | int | str = AncestorMode.CONTINUOUS,
                    method: Method = "auto") -> np.ndarray | float:
    """Mode dispatch used by the model: discrete for truncate/round, continuous otherwise.
    Multiplicities <= 1e-6 get probability 0."""
    mode = AncestorMode.parse(mode)
    n_, mu_, k_ = np.broadcast_arrays(np.asarray(n, float), np.asarray(mu, float),
                                      np.asarray(k, float))
    out = np.zeros(n_.shape)
    live = n_ > MULT_ALMOST_ZERO
    if np.any(live):
        if mode is AncestorMode.CONTINUOUS:
            out[live] = continuous_nbd(n_[live], mu_[live], k_[live], method=method)
        else:
            out[live] = nbd_pmf(n_[live], mu_[live], k_[live])
    return float(out) if out.ndim == 0 else out
