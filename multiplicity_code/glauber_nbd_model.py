# glauber_nbd_model.py: Glauber ⊗ NBD multiplicity probability
#
#   P(x) = norm · Σ_{N_anc > 0} w(N_anc) · NBD(x; μ_N, k_N)
#   μ_N  = N_anc · (μ + dμ · N_anc),   k_N = N_anc · k
#
# Only the Glauber part is Monte Carlo (the ancestor histogram); the NBD is
# evaluated analytically. The ancestor histogram is cached on (f, mode) and
# rebuilt only when f moves by at least 1e-13 or the mode changes.

from __future__ import annotations

from dataclasses import dataclass, asdict, replace
import logging
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ancestor_histogram import (AncestorDistributionBuilder, AncestorHistogram,
                                AncestorMode, CorrelationSample)
from mult_common import (F_TOLERANCE, ConfigurationError, EmptyDistributionError, log)
from nbd_functions import Method, nbd_probability

PARAM_NAMES: Tuple[str, ...] = ("mu", "k", "f", "norm", "dMu")
_X_CHUNK = 256


# --------------------------- Parameters -------------------------------------

@dataclass(frozen=True)
class ModelParameters:
    mu: float = 45.0     # mean multiplicity per ancestor
    k: float = 1.5       # NBD shape per ancestor
    f: float = 0.8       # Npart fraction in N_anc
    norm: float = 100.0
    dMu: float = 0.0     # dμ/dN_anc

    def as_array(self, use_dmu: bool = True) -> np.ndarray:
        vals = [self.mu, self.k, self.f, self.norm] + ([self.dMu] if use_dmu else [])
        return np.array(vals, float)

    @classmethod
    def from_array(cls, values: Sequence[float], use_dmu: Optional[bool] = None,
                   dMu: float = 0.0) -> "ModelParameters":
        """4 values → (mu, k, f, norm) with the given dMu; 5 values → all five.
        use_dmu, when given, pins the expected count (5 if True, 4 if False)."""
        v = [float(x) for x in values]
        if use_dmu is not None and len(v) != (5 if use_dmu else 4):
            raise ValueError(f"[GlauberNBD] use_dmu={use_dmu} needs {5 if use_dmu else 4} "
                             f"parameters, got {len(v)}")
        if len(v) == 4:
            return cls(*v, dMu=float(dMu))
        if len(v) == 5:
            return cls(*v)
        raise ValueError(f"[GlauberNBD] expected 4 or 5 parameters, got {len(v)}")

    @classmethod
    def coerce(cls, p: "ParamsLike") -> "ModelParameters":
        if isinstance(p, ModelParameters):
            return p
        if isinstance(p, dict):
            return cls(**{k: float(v) for k, v in p.items()})
        return cls.from_array(p)

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)

    def with_(self, **kw) -> "ModelParameters":
        return replace(self, **kw)

ParamsLike = Union[ModelParameters, Sequence[float], Dict[str, float]]


# --------------------------- Model ------------------------------------------

@dataclass
class _AncestorCache:
    last_f: Optional[float] = None
    mode: Optional[AncestorMode] = None
    histogram: Optional[AncestorHistogram] = None


class GlauberNBDModel:
    """
    Master probability function handed to the optimizer.

    The instance owns the ancestor-histogram cache, so it is not safe to
    share one model between concurrent fits; use one instance per fit
    session (or guard it externally).
    """

    def __init__(self,
                 sample: Optional[CorrelationSample] = None,
                 mode: AncestorMode | int | str = AncestorMode.CONTINUOUS,
                 builder: Optional[AncestorDistributionBuilder] = None,
                 nbd_method: Method = "auto",
                 logger: logging.Logger = log) -> None:
        self._sample = sample
        self._mode = AncestorMode.parse(mode)
        self.builder = builder if builder is not None else AncestorDistributionBuilder(logger=logger)
        self.nbd_method = nbd_method
        self.logger = logger
        self._cache = _AncestorCache()
        self.rebuild_count = 0
        self.last_error: Optional[Exception] = None

    # --- state ---

    @property
    def sample(self) -> Optional[CorrelationSample]:
        return self._sample

    def set_sample(self, sample: Optional[CorrelationSample]) -> None:
        self._sample = sample
        self.invalidate()

    @property
    def mode(self) -> AncestorMode:
        return self._mode

    def set_ancestor_mode(self, mode: AncestorMode | int | str) -> None:
        self._mode = AncestorMode.parse(mode)
        self.invalidate()

    def invalidate(self) -> None:
        self._cache = _AncestorCache()

    def _is_stale(self, f: float) -> bool:
        c = self._cache
        if c.last_f is None or c.mode is not self._mode:
            return True
        return not abs(c.last_f - f) < F_TOLERANCE

    def ancestor_histogram(self, f: float) -> Optional[AncestorHistogram]:
        """Cached ancestor distribution for f (rebuilt if stale); None if it cannot be built."""
        f = float(f)
        if self._is_stale(f):
            self._cache = _AncestorCache(last_f=f, mode=self._mode)
            self.rebuild_count += 1
            try:
                hist = self.builder.build(self._sample, f, self._mode)
            except (EmptyDistributionError, ConfigurationError) as e:
                self.last_error = e
                self.logger.error(f"[GlauberNBD] ANCESTOR HISTOGRAM EMPTY: {e}")
                self.logger.error("[GlauberNBD] Will not do anything. Call initialize_npnc "
                                  "if you want to plot without fitting")
                return None
            self._cache.histogram = hist
            self.last_error = None
        return self._cache.histogram

    # --- evaluation ---

    def _ancestor_terms(self, p: ModelParameters
                        ) -> Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
        hist = self.ancestor_histogram(p.f)
        if hist is None:
            return None
        i0 = hist.first_positive_bin
        nanc, w = hist.centers[i0:], hist.weights[i0:]
        filled = w > 0.0
        nanc, w = nanc[filled], w[filled]
        this_mu = nanc * (p.mu + p.dMu * nanc)
        this_k = nanc * p.k
        ok = (this_mu > 0.0) & (this_k > 0.0)
        if not np.all(ok):
            # outside the NBD domain: these ancestors contribute nothing
            self.logger.debug(f"[GlauberNBD] {int(np.sum(~ok))} ancestor bins with mu<=0 or k<=0 "
                              f"(mu={p.mu:g}, k={p.k:g}, dMu={p.dMu:g})")
            this_mu, this_k, w = this_mu[ok], this_k[ok], w[ok]
        return this_mu, this_k, w

    def evaluate_many(self, xs, params: ParamsLike) -> np.ndarray:
        p = ModelParameters.coerce(params)
        xs = np.atleast_1d(np.asarray(xs, float)).ravel()
        out = np.zeros(xs.shape)
        terms = self._ancestor_terms(p)
        if terms is None or terms[0].size == 0:
            return out
        this_mu, this_k, w = terms
        for s in range(0, xs.size, _X_CHUNK):
            x = xs[s:s + _X_CHUNK, None]
            P = nbd_probability(x, this_mu[None, :], this_k[None, :],
                                mode=self._mode, method=self.nbd_method)
            out[s:s + _X_CHUNK] = np.sum(P * w[None, :], axis=1)
        return p.norm * out

    def evaluate(self, x: float, params: ParamsLike) -> float:
        return float(self.evaluate_many([x], params)[0])

    __call__ = evaluate

    # --- function objects ---

    def function(self, use_dmu: bool = True, fixed_dmu: float = 0.0) -> "ModelFunction":
        return ModelFunction(self, use_dmu=use_dmu, fixed_dmu=fixed_dmu)

    def nbd_function(self, params: ParamsLike, n_ancestors: float = 1.0) -> Callable:
        """NBD of n_ancestors sources, x -> P(x; n(μ+dμ n), n k)."""
        p = ModelParameters.coerce(params)
        n = float(n_ancestors)
        mu, k = n * (p.mu + p.dMu * n), n * p.k
        mode, method = self._mode, self.nbd_method
        def nbd(x):
            return nbd_probability(x, mu, k, mode=mode, method=method)
        return nbd


@dataclass
class ModelFunction:
    """Model closure with the optimizer-facing calling convention f(x, *pars)."""
    model: GlauberNBDModel
    use_dmu: bool = True
    fixed_dmu: float = 0.0

    @property
    def param_names(self) -> Tuple[str, ...]:
        return PARAM_NAMES if self.use_dmu else PARAM_NAMES[:4]

    @property
    def npar(self) -> int:
        return len(self.param_names)

    def params(self, pars: Sequence[float]) -> ModelParameters:
        if len(pars) != self.npar:
            raise ValueError(f"[GlauberNBD] expected {self.npar} parameters {self.param_names}, "
                             f"got {len(pars)}")
        return ModelParameters.from_array(pars, use_dmu=self.use_dmu, dMu=self.fixed_dmu)

    def __call__(self, x, *pars) -> np.ndarray | float:
        p = self.params(pars)
        if np.ndim(x) == 0:
            return self.model.evaluate(float(x), p)
        return self.model.evaluate_many(x, p).reshape(np.shape(x))
