# glauber_nbd_fitter.py: Glauber+NBD fit of a measured multiplicity
# distribution
#
#   set_npart_ncoll_correlation(h2)  → (Npart, Ncoll, weight) sample
#   set_input_multiplicity(h1)       → histogram to fit
#   fit()                            → χ² fit of (mu, k, f, norm[, dMu])
#   calculate_av_npnc()              → <Npart>, <Ncoll> vs multiplicity
#
# Only the Glauber component is MC; the NBD is evaluated analytically.
# The optimizer is pluggable: anything with the `Optimizer` signature works,
# the default is scipy's bounded least_squares.

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
import math
import time
from typing import Callable, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.optimize import least_squares

from ancestor_histogram import AncestorMode, CorrelationSample
from centrality_mapper import CentralityMapper, CentralityResult
from glauber_nbd_model import PARAM_NAMES, GlauberNBDModel, ModelFunction, ModelParameters
from hist_containers import Hist1D, Hist2D, Profile1D
from mult_common import DEFAULT_MAX_ITERATIONS, log

_DEFAULT_BOUNDS: Dict[str, Tuple[float, float]] = {
    "mu": (0.0, np.inf),
    "k": (0.0, np.inf),
    "f": (0.0, 1.0),
    "norm": (0.0, np.inf),
    "dMu": (-np.inf, np.inf),
}


# --------------------------- Config / results -------------------------------

@dataclass(frozen=True)
class FitConfig:
    """
    fit_range      : [lo, hi] multiplicity window; target bins with centres
                     inside it (and non-zero content) enter the χ²
    max_iterations : optimizer evaluation cap (large: the nested histogram
                     sum converges slowly)
    use_dmu        : fit dMu as a 5th parameter; otherwise it stays fixed at
                     the initial value
    bounds         : per-parameter (lo, hi) overriding the defaults
    fixed          : parameter names held at their initial values
    """
    fit_range: Tuple[float, float] = (0.0, 50000.0)
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    use_dmu: bool = False
    ancestor_mode: AncestorMode = AncestorMode.CONTINUOUS
    bounds: Optional[Dict[str, Tuple[float, float]]] = None
    fixed: Tuple[str, ...] = ()
    strict_capacity: bool = False
    verbose: bool = True


@dataclass
class OptimizerOutcome:
    x: np.ndarray
    valid: bool
    status: str = ""
    message: str = ""
    nfev: int = 0
    cost: float = math.nan

Optimizer = Callable[[Callable[[np.ndarray], np.ndarray], np.ndarray,
                      Tuple[np.ndarray, np.ndarray], int], OptimizerOutcome]


def scipy_least_squares(residuals: Callable[[np.ndarray], np.ndarray], x0: np.ndarray,
                        bounds: Tuple[np.ndarray, np.ndarray],
                        max_iterations: int, diff_step: float = 1e-3) -> OptimizerOutcome:
    # relative step: the ancestor histogram only moves once f shifts a value across a bin edge
    res = least_squares(residuals, x0, bounds=bounds, method="trf", x_scale="jac",
                        diff_step=diff_step, max_nfev=int(max_iterations))
    valid = bool(res.success) and bool(np.all(np.isfinite(res.x))) and math.isfinite(res.cost)
    return OptimizerOutcome(x=np.asarray(res.x, float), valid=valid, status=str(res.status),
                            message=str(res.message), nfev=int(res.nfev), cost=float(res.cost))


@dataclass
class FitResult:
    params: ModelParameters
    success: bool
    status: str = ""
    message: str = ""
    chi2: float = math.nan
    ndf: int = 0
    nfev: int = 0
    elapsed_s: float = 0.0
    param_names: Tuple[str, ...] = field(default=PARAM_NAMES[:4])

    @property
    def chi2_ndf(self) -> float:
        return self.chi2 / self.ndf if self.ndf > 0 else math.nan

    def to_series(self) -> pd.Series:
        d = dict(self.params.as_dict())
        d.update(success=self.success, status=self.status, chi2=self.chi2,
                 ndf=self.ndf, nfev=self.nfev, elapsed_s=self.elapsed_s)
        return pd.Series(d)


# --------------------------- Fitter ----------------------------------------

class GlauberNBDFitter:
    def __init__(self, name: str = "", config: FitConfig = FitConfig(),
                 params: ModelParameters = ModelParameters(),
                 optimizer: Optimizer = scipy_least_squares,
                 logger: logging.Logger = log) -> None:
        self.name = name
        self.config = config
        self.optimizer = optimizer
        self.logger = logger
        self.model = GlauberNBDModel(mode=config.ancestor_mode, logger=logger)
        self._params = params
        self._h_npnc: Optional[Hist2D] = None
        self._npnc_pending = False
        self._h_mult: Optional[Hist1D] = None

    def _info(self, msg: str) -> None:
        if self.config.verbose:
            self.logger.info(msg)

    # --- inputs ---

    def set_npart_ncoll_correlation(self, h: Optional[Hist2D]) -> bool:
        if h is None:
            return False
        self._h_npnc = h
        self._npnc_pending = True
        return True

    def set_sample(self, sample: CorrelationSample) -> None:
        """Use an already extracted sample instead of scanning a 2-D table."""
        self._h_npnc = None
        self._npnc_pending = False
        self.model.set_sample(sample)

    def set_input_multiplicity(self, h: Optional[Hist1D]) -> bool:
        if h is None:
            return False
        self._h_mult = h
        return True

    def set_fit_range(self, lo: float, hi: float) -> None:
        if not hi > lo:
            raise ValueError(f"[GlauberNBD] fit range needs lo < hi, got [{lo}, {hi}]")
        self.config = replace(self.config, fit_range=(float(lo), float(hi)))

    def set_ancestor_mode(self, mode: AncestorMode | int | str) -> None:
        mode = AncestorMode.parse(mode)
        self.config = replace(self.config, ancestor_mode=mode)
        self.model.set_ancestor_mode(mode)

    def set_parameters(self, params: ModelParameters) -> None:
        self._params = ModelParameters.coerce(params)

    @property
    def params(self) -> ModelParameters:
        return self._params

    @property
    def glauber_nbd(self) -> ModelFunction:
        return self.model.function(use_dmu=self.config.use_dmu, fixed_dmu=self._params.dMu)

    def nbd(self, n_ancestors: float = 1.0) -> Callable:
        return self.model.nbd_function(self._params, n_ancestors)

    def initialize_npnc(self) -> bool:
        """Extract the (Npart, Ncoll) sample from the correlation table (x = Npart, y = Ncoll)."""
        if self._h_npnc is not None:
            if self._npnc_pending:
                sample = CorrelationSample.from_hist2d(
                    self._h_npnc, strict=self.config.strict_capacity, logger=self.logger)
                self.model.set_sample(sample)
                self._npnc_pending = False
            return True
        if self.model.sample is not None:
            return True
        self.logger.error("[GlauberNBD] Failed to initialize! Please provide input histogram "
                          "with (Npart, Ncoll) info!")
        self.logger.error("[GlauberNBD] Please remember to call set_npart_ncoll_correlation "
                          "before doing fit!")
        return False

    # --- fit ---

    def _bounds(self, names: Tuple[str, ...]) -> Tuple[np.ndarray, np.ndarray]:
        b = dict(_DEFAULT_BOUNDS)
        b.update(self.config.bounds or {})
        return (np.array([b[n][0] for n in names], float),
                np.array([b[n][1] for n in names], float))

    def _failed(self, status: str, message: str) -> FitResult:
        self.logger.error(f"[GlauberNBD] {message}")
        return FitResult(params=self._params, success=False, status=status, message=message)

    def fit(self, target: Optional[Hist1D] = None,
            initial: Optional[ModelParameters] = None,
            mode: AncestorMode | int | str | None = None,
            range_lo: Optional[float] = None, range_hi: Optional[float] = None,
            options: Optional[FitConfig] = None) -> FitResult:
        if options is not None:
            self.config = options
            self.model.set_ancestor_mode(options.ancestor_mode)
        if target is not None:
            self.set_input_multiplicity(target)
        if mode is not None:
            self.set_ancestor_mode(mode)
        if range_lo is not None or range_hi is not None:
            lo0, hi0 = self.config.fit_range
            self.set_fit_range(lo0 if range_lo is None else range_lo,
                               hi0 if range_hi is None else range_hi)
        cfg = self.config

        if not self.initialize_npnc():
            return self._failed("configuration",
                                "Initialization of Npart x Ncoll correlation info failed!")
        if self._h_mult is None:
            return self._failed("configuration", "No input multiplicity histogram; "
                                "call set_input_multiplicity before doing fit!")

        start = ModelParameters.coerce(initial) if initial is not None else self._params
        fn = self.model.function(use_dmu=cfg.use_dmu, fixed_dmu=start.dMu)

        lo, hi = cfg.fit_range
        h = self._h_mult
        x, y, err = h.centers, h.contents, h.bin_errors()
        use = (x >= lo) & (x <= hi) & (y != 0) & (err > 0)
        x, y, err = x[use], y[use], err[use]
        unknown = set(cfg.fixed) - set(PARAM_NAMES)
        if unknown:
            return self._failed("configuration", f"Unknown fixed parameters {sorted(unknown)}")
        free = np.array([i for i, n in enumerate(fn.param_names) if n not in cfg.fixed], int)
        if free.size == 0:
            return self._failed("configuration", "All parameters are fixed; nothing to fit")
        if x.size <= free.size:
            return self._failed("configuration",
                                f"Only {x.size} usable bins in [{lo:g}, {hi:g}] for {free.size} parameters")
        full0 = start.as_array(cfg.use_dmu)

        def expand(v: np.ndarray) -> np.ndarray:
            full = full0.copy()
            full[free] = v
            return full

        def residuals(v: np.ndarray) -> np.ndarray:
            return (np.asarray(fn(x, *expand(v))) - y) / err

        self._info(f"[GlauberNBD] Config: {cfg.ancestor_mode.description}")
        self._info("[GlauberNBD] Now fitting, please wait...")
        lb, ub = self._bounds(fn.param_names)
        t0 = time.perf_counter()
        try:
            outcome = self.optimizer(residuals, full0[free], (lb[free], ub[free]),
                                     cfg.max_iterations)
        except ValueError as e:
            return self._failed("optimizer-error", f"Optimizer rejected the problem: {e}")
        elapsed = time.perf_counter() - t0
        self._info(f"[GlauberNBD] Fitting took {elapsed:.2f} seconds")

        self._params = fn.params(expand(outcome.x))
        r = residuals(outcome.x)
        result = FitResult(params=self._params, success=bool(outcome.valid),
                           status=outcome.status, message=outcome.message,
                           chi2=float(np.sum(r * r)), ndf=int(x.size - free.size),
                           nfev=outcome.nfev, elapsed_s=elapsed, param_names=fn.param_names)
        if result.success:
            self._info(f"[GlauberNBD] Fit converged: chi2/ndf = {result.chi2:.2f}/{result.ndf}")
        else:
            self.logger.warning(f"[GlauberNBD] Fit did not converge ({outcome.status}): "
                                f"{outcome.message}")
        return result

    # --- <Npart>, <Ncoll> ---

    def calculate_av_npnc(self,
                          npart_profile: Optional[Profile1D] = None,
                          ncoll_profile: Optional[Profile1D] = None,
                          npart_2d: Optional[Hist2D] = None,
                          ncoll_2d: Optional[Hist2D] = None,
                          percentile_map: Optional[Hist1D] = None,
                          range_lo: float = -2.0, range_hi: float = -2.0) -> CentralityResult:
        self._info("[Centrality] Calculating <Npart>, <Ncoll> in centrality bins...")
        p = self._params
        self._info("[Centrality] Please inspect now:")
        self._info(f"[Centrality] Glauber NBD mu ............: {p.mu}")
        self._info(f"[Centrality] Glauber NBD k .............: {p.k}")
        self._info(f"[Centrality] Glauber NBD f .............: {p.f}")
        self._info(f"[Centrality] Glauber NBD norm ..........: {p.norm}")
        self._info(f"[Centrality] Glauber NBD dmu/dNanc .....: {p.dMu}")
        self.initialize_npnc()
        mapper = CentralityMapper(self.model.sample, self.model.mode,
                                  nbd_method=self.model.nbd_method, logger=self.logger)
        return mapper.map_averages(p, range_lo, range_hi, percentile_map=percentile_map,
                                   npart_profile=npart_profile, ncoll_profile=ncoll_profile,
                                   npart_2d=npart_2d, ncoll_2d=ncoll_2d,
                                   fit_range=self.config.fit_range)
