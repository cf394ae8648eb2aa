# centrality_mapper.py: <Npart>, <Ncoll> vs multiplicity from a fitted
# Glauber+NBD model
#
# Two-fold loop, already multiplicity-binned on output:
#   + every (Npart, Ncoll) record of the Glauber sample
#   + every integer multiplicity m in [1, hi)
# with weight  w_rec · NBD(m; N_anc(μ + dμ N_anc), N_anc k).
# Cost is O(records × multiplicities): call it once after the fit.

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from ancestor_histogram import AncestorMode, CorrelationSample, ancestor_values
from glauber_nbd_model import ModelParameters, ParamsLike
from hist_containers import Hist1D, Hist2D, Profile1D
from mult_common import ConfigurationError, log
from nbd_functions import Method, nbd_probability

_RECORD_BLOCK = 64


@dataclass
class CentralityResult:
    params: ModelParameters
    range_lo: float
    range_hi: float
    npart_profile: Profile1D
    ncoll_profile: Profile1D
    npart_2d: Optional[Hist2D] = None
    ncoll_2d: Optional[Hist2D] = None

    def to_frame(self) -> pd.DataFrame:
        """One row per profile bin: centre, <Npart>, <Ncoll>, summed weight."""
        return pd.DataFrame({
            "mult": self.npart_profile.centers,
            "avg_npart": self.npart_profile.means(),
            "avg_ncoll": self.ncoll_profile.means(),
            "sum_w": self.npart_profile.sum_w,
            "entries": self.npart_profile.entries,
        })


class CentralityMapper:
    def __init__(self, sample: Optional[CorrelationSample],
                 mode: AncestorMode | int | str = AncestorMode.CONTINUOUS,
                 nbd_method: Method = "auto",
                 logger: logging.Logger = log,
                 progress_every: int = 2000) -> None:
        self.sample = sample
        self.mode = AncestorMode.parse(mode)
        self.nbd_method = nbd_method
        self.logger = logger
        self.progress_every = int(progress_every)

    @staticmethod
    def _default_profile(range_hi: float, percentile: bool, name: str) -> Profile1D:
        if percentile:
            return Profile1D.uniform(100, 0.0, 100.0, name=name)
        nb = max(int(math.ceil(range_hi)), 1)
        return Profile1D.uniform(nb, -0.5, nb - 0.5, name=name)

    def map_averages(self, params: ParamsLike,
                     range_lo: float = -2.0, range_hi: float = -2.0,
                     percentile_map: Optional[Hist1D] = None,
                     npart_profile: Optional[Profile1D] = None,
                     ncoll_profile: Optional[Profile1D] = None,
                     npart_2d: Optional[Hist2D] = None,
                     ncoll_2d: Optional[Hist2D] = None,
                     fit_range: Optional[Tuple[float, float]] = None) -> CentralityResult:
        """
        Fill <Npart> and <Ncoll> profiles (and optional 2-D grids) vs
        multiplicity, or vs percentile when percentile_map is given.

        range_lo, range_hi both < -1 means "use fit_range". Only range_hi
        bounds the loop; multiplicities run over 1, 2, ..., < range_hi.
        """
        s = self.sample
        if s is None or len(s) == 0:
            raise ConfigurationError("[Centrality] no (Npart, Ncoll) sample; "
                                     "call initialize_npnc before calculating averages")
        p = ModelParameters.coerce(params)
        if range_lo < -1 and range_hi < -1:
            if fit_range is None:
                raise ConfigurationError("[Centrality] no range given and no fit range to fall back on")
            range_lo, range_hi = fit_range
        self.logger.info(f"[Centrality] Range to calculate: {range_lo:g} to {range_hi:g}")

        percentile = percentile_map is not None
        if npart_profile is None:
            npart_profile = self._default_profile(range_hi, percentile, "pNpart")
        if ncoll_profile is None:
            ncoll_profile = self._default_profile(range_hi, percentile, "pNcoll")

        mults = np.arange(1.0, float(range_hi), 1.0)
        coord = mults if not percentile else np.asarray(percentile_map.content_at(mults), float)

        nanc = ancestor_values(s.npart, s.ncoll, p.f, self.mode)
        this_mu = nanc * (p.mu + p.dMu * nanc)
        this_k = nanc * p.k
        live = (this_mu > 0.0) & (this_k > 0.0)
        if not np.all(live):
            self.logger.warning(f"[Centrality] {int(np.sum(~live))} records outside the NBD domain "
                                f"(mu<=0 or k<=0) are skipped")

        n = len(s)
        if mults.size:
            for b0 in range(0, n, _RECORD_BLOCK):
                b1 = min(b0 + _RECORD_BLOCK, n)
                for i in range(-(-b0 // self.progress_every) * self.progress_every,
                               b1, self.progress_every):
                    self.logger.info(f"[Centrality] At NpNc pair #{i} of {n}...")
                sel = np.arange(b0, b1)[live[b0:b1]]
                if sel.size == 0:
                    continue
                P = nbd_probability(mults[None, :], this_mu[sel, None], this_k[sel, None],
                                    mode=self.mode, method=self.nbd_method)
                P = P * s.weight[sel, None]
                X = np.broadcast_to(coord[None, :], P.shape)
                Np = np.broadcast_to(s.npart[sel, None], P.shape)
                Nc = np.broadcast_to(s.ncoll[sel, None], P.shape)
                npart_profile.fill(X.ravel(), Np.ravel(), P.ravel())
                ncoll_profile.fill(X.ravel(), Nc.ravel(), P.ravel())
                if npart_2d is not None:
                    npart_2d.fill(X.ravel(), Np.ravel(), P.ravel())
                if ncoll_2d is not None:
                    ncoll_2d.fill(X.ravel(), Nc.ravel(), P.ravel())

        return CentralityResult(params=p, range_lo=float(range_lo), range_hi=float(range_hi),
                                npart_profile=npart_profile, ncoll_profile=ncoll_profile,
                                npart_2d=npart_2d, ncoll_2d=ncoll_2d)
