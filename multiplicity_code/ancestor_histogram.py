# ancestor_histogram.py: (Npart, Ncoll, weight) Glauber sample and the
# normalized ancestor-count distribution built from it
#
#   N_anc = f·Npart + (1-f)·Ncoll      (truncated / rounded / kept real)
#
# The sample is read once from a 2-D Npart×Ncoll table; the ancestor
# histogram is rebuilt from scratch every time f changes.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
import logging
from typing import Iterable, Tuple

import numpy as np
import pandas as pd

from hist_containers import Hist1D, Hist2D
from mult_common import (ANC_NBINS_CONTINUOUS, ANC_NBINS_INTEGER, ANC_XMAX, ANC_XMIN,
                         MAX_NPNC_PAIRS, NCOLL_SCAN, NPART_SCAN,
                         ConfigurationError, EmptyDistributionError, log)


class AncestorMode(IntEnum):
    TRUNCATE = 0
    ROUND = 1
    CONTINUOUS = 2

    @classmethod
    def parse(cls, mode: "AncestorMode | int | str") -> "AncestorMode":
        if isinstance(mode, cls):
            return mode
        if isinstance(mode, str):
            try:
                return cls[mode.strip().upper()]
            except KeyError:
                raise ValueError(f"[Ancestors] unknown ancestor mode '{mode}'") from None
        return cls(int(mode))

    @property
    def nbins(self) -> int:
        return ANC_NBINS_CONTINUOUS if self is AncestorMode.CONTINUOUS else ANC_NBINS_INTEGER

    @property
    def description(self) -> str:
        return {AncestorMode.TRUNCATE: "Nancestors will be truncated",
                AncestorMode.ROUND: "Nancestors will be rounded",
                AncestorMode.CONTINUOUS: "Nancestors will be taken as float"}[self]


def ancestor_values(npart, ncoll, f: float, mode: AncestorMode | int | str) -> np.ndarray:
    """Mixed ancestor count per record, quantized according to mode."""
    mode = AncestorMode.parse(mode)
    x = np.asarray(npart, float) * f + np.asarray(ncoll, float) * (1.0 - f)
    if mode is AncestorMode.TRUNCATE:
        return np.trunc(x)
    if mode is AncestorMode.ROUND:
        return np.floor(x + 0.5)
    return x


# --------------------------- Glauber sample ---------------------------------

def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.setflags(write=False)
    return a

@dataclass(frozen=True, eq=False)
class CorrelationSample:
    """
    Non-empty (Npart, Ncoll) cells of a Glauber correlation table.

    Records keep the scan order (Npart outer, Ncoll inner). Arrays are
    read-only; rebuild the sample to change it.
    """
    npart: np.ndarray
    ncoll: np.ndarray
    weight: np.ndarray

    def __post_init__(self) -> None:
        npart = np.asarray(self.npart, float).ravel()
        ncoll = np.asarray(self.ncoll, float).ravel()
        weight = np.asarray(self.weight).ravel().astype(np.int64)
        if not (npart.shape == ncoll.shape == weight.shape):
            raise ValueError(f"[Sample] npart/ncoll/weight length mismatch: "
                             f"{npart.size}/{ncoll.size}/{weight.size}")
        if np.any(weight < 0):
            raise ValueError("[Sample] weights must be non-negative")
        object.__setattr__(self, "npart", _readonly(npart))
        object.__setattr__(self, "ncoll", _readonly(ncoll))
        object.__setattr__(self, "weight", _readonly(weight))

    def __len__(self) -> int:
        return int(self.npart.size)

    @property
    def total_weight(self) -> int:
        return int(np.sum(self.weight))

    @classmethod
    def from_arrays(cls, npart, ncoll, weight, *,
                    max_pairs: int = MAX_NPNC_PAIRS, strict: bool = False,
                    logger: logging.Logger = log) -> "CorrelationSample":
        s = cls(npart, ncoll, weight)
        if len(s) > max_pairs:
            msg = f"[Sample] {len(s)} (Npart, Ncoll) pairs exceed capacity {max_pairs}"
            if strict:
                raise ConfigurationError(msg)
            logger.warning(msg)
        return s

    @classmethod
    def from_records(cls, records: Iterable[Tuple[float, float, int]], **kw) -> "CorrelationSample":
        rows = list(records)
        if not rows:
            return cls.from_arrays([], [], [], **kw)
        npart, ncoll, weight = zip(*rows)
        return cls.from_arrays(npart, ncoll, weight, **kw)

    @classmethod
    def from_hist2d(cls, h: Hist2D, *,
                    npart_range: Tuple[int, int] = NPART_SCAN,
                    ncoll_range: Tuple[int, int] = NCOLL_SCAN,
                    max_pairs: int = MAX_NPNC_PAIRS, strict: bool = False,
                    logger: logging.Logger = log) -> "CorrelationSample":
        """Sweep integer Npart, Ncoll over the scan ranges (x = Npart, y = Ncoll)."""
        xs = np.arange(*npart_range, dtype=float)
        ys = np.arange(*ncoll_range, dtype=float)
        X, Y = np.meshgrid(xs, ys, indexing="ij")
        C = np.asarray(h.content_at(X, Y), float)
        keep = C != 0
        s = cls.from_arrays(X[keep], Y[keep], np.trunc(C[keep]),
                            max_pairs=max_pairs, strict=strict, logger=logger)
        logger.info(f"[Sample] Initialized with number of (Npart, Ncoll) pairs: {len(s)}")
        return s

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"npart": self.npart, "ncoll": self.ncoll, "weight": self.weight})


# --------------------------- Ancestor histogram -----------------------------

@dataclass(frozen=True, eq=False)
class AncestorHistogram:
    mode: AncestorMode
    weights: np.ndarray                  # normalized, sums to 1
    total_weight: float                  # in-range weight before normalization
    xmin: float = ANC_XMIN
    xmax: float = ANC_XMAX
    _centers: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        nb = self.weights.size
        w = (self.xmax - self.xmin) / nb
        object.__setattr__(self, "_centers", self.xmin + (np.arange(nb) + 0.5) * w)

    @property
    def nbins(self) -> int:
        return int(self.weights.size)

    @property
    def centers(self) -> np.ndarray:
        return self._centers

    @property
    def first_positive_bin(self) -> int:
        """Index of the first bin whose centre is strictly above zero."""
        return int(np.argmax(self._centers > 0.0))

    def as_hist1d(self, name: str = "hNanc") -> Hist1D:
        return Hist1D(np.linspace(self.xmin, self.xmax, self.nbins + 1),
                      self.weights.copy(), name=name)


class AncestorDistributionBuilder:
    """
    Stateless: build(sample, f, mode) -> AncestorHistogram.

    Caching on f belongs to the caller.
    """

    def __init__(self, xmin: float = ANC_XMIN, xmax: float = ANC_XMAX,
                 logger: logging.Logger = log) -> None:
        self.xmin, self.xmax = float(xmin), float(xmax)
        self.logger = logger

    def build(self, sample: CorrelationSample, f: float,
              mode: AncestorMode | int | str) -> AncestorHistogram:
        if sample is None:
            raise ConfigurationError("[Ancestors] no (Npart, Ncoll) sample; call initialize_npnc first")
        mode = AncestorMode.parse(mode)
        nb = mode.nbins
        v = ancestor_values(sample.npart, sample.ncoll, f, mode)
        with np.errstate(invalid="ignore"):
            idx = np.floor(nb * (v - self.xmin) / (self.xmax - self.xmin))
        ok = (idx >= 0) & (idx < nb)
        weights = np.bincount(idx[ok].astype(np.int64),
                              weights=sample.weight[ok].astype(float), minlength=nb)
        total = float(np.sum(weights))
        if total < 1:
            raise EmptyDistributionError(
                f"[Ancestors] ancestor histogram empty for f={f:g}, mode={mode.name} "
                f"(in-range weight {total:g})")
        weights = weights * (1.0 / total)
        self.logger.debug(f"[Ancestors] rebuilt: f={f:.15g} mode={mode.name} weight={total:g}")
        return AncestorHistogram(mode=mode, weights=weights, total_weight=total,
                                 xmin=self.xmin, xmax=self.xmax)
