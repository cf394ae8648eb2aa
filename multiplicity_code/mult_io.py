# mult_io.py: plain-text inputs for the Glauber+NBD fitter
#   * (Npart, Ncoll, weight) tables  → CorrelationSample
#   * measured multiplicity spectra → Hist1D
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from ancestor_histogram import CorrelationSample
from hist_containers import Hist1D
from mult_common import MAX_NPNC_PAIRS, log

_NPART_ALIASES = ("npart", "n_part", "Npart", "N_part", "NPART")
_NCOLL_ALIASES = ("ncoll", "n_coll", "Ncoll", "N_coll", "NCOLL")
_WEIGHT_ALIASES = ("weight", "w", "count", "counts", "content", "entries")


# ----------------------- IO helpers -----------------------
def _read_table_auto(path: Path, logger: logging.Logger = log) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    tries = [
        dict(sep=r"\s+", header=None, comment="#"),
        dict(sep=",", header=None, comment="#"),
        dict(sep=r"\s+", header=0, comment="#"),
        dict(sep=",", header=0, comment="#"),
    ]
    for kw in tries:
        try:
            df = pd.read_csv(path, engine="python", **kw)
        except (ValueError, pd.errors.ParserError):
            continue
        if df.shape[1] < 2:
            continue
        # numeric header row means header=None was right; text header means header=0
        if kw["header"] is None and not all(pd.api.types.is_numeric_dtype(t) for t in df.dtypes):
            continue
        logger.debug(f"[IO] {path.name}: parsed with {kw}")
        return df
    raise ValueError(f"[IO] Could not parse a numeric table from {path}")

def _pick(df: pd.DataFrame, aliases: Sequence[str], what: str) -> str:
    for a in aliases:
        if a in df.columns:
            return a
    raise KeyError(f"[IO] no {what} column among {list(df.columns)}")


# ----------------------- correlation tables -----------------------
def sample_from_frame(df: pd.DataFrame, *, max_pairs: int = MAX_NPNC_PAIRS,
                      strict: bool = False, logger: logging.Logger = log) -> CorrelationSample:
    """DataFrame with Npart/Ncoll/weight columns (common aliases accepted), zero weights dropped."""
    if all(isinstance(c, (int, np.integer)) for c in df.columns):
        if df.shape[1] < 3:
            raise ValueError(f"[IO] need 3 columns (npart, ncoll, weight), got {df.shape[1]}")
        cp, cc, cw = df.columns[:3]
    else:
        cp = _pick(df, _NPART_ALIASES, "Npart")
        cc = _pick(df, _NCOLL_ALIASES, "Ncoll")
        cw = _pick(df, _WEIGHT_ALIASES, "weight")
    d = df[[cp, cc, cw]].astype(float)
    d = d[d[cw] != 0]
    return CorrelationSample.from_arrays(d[cp].to_numpy(), d[cc].to_numpy(),
                                         np.trunc(d[cw].to_numpy()),
                                         max_pairs=max_pairs, strict=strict, logger=logger)

def read_npnc_table(path: str | Path, **kw) -> CorrelationSample:
    path = Path(path)
    logger = kw.get("logger", log)
    s = sample_from_frame(_read_table_auto(path, logger), **kw)
    logger.info(f"[IO] {path.name}: {len(s)} (Npart, Ncoll) pairs, total weight {s.total_weight}")
    return s


# ----------------------- multiplicity spectra -----------------------
def _edges_from_centers(c: np.ndarray) -> np.ndarray:
    if c.size == 1:
        return np.array([c[0] - 0.5, c[0] + 0.5])
    mid = 0.5 * (c[1:] + c[:-1])
    return np.concatenate([[c[0] - (mid[0] - c[0])], mid, [c[-1] + (c[-1] - mid[-1])]])

def read_multiplicity_hist(path: str | Path, name: Optional[str] = None) -> Hist1D:
    """
    Columns:
      center content [error]          (edges at centre midpoints)
      low high content error          (explicit edges)
    """
    path = Path(path)
    a = _read_table_auto(path).to_numpy(dtype=float)
    a = a[np.argsort(a[:, 0])]
    if a.shape[1] >= 4:
        edges = np.append(a[:, 0], a[-1, 1])
        return Hist1D(edges, a[:, 2], a[:, 3], name=name or path.stem)
    edges = _edges_from_centers(a[:, 0])
    errors = a[:, 2] if a.shape[1] == 3 else None
    return Hist1D(edges, a[:, 1], errors, name=name or path.stem)
