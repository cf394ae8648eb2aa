# hist_containers.py: minimal weighted-bin containers (1-D histogram,
# 2-D histogram, 1-D profile) used as the in-process stand-ins for the
# histogram objects the fitter reads from and writes to.
#
# Bin lookup follows the usual fixed-width rule for uniform axes
# (bin = floor(nbins * (x - xmin) / (xmax - xmin))) and searchsorted for
# variable edges. Under/overflow is dropped: it never enters contents or
# integrals.

from __future__ import annotations

from typing import Optional, Tuple
import numpy as np


# ----------------------------- Axis helpers ---------------------------------

def _is_uniform(edges: np.ndarray) -> bool:
    w = np.diff(edges)
    return bool(w.size > 0 and np.allclose(w, w[0], rtol=1e-12, atol=0.0))

def _find_bin(edges: np.ndarray, uniform: bool, x) -> np.ndarray:
    """Bin index per x; -1 for underflow, nbins for overflow (and NaN)."""
    x = np.asarray(x, float)
    nb = edges.size - 1
    if uniform:
        xmin, xmax = edges[0], edges[-1]
        with np.errstate(invalid="ignore"):
            idx = np.floor(nb * (x - xmin) / (xmax - xmin))
    else:
        idx = np.searchsorted(edges, x, side="right") - 1.0
    idx = np.where(np.isnan(x), nb, idx)
    return np.clip(idx, -1, nb).astype(np.int64)


# ----------------------------- 1-D histogram --------------------------------

class Hist1D:
    """Weighted 1-D histogram over explicit bin edges."""

    def __init__(self, edges, contents=None, errors=None, name: str = "") -> None:
        self.name = name
        self.edges = np.asarray(edges, float)
        if self.edges.ndim != 1 or self.edges.size < 2:
            raise ValueError(f"[Hist1D] need at least two edges, got shape {self.edges.shape}")
        if np.any(np.diff(self.edges) <= 0):
            raise ValueError("[Hist1D] edges must be strictly increasing")
        self._uniform = _is_uniform(self.edges)
        nb = self.edges.size - 1
        self.contents = np.zeros(nb) if contents is None else np.array(contents, float)
        if self.contents.shape != (nb,):
            raise ValueError(f"[Hist1D] contents.shape={self.contents.shape} vs {nb} bins")
        self.errors = None if errors is None else np.array(errors, float)
        if self.errors is not None and self.errors.shape != (nb,):
            raise ValueError(f"[Hist1D] errors.shape={self.errors.shape} vs {nb} bins")

    @classmethod
    def uniform(cls, nbins: int, xmin: float, xmax: float, name: str = "") -> "Hist1D":
        return cls(np.linspace(xmin, xmax, int(nbins) + 1), name=name)

    @property
    def nbins(self) -> int:
        return self.edges.size - 1

    @property
    def centers(self) -> np.ndarray:
        if self._uniform:
            w = (self.edges[-1] - self.edges[0]) / self.nbins
            return self.edges[0] + (np.arange(self.nbins) + 0.5) * w
        return 0.5 * (self.edges[:-1] + self.edges[1:])

    @property
    def widths(self) -> np.ndarray:
        return np.diff(self.edges)

    def find_bin(self, x) -> np.ndarray | int:
        idx = _find_bin(self.edges, self._uniform, x)
        return int(idx) if idx.ndim == 0 else idx

    def fill(self, x, w=1.0) -> None:
        x = np.atleast_1d(np.asarray(x, float))
        w = np.broadcast_to(np.asarray(w, float), x.shape)
        idx = _find_bin(self.edges, self._uniform, x)
        ok = (idx >= 0) & (idx < self.nbins)
        self.contents += np.bincount(idx[ok], weights=w[ok], minlength=self.nbins)

    def content_at(self, x) -> np.ndarray | float:
        """Content of the bin holding x (0 outside the axis)."""
        idx = _find_bin(self.edges, self._uniform, x)
        ok = (idx >= 0) & (idx < self.nbins)
        out = np.where(ok, self.contents[np.clip(idx, 0, self.nbins - 1)], 0.0)
        return float(out) if out.ndim == 0 else out

    def bin_errors(self) -> np.ndarray:
        if self.errors is not None:
            return self.errors
        return np.sqrt(np.abs(self.contents))

    def integral(self) -> float:
        return float(np.sum(self.contents))

    def scale(self, c: float) -> None:
        self.contents *= float(c)
        if self.errors is not None:
            self.errors *= abs(float(c))

    def reset(self) -> None:
        self.contents[:] = 0.0
        self.errors = None

    def copy(self) -> "Hist1D":
        return Hist1D(self.edges.copy(), self.contents.copy(),
                      None if self.errors is None else self.errors.copy(), name=self.name)

    def __repr__(self) -> str:
        return (f"Hist1D(name={self.name!r}, nbins={self.nbins}, "
                f"range=[{self.edges[0]:g},{self.edges[-1]:g}), integral={self.integral():g})")


# ----------------------------- 2-D histogram --------------------------------

class Hist2D:
    """Weighted 2-D histogram; contents[ix, iy]."""

    def __init__(self, x_edges, y_edges, contents=None, name: str = "") -> None:
        self.name = name
        self.x_edges = np.asarray(x_edges, float)
        self.y_edges = np.asarray(y_edges, float)
        for e in (self.x_edges, self.y_edges):
            if e.ndim != 1 or e.size < 2 or np.any(np.diff(e) <= 0):
                raise ValueError("[Hist2D] edges must be 1-D, strictly increasing, size >= 2")
        self._ux, self._uy = _is_uniform(self.x_edges), _is_uniform(self.y_edges)
        shape = (self.x_edges.size - 1, self.y_edges.size - 1)
        self.contents = np.zeros(shape) if contents is None else np.array(contents, float)
        if self.contents.shape != shape:
            raise ValueError(f"[Hist2D] contents.shape={self.contents.shape} vs {shape}")

    @classmethod
    def uniform(cls, nx: int, xmin: float, xmax: float,
                ny: int, ymin: float, ymax: float, name: str = "") -> "Hist2D":
        return cls(np.linspace(xmin, xmax, int(nx) + 1),
                   np.linspace(ymin, ymax, int(ny) + 1), name=name)

    @classmethod
    def from_counts(cls, counts, name: str = "") -> "Hist2D":
        """Integer-aligned grid: counts[i, j] is the cell centred on (x=i, y=j)."""
        counts = np.asarray(counts, float)
        nx, ny = counts.shape
        return cls(np.arange(nx + 1) - 0.5, np.arange(ny + 1) - 0.5, counts, name=name)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.contents.shape

    def find_bin(self, x, y) -> Tuple[np.ndarray, np.ndarray]:
        return (_find_bin(self.x_edges, self._ux, x),
                _find_bin(self.y_edges, self._uy, y))

    def content_at(self, x, y) -> np.ndarray | float:
        ix, iy = self.find_bin(x, y)
        nx, ny = self.shape
        ok = (ix >= 0) & (ix < nx) & (iy >= 0) & (iy < ny)
        out = np.where(ok, self.contents[np.clip(ix, 0, nx - 1), np.clip(iy, 0, ny - 1)], 0.0)
        return float(out) if out.ndim == 0 else out

    def fill(self, x, y, w=1.0) -> None:
        x, y = np.broadcast_arrays(np.atleast_1d(np.asarray(x, float)),
                                   np.atleast_1d(np.asarray(y, float)))
        w = np.broadcast_to(np.asarray(w, float), x.shape)
        ix, iy = self.find_bin(x, y)
        nx, ny = self.shape
        ok = (ix >= 0) & (ix < nx) & (iy >= 0) & (iy < ny)
        flat = np.bincount(ix[ok] * ny + iy[ok], weights=w[ok], minlength=nx * ny)
        self.contents += flat.reshape(nx, ny)

    def integral(self) -> float:
        return float(np.sum(self.contents))


# ----------------------------- 1-D profile ----------------------------------

class Profile1D:
    """Weighted running average of y in bins of x."""

    def __init__(self, edges, name: str = "") -> None:
        self.name = name
        self.edges = np.asarray(edges, float)
        if self.edges.ndim != 1 or self.edges.size < 2 or np.any(np.diff(self.edges) <= 0):
            raise ValueError("[Profile1D] edges must be 1-D, strictly increasing, size >= 2")
        self._uniform = _is_uniform(self.edges)
        nb = self.edges.size - 1
        self.sum_w = np.zeros(nb)
        self.sum_wy = np.zeros(nb)
        self.sum_wy2 = np.zeros(nb)
        self.entries = np.zeros(nb, dtype=np.int64)

    @classmethod
    def uniform(cls, nbins: int, xmin: float, xmax: float, name: str = "") -> "Profile1D":
        return cls(np.linspace(xmin, xmax, int(nbins) + 1), name=name)

    @property
    def nbins(self) -> int:
        return self.edges.size - 1

    @property
    def centers(self) -> np.ndarray:
        return 0.5 * (self.edges[:-1] + self.edges[1:])

    def fill(self, x, y, w=1.0) -> None:
        x, y = np.broadcast_arrays(np.atleast_1d(np.asarray(x, float)),
                                   np.atleast_1d(np.asarray(y, float)))
        w = np.broadcast_to(np.asarray(w, float), x.shape)
        idx = _find_bin(self.edges, self._uniform, x)
        ok = (idx >= 0) & (idx < self.nbins)
        i, yy, ww = idx[ok], y[ok], w[ok]
        nb = self.nbins
        self.sum_w += np.bincount(i, weights=ww, minlength=nb)
        self.sum_wy += np.bincount(i, weights=ww * yy, minlength=nb)
        self.sum_wy2 += np.bincount(i, weights=ww * yy * yy, minlength=nb)
        self.entries += np.bincount(i, minlength=nb)

    def means(self) -> np.ndarray:
        """<y> per bin; 0 where the bin has no weight."""
        out = np.zeros(self.nbins)
        m = self.sum_w > 0
        out[m] = self.sum_wy[m] / self.sum_w[m]
        return out

    def spreads(self) -> np.ndarray:
        out = np.zeros(self.nbins)
        m = self.sum_w > 0
        mean = self.sum_wy[m] / self.sum_w[m]
        out[m] = np.sqrt(np.maximum(self.sum_wy2[m] / self.sum_w[m] - mean * mean, 0.0))
        return out

    def mean_at(self, x) -> np.ndarray | float:
        idx = _find_bin(self.edges, self._uniform, x)
        ok = (idx >= 0) & (idx < self.nbins)
        out = np.where(ok, self.means()[np.clip(idx, 0, self.nbins - 1)], 0.0)
        return float(out) if out.ndim == 0 else out
