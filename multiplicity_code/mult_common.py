# mult_common.py: shared logging, error types and constants for the
# Glauber+NBD multiplicity fitter.
from __future__ import annotations
import logging

# ----------------------- logging -----------------------
def make_logger(name: str = "glauber_nbd", level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(level)
        h = logging.StreamHandler()
        h.setLevel(level)
        h.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(h)
    else:
        logger.setLevel(level)
        for h in logger.handlers:
            h.setLevel(level)
    return logger
log = make_logger()

# ----------------------- errors -----------------------
class GlauberNBDError(Exception):
    """Base class for every error raised by the multiplicity fitter."""

class ConfigurationError(GlauberNBDError, RuntimeError):
    """Required input (correlation table, target histogram, range) missing or unusable."""

class EmptyDistributionError(GlauberNBDError, RuntimeError):
    """Ancestor histogram ended up with total weight < 1."""

class NumericDomainError(GlauberNBDError, ValueError):
    """NBD requested outside its domain (mu <= 0, k <= 0 or n < 0)."""

# ----------------------- constants -----------------------
F_TOLERANCE = 1e-13        # |Δf| below this reuses the cached ancestor histogram
MULT_ALMOST_ZERO = 1e-6    # multiplicities at or below this have zero probability
LOG_BRANCH_THRESHOLD = 100.0

NPART_SCAN = (1, 500)      # [lo, hi) integer Npart values scanned in the 2-D table
NCOLL_SCAN = (1, 3000)     # [lo, hi) integer Ncoll values
MAX_NPNC_PAIRS = 1_000_000

ANC_XMIN, ANC_XMAX = -0.5, 999.5
ANC_NBINS_INTEGER = 1000
ANC_NBINS_CONTINUOUS = 10000

DEFAULT_MAX_ITERATIONS = 5_000_000
