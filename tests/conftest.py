"""
Pytest fixtures for the Glauber+NBD fitter test suite.
"""

import numpy as np
import pytest

from ancestor_histogram import CorrelationSample
from glauber_nbd_model import ModelParameters


@pytest.fixture
def three_records():
    """Three-cell Glauber sample used for the end-to-end regression."""
    return CorrelationSample.from_records([(10, 5, 100), (20, 15, 50), (30, 25, 10)])


@pytest.fixture
def small_glauber():
    """A handful of (Npart, Ncoll) cells spanning peripheral to central."""
    return CorrelationSample.from_records([
        (5, 8, 100), (10, 20, 60), (20, 45, 30), (30, 80, 10),
    ])


@pytest.fixture
def reference_params():
    return ModelParameters(mu=45.0, k=1.5, f=0.8, norm=100.0, dMu=0.0)


@pytest.fixture
def npnc_counts():
    """Integer-aligned Npart x Ncoll grid with a few filled cells."""
    c = np.zeros((40, 60))
    c[0, 5] = 7.0     # Npart = 0 lies outside the scan
    c[2, 10] = 5.0
    c[3, 4] = 2.0
    c[12, 30] = 11.0
    return c
