"""
Tests for the weighted-bin containers.
"""

import numpy as np
import pytest

from hist_containers import Hist1D, Hist2D, Profile1D


class TestHist1D:

    def test_find_bin_uniform(self):
        h = Hist1D.uniform(1000, -0.5, 999.5)
        assert h.find_bin(-0.5) == 0
        assert h.find_bin(0.0) == 0
        assert h.find_bin(0.49) == 0
        assert h.find_bin(0.5) == 1
        assert h.find_bin(998.9) == 999
        assert h.find_bin(-0.6) == -1
        assert h.find_bin(999.5) == 1000
        assert h.find_bin(np.nan) == 1000

    def test_find_bin_variable_edges(self):
        h = Hist1D([0.0, 1.0, 3.0, 10.0])
        np.testing.assert_array_equal(h.find_bin([-1.0, 0.0, 2.9, 3.0, 9.99, 10.0]),
                                      [-1, 0, 1, 2, 2, 3])

    def test_fill_drops_under_and_overflow(self):
        h = Hist1D.uniform(4, 0.0, 4.0)
        h.fill([-1.0, 0.5, 1.5, 1.7, 3.9, 4.0, 12.0], [9.0, 1.0, 2.0, 3.0, 4.0, 9.0, 9.0])
        np.testing.assert_allclose(h.contents, [1.0, 5.0, 0.0, 4.0])
        assert h.integral() == pytest.approx(10.0)

    def test_content_at(self):
        h = Hist1D.uniform(3, 0.0, 3.0)
        h.contents[:] = [1.0, 2.0, 3.0]
        assert h.content_at(1.2) == 2.0
        np.testing.assert_array_equal(h.content_at([-1.0, 2.5, 3.0]), [0.0, 3.0, 0.0])

    def test_centers_and_errors(self):
        h = Hist1D.uniform(4, 0.0, 2.0)
        np.testing.assert_allclose(h.centers, [0.25, 0.75, 1.25, 1.75])
        h.contents[:] = [4.0, 9.0, 0.0, 1.0]
        np.testing.assert_allclose(h.bin_errors(), [2.0, 3.0, 0.0, 1.0])
        h.errors = np.full(4, 0.5)
        h.scale(2.0)
        np.testing.assert_allclose(h.contents, [8.0, 18.0, 0.0, 2.0])
        np.testing.assert_allclose(h.bin_errors(), 1.0)

    def test_copy_is_independent(self):
        h = Hist1D.uniform(2, 0.0, 2.0)
        c = h.copy()
        c.fill(0.5)
        assert h.integral() == 0.0 and c.integral() == 1.0

    @pytest.mark.parametrize("edges", [[1.0], [0.0, 0.0, 1.0], [2.0, 1.0]])
    def test_bad_edges(self, edges):
        with pytest.raises(ValueError):
            Hist1D(edges)

    def test_contents_shape_checked(self):
        with pytest.raises(ValueError):
            Hist1D([0.0, 1.0, 2.0], contents=[1.0])


class TestHist2D:

    def test_from_counts_alignment(self, npnc_counts):
        h = Hist2D.from_counts(npnc_counts)
        assert h.shape == (40, 60)
        assert h.content_at(12, 30) == 11.0
        assert h.content_at(2.3, 9.6) == 5.0
        assert h.content_at(-1, 5) == 0.0
        assert h.integral() == pytest.approx(25.0)

    def test_fill(self):
        h = Hist2D.uniform(2, 0.0, 2.0, 3, 0.0, 3.0)
        h.fill([0.5, 1.5, 1.5, 5.0], [2.5, 0.5, 0.5, 0.5], [1.0, 2.0, 3.0, 7.0])
        assert h.contents[0, 2] == 1.0
        assert h.contents[1, 0] == 5.0
        assert h.integral() == pytest.approx(6.0)


class TestProfile1D:

    def test_weighted_means(self):
        p = Profile1D.uniform(2, 0.0, 2.0)
        p.fill([0.5, 0.5, 1.5], [10.0, 20.0, 7.0], [1.0, 3.0, 2.0])
        np.testing.assert_allclose(p.means(), [17.5, 7.0])
        np.testing.assert_array_equal(p.entries, [2, 1])
        assert p.mean_at(0.1) == pytest.approx(17.5)

    def test_empty_bins(self):
        p = Profile1D.uniform(3, 0.0, 3.0)
        p.fill(0.5, 4.0, 1.0)
        np.testing.assert_array_equal(p.means(), [4.0, 0.0, 0.0])
        np.testing.assert_array_equal(p.spreads(), [0.0, 0.0, 0.0])
        assert p.mean_at(10.0) == 0.0

    def test_spread(self):
        p = Profile1D.uniform(1, 0.0, 1.0)
        p.fill([0.5, 0.5], [1.0, 3.0])
        assert p.spreads()[0] == pytest.approx(1.0)
