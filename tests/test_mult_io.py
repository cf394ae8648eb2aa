"""
Tests for the plain-text readers.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from mult_io import read_multiplicity_hist, read_npnc_table, sample_from_frame
from mult_common import ConfigurationError


class TestNpncTable:

    def test_whitespace_with_header(self, tmp_path):
        f = tmp_path / "npnc.txt"
        f.write_text("# Glauber MC\nNpart Ncoll weight\n2 10 5\n3 4 2\n12 30 11\n")
        s = read_npnc_table(f)
        np.testing.assert_array_equal(s.npart, [2.0, 3.0, 12.0])
        np.testing.assert_array_equal(s.ncoll, [10.0, 4.0, 30.0])
        assert s.total_weight == 18

    def test_comma_without_header(self, tmp_path):
        f = tmp_path / "npnc.csv"
        f.write_text("2,10,5\n3,4,2\n")
        s = read_npnc_table(f)
        assert len(s) == 2
        np.testing.assert_array_equal(s.weight, [5, 2])

    def test_zero_weights_dropped_and_truncated(self):
        df = pd.DataFrame({"npart": [2, 3, 4], "ncoll": [5, 6, 7], "w": [0.0, 2.7, 1.0]})
        s = sample_from_frame(df)
        np.testing.assert_array_equal(s.npart, [3.0, 4.0])
        np.testing.assert_array_equal(s.weight, [2, 1])

    def test_missing_column(self):
        df = pd.DataFrame({"npart": [2], "b": [3], "weight": [1]})
        with pytest.raises(KeyError):
            sample_from_frame(df)

    def test_strict_capacity(self):
        df = pd.DataFrame({"npart": [2, 3, 4], "ncoll": [5, 6, 7], "weight": [1, 1, 1]})
        with pytest.raises(ConfigurationError):
            sample_from_frame(df, max_pairs=2, strict=True)

    def test_logs_through_given_logger(self, tmp_path, caplog):
        f = tmp_path / "npnc.txt"
        f.write_text("2 10 5\n3 4 2\n")
        caplog.set_level(logging.INFO, logger="npnc_reader")
        read_npnc_table(f, logger=logging.getLogger("npnc_reader"))
        assert any(r.name == "npnc_reader" and "2 (Npart, Ncoll) pairs" in r.getMessage()
                   for r in caplog.records)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_npnc_table(tmp_path / "nope.txt")


class TestMultiplicityHist:

    def test_centers_and_contents(self, tmp_path):
        f = tmp_path / "mult.txt"
        f.write_text("1 10\n2 20\n3 15\n")
        h = read_multiplicity_hist(f)
        np.testing.assert_allclose(h.edges, [0.5, 1.5, 2.5, 3.5])
        np.testing.assert_allclose(h.contents, [10.0, 20.0, 15.0])
        assert h.errors is None
        assert h.name == "mult"

    def test_text_header(self, tmp_path):
        f = tmp_path / "mult_hdr.txt"
        f.write_text("center content\n1 10\n2 20\n3 15\n")
        h = read_multiplicity_hist(f)
        np.testing.assert_allclose(h.edges, [0.5, 1.5, 2.5, 3.5])
        np.testing.assert_allclose(h.contents, [10.0, 20.0, 15.0])

    def test_comma_header_with_errors(self, tmp_path):
        f = tmp_path / "mult_hdr.csv"
        f.write_text("mult,count,err\n1,10,3\n2,20,4\n")
        h = read_multiplicity_hist(f)
        np.testing.assert_allclose(h.contents, [10.0, 20.0])
        np.testing.assert_allclose(h.bin_errors(), [3.0, 4.0])

    def test_explicit_edges(self, tmp_path):
        f = tmp_path / "mult_edges.csv"
        f.write_text("0,2,4,2\n2,5,9,3\n")
        h = read_multiplicity_hist(f, name="data")
        np.testing.assert_allclose(h.edges, [0.0, 2.0, 5.0])
        np.testing.assert_allclose(h.contents, [4.0, 9.0])
        np.testing.assert_allclose(h.bin_errors(), [2.0, 3.0])
        assert h.name == "data"
