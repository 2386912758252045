"""
Tests for the analysis context.
"""

import io

import numpy as np
import pytest

from cafeml.context import AnalysisContext, FamilySizeRange
from cafeml.exceptions import ConfigurationError


class TestFamilySizeRange:

    def test_small_families(self):
        size_range = FamilySizeRange.from_max_size(5)

        assert size_range.min == 0
        assert size_range.max == 55
        assert size_range.root_min == 1
        assert size_range.root_max == 25
        assert size_range.n_sizes == 56
        assert len(size_range.root_sizes) == 25

    def test_large_families(self):
        size_range = FamilySizeRange.from_max_size(1000)
        assert size_range.max == 1200
        assert size_range.root_max == 1200


class TestAnalysisContext:

    def test_seeded_generator(self):
        first = AnalysisContext(seed=11).rng.uniform(size=3)
        second = AnalysisContext(seed=11).rng.uniform(size=3)
        np.testing.assert_array_equal(first, second)

    def test_family_sets_range(self, context):
        assert context.family_size.max == 55
        assert context.family_path.name == "families.tab"

    def test_quiet_suppresses_log(self):
        stream = io.StringIO()
        context = AnalysisContext(quiet=True, log_stream=stream)
        context.log("hidden")
        assert stream.getvalue() == ""

        loud = AnalysisContext(log_stream=stream)
        loud.log("shown")
        assert stream.getvalue() == "shown\n"

    def test_log_file_appends(self, tmp_path):
        path = tmp_path / "session.log"
        path.write_text("earlier\n")
        context = AnalysisContext(quiet=True)
        context.set_log_file(path)
        context.log("later")
        context.close()

        assert path.read_text() == "earlier\nlater\n"
        assert context.log_path is None

    def test_bad_log_file(self, tmp_path):
        context = AnalysisContext()
        with pytest.raises(OSError, match="Cannot open log file"):
            context.set_log_file(tmp_path / "missing" / "dir" / "x.log")

    def test_prerequisites(self):
        context = AnalysisContext()
        with pytest.raises(ConfigurationError, match="tree"):
            context.require_tree("lambdamu")
        with pytest.raises(ConfigurationError, match="family"):
            context.require_family("lambdamu")
        with pytest.raises(ConfigurationError, match="parameters"):
            context.require_parameters("lambdamu")

    def test_prior_follows_family(self, context):
        context.use_empirical_prior()
        before = context.root_prior.copy()

        context.load_family(context.family.subset([4, 7]))
        assert context.root_prior is not None
        assert len(context.root_prior) == context.family_size.root_max - context.family_size.root_min + 1
        assert not np.array_equal(before, context.root_prior)

    def test_log_summary(self, tree_file, family_file):
        stream = io.StringIO()
        context = AnalysisContext(log_stream=stream)
        context.load_tree(tree_file)
        context.load_family(family_file)
        context.log_summary()

        text = stream.getvalue()
        assert "The number of families is 8" in text
        assert "Root Family size : 1 ~ 25" in text
