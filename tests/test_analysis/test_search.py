"""
Tests for the maximum likelihood rate search.
"""

import numpy as np
import pytest

from cafeml.core.likelihood import log_likelihood
from cafeml.exceptions import ConfigurationError
from cafeml.models.rates import configure_rates
from cafeml.optimize.search import random_rate_start, rate_objective, score, search_rates


class TestRateObjective:

    def test_negative_rates_infeasible(self, context):
        configure_rates(context, lambdas=[0.01], mus=[0.02])
        objective = rate_objective(context)

        assert objective(np.array([-0.01, 0.02])) == np.inf
        assert objective(np.array([0.01, -0.02])) == np.inf

    def test_weights_infeasible(self, context):
        configure_rates(context, lambdas=[0.01, 0.1], weights=[0.5], k=2, lambda_only=True)
        objective = rate_objective(context)

        assert objective(np.array([0.01, 0.1, -0.1])) == np.inf
        assert objective(np.array([0.01, 0.1, 1.2])) == np.inf
        assert np.isfinite(objective(np.array([0.01, 0.1, 0.5])))

    def test_matches_log_likelihood(self, context):
        configure_rates(context, lambdas=[0.02], mus=[0.03])
        expected, _ = log_likelihood(context)

        objective = rate_objective(context)
        assert objective(np.array([0.02, 0.03])) == pytest.approx(-expected)

    def test_random_start(self, context):
        configure_rates(context, lambdas=[0.01, 0.1], mus=[0.01, 0.1], weights=[0.5], k=2)
        start = random_rate_start(context)

        assert len(start) == context.layout.total
        assert np.all(start[:4] >= 0) and np.all(start[:4] < 1.0)
        assert 0 <= start[4] <= 1


class TestSearchRates:

    def test_lambda_only(self, context):
        result = configure_rates(context, lambda_only=True, search=True)

        assert result.mus is None
        assert len(result.lambdas) == 1
        assert result.lambdas[0] > 0
        assert np.isfinite(result.log_likelihood)
        assert result.n_parameters == 1
        assert result.n_families == 8
        np.testing.assert_allclose(context.parameters, result.lambdas)

    def test_best_rates_beat_arbitrary_rates(self, context):
        result = configure_rates(context, search=True)
        assert len(result.mus) == 1

        configure_rates(context, lambdas=[0.5], mus=[0.5])
        assert score(context) < result.log_likelihood

    def test_check_convergence(self, context):
        context.check_convergence = True
        result = configure_rates(context, lambda_only=True, search=True)

        assert 1 <= result.attempts <= 10
        assert np.isfinite(result.log_likelihood)

    def test_mixture_membership(self, context):
        result = configure_rates(context, k=2, fix_cluster0=True, lambda_only=True, search=True)

        assert len(result.weights) == 2
        assert sum(result.weights) == pytest.approx(1.0)
        assert result.membership.shape == (8, 2)
        np.testing.assert_allclose(result.membership.sum(axis=1), 1.0)
        # families whose sizes differ cannot come from the zero-rate cluster
        assert result.membership[1, 0] == pytest.approx(0.0)

    def test_seeded_search_is_reproducible(self, tree_file, family_file):
        from cafeml.context import AnalysisContext

        results = []
        for _ in range(2):
            context = AnalysisContext(seed=7, quiet=True)
            context.load_tree(tree_file)
            context.load_family(family_file)
            results.append(configure_rates(context, lambda_only=True, search=True))
        assert results[0].lambdas == results[1].lambdas

    def test_search_logs_result(self, tree_file, family_file, tmp_path):
        from cafeml.context import AnalysisContext

        log_file = tmp_path / "search.log"
        context = AnalysisContext(seed=1)
        context.set_log_file(log_file)
        context.load_tree(tree_file)
        context.load_family(family_file)
        configure_rates(context, lambda_only=True, search=True)
        context.close()

        text = log_file.read_text()
        assert "Lambda : " in text
        assert "Score: " in text

    def test_requires_layout(self, context):
        with pytest.raises(ConfigurationError):
            score(context)

    def test_direct_search(self, context):
        configure_rates(context, lambdas=[0.01], lambda_only=True)
        result = search_rates(context, max_runs=2)

        assert result.attempts <= 2
        assert result.score == pytest.approx(-result.log_likelihood)
