"""
Tests for measurement error model estimation.
"""

import numpy as np
import pytest

from cafeml.analysis.error_model import (
    ErrorMatrix,
    ErrorMeasure,
    build_error_matrix,
    estimate_error_double_measure,
    estimate_error_model,
    estimate_error_true_measure,
    size_distribution,
)


def make_measure(max_size=5, **kwargs):
    n = max_size + 1
    pairs = np.triu(np.ones((n, n), dtype=int))
    return ErrorMeasure(
        size_dist=size_distribution(np.arange(n), max_size),
        pairs=pairs,
        max_family_size=max_size,
        **kwargs,
    )


class TestSizeDistribution:

    def test_laplace_smoothing(self):
        dist = size_distribution(np.array([3, 0, 1]), 2)
        np.testing.assert_allclose(dist, [4 / 7, 1 / 7, 2 / 7])

    def test_padded_to_max_size(self):
        dist = size_distribution(np.array([1]), 3)
        assert len(dist) == 4
        assert dist.sum() == pytest.approx(1.0)


class TestErrorMeasure:

    def test_parameter_counts(self):
        assert make_measure(max_diff=2).n_params == 3
        assert make_measure(max_diff=2, symmetric=False).n_params == 5
        assert make_measure(max_diff=2, symmetric=False).center == 2

    def test_epsilon_counts_symmetric_offsets_twice(self):
        measure = make_measure(max_size=5, max_diff=1)
        # (1 - (0.8 + 2 * 0.05)) / (6 - 3)
        assert measure.epsilon([0.8, 0.05]) == pytest.approx(0.1 / 3)

    def test_band_mirrors(self):
        measure = make_measure(max_diff=2)
        np.testing.assert_allclose(measure.band([0.7, 0.1, 0.02]), [0.02, 0.1, 0.7, 0.1, 0.02])

    def test_feasibility(self):
        measure = make_measure(max_diff=1)
        assert measure.is_feasible([0.8, 0.05])
        assert not measure.is_feasible([-0.1, 0.05])
        # not peaked at zero
        assert not measure.is_feasible([0.2, 0.3])
        # band probability below epsilon
        assert not measure.is_feasible([0.9, 0.0])
        # total above one
        assert not measure.is_feasible([0.9, 0.2])

    def test_peak_zero_optional(self):
        measure = make_measure(max_diff=1, peak_zero=False)
        assert measure.is_feasible([0.2, 0.3])

    def test_asymmetric_peak(self):
        measure = make_measure(max_diff=1, symmetric=False)
        assert measure.is_feasible([0.05, 0.8, 0.1])
        assert not measure.is_feasible([0.5, 0.3, 0.1])

    def test_infeasible_log_likelihood(self):
        measure = make_measure(max_diff=1)
        assert measure.log_likelihood([0.3, 0.4]) == -np.inf
        assert measure.negative_log_likelihood([0.3, 0.4]) == np.inf

    def test_feasible_log_likelihood(self):
        measure = make_measure(max_diff=1)
        assert np.isfinite(measure.log_likelihood([0.8, 0.05]))
        true_measure = make_measure(max_diff=1, mode="true")
        assert np.isfinite(true_measure.log_likelihood([0.8, 0.05]))

    def test_invalid_shapes(self):
        with pytest.raises(ValueError, match="too large"):
            make_measure(max_size=2, max_diff=1)
        with pytest.raises(ValueError, match="mode"):
            make_measure(mode="triple")
        with pytest.raises(ValueError):
            make_measure(max_diff=-1)
        with pytest.raises(ValueError, match="must cover"):
            ErrorMeasure(
                size_dist=np.full(3, 1 / 3),
                pairs=np.zeros((5, 5)),
                max_family_size=4,
            )


class TestErrorMatrix:

    @pytest.mark.parametrize("symmetric, max_diff, params", [
        (True, 1, [0.8, 0.05]),
        (True, 2, [0.6, 0.12, 0.05]),
        (False, 1, [0.05, 0.8, 0.1]),
        (False, 2, [0.02, 0.1, 0.7, 0.08, 0.03]),
    ])
    def test_columns_sum_to_one(self, symmetric, max_diff, params):
        measure = make_measure(max_size=7, symmetric=symmetric, max_diff=max_diff)
        error_matrix = build_error_matrix(measure, np.array(params))

        np.testing.assert_allclose(error_matrix.column_sums(), 1.0, atol=1e-12)
        assert error_matrix.from_diff == -max_diff
        assert error_matrix.to_diff == max_diff

    def test_symmetric_interior_columns(self):
        measure = make_measure(max_size=7, max_diff=2)
        matrix = build_error_matrix(measure, np.array([0.6, 0.12, 0.05])).matrix

        for j in range(2, 6):
            assert matrix[j - 1, j] == pytest.approx(matrix[j + 1, j])
            assert matrix[j - 2, j] == pytest.approx(matrix[j + 2, j])
            assert matrix[j, j] == pytest.approx(0.6)

    def test_boundary_shortfall_on_edge_rows(self):
        measure = make_measure(max_size=5, max_diff=1)
        matrix = build_error_matrix(measure, np.array([0.8, 0.05])).matrix
        eps = measure.epsilon([0.8, 0.05])

        # column 0 lacks the -1 offset and has one extra epsilon; row 0 takes the difference
        assert matrix[0, 0] == pytest.approx(0.8 + 0.05 - eps)
        assert matrix[5, 5] == pytest.approx(0.8 + 0.05 - eps)
        assert matrix[3, 0] == pytest.approx(eps)

    def test_to_file(self, tmp_path):
        measure = make_measure(max_size=4, max_diff=1)
        error_matrix = build_error_matrix(measure, np.array([0.8, 0.05]))
        path = tmp_path / "errormodel.txt"
        error_matrix.to_file(path)

        lines = path.read_text().splitlines()
        assert lines[0] == "maxcnt: 4"
        assert lines[1] == "cntdiff: -1 0 1"
        assert len(lines) == 7
        assert lines[2].startswith("0 0.000000 ")
        assert lines[-1].endswith(" 0.000000")

    def test_matrix_dataclass(self):
        error_matrix = ErrorMatrix(np.eye(3), 2, 0, 0)
        np.testing.assert_allclose(error_matrix.column_sums(), 1.0)


class TestEstimation:

    def test_double_measure(self, measure_files):
        lines = []
        result = estimate_error_double_measure(
            *measure_files, max_diff=1, rng=np.random.default_rng(1), log=lines.append
        )

        assert result.mode == "double"
        assert result.max_family_size == 4
        assert len(result.estimates) == 2
        assert np.isfinite(result.log_likelihood)
        assert result.epsilon >= 0
        assert result.estimates[0] >= result.estimates[1]
        np.testing.assert_allclose(result.error_matrix.sum(axis=0), 1.0, atol=1e-12)
        assert any(line.startswith("Misclassification Matrix Search Result:") for line in lines)

    def test_identical_measurements(self, identical_measure_files):
        result = estimate_error_double_measure(
            *identical_measure_files,
            symmetric=False,
            max_diff=1,
            rng=np.random.default_rng(2),
            log=lambda line: None,
        )

        assert len(result.estimates) == 3
        assert result.converged
        assert result.estimates[1] > 0.99
        assert result.estimates[0] < 0.01
        assert result.estimates[2] < 0.01
        assert np.isfinite(result.log_likelihood)

    def test_identical_measurements_symmetric(self, identical_measure_files):
        result = estimate_error_double_measure(
            *identical_measure_files,
            max_diff=1,
            rng=np.random.default_rng(4),
            log=lambda line: None,
        )

        assert np.isfinite(result.log_likelihood)
        assert result.converged
        # nothing is discordant, so the marginal error sits at its bound of 0
        assert 0 <= result.epsilon < 1e-4
        assert result.estimates[0] > 0.99

    def test_true_measure(self, measure_files):
        result = estimate_error_true_measure(
            *measure_files, max_diff=1, rng=np.random.default_rng(3), log=lambda line: None
        )

        assert result.mode == "true"
        assert np.isfinite(result.log_likelihood)
        assert 0 < result.estimates[0] <= 1

    def test_estimates_stored_on_measure(self):
        measure = make_measure(max_size=5, max_diff=1)
        result = estimate_error_model(
            measure, rng=np.random.default_rng(4), log=lambda line: None, max_runs=3
        )

        np.testing.assert_allclose(measure.estimates, result.estimates)
        assert result.attempts <= 3

    def test_verbose_logs_evaluations(self):
        measure = make_measure(max_size=5, max_diff=1)
        lines = []
        estimate_error_model(
            measure, rng=np.random.default_rng(5), log=lines.append, verbose=True, max_runs=2
        )
        assert any(line.startswith("\tparameters : ") for line in lines)
