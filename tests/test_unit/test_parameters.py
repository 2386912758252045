"""
Tests for the parameter vector layout and rate tree validation.
"""

import itertools

import numpy as np
import pytest

from cafeml.exceptions import (
    ParameterCountError,
    TopologyMismatchError,
    UnderspecifiedRateTreeError,
)
from cafeml.io.trees import Tree
from cafeml.models.parameters import (
    BirthDeathRates,
    ParameterLayout,
    validate_rate_tree,
)


TREE = Tree.from_newick("((A:1,B:1):1,(C:1,D:1):1);")

# (n_lambdas, k, fix_cluster0, eqbg, lambda_only) for every valid combination;
# n_lambdas > 1 stands for a rate tree with several classes
LAYOUT_MODES = [
    mode
    for mode in itertools.product([1, 2, 3], [0, 2, 3], [False, True], [False, True], [False, True])
    if not ((mode[2] and mode[1] < 2) or (mode[3] and mode[4]))
]


class TestParameterLayout:

    def test_regions_cover_vector(self):
        for n_lambdas, k, fix, eqbg, lambda_only in itertools.product(
            [1, 2, 3], [0, 2, 3], [False, True], [False, True], [False, True]
        ):
            if (fix and k < 2) or (eqbg and lambda_only):
                continue
            layout = ParameterLayout(
                n_lambdas=n_lambdas,
                n_mus=0 if lambda_only else -1,
                k=k,
                fix_cluster0=fix,
                eqbg=eqbg,
            )
            assert layout.lambda_size + layout.mu_size + layout.weight_size == layout.total
            assert layout.mu_offset == layout.lambda_size
            assert layout.weight_offset == layout.lambda_size + layout.mu_size

    @pytest.mark.parametrize("n_lambdas,k,fix,eqbg,lambda_only", LAYOUT_MODES)
    def test_pack_unpack_decode_round_trip(self, n_lambdas, k, fix, eqbg, lambda_only):
        layout = ParameterLayout(
            n_lambdas=n_lambdas,
            n_mus=0 if lambda_only else -1,
            k=k,
            fix_cluster0=fix,
            eqbg=eqbg,
        )
        params = np.arange(1, layout.total + 1) / 100.0
        lambdas, mus, weights = layout.unpack(params)

        np.testing.assert_array_equal(layout.pack(lambdas, mus, weights), params)

        slots = layout.slots_per_class
        for cls in range(n_lambdas):
            rates = layout.decode(params, cls)
            lam = lambdas[cls * slots:(cls + 1) * slots]
            if fix:
                lam = np.concatenate([[0.0], lam])
            np.testing.assert_array_equal(np.atleast_1d(rates.lam), lam)
            assert rates.is_clustered == (k > 0)

            if lambda_only:
                assert rates.mu is None
            elif eqbg and cls == 0:
                np.testing.assert_array_equal(np.atleast_1d(rates.mu), lam)
            else:
                start = (cls - int(eqbg)) * slots
                mu = mus[start:start + slots]
                if fix:
                    mu = np.concatenate([[0.0], mu])
                np.testing.assert_array_equal(np.atleast_1d(rates.mu), mu)

        root = layout.decode(params, -1)
        np.testing.assert_array_equal(np.atleast_1d(root.lam), np.atleast_1d(layout.decode(params, 0).lam))
        if k:
            all_weights = layout.weights(params)
            assert len(all_weights) == k
            np.testing.assert_array_equal(all_weights[:-1], weights)
            assert all_weights.sum() == pytest.approx(1.0)
        else:
            assert layout.weights(params) is None

    def test_documented_example(self):
        layout = ParameterLayout(n_lambdas=2, n_mus=-1, k=3, fix_cluster0=True)
        assert (layout.lambda_size, layout.mu_size, layout.weight_size, layout.total) == (4, 4, 2, 10)

    def test_single_rate(self):
        layout = ParameterLayout()
        assert layout.lambda_only
        assert layout.total == 1
        assert layout.n_clusters == 0

    def test_eqbg_drops_background_mu(self):
        layout = ParameterLayout(n_lambdas=3, n_mus=-1, eqbg=True)
        assert layout.lambda_size == 3
        assert layout.mu_size == 2

    def test_invalid_layouts(self):
        with pytest.raises(ValueError, match="fix_cluster0"):
            ParameterLayout(k=1, fix_cluster0=True)
        with pytest.raises(ValueError, match="eqbg"):
            ParameterLayout(n_lambdas=2, n_mus=0, eqbg=True)
        with pytest.raises(ValueError):
            ParameterLayout(n_lambdas=0)

    def test_from_rate_tree(self):
        rate_tree = Tree.from_newick("((1,1)1,(2,2)2);")
        layout = ParameterLayout.from_rate_tree(rate_tree, eqbg=True)

        assert layout.n_lambdas == 2
        assert layout.total == 3

    def test_eqbg_without_rate_tree(self):
        with pytest.raises(ValueError, match="rate tree"):
            ParameterLayout.from_rate_tree(None, eqbg=True)


class TestPackUnpack:

    def test_round_trip(self):
        layout = ParameterLayout(n_lambdas=2, n_mus=-1, k=2)
        params = layout.pack([0.1, 0.2, 0.3, 0.4], [0.5, 0.6, 0.7, 0.8], [0.25])

        lambdas, mus, weights = layout.unpack(params)
        np.testing.assert_allclose(lambdas, [0.1, 0.2, 0.3, 0.4])
        np.testing.assert_allclose(mus, [0.5, 0.6, 0.7, 0.8])
        np.testing.assert_allclose(weights, [0.25])

    def test_wrong_count(self):
        layout = ParameterLayout(n_lambdas=1, n_mus=-1)

        with pytest.raises(ParameterCountError) as excinfo:
            layout.pack([0.1, 0.2], [0.1])
        assert excinfo.value.supplied == 2
        assert excinfo.value.required == 1
        assert "lambda" in str(excinfo.value)

    def test_missing_mus(self):
        layout = ParameterLayout(n_lambdas=1, n_mus=-1)
        with pytest.raises(ParameterCountError, match="mu"):
            layout.pack([0.1])

    def test_weights_complete_to_one(self):
        layout = ParameterLayout(k=3)
        params = layout.pack([0.1, 0.2, 0.3], None, [0.2, 0.3])
        np.testing.assert_allclose(layout.weights(params), [0.2, 0.3, 0.5])

    def test_no_weights_without_clusters(self):
        layout = ParameterLayout()
        assert layout.weights([0.1]) is None


class TestDecode:

    def test_scalar_rates(self):
        layout = ParameterLayout(n_lambdas=2, n_mus=-1)
        params = layout.pack([0.1, 0.2], [0.3, 0.4])

        rates = layout.decode(params, 1)
        assert rates.lam == pytest.approx(0.2)
        assert rates.mu == pytest.approx(0.4)
        assert not rates.is_clustered

    def test_lambda_only(self):
        layout = ParameterLayout()
        rates = layout.decode([0.05], 0)
        assert rates.mu is None
        assert str(rates) == "0.05"

    def test_root_reads_class_zero(self):
        layout = ParameterLayout(n_lambdas=2, n_mus=-1)
        params = layout.pack([0.1, 0.2], [0.3, 0.4])

        root = layout.decode(params, -1)
        assert root.lam == pytest.approx(0.1)
        assert root.mu == pytest.approx(0.3)

    def test_eqbg_background(self):
        layout = ParameterLayout(n_lambdas=2, n_mus=-1, eqbg=True)
        params = layout.pack([0.1, 0.2], [0.5])

        background = layout.decode(params, 0)
        assert background.mu == pytest.approx(background.lam)
        other = layout.decode(params, 1)
        assert other.lam == pytest.approx(0.2)
        assert other.mu == pytest.approx(0.5)

    def test_clustered_fix_cluster0(self):
        layout = ParameterLayout(n_lambdas=1, n_mus=-1, k=3, fix_cluster0=True)
        params = layout.pack([0.1, 0.2], [0.3, 0.4], [0.2, 0.3])

        rates = layout.decode(params, 0)
        assert rates.is_clustered
        np.testing.assert_allclose(rates.lam, [0.0, 0.1, 0.2])
        np.testing.assert_allclose(rates.mu, [0.0, 0.3, 0.4])

    def test_clustered_eqbg(self):
        layout = ParameterLayout(n_lambdas=2, n_mus=-1, k=2, eqbg=True)
        params = layout.pack([0.1, 0.2, 0.3, 0.4], [0.5, 0.6], [0.5])

        background = layout.decode(params, 0)
        np.testing.assert_allclose(background.mu, background.lam)
        assert background.mu is not background.lam
        np.testing.assert_allclose(layout.decode(params, 1).mu, [0.5, 0.6])

    def test_wrong_length(self):
        layout = ParameterLayout(n_lambdas=1, n_mus=-1)
        with pytest.raises(ParameterCountError):
            layout.decode([0.1], 0)

    def test_class_out_of_range(self):
        layout = ParameterLayout(n_lambdas=1, n_mus=-1)
        with pytest.raises(IndexError):
            layout.decode([0.1, 0.2], 1)

    def test_str_with_mu(self):
        assert str(BirthDeathRates(0.1, 0.2)) == "0.1_0.2"


class TestValidateRateTree:

    def test_valid(self):
        classes = validate_rate_tree(TREE, Tree.from_newick("((1,1)1,(2,2)2);"))
        assert classes == [0, 0, 0, 1, 1, 1, -1]

    def test_topology_mismatch(self):
        with pytest.raises(TopologyMismatchError):
            validate_rate_tree(TREE, Tree.from_newick("((1,1)1,2);"))

    def test_missing_label(self):
        with pytest.raises(UnderspecifiedRateTreeError):
            validate_rate_tree(TREE, Tree.from_newick("((1,1),(2,2)2);"))

    def test_non_consecutive_labels(self):
        with pytest.raises(ValueError, match="consecutive"):
            validate_rate_tree(TREE, Tree.from_newick("((1,1)1,(3,3)3);"))
