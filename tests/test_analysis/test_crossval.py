"""
Tests for cross-validation of rate estimates.
"""

import numpy as np
import pandas as pd
import pytest

from cafeml.analysis.crossval import (
    cross_validate_by_family,
    cross_validate_by_species,
    score_family_fold,
    split_by_family,
    split_by_species,
    validate_species,
)
from cafeml.exceptions import ConfigurationError
from cafeml.io.families import FamilyData
from cafeml.models.rates import configure_rates


class TestSplitByFamily:

    def test_single_fold_uses_everything(self, family_file, tmp_path):
        family = FamilyData.from_file(family_file)
        paths = split_by_family(family, 1, tmp_path / "fam", np.random.default_rng(0))

        assert len(paths) == 1
        train, query, valid = paths[0]
        assert FamilyData.from_file(train).ids == family.ids
        assert FamilyData.from_file(valid).ids == family.ids
        assert train.name == "fam.1.train"

    def test_folds_partition_families(self, family_file, tmp_path):
        family = FamilyData.from_file(family_file)
        paths = split_by_family(family, 3, tmp_path / "fam", np.random.default_rng(0))

        held_out = []
        for train, query, valid in paths:
            train_ids = FamilyData.from_file(train).ids
            valid_ids = FamilyData.from_file(valid).ids
            assert not set(train_ids) & set(valid_ids)
            assert len(train_ids) + len(valid_ids) == 8
            held_out += valid_ids
        assert sorted(held_out) == sorted(family.ids)

    def test_query_file(self, family_file, tmp_path):
        family = FamilyData.from_file(family_file)
        _, query, valid = split_by_family(family, 2, tmp_path / "fam", np.random.default_rng(1))[0]

        df = pd.read_csv(query, sep='\t', dtype={'Family ID': str, 'species': str})
        valid_data = FamilyData.from_file(valid)
        assert list(df.columns) == ['Family ID', 'species', 'count']
        assert list(df['Family ID']) == valid_data.ids
        for row, (species, count) in enumerate(zip(df['species'], df['count'])):
            assert valid_data.counts[row, valid_data.species_column(species)] == count

    def test_invalid_fold(self, family_file, tmp_path):
        family = FamilyData.from_file(family_file)
        with pytest.raises(ValueError):
            split_by_family(family, 0, tmp_path / "fam", np.random.default_rng(0))
        with pytest.raises(ValueError):
            split_by_family(family, 9, tmp_path / "fam", np.random.default_rng(0))


class TestSplitBySpecies:

    def test_one_split_per_species(self, family_file, tmp_path):
        family = FamilyData.from_file(family_file)
        paths = split_by_species(family, tmp_path / "fam")

        assert [species for species, _, _ in paths] == ["A", "B", "C", "D"]
        species, train, valid = paths[1]
        assert FamilyData.from_file(train).species == ["A", "C", "D"]
        df = pd.read_csv(valid, sep='\t')
        assert list(df.columns) == ['Family ID', 'B']
        assert list(df['B']) == list(family.species_counts("B"))

    def test_needs_two_species(self, tmp_path):
        family = FamilyData(["d"], ["F1"], ["A"], np.array([[1]]))
        with pytest.raises(ValueError):
            split_by_species(family, tmp_path / "fam")


class TestScoring:

    def test_perfect_prediction_of_constant_family(self, context, tmp_path):
        configure_rates(context, lambdas=[0.01], mus=[0.01])
        valid = context.family.subset([0, 5])  # F1 all 1, F6 all 2
        valid_file = tmp_path / "valid.tab"
        valid.to_file(valid_file)
        query_file = tmp_path / "query.tab"
        pd.DataFrame({
            'Family ID': valid.ids, 'species': ["B", "C"], 'count': [1, 2],
        }).to_csv(query_file, sep='\t', index=False)

        mse, mae = score_family_fold(context, query_file, valid_file)
        assert mse == 0.0
        assert mae == 0.0

    def test_mismatched_query(self, context, tmp_path):
        configure_rates(context, lambdas=[0.01], mus=[0.01])
        valid_file = tmp_path / "valid.tab"
        context.family.subset([0, 1]).to_file(valid_file)
        query_file = tmp_path / "query.tab"
        pd.DataFrame({'Family ID': ["F1"], 'species': ["A"], 'count': [1]}).to_csv(
            query_file, sep='\t', index=False
        )

        with pytest.raises(ValueError):
            score_family_fold(context, query_file, valid_file)

    def test_validate_species(self, context, tmp_path):
        full = context.family
        context.load_family(full.without_species("D"))
        configure_rates(context, lambdas=[0.01], mus=[0.01])
        valid_file = tmp_path / "D.valid"
        pd.DataFrame({'Family ID': full.ids, 'D': full.species_counts("D")}).to_csv(
            valid_file, sep='\t', index=False
        )

        mse, mae = validate_species(context, valid_file)
        assert np.isfinite(mse)
        assert 0 <= mae
        assert mae ** 2 <= mse + 1e-12

    def test_validate_requires_rates(self, context, tmp_path):
        with pytest.raises(ConfigurationError):
            validate_species(context, tmp_path / "missing.valid")


class TestCrossValidation:

    def test_single_fold(self, context, family_file):
        configure_rates(context, lambda_only=True, search=True)
        result = cross_validate_by_family(context, 1)

        assert result.method == "family"
        assert result.labels == ["1"]
        assert np.isfinite(result.mse[0])
        assert result.mean_mse == pytest.approx(result.mse[0])
        # original data is back and refitted
        assert context.family.n_families == 8
        assert context.family_path == family_file
        assert context.parameters is not None

    def test_two_folds(self, context):
        configure_rates(context, lambda_only=True, search=True)
        result = cross_validate_by_family(context, 2)

        assert result.labels == ["1", "2"]
        assert all(np.isfinite(result.mse))
        assert all(np.isfinite(result.mae))

    def test_by_species(self, context):
        configure_rates(context, lambda_only=True, search=True)
        result = cross_validate_by_species(context)

        assert result.method == "species"
        assert result.labels == ["A", "B", "C", "D"]
        assert all(np.isfinite(result.mse))
        assert context.family.species == ["A", "B", "C", "D"]

    def test_logs_fold_scores(self, tree_file, family_file, tmp_path):
        from cafeml.context import AnalysisContext

        log_file = tmp_path / "cv.log"
        context = AnalysisContext(seed=3)
        context.set_log_file(log_file)
        context.load_tree(tree_file)
        context.load_family(family_file)
        configure_rates(context, lambda_only=True, search=True)
        cross_validate_by_family(context, 2)
        context.close()

        text = log_file.read_text()
        assert "MSE fold 1 " in text
        assert "MAE fold 2 " in text
        assert "MSE all folds " in text

    def test_requires_rate_model(self, context):
        with pytest.raises(ConfigurationError):
            cross_validate_by_family(context, 2)
