"""
Cross-validation of birth-death rate estimates.

Two schemes are supported:

- **By family** (k-fold): families are split into ``fold`` groups. For each
  group the rates are re-estimated on the other families, then one random
  leaf of every held-out family is hidden and reconstructed.
- **By species** (leave one out): each species in turn is removed from the
  data, the rates are re-estimated without it, and its family sizes are
  reconstructed from the other species.

Prediction error is reported as mean squared error (MSE) and mean absolute
error (MAE). After cross-validation the original data is restored and the
rates are re-estimated on all of it.
"""

import tempfile
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from ..core.likelihood import viterbi
from ..io.families import FamilyData
from ..optimize.search import search_rates
from .results import CrossValidationResult

PathLike = Union[str, Path]


def split_by_family(
    family: FamilyData,
    fold: int,
    prefix: PathLike,
    rng: np.random.Generator,
) -> list[tuple[Path, Path, Path]]:
    """
    Write training, query and validation files for k-fold cross-validation.

    Files are named ``<prefix>.<i>.train``, ``<prefix>.<i>.query`` and
    ``<prefix>.<i>.valid`` for ``i`` from 1 to ``fold``. With ``fold == 1``
    the training and validation sets are both the full data.

    The query file has columns ``Family ID``, ``species`` and ``count``: one
    randomly chosen species per validation family, whose size is hidden and
    predicted.

    Parameters
    ----------
    family : FamilyData
        Full family data
    fold : int
        Number of folds
    prefix : str or Path
        Path prefix of the written files
    rng : np.random.Generator
        Generator for the fold assignment and the query species

    Returns
    -------
    list[tuple[Path, Path, Path]]
        (train, query, valid) paths of every fold
    """
    n = family.n_families
    if fold < 1 or fold > n:
        raise ValueError(f"fold must be between 1 and the number of families ({n}), got {fold}")

    everything = np.arange(n)
    if fold == 1:
        splits = [(everything, everything)]
    else:
        groups = np.array_split(rng.permutation(n), fold)
        splits = [
            (np.setdiff1d(everything, group), np.sort(group))
            for group in groups
        ]

    paths = []
    for i, (train_idx, valid_idx) in enumerate(splits, start=1):
        train_path = Path(f"{prefix}.{i}.train")
        query_path = Path(f"{prefix}.{i}.query")
        valid_path = Path(f"{prefix}.{i}.valid")

        valid = family.subset(valid_idx)
        family.subset(train_idx).to_file(train_path)
        valid.to_file(valid_path)

        columns = rng.integers(0, family.n_species, size=valid.n_families)
        query = pd.DataFrame({
            'Family ID': valid.ids,
            'species': [valid.species[c] for c in columns],
            'count': [int(valid.counts[row, c]) for row, c in enumerate(columns)],
        })
        query.to_csv(query_path, sep='\t', index=False)
        paths.append((train_path, query_path, valid_path))
    return paths


def split_by_species(family: FamilyData, prefix: PathLike) -> list[tuple[str, Path, Path]]:
    """
    Write training and validation files for leave-one-species-out.

    For every species, ``<prefix>.<species>.train`` holds the family data
    without that species and ``<prefix>.<species>.valid`` holds its sizes
    (columns ``Family ID`` and the species name).

    Returns
    -------
    list[tuple[str, Path, Path]]
        (species, train, valid) of every species
    """
    if family.n_species < 2:
        raise ValueError("Cross-validation by species needs at least two species")
    paths = []
    for species in family.species:
        train_path = Path(f"{prefix}.{species}.train")
        valid_path = Path(f"{prefix}.{species}.valid")
        family.without_species(species).to_file(train_path)
        pd.DataFrame({
            'Family ID': family.ids,
            species: family.species_counts(species),
        }).to_csv(valid_path, sep='\t', index=False)
        paths.append((species, train_path, valid_path))
    return paths


def _retrain(context, family: Union[PathLike, FamilyData]) -> None:
    context.load_family(family)
    search_rates(context)


def _restore(context, family: FamilyData, family_path: Optional[Path]) -> None:
    context.load_family(family)
    context.family_path = family_path


def _reconstruct(context) -> None:
    viterbi(
        context.tree,
        context.cache,
        context.family_size,
        prior=context.root_prior,
        weights=context.k_weights,
    )


def score_family_fold(context, query_file: PathLike, validation_file: PathLike) -> tuple[float, float]:
    """
    Prediction error on one held-out family fold.

    For every validation family the leaves are set from the validation data
    except for the query species, the tree is reconstructed, and the squared
    and absolute errors are averaged over the leaves. The result is the mean
    over families.

    Returns
    -------
    tuple[float, float]
        (MSE, MAE)
    """
    query = pd.read_csv(query_file, sep='\t', dtype={'Family ID': str, 'species': str})
    valid = FamilyData.from_file(validation_file)
    if len(query) != valid.n_families:
        raise ValueError(
            f"{query_file} has {len(query)} families but {validation_file} has {valid.n_families}"
        )

    tree = context.tree
    mse = 0.0
    mae = 0.0
    for row, (family_id, species) in enumerate(zip(query['Family ID'], query['species'])):
        if family_id != valid.ids[row]:
            raise ValueError(
                f"Family IDs do not match between {query_file} and {validation_file}: "
                f"{family_id} vs {valid.ids[row]}"
            )
        truth = dict(zip(valid.species, valid.counts[row]))
        valid.set_family_on_tree(row, tree, masked=[species])
        _reconstruct(context)

        errors = np.array([
            leaf.family_size - truth[leaf.name]
            for leaf in tree.leaves() if leaf.name in truth
        ], dtype=float)
        mse += np.mean(errors ** 2)
        mae += np.mean(np.abs(errors))

    n = max(len(query), 1)
    mse /= n
    mae /= n
    context.log(f"MSE {mse:f}")
    context.log(f"MAE {mae:f}")
    return mse, mae


def validate_species(
    context,
    validation_file: PathLike,
    species: Optional[str] = None,
) -> tuple[float, float]:
    """
    Prediction error for one species held out of the loaded family data.

    The species' size in every family is reconstructed from the other
    species and compared to the validation file.

    Parameters
    ----------
    context : AnalysisContext
        Context with tree, family data (without the species) and rates set
    validation_file : str or Path
        File with columns ``Family ID`` and the species' sizes
    species : str, optional
        Species name (default: the second column header)

    Returns
    -------
    tuple[float, float]
        (MSE, MAE)
    """
    family = context.require_family("cvspecies")
    tree = context.require_tree("cvspecies")
    context.require_parameters("cvspecies")

    df = pd.read_csv(validation_file, sep='\t', dtype=str, keep_default_na=False)
    if species is None:
        species = str(df.columns[1])
    truth = df.iloc[:, 1].astype(int).to_numpy()
    if len(truth) != family.n_families:
        raise ValueError(
            f"{validation_file} has {len(truth)} families but the family data has "
            f"{family.n_families}"
        )
    leaf = tree.find_leaf(species)
    if leaf is None:
        raise ValueError(f"Species not found in tree: {species}")

    estimates = np.zeros(len(truth))
    for i in range(family.n_families):
        family.set_family_on_tree(i, tree, masked=[species])
        _reconstruct(context)
        estimates[i] = leaf.family_size

    errors = truth - estimates
    mse = float(np.mean(errors ** 2)) if len(errors) else 0.0
    mae = float(np.mean(np.abs(errors))) if len(errors) else 0.0
    context.log(f"MSE {mse:f}")
    context.log(f"MAE {mae:f}")
    return mse, mae


def cross_validate_by_family(context, fold: int) -> CrossValidationResult:
    """
    K-fold cross-validation over families.

    Parameters
    ----------
    context : AnalysisContext
        Context with tree, family data and a rate model set
    fold : int
        Number of folds

    Returns
    -------
    CrossValidationResult
        MSE and MAE of every fold
    """
    command = "cvfamily"
    original = context.require_family(command)
    context.require_tree(command)
    context.require_parameters(command)
    original_path = context.family_path
    stem = original_path.name if original_path is not None else "family"

    labels, mse_folds, mae_folds = [], [], []
    with tempfile.TemporaryDirectory() as workdir:
        paths = split_by_family(original, fold, Path(workdir) / stem, context.rng)
        try:
            for i, (train_file, query_file, valid_file) in enumerate(paths, start=1):
                _retrain(context, train_file)
                mse, mae = score_family_fold(context, query_file, valid_file)
                context.log(f"MSE fold {i} {mse:f}")
                context.log(f"MAE fold {i} {mae:f}")
                labels.append(str(i))
                mse_folds.append(mse)
                mae_folds.append(mae)
        finally:
            _restore(context, original, original_path)

    result = CrossValidationResult("family", labels, mse_folds, mae_folds)
    context.log(f"MSE all folds {result.mean_mse:f}")
    context.log(f"MAE all folds {result.mean_mae:f}")
    search_rates(context)
    return result


def cross_validate_by_species(context) -> CrossValidationResult:
    """
    Leave-one-species-out cross-validation.

    Parameters
    ----------
    context : AnalysisContext
        Context with tree, family data and a rate model set

    Returns
    -------
    CrossValidationResult
        MSE and MAE of every species
    """
    command = "cvspecies"
    original = context.require_family(command)
    context.require_tree(command)
    context.require_parameters(command)
    original_path = context.family_path
    stem = original_path.name if original_path is not None else "family"

    labels, mse_species, mae_species = [], [], []
    with tempfile.TemporaryDirectory() as workdir:
        paths = split_by_species(original, Path(workdir) / stem)
        try:
            for species, train_file, valid_file in paths:
                _retrain(context, train_file)
                mse, mae = validate_species(context, valid_file, species)
                context.log(f"MSE {species} {mse:f}")
                context.log(f"MAE {species} {mae:f}")
                labels.append(species)
                mse_species.append(mse)
                mae_species.append(mae)
        finally:
            _restore(context, original, original_path)

    result = CrossValidationResult("species", labels, mse_species, mae_species)
    context.log(f"MSE all species {result.mean_mse:f}")
    context.log(f"MAE all species {result.mean_mae:f}")
    search_rates(context)
    return result
