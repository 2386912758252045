"""
High-level API for cafeml.

These functions build an ``AnalysisContext`` from files (or already parsed
objects) and run one analysis on it, for callers who do not need to manage
the context themselves.
"""

from pathlib import Path
from typing import Optional, Union

from .analysis.crossval import cross_validate_by_family, cross_validate_by_species
from .analysis.results import CrossValidationResult, RateSearchResult
from .context import AnalysisContext
from .io.families import FamilyData
from .io.trees import Tree
from .models.rates import configure_rates


def create_context(
    tree: Union[str, Path, Tree],
    families: Union[str, Path, FamilyData],
    seed: Optional[int] = None,
    log_file: Optional[Union[str, Path]] = None,
    empirical_prior: bool = False,
    check_convergence: bool = False,
    verbose: bool = False,
) -> AnalysisContext:
    """
    Load a tree and family data into a new analysis context.

    Parameters
    ----------
    tree : str, Path, or Tree
        Species tree: Newick file, Newick string or Tree object
    families : str, Path, or FamilyData
        Family file or parsed family data
    seed : int, optional
        Seed for every random start
    log_file : str or Path, optional
        Append log lines to this file instead of stdout
    empirical_prior : bool
        Use a Poisson prior on root sizes instead of a uniform one
    check_convergence : bool
        Repeat rate searches until two random starts agree
    verbose : bool
        Log every objective evaluation

    Returns
    -------
    AnalysisContext
        Context ready for a rate search
    """
    context = AnalysisContext(seed=seed, check_convergence=check_convergence, verbose=verbose)
    if log_file is not None:
        context.set_log_file(log_file)
    context.load_tree(tree)
    context.load_family(families)
    if empirical_prior:
        context.use_empirical_prior()
    return context


def fit_rates(
    tree: Union[str, Path, Tree],
    families: Union[str, Path, FamilyData],
    lambda_only: bool = False,
    k: int = 0,
    fix_cluster0: bool = False,
    eqbg: bool = False,
    rate_tree: Optional[Union[str, Path, Tree]] = None,
    **context_kwargs,
) -> RateSearchResult:
    """
    Estimate birth and death rates by maximum likelihood.

    Parameters
    ----------
    tree : str, Path, or Tree
        Species tree with branch lengths
    families : str, Path, or FamilyData
        Gene family sizes
    lambda_only : bool
        Estimate birth rates only (death rate = birth rate)
    k : int
        Number of mixture clusters (0 for none)
    fix_cluster0 : bool
        Fix the rates of the first cluster at 0
    eqbg : bool
        Tie the background death rate to the birth rate (needs ``rate_tree``)
    rate_tree : str, Path, or Tree, optional
        Tree of the same topology labelling branches with rate classes
    **context_kwargs
        Passed to :func:`create_context` (``seed``, ``log_file``, ...)

    Returns
    -------
    RateSearchResult
        Estimated rates and log-likelihood

    Examples
    --------
    >>> from cafeml import fit_rates
    >>> result = fit_rates("tree.nwk", "families.tab", lambda_only=True, seed=1)
    >>> print(result.summary())
    """
    context = create_context(tree, families, **context_kwargs)
    try:
        return configure_rates(
            context,
            k=k,
            fix_cluster0=fix_cluster0,
            eqbg=eqbg,
            rate_tree=rate_tree,
            lambda_only=lambda_only,
            search=True,
        )
    finally:
        context.close()


def cross_validate(
    tree: Union[str, Path, Tree],
    families: Union[str, Path, FamilyData],
    method: str = "family",
    fold: int = 5,
    lambda_only: bool = False,
    k: int = 0,
    **context_kwargs,
) -> CrossValidationResult:
    """
    Cross-validate a rate model.

    Parameters
    ----------
    tree, families
        As for :func:`fit_rates`
    method : str
        ``"family"`` (k-fold over families) or ``"species"`` (leave one
        species out)
    fold : int
        Number of folds for ``method="family"``
    lambda_only, k
        Rate model, as for :func:`fit_rates`
    **context_kwargs
        Passed to :func:`create_context`

    Returns
    -------
    CrossValidationResult
        MSE and MAE per fold or species
    """
    if method not in ("family", "species"):
        raise ValueError(f"Unknown cross-validation method: {method}")
    context = create_context(tree, families, **context_kwargs)
    try:
        configure_rates(context, k=k, lambda_only=lambda_only, search=True)
        if method == "family":
            return cross_validate_by_family(context, fold)
        return cross_validate_by_species(context)
    finally:
        context.close()
