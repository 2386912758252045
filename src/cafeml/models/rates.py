"""
Installing birth-death rates on the tree.

Every call replaces each node's rates and per-cluster buffers with new
objects; nothing from a previous parameterization is reused.
"""

from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from ..exceptions import ParameterCountError
from ..io.trees import Tree
from .parameters import ParameterLayout, validate_rate_tree


def node_classes(context) -> list[int]:
    """Rate class of every tree node in post-order (all 0 without a rate tree)."""
    if context.rate_tree is None:
        return [0] * context.tree.n_nodes
    return context.rate_tree.rate_classes()


def assign_rates(context, params: Sequence[float]) -> None:
    """
    Decode ``params`` and install the rates on every node of the tree.

    Parameters
    ----------
    context : AnalysisContext
        Context holding the tree and the parameter layout
    params : array-like
        Parameter vector of length ``context.layout.total``
    """
    layout = context.layout
    params = np.array(params, dtype=float)
    if len(params) != layout.total:
        raise ParameterCountError(
            f"Parameter vector has {len(params)} values, layout requires {layout.total}",
            supplied=len(params),
            required=layout.total,
        )

    context.parameters = params
    context.k_weights = layout.weights(params)
    if layout.k > 0 and context.family is not None:
        n_families = context.family.n_families
        if context.membership is None or context.membership.shape != (n_families, layout.k):
            context.membership = np.tile(context.k_weights, (n_families, 1))

    n_sizes = context.family_size.n_sizes
    for node, class_id in zip(context.tree.postorder(), node_classes(context)):
        node.rates = layout.decode(params, class_id)
        if layout.k > 0:
            node.cluster_likelihoods = np.zeros((layout.k, n_sizes))
            node.cluster_transitions = [None] * layout.k
        else:
            node.cluster_likelihoods = None
            node.cluster_transitions = []

    context.cache.clear()


def configure_rates(
    context,
    lambdas: Optional[Sequence[float]] = None,
    mus: Optional[Sequence[float]] = None,
    weights: Optional[Sequence[float]] = None,
    k: int = 0,
    fix_cluster0: bool = False,
    eqbg: bool = False,
    rate_tree: Optional[Union[str, Path, Tree]] = None,
    lambda_only: bool = False,
    search: bool = False,
):
    """
    Set the rate model, then either install given rates or search for them.

    All checks (prerequisites, rate tree, parameter counts) happen before
    the context is modified.

    Parameters
    ----------
    context : AnalysisContext
        Context with tree and family data loaded
    lambdas, mus, weights : sequence of float, optional
        Values of each parameter region (ignored when searching)
    k : int
        Number of mixture clusters (0 for none)
    fix_cluster0 : bool
        Fix the rates of the first cluster at 0
    eqbg : bool
        Tie the background class death rate to its birth rate
    rate_tree : Tree, str or Path, optional
        Rate class tree (Newick string, file or parsed Tree)
    lambda_only : bool
        Search birth rates only (death rate = birth rate)
    search : bool
        Estimate the rates by maximum likelihood

    Returns
    -------
    RateSearchResult or None
        Search result when ``search`` is True
    """
    command = "lambdamu" if not lambda_only else "lambda"
    tree = context.require_tree(command)
    context.require_family(command)

    if rate_tree is not None and not isinstance(rate_tree, Tree):
        if isinstance(rate_tree, Path) or '(' not in rate_tree:
            rate_tree = Tree.from_file(rate_tree)
        else:
            rate_tree = Tree.from_newick(rate_tree)
    if rate_tree is not None:
        validate_rate_tree(tree, rate_tree)

    layout = ParameterLayout.from_rate_tree(
        rate_tree, k=k, fix_cluster0=fix_cluster0, eqbg=eqbg, lambda_only=lambda_only
    )
    params = None
    if not search:
        params = layout.pack(lambdas, None if lambda_only else mus, weights)

    context.rate_tree = rate_tree
    context.layout = layout
    context.membership = None
    if context.verbose:
        context.log(layout.describe())

    if search:
        from ..optimize.search import search_rates
        return search_rates(context)

    assign_rates(context, params)
    return None
