"""
Tree likelihood and ancestral family size reconstruction.

This module implements the pruning algorithm for the birth-death model of
family size evolution: for every node and every possible family size at that
node, the probability of the observed leaf sizes below it. Reconstruction
("Viterbi") replaces the sums by maxima and traces back the most probable
size at each internal or unobserved node.
"""

from typing import Optional

import numpy as np
from scipy.stats import poisson

from ..io.families import FamilyData
from ..io.trees import Tree, TreeNode
from .birthdeath import BirthDeathCache


def leaf_vector(node: TreeNode, n_sizes: int) -> np.ndarray:
    """
    Likelihood vector of a leaf.

    An observed leaf is an indicator of its size; an unobserved leaf is
    compatible with every size.
    """
    if node.family_size is None:
        return np.ones(n_sizes)
    vector = np.zeros(n_sizes)
    if node.family_size < n_sizes:
        vector[node.family_size] = 1.0
    return vector


def branch_rates(node: TreeNode, cluster: Optional[int]) -> tuple[float, Optional[float]]:
    """Birth and death rate on the branch above ``node``."""
    rates = node.rates
    if rates is None:
        raise ValueError(f"No rates assigned to node {node.name or node.id}")
    if cluster is None:
        if rates.is_clustered:
            raise ValueError("Clustered rates require a cluster index")
        return rates.lam, rates.mu
    if not rates.is_clustered:
        return rates.lam, rates.mu
    mu = None if rates.mu is None else float(rates.mu[cluster])
    return float(rates.lam[cluster]), mu


def branch_matrix(
    node: TreeNode,
    cache: BirthDeathCache,
    size_range,
    cluster: Optional[int] = None,
) -> np.ndarray:
    """
    Transition matrix of the branch above ``node``.

    For mixture models the matrix of each cluster is kept in
    ``node.cluster_transitions`` once fetched, and reused until the rate
    assigner replaces the list.
    """
    lam, mu = branch_rates(node, cluster)
    if cluster is None or cluster >= len(node.cluster_transitions):
        return cache.get(node.branch_length, lam, mu, size_range.max)
    P = node.cluster_transitions[cluster]
    if P is None or P.shape[0] != size_range.n_sizes:
        P = cache.get(node.branch_length, lam, mu, size_range.max)
        node.cluster_transitions[cluster] = P
    return P


def _cluster_buffer(node: TreeNode, cluster: Optional[int], n_sizes: int) -> Optional[np.ndarray]:
    buffer = node.cluster_likelihoods
    if cluster is None or buffer is None or cluster >= buffer.shape[0]:
        return None
    if buffer.shape[1] != n_sizes:
        buffer = np.zeros((buffer.shape[0], n_sizes))
        node.cluster_likelihoods = buffer
    return buffer


def compute_tree_likelihoods(
    tree: Tree,
    cache: BirthDeathCache,
    size_range,
    cluster: Optional[int] = None,
) -> np.ndarray:
    """
    Likelihood of the leaf sizes currently set on the tree.

    Parameters
    ----------
    tree : Tree
        Tree with rates assigned and leaf sizes set
    cache : BirthDeathCache
        Transition matrix cache
    size_range : FamilySizeRange
        Family sizes considered
    cluster : int, optional
        Mixture cluster whose rates are used

    Returns
    -------
    np.ndarray
        Likelihood for every root size in ``[root_min, root_max]``
    """
    n_sizes = size_range.n_sizes
    partial = {}
    for node in tree.postorder():
        if node.is_leaf:
            vector = leaf_vector(node, n_sizes)
        else:
            vector = np.ones(n_sizes)
            for child in node.children:
                P = branch_matrix(child, cache, size_range, cluster)
                vector *= P @ partial[child.id]
        buffer = _cluster_buffer(node, cluster, n_sizes)
        if buffer is not None:
            # mixture partials live on the nodes, one row per cluster
            buffer[cluster] = vector
            vector = buffer[cluster]
        partial[node.id] = vector

    root = partial[tree.root.id]
    return root[size_range.root_min:size_range.root_max + 1].copy()


def _prior(size_range, prior: Optional[np.ndarray]) -> np.ndarray:
    if prior is None:
        n_root = size_range.root_max - size_range.root_min + 1
        return np.full(n_root, 1.0 / n_root)
    return prior


def family_likelihoods(
    tree: Tree,
    family: FamilyData,
    index: int,
    cache: BirthDeathCache,
    size_range,
    prior: Optional[np.ndarray] = None,
    n_clusters: int = 0,
) -> np.ndarray:
    """
    Maximum over root sizes of prior times likelihood, for one family.

    Returns
    -------
    np.ndarray
        One value, or one value per cluster when ``n_clusters > 0``
    """
    family.set_family_on_tree(index, tree)
    prior = _prior(size_range, prior)
    if n_clusters == 0:
        root = compute_tree_likelihoods(tree, cache, size_range)
        return np.array([np.max(root * prior)])
    return np.array([
        np.max(compute_tree_likelihoods(tree, cache, size_range, cluster=k) * prior)
        for k in range(n_clusters)
    ])


def family_log_likelihood(context, family_index: int) -> tuple[float, Optional[np.ndarray]]:
    """
    Log-likelihood of one family under the context's current rates.

    For mixture models the value is ``log(sum_k w_k * max_r(prior * L_k))``
    and the per-cluster maxima are returned as well.
    """
    weights = context.k_weights
    n_clusters = 0 if weights is None else len(weights)
    values = family_likelihoods(
        context.tree, context.family, family_index, context.cache, context.family_size,
        prior=context.root_prior, n_clusters=n_clusters,
    )
    total = float(np.sum(weights * values)) if n_clusters else float(values[0])
    score = float(np.log(total)) if total > 0 else -np.inf
    return score, (values if n_clusters else None)


def log_likelihood(context) -> tuple[float, Optional[np.ndarray]]:
    """
    Log-likelihood of all families under the context's current rates.

    Parameters
    ----------
    context : AnalysisContext
        Context with tree, family data and rates assigned

    Returns
    -------
    score : float
        Sum of per-family log-likelihoods (``-inf`` if any family is
        impossible under the rates)
    cluster_values : np.ndarray or None
        Per-family, per-cluster likelihoods, shape (n_families, K), for
        mixture models
    """
    family = context.family
    n_clusters = 0 if context.k_weights is None else len(context.k_weights)
    score = 0.0
    cluster_values = np.zeros((family.n_families, n_clusters)) if n_clusters else None

    for i in range(family.n_families):
        family_score, values = family_log_likelihood(context, i)
        if values is not None:
            cluster_values[i] = values
        score += family_score
    return score, cluster_values


def cluster_posterior(weights: np.ndarray, cluster_values: np.ndarray) -> np.ndarray:
    """
    Posterior cluster membership of every family.

    Families that are impossible under every cluster keep the prior weights.
    """
    joint = cluster_values * weights[None, :]
    totals = joint.sum(axis=1, keepdims=True)
    posterior = np.tile(weights, (joint.shape[0], 1)).astype(float)
    ok = totals[:, 0] > 0
    posterior[ok] = joint[ok] / totals[ok]
    return posterior


def _viterbi_pass(tree: Tree, cache: BirthDeathCache, size_range, cluster: Optional[int]):
    n_sizes = size_range.n_sizes
    best = {}
    choices = {}
    with np.errstate(divide='ignore'):
        for node in tree.postorder():
            if node.is_leaf:
                best[node.id] = np.log(leaf_vector(node, n_sizes))
                continue
            scores_here = np.zeros(n_sizes)
            for child in node.children:
                log_P = np.log(branch_matrix(child, cache, size_range, cluster))
                scores = log_P + best[child.id][None, :]
                choices[child.id] = np.argmax(scores, axis=1)
                scores_here += np.max(scores, axis=1)
            best[node.id] = scores_here
    root = best[tree.root.id][size_range.root_min:size_range.root_max + 1]
    return root, choices


def viterbi(
    tree: Tree,
    cache: BirthDeathCache,
    size_range,
    prior: Optional[np.ndarray] = None,
    weights: Optional[np.ndarray] = None,
) -> tuple[int, float]:
    """
    Most probable family sizes at internal and unobserved nodes.

    The leaf sizes must already be set on the tree. Reconstructed sizes are
    written to ``node.family_size``; observed leaves are left unchanged. For
    mixture models the cluster with the highest weighted maximum is used.

    Returns
    -------
    root_size : int
        Reconstructed root size
    log_probability : float
        Log of the maximal joint probability
    """
    with np.errstate(divide='ignore'):
        log_prior = np.log(_prior(size_range, prior))
        clusters = [None] if weights is None else list(range(len(weights)))
        best_score = -np.inf
        best_root = size_range.root_min
        best_choices = None
        for cluster in clusters:
            root, choices = _viterbi_pass(tree, cache, size_range, cluster)
            scores = root + log_prior
            if cluster is not None:
                scores = scores + np.log(weights[cluster])
            index = int(np.argmax(scores))
            if best_choices is None or scores[index] > best_score:
                best_score = float(scores[index])
                best_root = size_range.root_min + index
                best_choices = choices

    tree.root.family_size = best_root
    for node in reversed(tree.postorder()):
        if node.is_root or (node.is_leaf and node.family_size is not None):
            continue
        node.family_size = int(best_choices[node.id][node.parent.family_size])
    return best_root, best_score


def empirical_root_prior(family: FamilyData, size_range) -> np.ndarray:
    """
    Poisson prior over root sizes with the mean leaf family size.

    Returns
    -------
    np.ndarray
        Normalized prior over ``[root_min, root_max]``
    """
    mean_size = float(family.counts.mean()) if family.counts.size else 1.0
    prior = poisson.pmf(size_range.root_sizes, max(mean_size, 1e-3))
    total = prior.sum()
    if not np.isfinite(total) or total <= 0:
        return _prior(size_range, None)
    return prior / total
