"""
Maximum likelihood search for birth and death rates.
"""

from typing import Optional

import numpy as np

from ..core.likelihood import cluster_posterior, log_likelihood
from ..models.rates import assign_rates
from .driver import OptimizationDriver

RATE_TOLERANCE = 1e-6


def rate_objective(context):
    """
    Negative log-likelihood of the family data as a function of the rates.

    Negative rates, negative mixture weights and weights summing to more
    than 1 are infeasible and score ``inf``.

    Parameters
    ----------
    context : AnalysisContext
        Context with tree, family data and parameter layout set

    Returns
    -------
    callable
        Objective of a parameter vector
    """
    layout = context.layout

    def objective(params: np.ndarray) -> float:
        params = np.asarray(params, dtype=float)
        lambdas, mus, free_weights = layout.unpack(params)
        if np.any(lambdas < 0) or np.any(mus < 0):
            return np.inf
        if layout.k > 0 and (np.any(free_weights < 0) or free_weights.sum() > 1.0):
            return np.inf

        assign_rates(context, params)
        score, _ = log_likelihood(context)
        if context.verbose:
            values = ','.join(f"{p:f}" for p in params)
            context.log(f"\tparameters : {values} & Score: {score:f}")
        return -score if np.isfinite(score) else np.inf

    return objective


def random_rate_start(context) -> np.ndarray:
    """
    Random starting point for the rate search.

    Rates are uniform in ``[0, 1 / max_branch_length)``; mixture weights come
    from normalized uniform draws.
    """
    layout = context.layout
    rng = context.rng
    max_rate = 1.0 / context.tree.max_branch_length
    rates = rng.uniform(0.0, max_rate, size=layout.lambda_size + layout.mu_size)
    if layout.k == 0:
        return rates
    draws = rng.uniform(size=layout.k)
    weights = draws / draws.sum()
    return np.concatenate([rates, weights[:-1]])


def _log_rates(context, score: float) -> None:
    layout = context.layout
    lambdas, mus, _ = layout.unpack(context.parameters)
    context.log("Lambda : " + ' '.join(f"{v:.10f}" for v in lambdas))
    if not layout.lambda_only:
        context.log("Mu : " + ' '.join(f"{v:.10f}" for v in mus))
    if context.k_weights is not None:
        context.log("p : " + ' '.join(f"{w:f}" for w in context.k_weights))
    context.log(f"Score: {score:f}")


def _update_membership(context, cluster_values: Optional[np.ndarray]) -> None:
    if cluster_values is not None:
        context.membership = cluster_posterior(context.k_weights, cluster_values)


def search_rates(context, max_runs: Optional[int] = None):
    """
    Estimate the rates by maximum likelihood and install the best ones.

    One random start is used unless ``context.check_convergence`` is set,
    in which case starts are repeated (up to 10) until two runs agree.

    Parameters
    ----------
    context : AnalysisContext
        Context with tree, family data and parameter layout set
    max_runs : int, optional
        Number of random starts (overrides the default)

    Returns
    -------
    RateSearchResult
        Estimated rates and their log-likelihood
    """
    from ..analysis.results import RateSearchResult

    command = "lambdamu"
    context.require_tree(command)
    context.require_family(command)
    layout = context.layout
    if max_runs is None:
        max_runs = 10 if context.check_convergence else 1

    driver = OptimizationDriver(
        rate_objective(context),
        lambda: random_rate_start(context),
        tolx=RATE_TOLERANCE,
        tolf=RATE_TOLERANCE,
        max_runs=max_runs,
        log=context.log,
    )
    run = driver.run()

    if np.isfinite(run.best_score):
        assign_rates(context, run.best_parameters)
        score, cluster_values = log_likelihood(context)
        _update_membership(context, cluster_values)
        _log_rates(context, score)
    else:
        score = -np.inf
        context.log("No feasible rates found")

    lambdas, mus, _ = layout.unpack(run.best_parameters)
    weights = layout.weights(run.best_parameters)
    return RateSearchResult(
        lambdas=lambdas.tolist(),
        mus=None if layout.lambda_only else mus.tolist(),
        weights=None if weights is None else weights.tolist(),
        log_likelihood=float(score),
        n_parameters=layout.total,
        n_clusters=layout.k,
        converged=run.converged,
        attempts=run.attempts,
        n_families=context.family.n_families,
        membership=None if context.membership is None else context.membership.copy(),
    )


def score(context) -> float:
    """
    Log-likelihood of the family data under the current rates.

    Also refreshes the cluster memberships of mixture models.
    """
    context.require_tree("score")
    context.require_family("score")
    context.require_parameters("score")
    value, cluster_values = log_likelihood(context)
    _update_membership(context, cluster_values)
    _log_rates(context, value)
    return value
