"""
Core computation: birth-death transition probabilities and tree likelihoods.
"""

from cafeml.core.birthdeath import BirthDeathCache, birth_death_coefficients, transition_matrix
from cafeml.core.likelihood import (
    branch_matrix,
    cluster_posterior,
    compute_tree_likelihoods,
    empirical_root_prior,
    family_log_likelihood,
    log_likelihood,
    viterbi,
)

__all__ = [
    "BirthDeathCache",
    "birth_death_coefficients",
    "transition_matrix",
    "branch_matrix",
    "cluster_posterior",
    "compute_tree_likelihoods",
    "empirical_root_prior",
    "family_log_likelihood",
    "log_likelihood",
    "viterbi",
]
