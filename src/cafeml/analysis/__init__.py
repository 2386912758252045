"""
Analysis tools: measurement error models, cross-validation and result objects.
"""

from cafeml.analysis.results import CrossValidationResult, ErrorModelResult, RateSearchResult
from cafeml.analysis.error_model import (
    ErrorMatrix,
    ErrorMeasure,
    build_error_matrix,
    estimate_error_double_measure,
    estimate_error_model,
    estimate_error_true_measure,
    size_distribution,
)
from cafeml.analysis.crossval import (
    cross_validate_by_family,
    cross_validate_by_species,
    score_family_fold,
    split_by_family,
    split_by_species,
    validate_species,
)

__all__ = [
    "CrossValidationResult",
    "ErrorModelResult",
    "RateSearchResult",
    "ErrorMatrix",
    "ErrorMeasure",
    "build_error_matrix",
    "estimate_error_double_measure",
    "estimate_error_model",
    "estimate_error_true_measure",
    "size_distribution",
    "cross_validate_by_family",
    "cross_validate_by_species",
    "score_family_fold",
    "split_by_family",
    "split_by_species",
    "validate_species",
]
