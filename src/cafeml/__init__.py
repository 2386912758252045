"""
cafeml: gene family size evolution under birth-death models.

Estimates birth (lambda) and death (mu) rates of gene family size change
along a phylogeny, with optional branch-specific rates and rate mixtures,
corrects for measurement error in family counts, and cross-validates the
fitted models.

Quick Start
-----------
Estimate a single birth-death rate:

>>> from cafeml import fit_rates
>>> result = fit_rates("tree.nwk", "families.tab", lambda_only=True, seed=1)
>>> print(result.summary())

Estimate a measurement error model from two genome assemblies:

>>> from cafeml import estimate_error_double_measure
>>> result = estimate_error_double_measure("assembly1.tab", "assembly2.tab", max_diff=2)
>>> print(result.summary())

Examples
--------
>>> # Work with an explicit analysis context
>>> from cafeml import AnalysisContext, configure_rates, cross_validate_by_family
>>> context = AnalysisContext(seed=42)
>>> context.load_tree("tree.nwk")
>>> context.load_family("families.tab")
>>> configure_rates(context, lambdas=[0.01], lambda_only=True)
>>> cv = cross_validate_by_family(context, fold=5)
>>> print(cv.mean_mse)
"""

__version__ = "0.1.0"

# High-level API (simple interface)
from .api import create_context, cross_validate, fit_rates

# Analysis state
from .context import AnalysisContext, FamilySizeRange

# Rate models
from .models.parameters import BirthDeathRates, ParameterLayout, validate_rate_tree
from .models.rates import assign_rates, configure_rates

# Optimization
from .optimize.driver import OptimizationDriver, OptimizationRun, unimodal_start
from .optimize.search import score, search_rates

# Analysis functions
from .analysis import (
    CrossValidationResult,
    ErrorModelResult,
    RateSearchResult,
    build_error_matrix,
    cross_validate_by_family,
    cross_validate_by_species,
    estimate_error_double_measure,
    estimate_error_true_measure,
    validate_species,
)

# I/O classes
from .io.families import FamilyData
from .io.trees import Tree

# Exceptions
from .exceptions import (
    ConfigurationError,
    ParameterCountError,
    TopologyMismatchError,
    UnderspecifiedRateTreeError,
)

__all__ = [
    # Simple API
    "fit_rates",
    "cross_validate",
    "create_context",

    # Analysis state
    "AnalysisContext",
    "FamilySizeRange",

    # Rate models
    "BirthDeathRates",
    "ParameterLayout",
    "validate_rate_tree",
    "assign_rates",
    "configure_rates",

    # Optimization
    "OptimizationDriver",
    "OptimizationRun",
    "unimodal_start",
    "score",
    "search_rates",

    # Analysis
    "estimate_error_double_measure",
    "estimate_error_true_measure",
    "build_error_matrix",
    "cross_validate_by_family",
    "cross_validate_by_species",
    "validate_species",

    # Result objects
    "RateSearchResult",
    "ErrorModelResult",
    "CrossValidationResult",

    # I/O
    "FamilyData",
    "Tree",

    # Exceptions
    "ConfigurationError",
    "ParameterCountError",
    "TopologyMismatchError",
    "UnderspecifiedRateTreeError",
]
