"""
Optimization: multi-start Nelder-Mead driver and the rate search.
"""

from cafeml.optimize.driver import (
    MinimizerResult,
    OptimizationDriver,
    OptimizationRun,
    nelder_mead,
    polish,
    restart_simplex,
    unimodal_start,
)
from cafeml.optimize.search import random_rate_start, rate_objective, score, search_rates

__all__ = [
    "MinimizerResult",
    "OptimizationDriver",
    "OptimizationRun",
    "nelder_mead",
    "polish",
    "restart_simplex",
    "unimodal_start",
    "random_rate_start",
    "rate_objective",
    "score",
    "search_rates",
]
