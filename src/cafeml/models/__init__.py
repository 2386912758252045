"""
Birth-death rate models: parameter vector layout and rate assignment.
"""

from cafeml.models.parameters import BirthDeathRates, ParameterLayout, validate_rate_tree
from cafeml.models.rates import assign_rates, configure_rates

__all__ = [
    "BirthDeathRates",
    "ParameterLayout",
    "validate_rate_tree",
    "assign_rates",
    "configure_rates",
]
