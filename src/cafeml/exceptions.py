"""
Exception types raised by cafeml.

Numerical infeasibility inside an objective function is never raised; the
objective returns ``inf`` instead and the optimizer steers away from it.
"""


class ConfigurationError(RuntimeError):
    """A command needs a tree, family data or parameters that are not set."""


class TopologyMismatchError(ValueError):
    """The rate tree does not have the same number of nodes as the main tree."""


class UnderspecifiedRateTreeError(ValueError):
    """Some non-root branch of the rate tree has no rate class label."""


class ParameterCountError(ValueError):
    """
    Supplied lambda/mu/weight values do not match the parameter layout.

    Attributes
    ----------
    supplied : int
        Number of values given by the caller
    required : int
        Number of values required by the layout
    """

    def __init__(self, message: str, supplied: int, required: int):
        super().__init__(message)
        self.supplied = supplied
        self.required = required
