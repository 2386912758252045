"""
Layout of the flat parameter vector searched by the optimizer.

The vector is split into up to three contiguous regions::

    [ lambdas | mus | mixture weights ]

The size of each region follows from the number of rate classes (branch
groups of a rate tree, or one global class), the number of mixture clusters
K, and two constraints:

- ``fix_cluster0``: the first cluster's rates are fixed at 0 and take no slot
- ``eqbg``: the death rate of the background class (class 0) equals its
  birth rate and takes no slot

Only K - 1 weights are stored; the last one is ``1 - sum(others)``.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

import numpy as np

from ..exceptions import (
    ParameterCountError,
    TopologyMismatchError,
    UnderspecifiedRateTreeError,
)
from ..io.trees import Tree

Rate = Union[float, np.ndarray]


@dataclass
class BirthDeathRates:
    """
    Birth and death rates on one branch.

    Attributes
    ----------
    lam : float or np.ndarray
        Birth rate, or one birth rate per cluster (shape (K,))
    mu : float or np.ndarray or None
        Death rate(s); None in lambda-only mode (death rate = birth rate)
    """

    lam: Rate
    mu: Optional[Rate] = None

    @property
    def is_clustered(self) -> bool:
        return isinstance(self.lam, np.ndarray)

    def __str__(self) -> str:
        def fmt(value: Rate) -> str:
            if isinstance(value, np.ndarray):
                return ','.join(f"{v:g}" for v in value)
            return f"{value:g}"

        if self.mu is None:
            return fmt(self.lam)
        return f"{fmt(self.lam)}_{fmt(self.mu)}"


@dataclass(frozen=True)
class ParameterLayout:
    """
    Sizes and offsets of the parameter vector regions.

    Parameters
    ----------
    n_lambdas : int
        Number of birth rate classes (1 without a rate tree)
    n_mus : int
        Number of death rate classes; -1 means "same as n_lambdas" and 0
        means lambda-only mode (no death rates are searched)
    k : int
        Number of mixture clusters; 0 means no mixture
    fix_cluster0 : bool
        First cluster has rates fixed at 0
    eqbg : bool
        Background class death rate equals its birth rate

    Examples
    --------
    >>> layout = ParameterLayout(n_lambdas=2, n_mus=-1, k=3, fix_cluster0=True)
    >>> layout.lambda_size, layout.mu_size, layout.weight_size, layout.total
    (4, 4, 2, 10)
    """

    n_lambdas: int = 1
    n_mus: int = 0
    k: int = 0
    fix_cluster0: bool = False
    eqbg: bool = False

    slots_per_class: int = field(init=False)
    lambda_size: int = field(init=False)
    mu_size: int = field(init=False)
    weight_size: int = field(init=False)
    lambda_offset: int = field(init=False)
    mu_offset: int = field(init=False)
    weight_offset: int = field(init=False)
    total: int = field(init=False)

    def __post_init__(self):
        if self.n_lambdas < 1:
            raise ValueError(f"At least one lambda class is required, got {self.n_lambdas}")
        if self.k < 0:
            raise ValueError(f"Number of clusters must be non-negative, got {self.k}")
        if self.fix_cluster0 and self.k < 2:
            raise ValueError("fix_cluster0 requires at least two clusters")
        n_mus = self.n_lambdas if self.n_mus == -1 else self.n_mus
        if n_mus < 0:
            raise ValueError(f"Invalid number of mu classes: {self.n_mus}")
        if self.eqbg and n_mus == 0:
            raise ValueError("eqbg requires death rates (not available in lambda-only mode)")

        slots = self.k - int(self.fix_cluster0) if self.k > 0 else 1
        lambda_size = self.n_lambdas * slots
        mu_size = (n_mus - int(self.eqbg)) * slots if n_mus > 0 else 0
        weight_size = self.k - 1 if self.k > 0 else 0

        values = dict(
            n_mus=n_mus,
            slots_per_class=slots,
            lambda_size=lambda_size,
            mu_size=mu_size,
            weight_size=weight_size,
            lambda_offset=0,
            mu_offset=lambda_size,
            weight_offset=lambda_size + mu_size,
            total=lambda_size + mu_size + weight_size,
        )
        for name, value in values.items():
            object.__setattr__(self, name, value)

    @classmethod
    def from_rate_tree(
        cls,
        rate_tree: Optional[Tree],
        k: int = 0,
        fix_cluster0: bool = False,
        eqbg: bool = False,
        lambda_only: bool = False,
    ) -> "ParameterLayout":
        """
        Layout for a rate tree (or one global class when it is None).

        ``eqbg`` without a rate tree is rejected since there is no
        background class to distinguish.
        """
        if rate_tree is None:
            if eqbg:
                raise ValueError("eqbg requires a rate tree")
            n_classes = 1
        else:
            n_classes = max(rate_tree.rate_classes()) + 1
        return cls(
            n_lambdas=n_classes,
            n_mus=0 if lambda_only else -1,
            k=k,
            fix_cluster0=fix_cluster0,
            eqbg=eqbg,
        )

    @property
    def lambda_only(self) -> bool:
        return self.n_mus == 0

    @property
    def n_clusters(self) -> int:
        return self.k

    def _slice(self, params: np.ndarray, offset: int, size: int) -> np.ndarray:
        return np.asarray(params[offset:offset + size], dtype=float)

    def decode(self, params: Sequence[float], class_id: int) -> BirthDeathRates:
        """
        Rates of one rate class.

        Parameters
        ----------
        params : array-like
            Parameter vector of length ``total``
        class_id : int
            Rate class; negative ids (the unlabeled root) read class 0

        Returns
        -------
        BirthDeathRates
            Scalar rates, or length-K arrays for mixture models
        """
        params = np.asarray(params, dtype=float)
        if len(params) != self.total:
            raise ParameterCountError(
                f"Parameter vector has {len(params)} values, layout requires {self.total}",
                supplied=len(params),
                required=self.total,
            )
        cls = max(class_id, 0)
        if cls >= self.n_lambdas:
            raise IndexError(f"Rate class {cls + 1} exceeds {self.n_lambdas} classes")
        slots = self.slots_per_class
        background = self.eqbg and cls == 0

        if self.k == 0:
            lam = float(params[self.lambda_offset + cls])
            if self.lambda_only:
                return BirthDeathRates(lam, None)
            if background:
                return BirthDeathRates(lam, lam)
            return BirthDeathRates(lam, float(params[self.mu_offset + cls - int(self.eqbg)]))

        lam = self._slice(params, self.lambda_offset + cls * slots, slots)
        if self.fix_cluster0:
            lam = np.concatenate([[0.0], lam])
        if self.lambda_only:
            return BirthDeathRates(lam, None)
        if background:
            return BirthDeathRates(lam, lam.copy())
        mu = self._slice(params, self.mu_offset + (cls - int(self.eqbg)) * slots, slots)
        if self.fix_cluster0:
            mu = np.concatenate([[0.0], mu])
        return BirthDeathRates(lam, mu)

    def weights(self, params: Sequence[float]) -> Optional[np.ndarray]:
        """All K mixture weights, the last being ``1 - sum(others)``."""
        if self.k == 0:
            return None
        free = self._slice(np.asarray(params, dtype=float), self.weight_offset, self.weight_size)
        return np.append(free, 1.0 - free.sum())

    def unpack(self, params: Sequence[float]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Split a parameter vector into (lambdas, mus, free weights)."""
        params = np.asarray(params, dtype=float)
        return (
            self._slice(params, self.lambda_offset, self.lambda_size),
            self._slice(params, self.mu_offset, self.mu_size),
            self._slice(params, self.weight_offset, self.weight_size),
        )

    def pack(
        self,
        lambdas: Sequence[float],
        mus: Optional[Sequence[float]] = None,
        weights: Optional[Sequence[float]] = None,
    ) -> np.ndarray:
        """
        Build a parameter vector from its regions.

        Raises
        ------
        ParameterCountError
            If any region has the wrong number of values
        """
        regions = [
            ("lambda", lambdas, self.lambda_size),
            ("mu", mus, self.mu_size),
            ("weight", weights, self.weight_size),
        ]
        arrays = []
        for name, values, required in regions:
            values = np.atleast_1d(np.asarray([] if values is None else values, dtype=float))
            if len(values) != required:
                raise ParameterCountError(
                    f"ERROR({name}): Number of {name} parameters does not match: "
                    f"{len(values)} given, {required} required",
                    supplied=len(values),
                    required=required,
                )
            arrays.append(values)
        return np.concatenate(arrays)

    def describe(self) -> str:
        """One-line summary of the layout."""
        mode = "lambda" if self.lambda_only else "lambda/mu"
        text = f"{mode}: {self.n_lambdas} class(es), {self.total} parameter(s)"
        if self.k:
            text += f", {self.k} clusters"
        if self.fix_cluster0:
            text += ", cluster 0 fixed at 0"
        if self.eqbg:
            text += ", background mu = lambda"
        return text


def validate_rate_tree(tree: Tree, rate_tree: Tree) -> list[int]:
    """
    Check a rate tree against the main tree.

    Parameters
    ----------
    tree : Tree
        Species tree
    rate_tree : Tree
        Tree of the same topology whose node names are rate class labels
        (consecutive integers starting at 1)

    Returns
    -------
    list[int]
        Rate class of every node, in post-order (-1 for the root)

    Raises
    ------
    TopologyMismatchError
        If the node counts differ
    UnderspecifiedRateTreeError
        If a non-root node has no label
    """
    if rate_tree.n_nodes != tree.n_nodes:
        raise TopologyMismatchError(
            f"The rate tree has {rate_tree.n_nodes} nodes but the tree has "
            f"{tree.n_nodes}; the two trees must have the same topology"
        )
    classes = rate_tree.rate_classes()
    branch_classes = classes[:-1]  # post-order: root is last
    n_labeled = sum(1 for c in branch_classes if c >= 0)
    if n_labeled != rate_tree.n_branches:
        raise UnderspecifiedRateTreeError(
            f"The rate tree has {rate_tree.n_branches} branches but only {n_labeled} "
            f"are labeled; every branch must have a rate class"
        )
    used = sorted(set(c for c in classes if c >= 0))
    if used != list(range(len(used))):
        raise ValueError(
            f"Rate class labels must be consecutive integers starting at 1, got "
            f"{', '.join(str(c + 1) for c in used)}"
        )
    return classes
