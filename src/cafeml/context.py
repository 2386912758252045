"""
Explicit analysis state shared by the estimation routines.

Every command operates on an ``AnalysisContext`` passed in by the caller;
objective functions close over the context they were built from.
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TextIO, Union

import numpy as np

from .core.birthdeath import BirthDeathCache
from .core.likelihood import empirical_root_prior
from .exceptions import ConfigurationError
from .io.families import FamilyData
from .io.trees import Tree
from .models.parameters import ParameterLayout


@dataclass
class FamilySizeRange:
    """
    Family sizes considered by the likelihood computation.

    Attributes
    ----------
    min : int
        Smallest family size at any node
    max : int
        Largest family size at any node
    root_min : int
        Smallest family size at the root
    root_max : int
        Largest family size at the root
    """

    min: int = 0
    max: int = 1
    root_min: int = 1
    root_max: int = 1

    @classmethod
    def from_max_size(cls, max_size: int) -> "FamilySizeRange":
        """Range wide enough for families up to ``max_size``."""
        size_max = max_size + max(50, max_size // 5)
        root_max = min(max_size + max(20, max_size // 4), size_max)
        return cls(min=0, max=size_max, root_min=1, root_max=root_max)

    @property
    def n_sizes(self) -> int:
        return self.max + 1

    @property
    def root_sizes(self) -> np.ndarray:
        return np.arange(self.root_min, self.root_max + 1)


@dataclass
class AnalysisContext:
    """
    State of one analysis session.

    Attributes
    ----------
    tree : Tree, optional
        Species tree with branch lengths
    family : FamilyData, optional
        Gene family sizes
    family_path : Path, optional
        File the family data was loaded from
    rate_tree : Tree, optional
        Tree with the same topology whose node names are rate classes
    layout : ParameterLayout, optional
        Layout of the current parameter vector
    parameters : np.ndarray, optional
        Current parameter vector
    k_weights : np.ndarray, optional
        Mixture weights (all K of them)
    membership : np.ndarray, optional
        Per-family cluster membership probabilities, shape (n_families, K)
    family_size : FamilySizeRange
        Sizes considered by the likelihood
    root_prior : np.ndarray, optional
        Prior over root sizes; uniform when None
    seed : int, optional
        Seed of the random generator used for every random start
    """

    tree: Optional[Tree] = None
    family: Optional[FamilyData] = None
    family_path: Optional[Path] = None
    rate_tree: Optional[Tree] = None
    layout: Optional[ParameterLayout] = None
    parameters: Optional[np.ndarray] = None
    k_weights: Optional[np.ndarray] = None
    membership: Optional[np.ndarray] = None
    family_size: FamilySizeRange = field(default_factory=FamilySizeRange)
    root_prior: Optional[np.ndarray] = None
    cache: BirthDeathCache = field(default_factory=BirthDeathCache)
    log_stream: TextIO = field(default=sys.stdout, repr=False)
    log_path: Optional[Path] = None
    quiet: bool = False
    verbose: bool = False
    check_convergence: bool = False
    num_threads: int = 1
    seed: Optional[int] = None
    rng: np.random.Generator = field(init=False, repr=False)

    def __post_init__(self):
        self.rng = np.random.default_rng(self.seed)

    # ------------------------------------------------------------------
    # Logging

    def log(self, message: str = "") -> None:
        """Write one line to the log stream (suppressed on stdout when quiet)."""
        if self.quiet and self.log_path is None:
            return
        print(message, file=self.log_stream)

    def set_log_file(self, path: Union[str, Path]) -> None:
        """
        Send log lines to a file (append mode), or back to stdout.

        Parameters
        ----------
        path : str or Path
            Log file, or ``"stdout"``
        """
        if self.log_path is not None:
            self.log_stream.close()
            self.log_path = None
            self.log_stream = sys.stdout
        if str(path) == "stdout":
            return
        path = Path(path)
        try:
            self.log_stream = open(path, 'a')
        except OSError as e:
            raise OSError(f"Cannot open log file: {path}") from e
        self.log_path = path

    def close(self) -> None:
        """Close the log file, if one is open."""
        self.set_log_file("stdout")

    # ------------------------------------------------------------------
    # Loading

    def load_tree(self, tree: Union[str, Path, Tree]) -> Tree:
        """Install the species tree (a Tree, a Newick string or a file)."""
        if isinstance(tree, Tree):
            self.tree = tree
        elif isinstance(tree, Path) or (isinstance(tree, str) and '(' not in tree):
            self.tree = Tree.from_file(tree)
        else:
            self.tree = Tree.from_newick(tree)
        self.cache.clear()
        if self.family is not None:
            self.family.check_species(self.tree)
        return self.tree

    def load_family(self, family: Union[str, Path, FamilyData]) -> FamilyData:
        """Install family data and derive the family size range from it."""
        if isinstance(family, FamilyData):
            self.family = family
            self.family_path = None
        else:
            self.family_path = Path(family)
            self.family = FamilyData.from_file(self.family_path)
        if self.tree is not None:
            self.family.check_species(self.tree)
        self.membership = None
        self.set_range_from_family()
        return self.family

    def set_range_from_family(self) -> None:
        """Recompute the family size range and root prior from the family data."""
        family = self.require_family("family")
        self.family_size = FamilySizeRange.from_max_size(family.max_size)
        if self.root_prior is not None:
            self.root_prior = empirical_root_prior(family, self.family_size)
        self.cache.clear()

    def use_empirical_prior(self, enabled: bool = True) -> None:
        """Switch between the Poisson root prior and a uniform one."""
        if enabled:
            self.root_prior = empirical_root_prior(self.require_family("prior"), self.family_size)
        else:
            self.root_prior = None

    # ------------------------------------------------------------------
    # Prerequisites

    def require_tree(self, command: str) -> Tree:
        if self.tree is None:
            raise ConfigurationError(
                f"ERROR({command}): You did not specify tree: command 'tree'"
            )
        return self.tree

    def require_family(self, command: str) -> FamilyData:
        if self.family is None:
            raise ConfigurationError(
                f"ERROR({command}): You must load family data first: command 'load'"
            )
        return self.family

    def require_parameters(self, command: str) -> np.ndarray:
        if self.parameters is None or self.layout is None:
            raise ConfigurationError(
                f"ERROR({command}): You did not set the parameters: "
                f"command 'lambda' or 'lambdamu'"
            )
        return self.parameters

    def log_summary(self) -> None:
        """Log the current data and settings."""
        self.log("-----------------------------------------------------------")
        if self.family_path is not None:
            self.log(f"Family information: {self.family_path}")
        self.log(f"Log: {'stdout' if self.log_path is None else self.log_path}")
        if self.tree is not None:
            self.log(f"Tree: {self.tree.to_newick()}")
        if self.family is not None:
            self.log(f"The number of families is {self.family.n_families}")
        self.log(f"Root Family size : {self.family_size.root_min} ~ {self.family_size.root_max}")
        self.log(f"Family size : {self.family_size.min} ~ {self.family_size.max}")
        self.log(f"Num of Threads: {self.num_threads}")
        if self.parameters is not None and self.tree is not None:
            self.log(f"Lambda: {self.tree.to_newick(with_rates=True)}")
