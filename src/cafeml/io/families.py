"""
Gene family count tables.

A family file is tab-delimited with a header row. The first two columns are
metadata (description and family id); every further column holds the family
size observed in one species::

    Desc    Family ID   chimp   human   mouse   rat
    (null)  ENSF00001   5       6       4       4
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

import numpy as np
import pandas as pd

from .trees import Tree


@dataclass
class FamilyData:
    """
    Gene family sizes across species.

    Attributes
    ----------
    descriptions : list[str]
        First metadata column
    ids : list[str]
        Family identifiers (second metadata column)
    species : list[str]
        Species names, in column order
    counts : np.ndarray
        Family sizes, shape (n_families, n_species)
    """

    descriptions: list[str]
    ids: list[str]
    species: list[str]
    counts: np.ndarray

    def __post_init__(self):
        self.counts = np.asarray(self.counts, dtype=int)
        if self.counts.shape != (len(self.ids), len(self.species)):
            raise ValueError(
                f"Count table has shape {self.counts.shape}, expected "
                f"({len(self.ids)}, {len(self.species)})"
            )
        if np.any(self.counts < 0):
            raise ValueError("Family sizes must be non-negative integers")

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FamilyData":
        """
        Read a family file.

        Parameters
        ----------
        path : str or Path
            Tab-delimited family file

        Returns
        -------
        FamilyData
            Parsed family table
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Cannot open file: {path}")
        if path.stat().st_size == 0:
            raise ValueError(f"Empty file: {path}")

        df = pd.read_csv(path, sep='\t', dtype=str, keep_default_na=False)
        if df.shape[1] < 3:
            raise ValueError(
                f"{path}: expected two metadata columns and at least one species"
            )
        try:
            counts = df.iloc[:, 2:].astype(int).to_numpy()
        except ValueError as e:
            raise ValueError(f"{path}: family sizes must be integers ({e})")

        return cls(
            descriptions=df.iloc[:, 0].tolist(),
            ids=df.iloc[:, 1].tolist(),
            species=[str(name).strip() for name in df.columns[2:]],
            counts=counts,
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Family table with the metadata columns first."""
        df = pd.DataFrame(self.counts, columns=self.species)
        df.insert(0, 'Family ID', self.ids)
        df.insert(0, 'Desc', self.descriptions)
        return df

    def to_file(self, path: Union[str, Path]) -> None:
        """Write the table in family file format."""
        self.to_dataframe().to_csv(path, sep='\t', index=False)

    @property
    def n_families(self) -> int:
        return len(self.ids)

    @property
    def n_species(self) -> int:
        return len(self.species)

    @property
    def max_size(self) -> int:
        """Largest family size in the table."""
        return int(self.counts.max()) if self.counts.size else 0

    def __len__(self) -> int:
        return self.n_families

    def subset(self, indices: Iterable[int]) -> "FamilyData":
        """Families at the given row indices."""
        indices = list(indices)
        return FamilyData(
            descriptions=[self.descriptions[i] for i in indices],
            ids=[self.ids[i] for i in indices],
            species=list(self.species),
            counts=self.counts[indices, :].reshape(len(indices), self.n_species),
        )

    def species_column(self, name: str) -> int:
        try:
            return self.species.index(name)
        except ValueError:
            raise KeyError(f"Species not in family data: {name}")

    def species_counts(self, name: str) -> np.ndarray:
        """Sizes of every family in one species."""
        return self.counts[:, self.species_column(name)].copy()

    def without_species(self, name: str) -> "FamilyData":
        """Table with one species column removed."""
        column = self.species_column(name)
        return FamilyData(
            descriptions=list(self.descriptions),
            ids=list(self.ids),
            species=[s for s in self.species if s != name],
            counts=np.delete(self.counts, column, axis=1),
        )

    def check_species(self, tree: Tree) -> None:
        """
        Check that every species is a leaf of the tree.

        Raises
        ------
        ValueError
            If a species has no matching leaf
        """
        missing = [name for name in self.species if tree.find_leaf(name) is None]
        if missing:
            raise ValueError(
                f"Species not found in tree: {', '.join(missing)}. "
                f"Tree leaves: {', '.join(tree.leaf_names)}"
            )

    def set_family_on_tree(self, index: int, tree: Tree, masked: Iterable[str] = ()) -> None:
        """
        Copy one family's sizes onto the tree leaves.

        Leaves whose species is absent from the table, or listed in
        ``masked``, are left unobserved. Internal nodes are reset.

        Parameters
        ----------
        index : int
            Family row
        tree : Tree
            Tree whose leaves are named by species
        masked : iterable of str
            Species to treat as unobserved
        """
        masked = set(masked)
        row = self.counts[index]
        column_of = {name: i for i, name in enumerate(self.species)}
        for node in tree.postorder():
            node.family_size = None
            if not node.is_leaf or node.name in masked:
                continue
            column = column_of.get(node.name)
            if column is not None:
                node.family_size = int(row[column])
