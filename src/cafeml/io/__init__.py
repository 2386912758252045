"""
Input/Output modules for trees, gene family tables and measurement files.

This module provides classes for reading and working with:

- **Phylogenetic trees**: Newick format, including rate-class trees
- **Family tables**: tab-delimited gene family sizes per species
- **Measurement pairs**: paired family size readings for error estimation
"""

from cafeml.io.trees import Tree, TreeNode
from cafeml.io.families import FamilyData
from cafeml.io.measures import (
    read_size_frequencies,
    read_double_measure_pairs,
    read_true_measure_pairs,
)

__all__ = [
    "Tree",
    "TreeNode",
    "FamilyData",
    "read_size_frequencies",
    "read_double_measure_pairs",
    "read_true_measure_pairs",
]
