"""
Phylogenetic tree parsing and manipulation.

Trees carry the per-node state used during estimation: the observed or
reconstructed family size, the birth/death rates installed by the rate
assigner, and the per-cluster buffers used by mixture models.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import numpy as np


@dataclass(eq=False)
class TreeNode:
    """
    Phylogenetic tree node.

    Attributes
    ----------
    id : int
        Node identifier (preorder position while parsing)
    name : Optional[str]
        Node name (species for leaves, rate class label in a rate tree)
    parent : Optional[TreeNode]
        Parent node
    children : list[TreeNode]
        Child nodes
    branch_length : float
        Branch length to parent
    family_size : Optional[int]
        Observed (leaves) or reconstructed family size; None if unobserved
    rates : Any
        BirthDeathRates installed by the rate assigner
    cluster_likelihoods : Optional[np.ndarray]
        Partial likelihoods of shape (k, n_sizes) for mixture models, one
        row per cluster, filled by the pruning pass
    cluster_transitions : list
        Per-cluster transition matrices of the branch above the node,
        filled on first use by the likelihood and reconstruction passes
    """

    id: int
    name: Optional[str] = None
    parent: Optional["TreeNode"] = None
    children: list["TreeNode"] = field(default_factory=list)
    branch_length: float = 0.0
    family_size: Optional[int] = None
    rates: Any = None
    cluster_likelihoods: Optional[np.ndarray] = None
    cluster_transitions: list = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        """Check if node is a leaf."""
        return len(self.children) == 0

    @property
    def is_root(self) -> bool:
        """Check if node is the root."""
        return self.parent is None


# Characters that end a node name or a branch length
_DELIMITERS = ',:();'


class _NewickParser:
    """Recursive-descent parser for a single Newick string."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.next_id = 0

    def skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def peek(self) -> str:
        self.skip_whitespace()
        return self.text[self.pos] if self.pos < len(self.text) else ''

    def read_token(self) -> str:
        self.skip_whitespace()
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in _DELIMITERS:
            self.pos += 1
        return self.text[start:self.pos].strip()

    def parse_node(self, parent: Optional[TreeNode]) -> TreeNode:
        node = TreeNode(id=self.next_id, parent=parent)
        self.next_id += 1

        if self.peek() == '(':
            self.pos += 1
            while True:
                node.children.append(self.parse_node(node))
                token = self.peek()
                self.pos += 1
                if token == ',':
                    continue
                if token == ')':
                    break
                raise ValueError(f"Expected ',' or ')' at position {self.pos - 1}")

        name = self.read_token()
        if name:
            node.name = name

        if self.peek() == ':':
            self.pos += 1
            length = self.read_token()
            try:
                node.branch_length = float(length)
            except ValueError:
                raise ValueError(f"Invalid branch length: {length}")

        return node


@dataclass
class Tree:
    """
    Phylogenetic tree.

    Attributes
    ----------
    root : TreeNode
        Root node of the tree
    n_nodes : int
        Total number of nodes
    n_leaves : int
        Number of leaf nodes
    leaf_names : list[str]
        Names of leaf nodes (postorder)
    """

    root: TreeNode
    n_nodes: int
    n_leaves: int
    leaf_names: list[str]

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse Newick format tree string.

        Comments in square brackets are removed. Branch lengths are optional
        (rate trees usually omit them).

        Parameters
        ----------
        newick_string : str
            Newick format tree, e.g. ``((A:1,B:1):2,C:3);``

        Returns
        -------
        Tree
            Parsed tree
        """
        newick = re.sub(r'\[.*?\]', '', newick_string).strip()
        if not newick:
            raise ValueError("Invalid Newick format: no tree found")
        if ';' in newick:
            newick = newick[:newick.index(';')]

        parser = _NewickParser(newick)
        root = parser.parse_node(None)
        if parser.peek():
            raise ValueError(
                f"Invalid Newick format: unexpected text at position {parser.pos}"
            )

        nodes = _postorder(root)
        leaves = [node for node in nodes if node.is_leaf]
        return cls(
            root=root,
            n_nodes=len(nodes),
            n_leaves=len(leaves),
            leaf_names=[node.name if node.name else str(node.id) for node in leaves],
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Tree":
        """Read a Newick tree from a file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Cannot open file: {path}")
        text = path.read_text()
        if not text.strip():
            raise ValueError(f"Empty file: {path}")
        return cls.from_newick(text)

    def postorder(self) -> list[TreeNode]:
        """
        Return nodes in post-order traversal (leaves to root).

        Two trees with the same topology list corresponding nodes at the same
        positions, which is how a rate tree is matched to the main tree.

        Returns
        -------
        list[TreeNode]
            Nodes in post-order
        """
        return _postorder(self.root)

    def leaves(self) -> list[TreeNode]:
        """Return leaf nodes in post-order."""
        return [node for node in self.postorder() if node.is_leaf]

    def find_leaf(self, name: str) -> Optional[TreeNode]:
        """Return the leaf with the given name, or None."""
        for node in self.leaves():
            if node.name == name:
                return node
        return None

    def branches(self) -> list[tuple[TreeNode, TreeNode]]:
        """
        Get all branches as (parent, child) pairs.

        Returns
        -------
        list[tuple[TreeNode, TreeNode]]
            One tuple per non-root node
        """
        return [(node.parent, node) for node in self.postorder() if node.parent is not None]

    @property
    def n_branches(self) -> int:
        """Number of branches (every node except the root has one)."""
        return self.n_nodes - 1

    @property
    def max_branch_length(self) -> float:
        """Longest branch in the tree."""
        lengths = [node.branch_length for _, node in self.branches()]
        return max(lengths) if lengths else 0.0

    def rate_classes(self) -> list[int]:
        """
        Rate class of every node of a rate tree, in post-order.

        Node names are integer labels starting at 1; the class id is
        ``label - 1``. Unlabeled nodes (normally only the root) get -1.

        Returns
        -------
        list[int]
            Class id per node
        """
        classes = []
        for node in self.postorder():
            if node.name is None:
                classes.append(-1)
                continue
            try:
                classes.append(int(node.name) - 1)
            except ValueError:
                raise ValueError(f"Invalid rate class label: {node.name}")
        return classes

    def to_newick(self, with_sizes: bool = False, with_rates: bool = False) -> str:
        """
        Format the tree as Newick.

        Parameters
        ----------
        with_sizes : bool
            Append ``_<family_size>`` to node names
        with_rates : bool
            Append ``_<lambda>`` (and ``_<mu>``) to node names
        """

        def label(node: TreeNode) -> str:
            text = node.name or ''
            if with_sizes and node.family_size is not None:
                text += f"_{node.family_size}"
            if with_rates and node.rates is not None and not node.is_root:
                text += f"_{node.rates}"
            return text

        def format_node(node: TreeNode) -> str:
            text = ''
            if node.children:
                text = '(' + ','.join(format_node(child) for child in node.children) + ')'
            text += label(node)
            if not node.is_root:
                text += f":{node.branch_length:g}"
            return text

        return format_node(self.root) + ';'

    def clear_family_sizes(self) -> None:
        """Mark every node as unobserved."""
        for node in self.postorder():
            node.family_size = None


def _postorder(root: TreeNode) -> list[TreeNode]:
    result = []

    def traverse(node: TreeNode) -> None:
        for child in node.children:
            traverse(child)
        result.append(node)

    traverse(root)
    return result
