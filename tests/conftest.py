"""
Pytest configuration and shared fixtures.
"""

import pytest
from pathlib import Path
from typer.testing import CliRunner

from cafeml.context import AnalysisContext


TREE_NEWICK = "((A:1,B:1):1,(C:1,D:1):1);"

RATE_TREE_NEWICK = "((1,1)1,(2,2)2);"

FAMILY_TABLE = """Desc\tFamily ID\tA\tB\tC\tD
(null)\tF1\t1\t1\t1\t1
(null)\tF2\t2\t2\t1\t2
(null)\tF3\t3\t2\t3\t3
(null)\tF4\t1\t2\t1\t1
(null)\tF5\t4\t3\t4\t5
(null)\tF6\t2\t2\t2\t2
(null)\tF7\t1\t0\t1\t1
(null)\tF8\t5\t4\t4\t3
"""

MEASURE_TABLE_1 = """Desc\tFamily ID\tA\tB
(null)\tF1\t0\t1
(null)\tF2\t1\t1
(null)\tF3\t2\t2
(null)\tF4\t3\t3
(null)\tF5\t1\t2
(null)\tF6\t4\t4
(null)\tF7\t2\t3
(null)\tF8\t1\t1
"""

MEASURE_TABLE_2 = """Desc\tFamily ID\tA\tB
(null)\tF1\t0\t1
(null)\tF2\t1\t2
(null)\tF3\t2\t2
(null)\tF4\t3\t4
(null)\tF5\t1\t2
(null)\tF6\t4\t4
(null)\tF7\t2\t2
(null)\tF8\t1\t1
"""


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()


@pytest.fixture
def tree_file(tmp_path):
    """Four-species tree with unit branch lengths."""
    path = tmp_path / "tree.nwk"
    path.write_text(TREE_NEWICK + "\n")
    return path


@pytest.fixture
def rate_tree_file(tmp_path):
    """Rate tree splitting the two cherries into classes 1 and 2."""
    path = tmp_path / "rates.nwk"
    path.write_text(RATE_TREE_NEWICK + "\n")
    return path


@pytest.fixture
def family_file(tmp_path):
    """Eight gene families over the four species."""
    path = tmp_path / "families.tab"
    path.write_text(FAMILY_TABLE)
    return path


@pytest.fixture
def measure_files(tmp_path):
    """Two noisy measurements of the same families."""
    first = tmp_path / "measure1.tab"
    second = tmp_path / "measure2.tab"
    first.write_text(MEASURE_TABLE_1)
    second.write_text(MEASURE_TABLE_2)
    return first, second


@pytest.fixture
def identical_measure_files(tmp_path):
    """Two measurements that agree on every family."""
    first = tmp_path / "same1.tab"
    second = tmp_path / "same2.tab"
    first.write_text(MEASURE_TABLE_1)
    second.write_text(MEASURE_TABLE_1)
    return first, second


@pytest.fixture
def context(tree_file, family_file):
    """Context with the test tree and families loaded, logging suppressed."""
    context = AnalysisContext(seed=1, quiet=True)
    context.load_tree(tree_file)
    context.load_family(family_file)
    return context
