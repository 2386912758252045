"""
Reading paired measurements of family sizes.

Measurement files use the family file layout (two metadata columns, then one
column per species). Two files are compared line by line: either two noisy
measurements of the same families (double measure) or one noisy measurement
and the true sizes (true measure).
"""

from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

PathLike = Union[str, Path]


def _read_measure_table(path: PathLike) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cannot open file: {path}")
    if path.stat().st_size == 0:
        raise ValueError(f"Empty file: {path}")
    return pd.read_csv(path, sep='\t', dtype=str, keep_default_na=False)


def _sizes(df: pd.DataFrame, path: PathLike) -> np.ndarray:
    try:
        sizes = df.iloc[:, 2:].astype(int).to_numpy()
    except ValueError as e:
        raise ValueError(f"{path}: family sizes must be integers ({e})")
    if np.any(sizes < 0):
        raise ValueError(f"{path}: family sizes must be non-negative")
    return sizes


def read_size_frequencies(
    file1: PathLike, file2: Optional[PathLike] = None
) -> tuple[np.ndarray, int]:
    """
    Count how often every family size occurs across one or two files.

    Parameters
    ----------
    file1 : str or Path
        First measurement file
    file2 : str or Path, optional
        Second measurement file; must have the same number of columns and
        lines as the first

    Returns
    -------
    frequencies : np.ndarray
        ``frequencies[s]`` is the number of observations of size ``s``,
        for ``s`` in ``[0, max_size]``
    max_size : int
        Largest observed size
    """
    df1 = _read_measure_table(file1)
    tables = [_sizes(df1, file1)]
    if file2 is not None:
        df2 = _read_measure_table(file2)
        if df1.shape[1] != df2.shape[1]:
            raise ValueError(
                f"The number of columns do not match between {file1} and {file2}"
            )
        if df1.shape[0] != df2.shape[0]:
            raise ValueError(
                f"The number of lines do not match between {file1} and {file2}"
            )
        tables.append(_sizes(df2, file2))

    values = np.concatenate([t.ravel() for t in tables])
    max_size = int(values.max()) if values.size else 0
    frequencies = np.bincount(values, minlength=max_size + 1)
    return frequencies, max_size


def _paired_sizes(first: PathLike, second: PathLike) -> tuple[np.ndarray, np.ndarray]:
    df1 = _read_measure_table(first)
    df2 = _read_measure_table(second)
    n = min(len(df1), len(df2))
    ids1 = df1.iloc[:n, 1].tolist()
    ids2 = df2.iloc[:n, 1].tolist()
    for line, (id1, id2) in enumerate(zip(ids1, ids2), start=2):
        if id1 != id2:
            raise ValueError(
                f"The family IDs do not match between the two files "
                f"(line {line}: {id1} vs {id2})"
            )
    sizes1 = _sizes(df1.iloc[:n], first)
    sizes2 = _sizes(df2.iloc[:n], second)
    if sizes1.shape != sizes2.shape:
        raise ValueError(
            f"The number of columns do not match between {first} and {second}"
        )
    return sizes1, sizes2


def read_double_measure_pairs(file1: PathLike, file2: PathLike, max_size: int) -> np.ndarray:
    """
    Count size pairs between two noisy measurements.

    The order of the two measurements is irrelevant, so ``(i, j)`` and
    ``(j, i)`` are merged into the upper triangle (``i <= j``).

    Returns
    -------
    np.ndarray
        Integer matrix of shape (max_size + 1, max_size + 1)
    """
    sizes1, sizes2 = _paired_sizes(file1, file2)
    pairs = np.zeros((max_size + 1, max_size + 1), dtype=np.int64)
    np.add.at(pairs, (sizes1.ravel(), sizes2.ravel()), 1)

    lower = np.tril(pairs, k=-1)
    pairs = np.triu(pairs) + lower.T
    return pairs


def read_true_measure_pairs(errorfile: PathLike, truefile: PathLike, max_size: int) -> np.ndarray:
    """
    Count (measured, true) size pairs.

    Returns
    -------
    np.ndarray
        ``pairs[i, j]`` is the number of observations of size ``i`` whose
        true size is ``j``
    """
    measured, truth = _paired_sizes(errorfile, truefile)
    pairs = np.zeros((max_size + 1, max_size + 1), dtype=np.int64)
    np.add.at(pairs, (measured.ravel(), truth.ravel()), 1)
    return pairs
