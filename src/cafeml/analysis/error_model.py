"""
Estimation of a measurement error model for family sizes.

The model says that a family of true size ``j`` is measured as ``j + d``
with probability ``p_d`` for offsets ``d`` in ``[-D, D]``, and as any other
size with a small marginal probability epsilon. The band probabilities are
estimated by maximum likelihood from either two independent measurements of
the same families ("double measure") or one measurement and the true sizes
("true measure").

A symmetric model has ``D + 1`` free parameters ``p_0, p_1, ..., p_D`` with
``p_-d = p_d``; an asymmetric model has ``2D + 1`` parameters
``p_-D, ..., p_0, ..., p_D``. Epsilon is not free: it takes up the mass the
band leaves over, spread evenly over the sizes outside the band.

References:
    Han, Thomas, Lugo-Martinez and Hahn (2013). Mol. Biol. Evol. 30:1987-1997
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np

from ..io.measures import (
    read_double_measure_pairs,
    read_size_frequencies,
    read_true_measure_pairs,
)
from ..optimize.driver import OptimizationDriver, unimodal_start
from .results import ErrorModelResult

PathLike = Union[str, Path]

ERROR_TOLERANCE = 1e-9
MAX_RUNS = 100
ITERATIONS_PER_PARAMETER = 1000
COLUMN_TOLERANCE = 1e-14


def size_distribution(frequencies: np.ndarray, max_size: int) -> np.ndarray:
    """
    Laplace-smoothed distribution of family sizes.

    Parameters
    ----------
    frequencies : np.ndarray
        Number of observations of each size
    max_size : int
        Largest size of the distribution

    Returns
    -------
    np.ndarray
        ``(freq[s] + 1) / sum(freq + 1)`` for ``s`` in ``[0, max_size]``
    """
    counts = np.zeros(max_size + 1)
    n = min(len(frequencies), max_size + 1)
    counts[:n] = frequencies[:n]
    smoothed = counts + 1.0
    return smoothed / smoothed.sum()


@dataclass
class ErrorMatrix:
    """
    Column-stochastic misclassification matrix.

    Attributes
    ----------
    matrix : np.ndarray
        ``matrix[i, j]`` is the probability of measuring ``i`` when the true
        size is ``j``
    max_family_size : int
        Largest size (the matrix is ``(max + 1) x (max + 1)``)
    from_diff : int
        Lowest offset of the band (``-D``)
    to_diff : int
        Highest offset of the band (``D``)
    """

    matrix: np.ndarray
    max_family_size: int
    from_diff: int
    to_diff: int

    def column_sums(self) -> np.ndarray:
        return self.matrix.sum(axis=0)

    def to_file(self, path: PathLike) -> None:
        """
        Write the model as an error model file.

        The file lists, for every true size, the probabilities of the band
        offsets::

            maxcnt: 3
            cntdiff: -1 0 1
            0 0.000000 0.900000 0.100000
            ...
        """
        offsets = range(self.from_diff, self.to_diff + 1)
        lines = [
            f"maxcnt: {self.max_family_size}",
            "cntdiff: " + ' '.join(str(d) for d in offsets),
        ]
        for true_size in range(self.max_family_size + 1):
            values = []
            for d in offsets:
                observed = true_size + d
                if 0 <= observed <= self.max_family_size:
                    values.append(self.matrix[observed, true_size])
                else:
                    values.append(0.0)
            lines.append(f"{true_size} " + ' '.join(f"{v:f}" for v in values))
        Path(path).write_text('\n'.join(lines) + '\n')


@dataclass
class ErrorMeasure:
    """
    Observed data and shape of an error model.

    Attributes
    ----------
    size_dist : np.ndarray
        Smoothed distribution of family sizes, length ``max_family_size + 1``
    pairs : np.ndarray
        Counts of paired readings; upper triangular for ``mode="double"``,
        ``pairs[measured, true]`` for ``mode="true"``
    max_family_size : int
        Largest observed family size
    symmetric : bool
        Same error probability for offsets ``+d`` and ``-d``
    peak_zero : bool
        Error probabilities must not increase away from offset 0
    max_diff : int
        Half-width D of the band
    mode : str
        ``"double"`` or ``"true"``
    estimates : np.ndarray, optional
        Best parameters once estimated
    """

    size_dist: np.ndarray
    pairs: np.ndarray
    max_family_size: int
    symmetric: bool = True
    peak_zero: bool = True
    max_diff: int = 1
    mode: str = "double"
    estimates: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.mode not in ("double", "true"):
            raise ValueError(f"Unknown measurement mode: {self.mode}")
        if self.max_diff < 0:
            raise ValueError(f"max_diff must be non-negative, got {self.max_diff}")
        if self.n_outside < 1:
            raise ValueError(
                f"max_diff {self.max_diff} is too large for maximum family size "
                f"{self.max_family_size}: no sizes are left outside the error band"
            )
        size = self.max_family_size + 1
        if self.pairs.shape != (size, size) or len(self.size_dist) != size:
            raise ValueError(
                f"Pair matrix {self.pairs.shape} and size distribution "
                f"({len(self.size_dist)}) must cover sizes 0..{self.max_family_size}"
            )

    @property
    def n_params(self) -> int:
        """Number of free parameters (D + 1 or 2D + 1)."""
        return self.max_diff + 1 if self.symmetric else 2 * self.max_diff + 1

    @property
    def center(self) -> int:
        """Index of the offset-0 parameter."""
        return 0 if self.symmetric else self.max_diff

    @property
    def n_outside(self) -> int:
        """Number of sizes outside the band of a column."""
        return (self.max_family_size + 1) - (2 * self.max_diff + 1)

    def epsilon(self, params: np.ndarray) -> float:
        """Marginal error probability implied by the band parameters."""
        params = np.asarray(params, dtype=float)
        if self.symmetric:
            total = params[0] + 2.0 * params[1:].sum()
        else:
            total = params.sum()
        return float((1.0 - total) / self.n_outside)

    def band(self, params: np.ndarray) -> np.ndarray:
        """Probabilities of offsets ``-D..D`` (length 2D + 1)."""
        params = np.asarray(params, dtype=float)
        if not self.symmetric:
            return params.copy()
        # mirror p_1..p_D to the left of the center
        return np.concatenate([params[:0:-1], params])

    def is_feasible(self, params: np.ndarray) -> bool:
        """
        Check the parameter constraints.

        Every parameter must be non-negative and at least epsilon, epsilon
        must be non-negative, and with ``peak_zero`` the parameters must be
        non-increasing away from offset 0.
        """
        params = np.asarray(params, dtype=float)
        eps = self.epsilon(params)
        if np.any(params < 0) or eps < 0 or np.any(eps > params):
            return False
        if self.peak_zero:
            if self.symmetric:
                return bool(np.all(np.diff(params) <= 0))
            left = params[self.center::-1]
            right = params[self.center:]
            return bool(np.all(np.diff(left) <= 0) and np.all(np.diff(right) <= 0))
        return True

    def log_likelihood(self, params: np.ndarray) -> float:
        """
        Log-likelihood of the observed pairs, ``-inf`` if infeasible.

        The likelihood is conditioned on the pair (0, 0) not being observed
        (families absent from both readings are not in the data).
        """
        if not self.is_feasible(params):
            return -np.inf
        E = build_error_matrix(self, params).matrix
        sd = self.size_dist

        if self.mode == "double":
            discord = (E * sd[None, :]) @ E.T
            discord = discord * (2.0 - np.eye(len(sd)))
            observed = np.triu(self.pairs) > 0
            prob00 = discord[0, 0]
        else:
            discord = E * sd[None, :]
            observed = self.pairs > 0
            prob00 = E[0, 0] * sd[0]

        with np.errstate(divide='ignore', invalid='ignore'):
            score = float(np.sum(self.pairs[observed] * np.log(discord[observed])))
            score -= float(np.log(1.0 - prob00))
        if np.isnan(score):
            return -np.inf
        return score

    def negative_log_likelihood(self, params: np.ndarray) -> float:
        """Objective minimized by the estimator (``inf`` if infeasible)."""
        return -self.log_likelihood(params)


def build_error_matrix(measure: ErrorMeasure, params: np.ndarray) -> ErrorMatrix:
    """
    Materialize the error matrix of a parameter vector.

    Column ``j`` holds the band probabilities at rows ``j - D .. j + D``
    (clipped to the size range) and epsilon elsewhere. Columns are then
    corrected to sum to 1: the first D columns put the shortfall on row 0,
    the last D columns on the last row, and the others are rescaled.

    Parameters
    ----------
    measure : ErrorMeasure
        Model shape
    params : np.ndarray
        Free parameters (length ``measure.n_params``)

    Returns
    -------
    ErrorMatrix
        Column-stochastic matrix
    """
    n = measure.max_family_size + 1
    D = measure.max_diff
    band = measure.band(params)
    matrix = np.full((n, n), measure.epsilon(params))

    for j in range(n):
        for k, offset in enumerate(range(-D, D + 1)):
            i = j + offset
            if 0 <= i < n:
                matrix[i, j] = band[k]

    _normalize_columns(matrix, D)
    return ErrorMatrix(matrix, measure.max_family_size, -D, D)


def _normalize_columns(matrix: np.ndarray, diff: int) -> None:
    n = matrix.shape[0]
    for j in range(diff):
        matrix[0, j] += 1.0 - matrix[:, j].sum()
    for j in range(diff, n - diff):
        total = matrix[:, j].sum()
        if abs(1.0 - total) > COLUMN_TOLERANCE:
            matrix[:, j] /= total
    for j in range(n - diff, n):
        matrix[n - 1, j] += 1.0 - matrix[:, j].sum()


def estimate_error_model(
    measure: ErrorMeasure,
    rng: Optional[np.random.Generator] = None,
    log: Optional[Callable[[str], None]] = None,
    verbose: bool = False,
    max_runs: int = MAX_RUNS,
) -> ErrorModelResult:
    """
    Maximum likelihood estimate of the band probabilities.

    Restarts from random unimodal points until two runs agree within 1e-9
    (at most ``max_runs`` runs).

    Parameters
    ----------
    measure : ErrorMeasure
        Observed data and model shape
    rng : np.random.Generator, optional
        Generator for the random starts
    log : callable, optional
        Line logger (default ``print``)
    verbose : bool
        Log every objective evaluation
    max_runs : int
        Maximum number of optimizer runs

    Returns
    -------
    ErrorModelResult
        Estimates, error matrix and convergence status
    """
    rng = rng if rng is not None else np.random.default_rng()
    log = log if log is not None else print

    def objective(params: np.ndarray) -> float:
        score = measure.log_likelihood(params)
        if verbose:
            log(f"\tparameters : {','.join(f'{p:f}' for p in params)} & Score: {score:f}")
        return -score

    driver = OptimizationDriver(
        objective,
        lambda: unimodal_start(measure.n_params, measure.center, measure.symmetric, rng),
        tolx=ERROR_TOLERANCE,
        tolf=ERROR_TOLERANCE,
        max_iterations=ITERATIONS_PER_PARAMETER * measure.n_params,
        max_runs=max_runs,
        log=log,
        run_label="Misclassification Matrix Search Result",
    )
    run = driver.run()
    measure.estimates = run.best_parameters

    return ErrorModelResult(
        mode=measure.mode,
        symmetric=measure.symmetric,
        peak_zero=measure.peak_zero,
        max_diff=measure.max_diff,
        max_family_size=measure.max_family_size,
        estimates=run.best_parameters.tolist(),
        epsilon=measure.epsilon(run.best_parameters),
        log_likelihood=-run.best_score,
        converged=run.converged,
        attempts=run.attempts,
        error_matrix=build_error_matrix(measure, run.best_parameters).matrix,
    )


def estimate_error_double_measure(
    file1: PathLike,
    file2: PathLike,
    symmetric: bool = True,
    max_diff: int = 1,
    peak_zero: bool = True,
    **kwargs,
) -> ErrorModelResult:
    """
    Estimate an error model from two independent measurements.

    Parameters
    ----------
    file1, file2 : str or Path
        Measurement files with the same families in the same order
    symmetric : bool
        Fit a symmetric model
    max_diff : int
        Half-width D of the error band
    peak_zero : bool
        Constrain probabilities to decrease away from offset 0
    **kwargs
        Passed to :func:`estimate_error_model` (``rng``, ``log``,
        ``verbose``, ``max_runs``)

    Examples
    --------
    >>> result = estimate_error_double_measure("run1.tab", "run2.tab", max_diff=2)
    >>> print(result.summary())
    """
    frequencies, max_size = read_size_frequencies(file1, file2)
    measure = ErrorMeasure(
        size_dist=size_distribution(frequencies, max_size),
        pairs=read_double_measure_pairs(file1, file2, max_size),
        max_family_size=max_size,
        symmetric=symmetric,
        peak_zero=peak_zero,
        max_diff=max_diff,
        mode="double",
    )
    return estimate_error_model(measure, **kwargs)


def estimate_error_true_measure(
    errorfile: PathLike,
    truefile: PathLike,
    symmetric: bool = True,
    max_diff: int = 1,
    peak_zero: bool = True,
    **kwargs,
) -> ErrorModelResult:
    """
    Estimate an error model from a measurement and the true sizes.

    Parameters are as for :func:`estimate_error_double_measure`; ``errorfile``
    holds the measured sizes and ``truefile`` the true ones.
    """
    frequencies, max_size = read_size_frequencies(truefile, errorfile)
    measure = ErrorMeasure(
        size_dist=size_distribution(frequencies, max_size),
        pairs=read_true_measure_pairs(errorfile, truefile, max_size),
        max_family_size=max_size,
        symmetric=symmetric,
        peak_zero=peak_zero,
        max_diff=max_diff,
        mode="true",
    )
    return estimate_error_model(measure, **kwargs)
