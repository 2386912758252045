"""
Multi-start Nelder-Mead minimization.

The derivative-free minimizer itself is scipy's Nelder-Mead. This module adds
the restart policy: the minimizer is started from fresh random points until
two accepted runs agree on the best score, or until the restart budget is
spent. Runs that stop because they used up their iteration budget still
count as attempts but are never trusted as the best result. Every other run
is polished first: the simplex is rebuilt around its end point and the
minimizer restarted until the score stops improving. A collapsed simplex
stalls short of an optimum on the edge of the feasible region.
"""

import warnings
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np
from scipy.optimize import minimize

Objective = Callable[[np.ndarray], float]

# polishing runs tighten both tolerances by this factor
POLISH_SCALE = 1e-3
MAX_POLISH_ROUNDS = 50


@dataclass
class MinimizerResult:
    """
    Outcome of a single minimizer run.

    Attributes
    ----------
    x : np.ndarray
        Best point found
    fun : float
        Objective value at ``x``
    n_iterations : int
        Number of iterations performed
    hit_iteration_limit : bool
        True if the run stopped because it exhausted its iteration budget
    """

    x: np.ndarray
    fun: float
    n_iterations: int
    hit_iteration_limit: bool


def nelder_mead(
    objective: Objective,
    x0: np.ndarray,
    tolx: float = 1e-6,
    tolf: float = 1e-6,
    max_iterations: Optional[int] = None,
    initial_simplex: Optional[np.ndarray] = None,
) -> MinimizerResult:
    """
    Minimize ``objective`` from ``x0`` with the Nelder-Mead simplex method.

    Infeasible points may be signalled by returning ``inf``; NaN values are
    treated the same way.

    Parameters
    ----------
    objective : callable
        Function of a parameter vector returning a score to minimize
    x0 : np.ndarray
        Starting point
    tolx : float
        Convergence tolerance on the simplex size
    tolf : float
        Convergence tolerance on the objective spread
    max_iterations : int, optional
        Iteration budget (default ``200 * len(x0)``)
    initial_simplex : np.ndarray, optional
        ``(n + 1, n)`` array of starting vertices (default: scipy's simplex
        around ``x0``)

    Returns
    -------
    MinimizerResult
        Best point and how the run ended
    """
    x0 = np.asarray(x0, dtype=float)
    if max_iterations is None:
        max_iterations = 200 * max(len(x0), 1)

    def safe_objective(x: np.ndarray) -> float:
        value = objective(x)
        return np.inf if np.isnan(value) else float(value)

    options = {
        'xatol': tolx,
        'fatol': tolf,
        'maxiter': max_iterations,
        'maxfev': max_iterations * (len(x0) + 1),
        'disp': False,
    }
    if initial_simplex is not None:
        options['initial_simplex'] = initial_simplex

    with np.errstate(invalid='ignore', over='ignore'):
        result = minimize(
            safe_objective,
            x0,
            method='Nelder-Mead',
            options=options,
        )

    return MinimizerResult(
        x=np.asarray(result.x, dtype=float),
        fun=float(result.fun),
        n_iterations=int(result.nit),
        hit_iteration_limit=result.status in (1, 2),
    )


def unimodal_start(
    n: int,
    center: int,
    symmetric: bool,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Random starting point peaked at ``center``.

    ``n`` values are drawn uniformly from ``[0, 1/n]`` and sorted in
    descending order. Symmetric models use them as is (index 0 is the
    center). Asymmetric models put the largest value at ``center`` and the
    following ones alternately to its left and right.

    Parameters
    ----------
    n : int
        Number of parameters
    center : int
        Index of the zero-offset parameter (asymmetric models)
    symmetric : bool
        Symmetric model layout
    rng : np.random.Generator
        Random generator

    Returns
    -------
    np.ndarray
        Starting point of length ``n``
    """
    values = np.sort(rng.uniform(0.0, 1.0 / n, size=n))[::-1]
    if symmetric:
        return values.copy()

    start = np.zeros(n)
    start[center] = values[0]
    next_value = 1
    for step in range(1, n):
        for index in (center - step, center + step):
            if 0 <= index < n and next_value < n:
                start[index] = values[next_value]
                next_value += 1
    return start


def restart_simplex(
    objective: Objective,
    x: np.ndarray,
    relative_step: float = 0.05,
    zero_step: float = 0.00025,
    max_halvings: int = 60,
) -> np.ndarray:
    """
    Fresh simplex around ``x`` with feasible vertices where possible.

    Vertex ``i`` moves coordinate ``i`` by 5% of its value (or by
    ``zero_step`` if it is zero), first up and then down. If both moves give
    an infeasible score the step is halved and tried again, so near the edge
    of the feasible region the simplex shrinks to the room available there.

    Parameters
    ----------
    objective : callable
        Score used to test feasibility (``inf`` or NaN is infeasible)
    x : np.ndarray
        Center vertex
    relative_step : float
        Initial step as a fraction of each coordinate
    zero_step : float
        Initial step for zero coordinates
    max_halvings : int
        Halvings tried per coordinate before the last step is kept

    Returns
    -------
    np.ndarray
        ``(n + 1, n)`` simplex whose first vertex is ``x``
    """
    x = np.asarray(x, dtype=float)
    n = len(x)
    simplex = np.tile(x, (n + 1, 1))

    for i in range(n):
        step = relative_step * abs(x[i]) if x[i] != 0 else zero_step
        for _ in range(max_halvings):
            found = False
            for signed in (step, -step):
                vertex = x.copy()
                vertex[i] += signed
                with np.errstate(invalid='ignore', over='ignore'):
                    if np.isfinite(objective(vertex)):
                        step = signed
                        found = True
                        break
            if found:
                break
            step /= 2.0
        simplex[i + 1, i] += step
    return simplex


def polish(
    objective: Objective,
    result: MinimizerResult,
    tolx: float,
    tolf: float,
    max_iterations: Optional[int] = None,
    max_rounds: int = MAX_POLISH_ROUNDS,
) -> MinimizerResult:
    """
    Restart the minimizer around a finished run until the score settles.

    Each round starts from a :func:`restart_simplex` around the current best
    point with both tolerances scaled by ``POLISH_SCALE``. Rounds stop when
    one improves the score by no more than the scaled ``tolf``.

    Parameters
    ----------
    objective : callable
        Score to minimize
    result : MinimizerResult
        Run to polish; returned unchanged if it hit its iteration limit or
        ended on an infeasible point
    tolx, tolf : float
        Tolerances of the original run
    max_iterations : int, optional
        Iteration budget of each round
    max_rounds : int
        Maximum number of restarts

    Returns
    -------
    MinimizerResult
        Polished run; ``n_iterations`` includes the polishing rounds
    """
    if result.hit_iteration_limit or not np.isfinite(result.fun):
        return result

    tolx = tolx * POLISH_SCALE
    tolf = tolf * POLISH_SCALE
    best = result
    iterations = result.n_iterations
    for _ in range(max_rounds):
        restart = nelder_mead(
            objective,
            best.x,
            tolx,
            tolf,
            max_iterations,
            initial_simplex=restart_simplex(objective, best.x),
        )
        iterations += restart.n_iterations
        improvement = best.fun - restart.fun
        if improvement > 0:
            best = restart
        if not improvement > tolf:
            break

    return MinimizerResult(
        x=best.x,
        fun=best.fun,
        n_iterations=iterations,
        hit_iteration_limit=False,
    )


@dataclass
class OptimizationRun:
    """
    Result of a multi-start search.

    Attributes
    ----------
    best_score : float
        Lowest objective value among accepted runs (best effort if none was
        accepted)
    best_parameters : np.ndarray
        Parameters achieving ``best_score``
    attempts : int
        Number of minimizer runs performed
    accepted_runs : int
        Runs that finished within their iteration budget
    converged : bool
        Whether two accepted runs agreed within the score tolerance
    scores : list[float]
        Final score of every run, in order
    """

    best_score: float
    best_parameters: np.ndarray
    attempts: int
    accepted_runs: int
    converged: bool
    scores: list[float] = field(default_factory=list)


class OptimizationDriver:
    """
    Restart a minimizer from random points until the best score is stable.

    Parameters
    ----------
    objective : callable
        Score to minimize
    start : callable
        Zero-argument function returning a fresh starting point
    tolx, tolf : float
        Minimizer tolerances; ``tolf`` is also the agreement tolerance
        between runs
    max_iterations : int, optional
        Iteration budget of each run
    max_runs : int
        Maximum number of runs
    log : callable, optional
        Line logger (default ``print``)
    run_label : str, optional
        If given, the iteration count and score of every run are logged
        under this heading

    Examples
    --------
    >>> rng = np.random.default_rng(1)
    >>> driver = OptimizationDriver(lambda x: np.sum((x - 1) ** 2),
    ...                             lambda: rng.uniform(size=2), tolx=1e-8, tolf=1e-8)
    >>> run = driver.run()
    >>> run.converged
    True
    """

    def __init__(
        self,
        objective: Objective,
        start: Callable[[], np.ndarray],
        tolx: float = 1e-6,
        tolf: float = 1e-6,
        max_iterations: Optional[int] = None,
        max_runs: int = 100,
        log: Optional[Callable[[str], None]] = None,
        run_label: Optional[str] = None,
    ):
        if max_runs < 1:
            raise ValueError(f"max_runs must be at least 1, got {max_runs}")
        self.objective = objective
        self.start = start
        self.tolx = tolx
        self.tolf = tolf
        self.max_iterations = max_iterations
        self.max_runs = max_runs
        self.log = log if log is not None else print
        self.run_label = run_label

    def run(self) -> OptimizationRun:
        """Run the restart loop and return the best result found."""
        best: Optional[MinimizerResult] = None
        fallback: Optional[MinimizerResult] = None
        last: Optional[MinimizerResult] = None
        accepted = 0
        converged = False
        scores = []

        attempts = 0
        for attempts in range(1, self.max_runs + 1):
            result = nelder_mead(
                self.objective, self.start(), self.tolx, self.tolf, self.max_iterations
            )
            result = polish(
                self.objective, result, self.tolx, self.tolf, self.max_iterations
            )
            last = result
            scores.append(result.fun)
            if self.run_label:
                self.log("")
                self.log(f"{self.run_label}: {result.n_iterations}")
                self.log(f"Score: {result.fun:f}")

            if result.hit_iteration_limit:
                if np.isfinite(result.fun) and (fallback is None or result.fun < fallback.fun):
                    fallback = result
                continue

            if accepted > 0 and np.isfinite(result.fun) and abs(best.fun - result.fun) < self.tolf:
                converged = True
            accepted += 1
            if best is None or result.fun < best.fun:
                best = result
            if converged:
                break

        if best is None or (not np.isfinite(best.fun) and fallback is not None):
            best = fallback if fallback is not None else last

        if converged:
            self.log(f"score converged in {accepted} runs.")
        elif self.max_runs > 1:
            self.log(f"score failed to converge in {self.max_runs} runs.")
            self.log(f"best score: {best.fun:f}")
            warnings.warn(
                f"Optimization did not converge in {self.max_runs} runs; "
                f"reporting the best score found ({best.fun:f})",
                UserWarning,
            )

        return OptimizationRun(
            best_score=best.fun,
            best_parameters=best.x.copy(),
            attempts=attempts,
            accepted_runs=accepted,
            converged=converged,
            scores=scores,
        )
