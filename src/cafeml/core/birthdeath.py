"""
Transition probabilities of the linear birth-death process.

For a family of size ``s`` at the start of a branch of length ``t``, the
probability of size ``c`` at its end is

    P(s -> c) = sum_j C(s, j) C(s + c - j - 1, s - 1)
                      alpha^(s - j) beta^(c - j) (1 - alpha - beta)^j

with ``alpha`` and ``beta`` depending on the birth rate lambda, the death
rate mu and ``t``. When no death rate is given the process is the
lambda-only model with ``mu = lambda``.
"""

from typing import Optional

import numpy as np
from scipy.special import gammaln, xlogy


def birth_death_coefficients(branch_length: float, lam: float, mu: float) -> tuple[float, float]:
    """
    Compute (alpha, beta) for one branch.

    Parameters
    ----------
    branch_length : float
        Branch length t
    lam : float
        Birth rate
    mu : float
        Death rate

    Returns
    -------
    tuple[float, float]
        alpha (loss coefficient) and beta (gain coefficient)
    """
    if abs(lam - mu) < 1e-12:
        lt = lam * branch_length
        alpha = lt / (1.0 + lt)
        return alpha, alpha

    growth = np.exp((lam - mu) * branch_length)
    denominator = lam * growth - mu
    alpha = mu * (growth - 1.0) / denominator
    beta = lam * (growth - 1.0) / denominator
    return float(alpha), float(beta)


def transition_matrix(
    branch_length: float,
    lam: float,
    mu: Optional[float],
    max_size: int,
) -> np.ndarray:
    """
    Birth-death transition probabilities between family sizes.

    Parameters
    ----------
    branch_length : float
        Branch length t
    lam : float
        Birth rate
    mu : float or None
        Death rate; None means equal to ``lam``
    max_size : int
        Largest family size considered

    Returns
    -------
    np.ndarray, shape (max_size + 1, max_size + 1)
        ``P[s, c]``; rows are parent sizes, columns child sizes. Rows are not
        renormalized after truncation at ``max_size``.
    """
    if mu is None:
        mu = lam
    n = max_size + 1
    P = np.zeros((n, n))
    P[0, 0] = 1.0  # extinct families stay extinct
    if n == 1:
        return P

    alpha, beta = birth_death_coefficients(branch_length, lam, mu)
    gamma = 1.0 - alpha - beta

    s = np.arange(1, n)[:, None, None]
    c = np.arange(n)[None, :, None]
    j = np.arange(n)[None, None, :]
    valid = (j <= s) & (j <= c)

    with np.errstate(divide='ignore', invalid='ignore'):
        log_choose = (
            gammaln(s + 1) - gammaln(j + 1) - gammaln(np.maximum(s - j, 0) + 1)
            + gammaln(np.maximum(s + c - j, 1)) - gammaln(s) - gammaln(np.maximum(c - j, 0) + 1)
        )
        log_terms = (
            log_choose
            + xlogy(s - j, alpha)
            + xlogy(c - j, beta)
            + xlogy(j, abs(gamma))
        )
        terms = np.where(valid, np.exp(np.where(valid, log_terms, -np.inf)), 0.0)

    if gamma < 0:
        terms = terms * np.where(j % 2 == 1, -1.0, 1.0)

    P[1:, :] = np.clip(terms.sum(axis=2), 0.0, 1.0)
    return P


class BirthDeathCache:
    """
    Memoized transition matrices keyed by branch length and rates.

    The cache must be cleared whenever the rate assignment or the family
    size range changes.
    """

    def __init__(self):
        self._matrices: dict[tuple, np.ndarray] = {}
        self.hits = 0
        self.misses = 0

    def get(
        self,
        branch_length: float,
        lam: float,
        mu: Optional[float],
        max_size: int,
    ) -> np.ndarray:
        """Return (and cache) the transition matrix for one branch."""
        key = (float(branch_length), float(lam), None if mu is None else float(mu), int(max_size))
        matrix = self._matrices.get(key)
        if matrix is None:
            self.misses += 1
            matrix = transition_matrix(branch_length, lam, mu, max_size)
            self._matrices[key] = matrix
        else:
            self.hits += 1
        return matrix

    def clear(self) -> None:
        """Drop every cached matrix."""
        self._matrices.clear()

    def __len__(self) -> int:
        return len(self._matrices)
