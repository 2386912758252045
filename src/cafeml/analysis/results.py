"""
Result objects for rate searches, error model estimation and cross-validation.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd


def _write_json(result_dict: Dict[str, Any], filepath: Optional[str], indent: int) -> str:
    json_str = json.dumps(result_dict, indent=indent)
    if filepath:
        with open(filepath, 'w') as f:
            f.write(json_str)
    return json_str


def _fmt_values(values: Optional[List[float]], fmt: str = ".6f") -> str:
    if values is None:
        return "-"
    return ' '.join(f"{v:{fmt}}" for v in values)


@dataclass
class RateSearchResult:
    """
    Birth and death rates estimated by maximum likelihood.

    Attributes
    ----------
    lambdas : list[float]
        Birth rate region of the best parameter vector
    mus : list[float] or None
        Death rate region (None in lambda-only mode)
    weights : list[float] or None
        All K mixture weights (None without clusters)
    log_likelihood : float
        Log-likelihood of the family data at the estimate
    n_parameters : int
        Number of free parameters
    n_clusters : int
        Number of mixture clusters (0 for none)
    converged : bool
        Whether repeated starts agreed on the score
    attempts : int
        Number of optimizer runs
    n_families : int
        Number of families in the data
    membership : np.ndarray, optional
        Posterior cluster membership of each family
    """

    lambdas: List[float]
    mus: Optional[List[float]]
    weights: Optional[List[float]]
    log_likelihood: float
    n_parameters: int
    n_clusters: int = 0
    converged: bool = False
    attempts: int = 1
    n_families: int = 0
    membership: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def score(self) -> float:
        """Negative log-likelihood, the value minimized by the search."""
        return -self.log_likelihood

    def summary(self) -> str:
        """
        Generate a formatted summary of the rate estimates.

        Returns
        -------
        str
            Multi-line formatted summary
        """
        lines = []
        lines.append("=" * 80)
        lines.append("Birth-death rate estimates")
        lines.append("=" * 80)
        lines.append("")
        lines.append(f"Families: {self.n_families}")
        lines.append(f"Free parameters: {self.n_parameters}")
        if self.n_clusters:
            lines.append(f"Clusters: {self.n_clusters}")
        lines.append("")
        lines.append(f"Lambda : {_fmt_values(self.lambdas, '.10f')}")
        if self.mus is not None:
            lines.append(f"Mu : {_fmt_values(self.mus, '.10f')}")
        if self.weights is not None:
            lines.append(f"p : {_fmt_values(self.weights)}")
        lines.append(f"Log-likelihood: {self.log_likelihood:.6f}")
        lines.append("")
        if self.attempts > 1:
            status = "converged" if self.converged else "did not converge"
            lines.append(f"Search {status} after {self.attempts} runs")
        lines.append("=" * 80)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lambdas': [float(v) for v in self.lambdas],
            'mus': None if self.mus is None else [float(v) for v in self.mus],
            'weights': None if self.weights is None else [float(v) for v in self.weights],
            'log_likelihood': float(self.log_likelihood),
            'n_parameters': int(self.n_parameters),
            'n_clusters': int(self.n_clusters),
            'converged': bool(self.converged),
            'attempts': int(self.attempts),
            'n_families': int(self.n_families),
        }

    def to_json(self, filepath: Optional[str] = None, indent: int = 2) -> str:
        """
        Export results as JSON.

        Parameters
        ----------
        filepath : str, optional
            If provided, write JSON to this file
        indent : int, default=2
            Indentation level for pretty printing

        Returns
        -------
        str
            JSON string representation
        """
        return _write_json(self.to_dict(), filepath, indent)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per rate parameter (kind, index, value)."""
        rows = [{'parameter': 'lambda', 'index': i, 'value': v} for i, v in enumerate(self.lambdas)]
        if self.mus is not None:
            rows += [{'parameter': 'mu', 'index': i, 'value': v} for i, v in enumerate(self.mus)]
        if self.weights is not None:
            rows += [{'parameter': 'p', 'index': i, 'value': v} for i, v in enumerate(self.weights)]
        return pd.DataFrame(rows, columns=['parameter', 'index', 'value'])

    def __str__(self) -> str:
        return self.summary()


@dataclass
class ErrorModelResult:
    """
    Estimated measurement error model.

    Attributes
    ----------
    mode : str
        ``"double"`` (two noisy measurements) or ``"true"`` (measurement vs truth)
    symmetric : bool
        Symmetric error distribution around the true size
    peak_zero : bool
        Error probabilities constrained to decrease away from offset 0
    max_diff : int
        Half-width D of the error band
    max_family_size : int
        Largest family size in the measurement files
    estimates : list[float]
        Band probabilities (D + 1 values if symmetric, else 2D + 1)
    epsilon : float
        Probability of every error outside the band
    log_likelihood : float
        Log-likelihood of the observed pairs at the estimate
    converged : bool
        Whether two accepted runs agreed within tolerance
    attempts : int
        Number of optimizer runs
    error_matrix : np.ndarray
        Column-stochastic matrix ``P(observed = i | true = j)``
    """

    mode: str
    symmetric: bool
    peak_zero: bool
    max_diff: int
    max_family_size: int
    estimates: List[float]
    epsilon: float
    log_likelihood: float
    converged: bool
    attempts: int
    error_matrix: np.ndarray = field(repr=False)

    @property
    def offsets(self) -> List[int]:
        """Offset (observed - true) of each estimate."""
        if self.symmetric:
            return list(range(0, self.max_diff + 1))
        return list(range(-self.max_diff, self.max_diff + 1))

    def summary(self) -> str:
        lines = []
        lines.append("=" * 80)
        lines.append("Measurement error model")
        lines.append("=" * 80)
        lines.append("")
        measure = "two measurements" if self.mode == "double" else "measurement vs truth"
        shape = "symmetric" if self.symmetric else "asymmetric"
        lines.append(f"Data: {measure}, max family size {self.max_family_size}")
        lines.append(f"Model: {shape}, max diff {self.max_diff}"
                     + (", peak at zero" if self.peak_zero else ""))
        lines.append("")
        lines.append("Estimates:")
        for offset, value in zip(self.offsets, self.estimates):
            label = f"+/-{offset}" if self.symmetric and offset else f"{offset:+d}" if offset else "0"
            lines.append(f"  diff {label:>4} = {value:.6f}")
        lines.append(f"  epsilon   = {self.epsilon:.6g}")
        lines.append("")
        lines.append(f"Log-likelihood: {self.log_likelihood:.6f}")
        if self.converged:
            lines.append(f"Score converged in {self.attempts} runs")
        else:
            lines.append(f"WARNING: score failed to converge in {self.attempts} runs")
        lines.append("=" * 80)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode,
            'symmetric': bool(self.symmetric),
            'peak_zero': bool(self.peak_zero),
            'max_diff': int(self.max_diff),
            'max_family_size': int(self.max_family_size),
            'estimates': [float(v) for v in self.estimates],
            'epsilon': float(self.epsilon),
            'log_likelihood': float(self.log_likelihood),
            'converged': bool(self.converged),
            'attempts': int(self.attempts),
        }

    def to_json(self, filepath: Optional[str] = None, indent: int = 2) -> str:
        """Export results as JSON (the error matrix is omitted)."""
        return _write_json(self.to_dict(), filepath, indent)

    def to_dataframe(self) -> pd.DataFrame:
        """Error matrix with true sizes as columns and observed sizes as rows."""
        sizes = range(self.max_family_size + 1)
        return pd.DataFrame(
            self.error_matrix,
            index=pd.Index(sizes, name='observed'),
            columns=pd.Index(sizes, name='true'),
        )

    def __str__(self) -> str:
        return self.summary()


@dataclass
class CrossValidationResult:
    """
    Prediction error of a cross-validation run.

    Attributes
    ----------
    method : str
        ``"family"`` (k-fold over families) or ``"species"`` (leave one
        species out)
    labels : list[str]
        Fold numbers or species names
    mse : list[float]
        Mean squared error of each fold
    mae : list[float]
        Mean absolute error of each fold
    """

    method: str
    labels: List[str]
    mse: List[float]
    mae: List[float]

    @property
    def mean_mse(self) -> float:
        return float(np.mean(self.mse)) if self.mse else float('nan')

    @property
    def mean_mae(self) -> float:
        return float(np.mean(self.mae)) if self.mae else float('nan')

    def summary(self) -> str:
        lines = []
        lines.append("=" * 80)
        title = "folds" if self.method == "family" else "species"
        lines.append(f"Cross-validation by {self.method}")
        lines.append("=" * 80)
        lines.append("")
        lines.append(f"{'':<20} {'MSE':>12} {'MAE':>12}")
        for label, mse, mae in zip(self.labels, self.mse, self.mae):
            lines.append(f"{label:<20} {mse:>12.6f} {mae:>12.6f}")
        lines.append("")
        lines.append(f"{'all ' + title:<20} {self.mean_mse:>12.6f} {self.mean_mae:>12.6f}")
        lines.append("=" * 80)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'labels': list(self.labels),
            'mse': [float(v) for v in self.mse],
            'mae': [float(v) for v in self.mae],
            'mean_mse': self.mean_mse,
            'mean_mae': self.mean_mae,
        }

    def to_json(self, filepath: Optional[str] = None, indent: int = 2) -> str:
        """Export results as JSON."""
        return _write_json(self.to_dict(), filepath, indent)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per fold or species."""
        return pd.DataFrame({'label': self.labels, 'mse': self.mse, 'mae': self.mae})

    def __str__(self) -> str:
        return self.summary()
