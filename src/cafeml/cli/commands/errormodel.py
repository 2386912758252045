"""Measurement error model command implementation."""

import sys
from pathlib import Path
from typing import Optional

import numpy as np

from cafeml.analysis.error_model import (
    ErrorMatrix,
    estimate_error_double_measure,
    estimate_error_true_measure,
)

from .common import format_result, write_output


def run_errormodel(
    file1: Path,
    file2: Path,
    truth: bool,
    max_diff: int,
    symmetric: bool,
    peak_zero: bool,
    model_file: Optional[Path],
    seed: Optional[int],
    output: Optional[Path],
    format: str,
    verbose: bool,
    quiet: bool,
):
    """Estimate a measurement error model from two count files."""
    if not quiet:
        print("Measurement error model estimation", file=sys.stderr)
        if truth:
            print(f"Measured: {file1}", file=sys.stderr)
            print(f"Truth:    {file2}", file=sys.stderr)
        else:
            print(f"Measure 1: {file1}", file=sys.stderr)
            print(f"Measure 2: {file2}", file=sys.stderr)
        print(f"Model: {'symmetric' if symmetric else 'asymmetric'}, max diff {max_diff}"
              f"{', peak at zero' if peak_zero else ''}", file=sys.stderr)
        print(file=sys.stderr)

    estimate = estimate_error_true_measure if truth else estimate_error_double_measure
    log = (lambda line: print(line, file=sys.stderr)) if not quiet else (lambda line: None)
    try:
        result = estimate(
            file1,
            file2,
            symmetric=symmetric,
            max_diff=max_diff,
            peak_zero=peak_zero,
            rng=np.random.default_rng(seed),
            log=log,
            verbose=verbose,
        )
    except Exception as e:
        print(f"Error: Error model estimation failed", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)

    if model_file is not None:
        ErrorMatrix(
            result.error_matrix,
            result.max_family_size,
            -result.max_diff,
            result.max_diff,
        ).to_file(model_file)
        if not quiet:
            print(f"Error model written to {model_file}", file=sys.stderr)

    write_output(format_result(result, format), output)
