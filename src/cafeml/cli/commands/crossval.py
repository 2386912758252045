"""Cross-validation command implementations."""

import json
import sys
from pathlib import Path
from typing import Optional

from cafeml.analysis.crossval import (
    cross_validate_by_family,
    cross_validate_by_species,
    validate_species,
)

from .common import format_result, load_context, set_rates, write_output


def _prepare(
    tree: Path,
    families: Path,
    k: int,
    lambda_only: bool,
    check_convergence: bool,
    log: Optional[Path],
    seed: Optional[int],
    verbose: bool,
    quiet: bool,
):
    context = load_context(
        tree, families, seed, log, verbose, quiet, check_convergence=check_convergence
    )
    set_rates(context, None, None, None, k, False, False, None, lambda_only, search=True)
    return context


def run_cvfamily(
    tree: Path,
    families: Path,
    fold: int,
    k: int,
    lambda_only: bool,
    check_convergence: bool,
    log: Optional[Path],
    seed: Optional[int],
    output: Optional[Path],
    format: str,
    verbose: bool,
    quiet: bool,
):
    """Run k-fold cross-validation over families."""
    if not quiet:
        print(f"Cross-validation by family ({fold} folds)", file=sys.stderr)
        print(f"Tree:     {tree}", file=sys.stderr)
        print(f"Families: {families}", file=sys.stderr)
        print(file=sys.stderr)

    context = _prepare(tree, families, k, lambda_only, check_convergence, log, seed, verbose, quiet)
    try:
        result = cross_validate_by_family(context, fold)
    except Exception as e:
        print(f"Error: Cross-validation failed", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        context.close()

    write_output(format_result(result, format), output)


def run_cvspecies(
    tree: Path,
    families: Path,
    validation_file: Optional[Path],
    k: int,
    lambda_only: bool,
    check_convergence: bool,
    log: Optional[Path],
    seed: Optional[int],
    output: Optional[Path],
    format: str,
    verbose: bool,
    quiet: bool,
):
    """Run leave-one-species-out cross-validation, or score one validation file."""
    if not quiet:
        print("Cross-validation by species", file=sys.stderr)
        print(f"Tree:     {tree}", file=sys.stderr)
        print(f"Families: {families}", file=sys.stderr)
        if validation_file is not None:
            print(f"Validation: {validation_file}", file=sys.stderr)
        print(file=sys.stderr)

    context = _prepare(tree, families, k, lambda_only, check_convergence, log, seed, verbose, quiet)
    try:
        if validation_file is not None:
            mse, mae = validate_species(context, validation_file)
            if format == "json":
                output_text = json.dumps({"mse": mse, "mae": mae}, indent=2)
            else:
                output_text = f"MSE {mse:f}\nMAE {mae:f}"
        else:
            output_text = format_result(cross_validate_by_species(context), format)
    except Exception as e:
        print(f"Error: Cross-validation failed", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        context.close()

    write_output(output_text, output)
