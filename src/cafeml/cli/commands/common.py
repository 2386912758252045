"""Shared helpers of the command implementations."""

import sys
from pathlib import Path
from typing import Optional

from cafeml.context import AnalysisContext
from cafeml.exceptions import ConfigurationError, ParameterCountError
from cafeml.models.rates import configure_rates


def parse_values(text: Optional[str], name: str) -> Optional[list[float]]:
    """Parse a comma-separated list of numbers given on the command line."""
    if text is None:
        return None
    try:
        return [float(v) for v in text.split(',') if v.strip()]
    except ValueError:
        print(f"Error: {name} must be a comma-separated list of numbers: {text}", file=sys.stderr)
        sys.exit(1)


def load_context(
    tree: Path,
    families: Path,
    seed: Optional[int],
    log: Optional[Path],
    verbose: bool,
    quiet: bool,
    check_convergence: bool = False,
    empirical_prior: bool = False,
) -> AnalysisContext:
    """Create an analysis context or exit with an error message."""
    context = AnalysisContext(
        seed=seed, verbose=verbose, quiet=quiet, check_convergence=check_convergence,
        log_stream=sys.stderr,
    )
    if log is not None:
        try:
            context.set_log_file(log)
        except OSError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    try:
        context.load_tree(tree)
    except Exception as e:
        print(f"Error: Could not load tree from {tree}", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        context.load_family(families)
    except Exception as e:
        print(f"Error: Could not load family data from {families}", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)

    if empirical_prior:
        context.use_empirical_prior()
    if verbose:
        context.log_summary()
    return context


def set_rates(
    context: AnalysisContext,
    lambdas: Optional[str],
    mus: Optional[str],
    weights: Optional[str],
    k: int,
    fix_cluster0: bool,
    eqbg: bool,
    rate_tree: Optional[Path],
    lambda_only: bool,
    search: bool,
):
    """Configure the rate model or exit with an error message."""
    try:
        return configure_rates(
            context,
            lambdas=parse_values(lambdas, "lambda"),
            mus=parse_values(mus, "mu"),
            weights=parse_values(weights, "p"),
            k=k,
            fix_cluster0=fix_cluster0,
            eqbg=eqbg,
            rate_tree=rate_tree,
            lambda_only=lambda_only,
            search=search,
        )
    except ParameterCountError as e:
        print(f"Error: Number of parameters not correct", file=sys.stderr)
        print(f"Details: {e} (given {e.supplied}, required {e.required})", file=sys.stderr)
        sys.exit(1)
    except (ConfigurationError, ValueError, OSError) as e:
        print(f"Error: Could not set the rate model", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)


def write_output(output_text: str, output: Optional[Path]) -> None:
    if output:
        with open(output, 'w') as f:
            f.write(output_text)
    else:
        print(output_text)


def format_result(result, format: str) -> str:
    """
    Render a result object as text, JSON or TSV.

    TSV output keeps the row index only when it is named (the observed
    sizes of an error matrix).
    """
    if format == "json":
        return result.to_json()
    if format == "tsv":
        df = result.to_dataframe()
        return df.to_csv(sep='\t', index=df.index.name is not None).rstrip('\n')
    return result.summary()
