"""Rate estimation command implementation."""

import json
import sys
from pathlib import Path
from typing import Optional

from cafeml.exceptions import ConfigurationError
from cafeml.optimize.search import score

from .common import format_result, load_context, set_rates, write_output


def run_lambdamu(
    tree: Path,
    families: Path,
    lambdas: Optional[str],
    mus: Optional[str],
    weights: Optional[str],
    k: int,
    fix_cluster0: bool,
    eqbg: bool,
    rate_tree: Optional[Path],
    search: bool,
    lambda_only: bool,
    check_convergence: bool,
    empirical_prior: bool,
    log: Optional[Path],
    seed: Optional[int],
    output: Optional[Path],
    format: str,
    verbose: bool,
    quiet: bool,
):
    """Set or search birth-death rates, then report the score."""
    if not search and lambdas is None:
        print("Error: Give rates with -l (and -m) or use --search", file=sys.stderr)
        sys.exit(1)

    context = load_context(
        tree, families, seed, log, verbose, quiet,
        check_convergence=check_convergence, empirical_prior=empirical_prior,
    )

    if not quiet:
        mode = "lambda" if lambda_only else "lambda/mu"
        print(f"Birth-death rate {'search' if search else 'scoring'} ({mode})", file=sys.stderr)
        print(f"Tree:     {tree}", file=sys.stderr)
        print(f"Families: {families} ({context.family.n_families} families)", file=sys.stderr)
        print(file=sys.stderr)

    result = set_rates(
        context, lambdas, mus, weights, k, fix_cluster0, eqbg, rate_tree, lambda_only, search
    )

    try:
        if result is None:
            value = score(context)
            output_text = _format_score(context, value, format)
        else:
            output_text = format_result(result, format)
    except ConfigurationError as e:
        print(f"Error: Analysis failed", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        context.close()

    write_output(output_text, output)


def _format_score(context, value: float, format: str) -> str:
    """Format the score of user-given rates."""
    layout = context.layout
    lambdas, mus, _ = layout.unpack(context.parameters)
    if format == "json":
        return json.dumps({
            'lambdas': lambdas.tolist(),
            'mus': None if layout.lambda_only else mus.tolist(),
            'weights': None if context.k_weights is None else context.k_weights.tolist(),
            'log_likelihood': float(value),
        }, indent=2)

    lines = [f"Lambda : {' '.join(f'{v:.10f}' for v in lambdas)}"]
    if not layout.lambda_only:
        lines.append(f"Mu : {' '.join(f'{v:.10f}' for v in mus)}")
    if context.k_weights is not None:
        lines.append(f"p : {' '.join(f'{w:f}' for w in context.k_weights)}")
    lines.append(f"Score: {value:f}")
    if format == "tsv":
        return "log_likelihood\n" + f"{value:f}"
    return "\n".join(lines)
