"""Main CLI application for cafeml."""

import typer
from pathlib import Path
from typing import Optional
from enum import Enum

app = typer.Typer(
    name="cafeml",
    help="Birth-death rate estimation for gene family size evolution",
    no_args_is_help=True,
)


class OutputFormat(str, Enum):
    """Output format."""
    TEXT = "text"
    JSON = "json"
    TSV = "tsv"


@app.command()
def lambdamu(
    tree: Path = typer.Option(
        ...,
        "--tree", "-t",
        help="Species tree file (Newick format with branch lengths)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    families: Path = typer.Option(
        ...,
        "--families", "-i",
        help="Tab-separated gene family size file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    lambdas: Optional[str] = typer.Option(
        None,
        "--lambda", "-l",
        help="Comma-separated birth rates (ignored with --search)",
    ),
    mus: Optional[str] = typer.Option(
        None,
        "--mu", "-m",
        help="Comma-separated death rates (ignored with --search)",
    ),
    weights: Optional[str] = typer.Option(
        None,
        "--weights", "-p",
        help="Comma-separated mixture weights of the first K-1 clusters",
    ),
    k: int = typer.Option(
        0,
        "--clusters", "-k",
        help="Number of rate clusters (0 for no mixture)",
        min=0,
    ),
    fix_cluster0: bool = typer.Option(
        False,
        "--fix-cluster0",
        help="Fix the rates of the first cluster to zero",
    ),
    eqbg: bool = typer.Option(
        False,
        "--eqbg",
        help="Background class (0) has lambda equal to mu",
    ),
    rate_tree: Optional[Path] = typer.Option(
        None,
        "--rate-tree",
        help="Tree with the same topology whose node labels are rate classes",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    search: bool = typer.Option(
        False,
        "--search", "-s",
        help="Search for maximum likelihood rates",
    ),
    lambda_only: bool = typer.Option(
        False,
        "--lambda-only",
        help="Use the single-rate model (mu equal to lambda)",
    ),
    check_convergence: bool = typer.Option(
        False,
        "--checkconv",
        help="Repeat the search from several random starts until scores agree",
    ),
    empirical_prior: bool = typer.Option(
        False,
        "--empirical-prior",
        help="Use a Poisson prior over root sizes fitted to the data",
    ),
    log: Optional[Path] = typer.Option(
        None,
        "--log",
        help="Append log lines to this file",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed of the random starts",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Log every likelihood evaluation",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Minimal output",
    ),
):
    """
    Score given birth-death rates or search for the best ones.

    Example:
        cafeml lambdamu -t tree.nwk -i families.tsv --search
        cafeml lambdamu -t tree.nwk -i families.tsv -l 0.01 -m 0.02
        cafeml lambdamu -t tree.nwk -i families.tsv --search -k 2 --rate-tree classes.nwk
    """
    from .commands.lambdamu import run_lambdamu

    run_lambdamu(
        tree=tree,
        families=families,
        lambdas=lambdas,
        mus=mus,
        weights=weights,
        k=k,
        fix_cluster0=fix_cluster0,
        eqbg=eqbg,
        rate_tree=rate_tree,
        search=search,
        lambda_only=lambda_only,
        check_convergence=check_convergence,
        empirical_prior=empirical_prior,
        log=log,
        seed=seed,
        output=output,
        format=format.value,
        verbose=verbose,
        quiet=quiet,
    )


@app.command()
def errormodel(
    file1: Path = typer.Option(
        ...,
        "--measure1",
        help="Family size file of the first measurement (or the measured sizes with --truth)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    file2: Path = typer.Option(
        ...,
        "--measure2",
        help="Family size file of the second measurement (or the true sizes with --truth)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    truth: bool = typer.Option(
        False,
        "--truth",
        help="The second file holds the true family sizes",
    ),
    max_diff: int = typer.Option(
        2,
        "--max-diff", "-d",
        help="Largest difference between observed and true size with its own parameter",
        min=0,
    ),
    symmetric: bool = typer.Option(
        True,
        "--symmetric/--asymmetric",
        help="Share parameters between over- and under-counts",
    ),
    peak_zero: bool = typer.Option(
        True,
        "--peak-zero/--no-peak-zero",
        help="Require the error distribution to peak at zero difference",
    ),
    model_file: Optional[Path] = typer.Option(
        None,
        "--model-file",
        help="Write the error model to this file",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed of the random starts",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Log every likelihood evaluation",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Minimal output",
    ),
):
    """
    Estimate a measurement error model from paired family size files.

    Example:
        cafeml errormodel --measure1 run1.tsv --measure2 run2.tsv --max-diff 2
        cafeml errormodel --measure1 measured.tsv --measure2 true.tsv --truth --asymmetric
    """
    from .commands.errormodel import run_errormodel

    run_errormodel(
        file1=file1,
        file2=file2,
        truth=truth,
        max_diff=max_diff,
        symmetric=symmetric,
        peak_zero=peak_zero,
        model_file=model_file,
        seed=seed,
        output=output,
        format=format.value,
        verbose=verbose,
        quiet=quiet,
    )


@app.command()
def cvfamily(
    tree: Path = typer.Option(
        ...,
        "--tree", "-t",
        help="Species tree file (Newick format with branch lengths)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    families: Path = typer.Option(
        ...,
        "--families", "-i",
        help="Tab-separated gene family size file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    fold: int = typer.Option(
        5,
        "--fold",
        help="Number of folds",
        min=1,
    ),
    k: int = typer.Option(
        0,
        "--clusters", "-k",
        help="Number of rate clusters (0 for no mixture)",
        min=0,
    ),
    lambda_only: bool = typer.Option(
        False,
        "--lambda-only",
        help="Use the single-rate model (mu equal to lambda)",
    ),
    check_convergence: bool = typer.Option(
        False,
        "--checkconv",
        help="Repeat each search from several random starts until scores agree",
    ),
    log: Optional[Path] = typer.Option(
        None,
        "--log",
        help="Append log lines to this file",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed of the random starts and the fold split",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Log every likelihood evaluation",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Minimal output",
    ),
):
    """
    Cross-validate the rate model by holding out families.

    Example:
        cafeml cvfamily -t tree.nwk -i families.tsv --fold 5
    """
    from .commands.crossval import run_cvfamily

    run_cvfamily(
        tree=tree,
        families=families,
        fold=fold,
        k=k,
        lambda_only=lambda_only,
        check_convergence=check_convergence,
        log=log,
        seed=seed,
        output=output,
        format=format.value,
        verbose=verbose,
        quiet=quiet,
    )


@app.command()
def cvspecies(
    tree: Path = typer.Option(
        ...,
        "--tree", "-t",
        help="Species tree file (Newick format with branch lengths)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    families: Path = typer.Option(
        ...,
        "--families", "-i",
        help="Tab-separated gene family size file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    validation_file: Optional[Path] = typer.Option(
        None,
        "--validate",
        help="Score this held-out species file instead of leaving each species out",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    k: int = typer.Option(
        0,
        "--clusters", "-k",
        help="Number of rate clusters (0 for no mixture)",
        min=0,
    ),
    lambda_only: bool = typer.Option(
        False,
        "--lambda-only",
        help="Use the single-rate model (mu equal to lambda)",
    ),
    check_convergence: bool = typer.Option(
        False,
        "--checkconv",
        help="Repeat each search from several random starts until scores agree",
    ),
    log: Optional[Path] = typer.Option(
        None,
        "--log",
        help="Append log lines to this file",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed of the random starts",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Log every likelihood evaluation",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Minimal output",
    ),
):
    """
    Cross-validate the rate model by leaving out one species at a time.

    Example:
        cafeml cvspecies -t tree.nwk -i families.tsv
        cafeml cvspecies -t tree.nwk -i train.tsv --validate held_out.tsv
    """
    from .commands.crossval import run_cvspecies

    run_cvspecies(
        tree=tree,
        families=families,
        validation_file=validation_file,
        k=k,
        lambda_only=lambda_only,
        check_convergence=check_convergence,
        log=log,
        seed=seed,
        output=output,
        format=format.value,
        verbose=verbose,
        quiet=quiet,
    )


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
