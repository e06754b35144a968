"""Main CLI application for pruneml."""

import typer
from pathlib import Path
from typing import Optional
from enum import Enum

app = typer.Typer(
    name="pruneml",
    help="Phylogenetic likelihood by Felsenstein's pruning algorithm",
    no_args_is_help=True,
)


class ModelName(str, Enum):
    """Substitution model."""
    JC69 = "JC69"
    K80 = "K80"
    F81 = "F81"
    HKY85 = "HKY85"
    GTR = "GTR"


class OutputFormat(str, Enum):
    """Output format."""
    TEXT = "text"
    JSON = "json"


@app.command()
def loglik(
    alignment: Path = typer.Option(
        ...,
        "--alignment", "-s",
        help="Nucleotide alignment file (FASTA or PHYLIP)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    tree: Path = typer.Option(
        ...,
        "--tree", "-t",
        help="Rooted bifurcating tree file (Newick format)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    model: ModelName = typer.Option(
        ModelName.JC69,
        "--model", "-m",
        help="Substitution model",
        case_sensitive=False,
    ),
    kappa: Optional[float] = typer.Option(
        None,
        "--kappa",
        help="Transition/transversion ratio (K80, HKY85)",
        min=0.0,
    ),
    rates: Optional[str] = typer.Option(
        None,
        "--rates",
        help="GTR exchangeabilities AC,AG,AT,CG,CT,GT",
    ),
    freqs: str = typer.Option(
        "model",
        "--freqs",
        help="Root frequencies: equal, empirical, model, or A,C,G,T values. "
        "F81, HKY85 and GTR need every frequency > 0, so empirical fails when a base is absent",
    ),
    sites: bool = typer.Option(
        False,
        "--sites",
        help="Report per-site log-likelihoods",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers", "-w",
        help="Evaluate site blocks on this many threads",
        min=1,
    ),
    no_scaling: bool = typer.Option(
        False,
        "--no-scaling",
        help="Disable rescaling of conditional likelihoods",
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
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Minimal output",
    ),
):
    """
    Compute the log-likelihood of an alignment on a fixed tree.

    Example:
        pruneml loglik -s alignment.fasta -t tree.nwk
        pruneml loglik -s alignment.phy -t tree.nwk -m HKY85 --kappa 4 --freqs empirical
        pruneml loglik -s alignment.fasta -t tree.nwk -m GTR --rates 1,2,1,1,2,1 --format json
    """
    from .commands.loglik import run_loglik

    run_loglik(
        alignment=alignment,
        tree=tree,
        model=model.value,
        kappa=kappa,
        rates=rates,
        freqs=freqs,
        sites=sites,
        workers=workers,
        scaling=not no_scaling,
        output=output,
        format=format.value,
        quiet=quiet,
    )


@app.command()
def models():
    """
    List the available substitution models and their parameters.

    Example:
        pruneml models
    """
    from .commands.loglik import describe_models

    typer.echo(describe_models())


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
