"""Loglik command implementation."""

import sys
from pathlib import Path
from typing import List, Optional, Union

from pruneml.api import FREQUENCY_MODELS, _load_alignment, _load_tree, evaluate
from pruneml.models import MODELS

FREQUENCY_SOURCES = ('equal', 'empirical', 'model')

MODEL_DESCRIPTIONS = {
    'JC69': ("equal rates, equal frequencies", "-"),
    'K80': ("transition/transversion ratio", "--kappa"),
    'F81': ("equal rates, unequal frequencies", "--freqs"),
    'HKY85': ("kappa with unequal frequencies", "--kappa, --freqs"),
    'GTR': ("general time-reversible", "--rates, --freqs"),
}


def parse_float_list(text: str, expected: int, option: str) -> List[float]:
    """
    Parse a comma-separated list of numbers.

    Raises
    ------
    ValueError
        If an entry is not a number or the count is wrong
    """
    try:
        values = [float(part) for part in text.split(',') if part.strip()]
    except ValueError:
        raise ValueError(f"{option} must be comma-separated numbers, got '{text}'") from None
    if len(values) != expected:
        raise ValueError(f"{option} needs {expected} values, got {len(values)}")
    return values


def parse_frequencies(text: str) -> Union[str, List[float]]:
    """Frequency source keyword or an explicit A,C,G,T vector."""
    if text.lower() in FREQUENCY_SOURCES:
        return text.lower()
    return parse_float_list(text, 4, "--freqs")


def describe_models() -> str:
    """Table of registered models."""
    lines = [f"{'Model':<8}{'Description':<36}Options"]
    for name in MODELS:
        description, options = MODEL_DESCRIPTIONS[name]
        lines.append(f"{name:<8}{description:<36}{options}")
    return "\n".join(lines)


def _fail(message: str, details: Exception) -> None:
    print(f"Error: {message}", file=sys.stderr)
    print(f"Details: {details}", file=sys.stderr)
    sys.exit(1)


def run_loglik(
    alignment: Path,
    tree: Path,
    model: str,
    kappa: Optional[float],
    rates: Optional[str],
    freqs: str,
    sites: bool,
    workers: Optional[int],
    scaling: bool,
    output: Optional[Path],
    format: str,
    quiet: bool,
):
    """Evaluate the log-likelihood of one alignment on one tree."""
    model_params = {}
    try:
        frequencies = parse_frequencies(freqs)
        if kappa is not None:
            if model not in ('K80', 'HKY85'):
                raise ValueError(f"--kappa does not apply to {model}")
            model_params['kappa'] = kappa
        if rates is not None:
            if model != 'GTR':
                raise ValueError(f"--rates does not apply to {model}")
            model_params['rates'] = parse_float_list(rates, 6, "--rates")
    except ValueError as e:
        _fail("Invalid model options", e)

    # Load data
    try:
        aln = _load_alignment(alignment)
    except (OSError, ValueError) as e:
        _fail(f"Could not load alignment from {alignment}", e)

    try:
        tree_obj = _load_tree(tree)
    except (OSError, ValueError) as e:
        _fail(f"Could not load tree from {tree}", e)

    if not quiet:
        print(f"Model: {model}", file=sys.stderr)
        print("=" * 70, file=sys.stderr)
        print(f"Alignment: {alignment} ({aln.n_species} sequences, {aln.n_sites} sites)", file=sys.stderr)
        print(f"Tree:      {tree}", file=sys.stderr)
        if model not in FREQUENCY_MODELS and frequencies not in ('model', 'equal'):
            print(
                f"Note: {model} has equal stationary frequencies; "
                f"'{freqs}' only changes the root distribution",
                file=sys.stderr,
            )
        print(file=sys.stderr)

    try:
        result = evaluate(
            aln,
            tree_obj,
            model=model,
            frequencies=frequencies,
            n_workers=workers,
            scaling=scaling,
            **model_params,
        )
    except ValueError as e:
        _fail("Likelihood evaluation failed", e)

    # Format output
    if format == "json":
        output_text = result.to_json()
    else:  # text
        output_text = result.summary(show_sites=sites)

    # Write output
    if output:
        with open(output, 'w') as f:
            f.write(output_text)
        if not quiet:
            print(f"\nResults written to {output}", file=sys.stderr)
    else:
        print(output_text)
