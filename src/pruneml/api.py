"""
High-level API for pruneml likelihood evaluation.

This module provides the two core entry points, plus a convenience function
that loads files, builds the model by name and returns a result object.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union
import json

import numpy as np

from .core.likelihood import DEFAULT_BLOCK_SIZE, LikelihoodAggregator, LikelihoodCalculator
from .core.pruning import PruningEngine
from .exceptions import InvalidFrequenciesError, MissingTaxonError
from .io.sequences import Alignment
from .io.trees import Tree
from .models import SubstitutionModel, compute_nucleotide_frequencies, get_model

# Models whose stationary frequencies are free parameters
FREQUENCY_MODELS = ("F81", "HKY85", "GTR")


def compute_site_likelihood(
    tree: Tree,
    tip_vectors: Mapping[str, np.ndarray],
    model: SubstitutionModel,
    stationary_frequencies,
) -> float:
    """
    Likelihood of one site from its encoded tip vectors.

    Parameters
    ----------
    tree : Tree
        Rooted bifurcating tree
    tip_vectors : Mapping[str, np.ndarray]
        Taxon name -> conditional likelihood vector for this site
    model : SubstitutionModel
        Substitution model
    stationary_frequencies : array_like
        Root state distribution

    Returns
    -------
    float
        Site likelihood (linear scale)

    Raises
    ------
    MissingTaxonError
        If the tip vector names and the tree leaves differ in either direction

    Examples
    --------
    >>> from pruneml.core.encoding import AlignmentEncoder
    >>> from pruneml.models import JC69
    >>> tree = Tree.from_newick("((t1:0.1,t2:0.1):0.1,t3:0.1);")
    >>> tips = {name: AlignmentEncoder().encode_char("A") for name in tree.leaf_names}
    >>> round(compute_site_likelihood(tree, tips, JC69(), [0.25] * 4), 6)
    0.169368
    """
    tip_names = set(tip_vectors)
    tree_names = set(tree.leaf_names)
    if tip_names != tree_names:
        raise MissingTaxonError(
            "Tip vectors and tree have different taxa. "
            f"In tip vectors but not tree: {sorted(tip_names - tree_names)}. "
            f"In tree but not tip vectors: {sorted(tree_names - tip_names)}"
        )

    aggregator = LikelihoodAggregator(stationary_frequencies, n_states=model.n_states)
    result = PruningEngine(tree, model).prune(tip_vectors)
    return aggregator.site_likelihood(result.root_vector)


def compute_log_likelihood(
    tree: Tree,
    alignment: Alignment,
    model: SubstitutionModel,
    stationary_frequencies,
    n_workers: Optional[int] = None,
    block_size: int = DEFAULT_BLOCK_SIZE,
    scaling: bool = True,
) -> float:
    """
    Log-likelihood of an alignment.

    Parameters
    ----------
    tree : Tree
        Rooted bifurcating tree whose leaves are the alignment taxa
    alignment : Alignment
        Aligned sequences
    model : SubstitutionModel
        Substitution model
    stationary_frequencies : array_like
        Root state distribution
    n_workers : int, optional
        Evaluate site blocks on this many threads
    block_size : int
        Sites per postorder pass
    scaling : bool, default=True
        Rescale conditional vectors to avoid underflow on large trees

    Returns
    -------
    float
        Natural log-likelihood
    """
    calculator = LikelihoodCalculator(alignment, tree, model, stationary_frequencies)
    return calculator.compute_log_likelihood(
        n_workers=n_workers, block_size=block_size, scaling=scaling
    )


@dataclass
class LikelihoodResult:
    """
    Result of a likelihood evaluation.

    Attributes
    ----------
    model_name : str
        Name of the substitution model
    lnL : float
        Log-likelihood of the alignment
    site_lnL : np.ndarray
        Per-site log-likelihoods
    params : Dict[str, Any]
        Model parameters
    frequencies : np.ndarray
        Root frequencies used
    tree : Tree
        Tree the alignment was evaluated on
    alignment : Alignment
        Evaluated alignment
    frequency_source : str
        Where the root frequencies came from
    states : str
        State symbols, in frequency order

    Examples
    --------
    >>> from pruneml import evaluate
    >>> result = evaluate("alignment.fasta", "tree.nwk", model="HKY85", kappa=2.0)
    >>> print(result.summary())
    >>> result.to_json("result.json")
    """

    model_name: str
    lnL: float
    site_lnL: np.ndarray
    params: Dict[str, Any]
    frequencies: np.ndarray
    tree: Tree
    alignment: Alignment
    frequency_source: str = "equal"
    states: str = "ACGT"

    @property
    def n_sites(self) -> int:
        return int(len(self.site_lnL))

    def summary(self, show_sites: bool = False) -> str:
        """
        Generate human-readable summary.

        Parameters
        ----------
        show_sites : bool, default=False
            Append the per-site log-likelihood table

        Returns
        -------
        str
            Formatted multi-line summary
        """
        lines = []
        lines.append("=" * 70)
        lines.append(f"MODEL: {self.model_name}")
        lines.append("=" * 70)
        lines.append("")
        lines.append(f"Log-likelihood:       {self.lnL:.6f}")
        lines.append(f"Number of sites:      {self.n_sites}")
        lines.append("")
        lines.append("PARAMETERS:")
        for key, value in self.params.items():
            if key == 'frequencies':
                continue
            if isinstance(value, list):
                value = ", ".join(f"{v:.4f}" for v in value)
                lines.append(f"  {key} = {value}")
            else:
                lines.append(f"  {key} = {value:.4f}")
        freqs = ", ".join(
            f"{state}={freq:.4f}"
            for state, freq in zip(self.states, self.frequencies)
        )
        lines.append(f"  root frequencies ({self.frequency_source}): {freqs}")

        lines.append("")
        lines.append("TREE:")
        lines.append(f"  {self.tree.n_leaves} sequences")
        lines.append(f"  {self.tree.n_edges} branches, total length {self.tree.total_length():.6f}")

        if show_sites:
            lines.append("")
            lines.append("SITES:")
            lines.append("  site        lnL")
            for i, value in enumerate(self.site_lnL):
                lines.append(f"  {i + 1:>4d}  {value:12.6f}")

        lines.append("")
        lines.append("=" * 70)

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """
        Export results as a dictionary.

        The tree is exported as Newick; the alignment is not included.
        """
        return {
            'model_name': self.model_name,
            'lnL': float(self.lnL),
            'n_sites': self.n_sites,
            'site_lnL': [float(v) for v in self.site_lnL],
            'params': self.params,
            'frequencies': [float(v) for v in self.frequencies],
            'frequency_source': self.frequency_source,
            'tree': self.tree.to_newick(),
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
        json_str = json.dumps(self.to_dict(), indent=indent)

        if filepath:
            with open(filepath, 'w') as f:
                f.write(json_str)

        return json_str

    def __str__(self) -> str:
        return self.summary()

    def __repr__(self) -> str:
        return f"LikelihoodResult(model='{self.model_name}', lnL={self.lnL:.4f}, n_sites={self.n_sites})"


# =============================================================================
# File loading helpers with automatic format detection
# =============================================================================

def _load_alignment(alignment: Union[str, Path, Alignment]) -> Alignment:
    """
    Load alignment with automatic format detection.

    Uses the file extension (.fa/.fasta/.fna → FASTA, .phy/.phylip → PHYLIP)
    and falls back to the first character of the file.

    Raises
    ------
    FileNotFoundError
        If the alignment file doesn't exist
    """
    if isinstance(alignment, Alignment):
        return alignment

    path = Path(alignment)

    if not path.exists():
        raise FileNotFoundError(f"Alignment file not found: {path}")

    suffix = path.suffix.lower()

    if suffix in ('.fa', '.fasta', '.fna', '.fas'):
        return Alignment.from_fasta(path)
    if suffix in ('.phy', '.phylip'):
        return Alignment.from_phylip(path)

    with open(path) as f:
        first = f.read(1024).lstrip()
    if first.startswith('>'):
        return Alignment.from_fasta(path)
    return Alignment.from_phylip(path)


def _load_tree(tree: Union[str, Path, Tree]) -> Tree:
    """
    Load tree from a Newick file or string.

    Parameters
    ----------
    tree : str, Path, or Tree
        Path to tree file, Newick string, or Tree object
    """
    if isinstance(tree, Tree):
        return tree

    text = str(tree)
    if isinstance(tree, Path) or (';' not in text and Path(text).exists()):
        with open(text) as f:
            text = f.read()

    return Tree.from_newick(text)


def resolve_frequencies(
    frequencies: Union[str, Sequence[float], np.ndarray],
    model: SubstitutionModel,
    alignment: Alignment,
) -> tuple[np.ndarray, str]:
    """
    Turn a frequency specification into a vector.

    Parameters
    ----------
    frequencies : str or array_like
        ``"equal"``, ``"empirical"`` (from the alignment), ``"model"`` (the
        model's own stationary frequencies) or an explicit vector

    Returns
    -------
    tuple[np.ndarray, str]
        Frequencies and a label describing their source
    """
    if isinstance(frequencies, str):
        source = frequencies.lower()
        if source == 'equal':
            return np.full(model.n_states, 1.0 / model.n_states), source
        if source == 'empirical':
            return compute_nucleotide_frequencies(alignment), source
        if source == 'model':
            return np.asarray(model.frequencies), source
        raise ValueError(
            f"Unknown frequency source '{frequencies}'. "
            f"Use 'equal', 'empirical', 'model' or an explicit vector"
        )
    return np.asarray(frequencies, dtype=float), 'user'


def evaluate(
    alignment: Union[str, Path, Alignment],
    tree: Union[str, Path, Tree],
    model: Union[str, SubstitutionModel] = "JC69",
    frequencies: Union[str, Sequence[float], np.ndarray] = "model",
    n_workers: Optional[int] = None,
    block_size: int = DEFAULT_BLOCK_SIZE,
    scaling: bool = True,
    **model_params,
) -> LikelihoodResult:
    """
    Evaluate the likelihood of an alignment on a tree.

    Parameters
    ----------
    alignment : str, Path, or Alignment
        Alignment file (FASTA or PHYLIP, auto-detected) or object
    tree : str, Path, or Tree
        Newick file, Newick string, or Tree object
    model : str or SubstitutionModel
        Model instance or registry name (JC69, K80, F81, HKY85, GTR)
    frequencies : str or array_like, default="model"
        Root frequencies: ``"model"``, ``"equal"``, ``"empirical"`` or a
        vector. When the model is given by name, ``"empirical"`` and explicit
        vectors also become the model's stationary frequencies for models
        that take them (F81, HKY85, GTR).
    n_workers : int, optional
        Threads for site blocks
    block_size : int
        Sites per postorder pass
    scaling : bool, default=True
        Rescale conditional vectors to avoid underflow
    **model_params
        Parameters for a model given by name (``kappa``, ``rates``)

    Returns
    -------
    LikelihoodResult
        Log-likelihood, per-site values and metadata

    Examples
    --------
    >>> result = evaluate("data.fasta", "tree.nwk", model="K80", kappa=3.0)
    >>> print(f"lnL = {result.lnL:.4f}")
    """
    align = _load_alignment(alignment)
    tree_obj = _load_tree(tree)

    if isinstance(model, str):
        if model.upper() in FREQUENCY_MODELS and 'frequencies' not in model_params:
            if isinstance(frequencies, str):
                if frequencies.lower() == 'empirical':
                    empirical = compute_nucleotide_frequencies(align)
                    if np.any(empirical == 0):
                        absent = [state for state, value in zip('ACGT', empirical) if value == 0]
                        raise InvalidFrequenciesError(
                            f"Empirical frequencies from the alignment are zero for {absent}; "
                            f"{model.upper()} needs every stationary frequency > 0. "
                            "Pass explicit frequencies or use 'equal'"
                        )
                    model_params['frequencies'] = empirical
            else:
                model_params['frequencies'] = np.asarray(frequencies, dtype=float)
        model_obj = get_model(model, **model_params)
    else:
        if model_params:
            raise ValueError(
                f"Model parameters {sorted(model_params)} given with a model instance"
            )
        model_obj = model

    freqs, source = resolve_frequencies(frequencies, model_obj, align)
    if source == 'model':
        source = 'model stationary'

    calculator = LikelihoodCalculator(align, tree_obj, model_obj, freqs)
    site_lnL = calculator.site_log_likelihoods(
        n_workers=n_workers, block_size=block_size, scaling=scaling
    )

    return LikelihoodResult(
        model_name=getattr(model_obj, 'name', type(model_obj).__name__),
        lnL=calculator.aggregator.combine(site_lnL),
        site_lnL=site_lnL,
        params=model_obj.get_parameters(),
        frequencies=calculator.aggregator.frequencies,
        tree=tree_obj,
        alignment=align,
        frequency_source=source,
        states=model_obj.alphabet.states,
    )
