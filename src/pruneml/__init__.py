"""
pruneml: phylogenetic likelihood by Felsenstein's pruning algorithm.

Computes the probability of an alignment of homologous sequences given a
rooted bifurcating tree with branch lengths and a continuous-time Markov
substitution model.

Quick Start
-----------
Evaluate an alignment from files:

>>> from pruneml import evaluate
>>> result = evaluate("alignment.fasta", "tree.nwk", model="HKY85", kappa=2.0)
>>> print(result.summary())
>>> print(f"lnL = {result.lnL:.4f}")

Work with the in-memory objects directly:

>>> from pruneml import Alignment, Tree, compute_log_likelihood
>>> from pruneml.models import JC69
>>> tree = Tree.from_newick("((t1:0.1,t2:0.1):0.1,t3:0.1);")
>>> alignment = Alignment.from_dict({"t1": "ACGT", "t2": "ACGA", "t3": "ACTT"})
>>> lnL = compute_log_likelihood(tree, alignment, JC69(), [0.25] * 4)
"""

__version__ = "0.1.0"

# High-level API
from .api import (
    LikelihoodResult,
    compute_log_likelihood,
    compute_site_likelihood,
    evaluate,
)

# I/O classes
from .io.sequences import Alignment
from .io.trees import Tree, TreeNode

# Engine pieces (expert use)
from .core.encoding import AlignmentEncoder
from .core.likelihood import LikelihoodAggregator, LikelihoodCalculator
from .core.pruning import PruningEngine, PruningResult
from .models import get_model

from .exceptions import PrunemlError

__all__ = [
    # Simple API - Start here!
    "evaluate",
    "compute_site_likelihood",
    "compute_log_likelihood",
    "LikelihoodResult",

    # I/O
    "Alignment",
    "Tree",
    "TreeNode",

    # Engine (expert)
    "AlignmentEncoder",
    "PruningEngine",
    "PruningResult",
    "LikelihoodAggregator",
    "LikelihoodCalculator",
    "get_model",

    # Errors
    "PrunemlError",

    # Version
    "__version__",
]
