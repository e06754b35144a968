"""
Core algorithms for phylogenetic likelihood calculation.

This module provides the computational pieces of the engine:

- **Encoding**: alignment characters to per-state likelihood vectors
- **Pruning**: Felsenstein's postorder recursion with an explicit stack
- **Aggregation**: site likelihoods from root vectors, summed in log space
- **Matrix operations**: reversible rate matrices and their exponentials

The high-level API (:mod:`pruneml.api`) wires these together.
"""

from pruneml.core.encoding import DNA, Alphabet, AlignmentEncoder
from pruneml.core.likelihood import (
    LikelihoodAggregator,
    LikelihoodCalculator,
    total_log_likelihood,
    validate_frequencies,
)
from pruneml.core.matrix import eigen_decompose_rev, matrix_exponential
from pruneml.core.pruning import PruningEngine, PruningResult

__all__ = [
    "DNA",
    "Alphabet",
    "AlignmentEncoder",
    "PruningEngine",
    "PruningResult",
    "LikelihoodAggregator",
    "LikelihoodCalculator",
    "total_log_likelihood",
    "validate_frequencies",
    "matrix_exponential",
    "eigen_decompose_rev",
]
