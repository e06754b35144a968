"""
Input/Output modules for sequence alignments and phylogenetic trees.

This module provides classes for reading and working with:

- **Sequence alignments**: FASTA and sequential PHYLIP formats
- **Phylogenetic trees**: Newick format, held as an arena of integer-indexed nodes

The likelihood core only consumes the in-memory objects; the readers are
conveniences for the API and command line.
"""

from pruneml.io.sequences import Alignment
from pruneml.io.trees import Tree, TreeNode

__all__ = ["Alignment", "Tree", "TreeNode"]
