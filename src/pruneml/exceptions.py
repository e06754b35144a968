"""
Exceptions raised by pruneml.

Every user-facing error derives from :class:`PrunemlError`, which is itself a
``ValueError`` so callers that already guard input parsing with
``except ValueError`` keep working.
"""


class PrunemlError(ValueError):
    """Base class for invalid input to the likelihood engine."""


class MalformedTreeError(PrunemlError):
    """Tree structure is not a single rooted bifurcating tree."""


class InvalidBranchLengthError(PrunemlError):
    """A branch length is negative or not finite."""


class MissingTaxonError(PrunemlError):
    """Tree leaves and alignment taxa do not match."""


class SequenceLengthMismatchError(PrunemlError):
    """Alignment sequences have differing lengths."""


class UnknownCharacterError(PrunemlError):
    """Alignment character is neither an alphabet state nor an ambiguity code."""


class InvalidFrequenciesError(PrunemlError):
    """Stationary frequencies are not a probability vector over the alphabet."""


class NotInternalError(PrunemlError):
    """Children were requested for a leaf node."""


class NoParentError(PrunemlError):
    """A branch length was requested for the root node."""


class PruningInternalError(RuntimeError):
    """An invariant was broken during a traversal of validated input."""
