"""
Likelihood calculation for phylogenetic models.

The root vector of each site is folded with the stationary frequencies into a
site likelihood; sites are assumed independent and are combined by summing
their natural logs once, never by multiplying likelihoods.
"""

import math
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

import numpy as np

from ..exceptions import InvalidFrequenciesError, MissingTaxonError
from ..io.sequences import Alignment
from ..io.trees import Tree
from .encoding import DNA, AlignmentEncoder
from .pruning import PruningEngine

# Allowed deviation of sum(frequencies) from 1
FREQUENCY_TOLERANCE = 1e-6

# Sites evaluated together in one postorder pass
DEFAULT_BLOCK_SIZE = 256


def validate_frequencies(frequencies, n_states: Optional[int] = None) -> np.ndarray:
    """
    Check a stationary frequency vector.

    Parameters
    ----------
    frequencies : array_like
        Candidate frequencies
    n_states : int, optional
        Required length

    Returns
    -------
    np.ndarray
        Read-only copy of the frequencies

    Raises
    ------
    InvalidFrequenciesError
        If the vector has the wrong length, negative or non-finite entries, or
        does not sum to 1 within ``FREQUENCY_TOLERANCE``
    """
    try:
        pi = np.array(frequencies, dtype=float)
    except (TypeError, ValueError):
        raise InvalidFrequenciesError(
            f"Stationary frequencies must be numeric, got {frequencies!r}"
        ) from None
    if pi.ndim != 1:
        raise InvalidFrequenciesError(
            f"Stationary frequencies must be a 1-D vector, got shape {pi.shape}"
        )
    if n_states is not None and pi.shape[0] != n_states:
        raise InvalidFrequenciesError(
            f"Expected {n_states} stationary frequencies, got {pi.shape[0]}"
        )
    if not np.all(np.isfinite(pi)) or np.any(pi < 0):
        raise InvalidFrequenciesError(
            f"Stationary frequencies must be finite and >= 0, got {pi.tolist()}"
        )
    total = pi.sum()
    if abs(total - 1.0) > FREQUENCY_TOLERANCE:
        raise InvalidFrequenciesError(
            f"Stationary frequencies sum to {total:.8g}, expected 1"
        )
    pi.setflags(write=False)
    return pi


class LikelihoodAggregator:
    """
    Fold root vectors into site likelihoods and sites into a log-likelihood.

    Parameters
    ----------
    stationary_frequencies : array_like
        Root state distribution, summing to 1
    n_states : int, optional
        Alphabet size the frequencies must match

    Examples
    --------
    >>> aggregator = LikelihoodAggregator([0.25, 0.25, 0.25, 0.25])
    >>> aggregator.site_likelihood([0.4, 0.0, 0.0, 0.0])
    0.1
    """

    def __init__(self, stationary_frequencies, n_states: Optional[int] = None):
        self.frequencies = validate_frequencies(stationary_frequencies, n_states=n_states)

    def site_likelihood(self, root_vector) -> Union[float, np.ndarray]:
        """
        sum_i root_vector[i] * pi_i, per site.

        Returns a float for a single vector and an array for a block of
        shape (n_sites, n_states).
        """
        root_vector = np.asarray(root_vector, dtype=float)
        if root_vector.shape[-1] != self.frequencies.shape[0]:
            raise ValueError(
                f"Root vector has {root_vector.shape[-1]} states, "
                f"frequencies have {self.frequencies.shape[0]}"
            )
        likelihood = root_vector @ self.frequencies
        if np.ndim(likelihood) == 0:
            return float(likelihood)
        return likelihood

    def site_log_likelihood(
        self, root_vector, log_scale=0.0, first_site: int = 0
    ) -> Union[float, np.ndarray]:
        """
        Natural log of the site likelihood plus any pruning scale factor.

        A site with likelihood zero (data impossible under the model) yields
        ``-inf`` and a ``RuntimeWarning`` naming the site.

        Parameters
        ----------
        root_vector : array_like
            Root vector(s), possibly rescaled
        log_scale : float or array_like
            Log of the factor removed during pruning
        first_site : int
            Alignment index of the first row, used in warnings
        """
        likelihood = np.asarray(self.site_likelihood(root_vector))
        zero = np.flatnonzero(np.atleast_1d(likelihood) <= 0.0)
        if zero.size:
            warnings.warn(
                f"Site likelihood is zero at site(s) {(zero + first_site).tolist()}; "
                f"log-likelihood is -inf",
                RuntimeWarning,
                stacklevel=2,
            )
        with np.errstate(divide='ignore'):
            log_likelihood = np.log(likelihood) + log_scale
        if np.ndim(log_likelihood) == 0:
            return float(log_likelihood)
        return log_likelihood

    @staticmethod
    def combine(site_log_likelihoods) -> float:
        """Sum per-site log-likelihoods in a single reduction."""
        return math.fsum(np.ravel(np.asarray(site_log_likelihoods, dtype=float)))

    def total_log_likelihood(self, alignment: Alignment, tree: Tree, model, **kwargs) -> float:
        """
        Log-likelihood of ``alignment`` on ``tree`` under ``model``.

        Keyword arguments are passed to
        :meth:`LikelihoodCalculator.compute_log_likelihood`.
        """
        calculator = LikelihoodCalculator(alignment, tree, model, self.frequencies)
        return calculator.compute_log_likelihood(**kwargs)


class LikelihoodCalculator:
    """
    Compute phylogenetic likelihood using Felsenstein's pruning algorithm.

    All input is validated here, once, before any traversal: leaf labels
    against alignment taxa, every alignment character against the alphabet,
    the stationary frequencies, and every branch length.

    Parameters
    ----------
    alignment : Alignment
        Multiple sequence alignment
    tree : Tree
        Rooted bifurcating tree whose leaves are the alignment taxa
    model : SubstitutionModel
        Substitution model
    frequencies : array_like
        Stationary (root) frequencies
    encoder : AlignmentEncoder, optional
        Character encoder (default: one for the model's alphabet)

    Attributes
    ----------
    n_states : int
        Alphabet size
    n_sites : int
        Number of alignment columns

    Raises
    ------
    MissingTaxonError
        If the leaf labels and alignment taxa differ
    UnknownCharacterError
        If the alignment contains a character outside the alphabet
    InvalidFrequenciesError
        If ``frequencies`` is not a probability vector over the alphabet
    InvalidBranchLengthError
        If a branch length is negative
    """

    def __init__(
        self,
        alignment: Alignment,
        tree: Tree,
        model,
        frequencies,
        encoder: Optional[AlignmentEncoder] = None,
    ):
        self.alignment = alignment
        self.tree = tree
        self.model = model

        alignment_names_set = set(alignment.names)
        tree_names_set = set(tree.leaf_names)
        if alignment_names_set != tree_names_set:
            raise MissingTaxonError(
                "Alignment and tree have different taxa. "
                f"In alignment but not tree: {sorted(alignment_names_set - tree_names_set)}. "
                f"In tree but not alignment: {sorted(tree_names_set - alignment_names_set)}"
            )

        self.encoder = encoder or AlignmentEncoder(getattr(model, 'alphabet', DNA))
        self.n_states = model.n_states
        if self.encoder.n_states != self.n_states:
            raise ValueError(
                f"Encoder has {self.encoder.n_states} states but model has {self.n_states}"
            )
        self.encoder.validate(alignment)

        self.aggregator = LikelihoodAggregator(frequencies, n_states=self.n_states)
        model_frequencies = getattr(model, 'frequencies', None)
        if model_frequencies is not None and not np.allclose(
            model_frequencies, self.aggregator.frequencies, atol=1e-8
        ):
            warnings.warn(
                f"Root frequencies {self.aggregator.frequencies.tolist()} differ from the "
                f"stationary frequencies of {type(model).__name__} "
                f"{np.asarray(model_frequencies).tolist()}",
                UserWarning,
                stacklevel=2,
            )

        self.engine = PruningEngine(tree, model)
        self.n_sites = alignment.n_sites

        # Leaf name -> (n_sites, n_states) array, shared read-only by all workers
        self._tip_arrays = self.encoder.encode_alignment(alignment, taxa=tree.leaf_names)

    def site_vectors(self, site: int) -> dict[str, np.ndarray]:
        """Encoded tip vectors for one site."""
        if not 0 <= site < self.n_sites:
            raise IndexError(f"Site {site} out of range for {self.n_sites} sites")
        return {name: array[site] for name, array in self._tip_arrays.items()}

    def site_likelihood(self, site: int) -> float:
        """Likelihood of a single alignment column (linear scale)."""
        result = self.engine.prune(self.site_vectors(site))
        return self.aggregator.site_likelihood(result.root_vector)

    def site_log_likelihoods(
        self,
        n_workers: Optional[int] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
        scaling: bool = True,
    ) -> np.ndarray:
        """
        Log-likelihood of every site.

        Sites are evaluated in blocks of ``block_size`` columns. With
        ``n_workers`` > 1 the blocks run on a thread pool; the results are
        collected in site order.

        Parameters
        ----------
        n_workers : int, optional
            Number of worker threads (default: evaluate serially)
        block_size : int
            Sites per postorder pass
        scaling : bool, default=True
            Rescale internal vectors to avoid underflow

        Returns
        -------
        np.ndarray, shape (n_sites,)
            Natural log site likelihoods
        """
        if block_size < 1:
            raise ValueError(f"block_size must be >= 1, got {block_size}")
        if n_workers is not None and n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")

        blocks = [
            (start, min(start + block_size, self.n_sites))
            for start in range(0, self.n_sites, block_size)
        ]

        def evaluate(block: tuple[int, int]) -> np.ndarray:
            start, stop = block
            tips = {name: array[start:stop] for name, array in self._tip_arrays.items()}
            result = self.engine.prune(tips, scaling=scaling)
            return self.aggregator.site_log_likelihood(
                result.root_vector, result.log_scale, first_site=start
            )

        if n_workers and n_workers > 1 and len(blocks) > 1:
            with ThreadPoolExecutor(max_workers=n_workers) as pool:
                parts = list(pool.map(evaluate, blocks))
        else:
            parts = [evaluate(block) for block in blocks]

        if not parts:
            return np.zeros(0)
        return np.concatenate(parts)

    def compute_log_likelihood(
        self,
        n_workers: Optional[int] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
        scaling: bool = True,
    ) -> float:
        """
        Log-likelihood of the whole alignment.

        Parameters are as for :meth:`site_log_likelihoods`.

        Returns
        -------
        float
            Sum of the per-site log-likelihoods
        """
        return self.aggregator.combine(
            self.site_log_likelihoods(n_workers=n_workers, block_size=block_size, scaling=scaling)
        )


def total_log_likelihood(
    alignment: Alignment, tree: Tree, model, stationary_frequencies, **kwargs
) -> float:
    """Log-likelihood of ``alignment`` given ``tree``, ``model`` and root frequencies."""
    return LikelihoodAggregator(stationary_frequencies).total_log_likelihood(
        alignment, tree, model, **kwargs
    )
