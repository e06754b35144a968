"""
Base class for substitution models.
"""

import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import numpy as np

from ..core.encoding import DNA, Alphabet
from ..core.likelihood import validate_frequencies
from ..exceptions import InvalidBranchLengthError


class SubstitutionModel(ABC):
    """
    Abstract base class for finite-state substitution models.

    A model is a pure function p_ij(v) of two states and a branch length. Every
    row of P(v) sums to one, P(0) is the identity and P(v) converges to the
    model's stationary frequencies as v grows. Models are immutable after
    construction and safe to share between threads.

    Parameters
    ----------
    frequencies : array_like, optional
        Stationary frequencies (default: uniform)
    alphabet : Alphabet
        State alphabet (default: DNA)

    Attributes
    ----------
    name : str
        Model identifier used by the registry
    frequencies : np.ndarray
        Stationary distribution, read-only
    """

    name = "model"

    def __init__(self, frequencies=None, alphabet: Alphabet = DNA):
        self.alphabet = alphabet
        n = alphabet.n_states
        if frequencies is None:
            frequencies = np.full(n, 1.0 / n)
        self.frequencies = validate_frequencies(frequencies, n_states=n)

    @property
    def n_states(self) -> int:
        return self.alphabet.n_states

    def transition_prob(self, i, j, v: float) -> float:
        """
        Probability of ending in state ``j`` after branch length ``v`` from ``i``.

        Parameters
        ----------
        i, j : int or str
            State indices or alphabet characters
        v : float
            Branch length (expected substitutions per site), >= 0

        Returns
        -------
        float
            p_ij(v) in [0, 1]
        """
        return float(self.transition_matrix(v)[self.alphabet.index(i), self.alphabet.index(j)])

    @abstractmethod
    def transition_matrix(self, v: float) -> np.ndarray:
        """
        Transition probability matrix P(v).

        Returns
        -------
        np.ndarray, shape (n_states, n_states)
            Row-stochastic matrix with P[i, j] = p_ij(v)
        """

    def get_parameters(self) -> Dict[str, Any]:
        """Model parameters for result metadata."""
        return {'frequencies': self.frequencies.tolist()}

    @staticmethod
    def _check_branch_length(v: float, node_id: Optional[int] = None) -> float:
        v = float(v)
        if not math.isfinite(v) or v < 0:
            where = f" on node {node_id}" if node_id is not None else ""
            raise InvalidBranchLengthError(
                f"Branch length {v}{where} is invalid; branch lengths must be finite and >= 0"
            )
        return v

    def __repr__(self) -> str:
        params = ", ".join(
            f"{key}={value}" for key, value in self.get_parameters().items()
            if key != 'frequencies'
        )
        return f"{type(self).__name__}({params})"
