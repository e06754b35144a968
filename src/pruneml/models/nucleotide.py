"""
Nucleotide substitution models.

JC69 and K80 use their closed-form transition probabilities. F81, HKY85 and
GTR are parameterizations of the general time-reversible rate matrix and
compute P(v) from its eigendecomposition.

State order is A, C, G, T; GTR exchangeabilities are given as
AC, AG, AT, CG, CT, GT.
"""

import math
from typing import Any, Dict, Optional

import numpy as np

from ..core.encoding import DNA, Alphabet, AlignmentEncoder
from ..core.matrix import (
    create_reversible_Q,
    eigen_decompose_rev,
    exchangeability_matrix,
    transition_matrix_from_eigen,
)
from ..exceptions import InvalidFrequenciesError
from ..io.sequences import Alignment
from .base import SubstitutionModel


class JC69(SubstitutionModel):
    """
    Jukes-Cantor model: equal rates and equal frequencies.

    For a k-state alphabet (k = 4 for DNA)::

        p_ii(v) = 1/k + (k-1)/k * exp(-k v / (k-1))
        p_ij(v) = 1/k - 1/k * exp(-k v / (k-1))      (i != j)

    Examples
    --------
    >>> model = JC69()
    >>> round(model.transition_prob("A", "A", 0.5), 6)
    0.635063
    >>> round(model.transition_prob("A", "G", 0.5), 6)
    0.121646
    """

    name = "JC69"

    def __init__(self, alphabet: Alphabet = DNA):
        super().__init__(None, alphabet=alphabet)

    def _same_diff(self, v: float) -> tuple[float, float]:
        k = self.n_states
        e = math.exp(-k * v / (k - 1))
        return 1.0 / k + (k - 1.0) / k * e, 1.0 / k - e / k

    def transition_prob(self, i, j, v: float) -> float:
        v = self._check_branch_length(v)
        same, diff = self._same_diff(v)
        return same if self.alphabet.index(i) == self.alphabet.index(j) else diff

    def transition_matrix(self, v: float) -> np.ndarray:
        v = self._check_branch_length(v)
        same, diff = self._same_diff(v)
        P = np.full((self.n_states, self.n_states), diff)
        np.fill_diagonal(P, same)
        return P

    def get_parameters(self) -> Dict[str, Any]:
        return {}


class K80(SubstitutionModel):
    """
    Kimura two-parameter model: transition/transversion ratio ``kappa``.

    With beta = 1/(kappa+2) and alpha = kappa*beta (one substitution per unit
    branch length)::

        p_same(v)         = 1/4 + 1/4 exp(-4 beta v) + 1/2 exp(-2 (alpha+beta) v)
        p_transition(v)   = 1/4 + 1/4 exp(-4 beta v) - 1/2 exp(-2 (alpha+beta) v)
        p_transversion(v) = 1/4 - 1/4 exp(-4 beta v)

    Parameters
    ----------
    kappa : float
        Transition/transversion rate ratio, > 0 (kappa = 1 is JC69)
    """

    name = "K80"

    # Purine/pyrimidine partners in A, C, G, T order
    _TRANSITION_PARTNER = (2, 3, 0, 1)

    def __init__(self, kappa: float = 2.0):
        kappa = float(kappa)
        if not math.isfinite(kappa) or kappa <= 0:
            raise ValueError(f"kappa must be positive, got {kappa}")
        super().__init__(None, alphabet=DNA)
        self.kappa = kappa

    def _probabilities(self, v: float) -> tuple[float, float, float]:
        beta = 1.0 / (self.kappa + 2.0)
        alpha = self.kappa * beta
        e1 = math.exp(-4.0 * beta * v)
        e2 = math.exp(-2.0 * (alpha + beta) * v)
        same = 0.25 + 0.25 * e1 + 0.5 * e2
        transition = 0.25 + 0.25 * e1 - 0.5 * e2
        transversion = 0.25 - 0.25 * e1
        return same, transition, transversion

    def transition_prob(self, i, j, v: float) -> float:
        v = self._check_branch_length(v)
        i, j = self.alphabet.index(i), self.alphabet.index(j)
        same, transition, transversion = self._probabilities(v)
        if i == j:
            return same
        if self._TRANSITION_PARTNER[i] == j:
            return transition
        return transversion

    def transition_matrix(self, v: float) -> np.ndarray:
        v = self._check_branch_length(v)
        same, transition, transversion = self._probabilities(v)
        P = np.full((4, 4), transversion)
        for i, j in enumerate(self._TRANSITION_PARTNER):
            P[i, j] = transition
        np.fill_diagonal(P, same)
        return P

    def get_parameters(self) -> Dict[str, Any]:
        return {'kappa': self.kappa}


class GTR(SubstitutionModel):
    """
    General time-reversible model.

    Q[i, j] = r_ij * pi_j, normalized to one expected substitution per unit
    branch length. P(v) comes from the symmetrized eigendecomposition of Q,
    computed once at construction.

    Parameters
    ----------
    rates : array_like, shape (6,)
        Exchangeabilities AC, AG, AT, CG, CT, GT (default: all 1)
    frequencies : array_like, shape (4,), optional
        Stationary frequencies, all > 0 (default: uniform)
    """

    name = "GTR"

    def __init__(self, rates=None, frequencies=None):
        super().__init__(frequencies, alphabet=DNA)
        if np.any(self.frequencies <= 0):
            raise InvalidFrequenciesError(
                f"{self.name} requires every stationary frequency > 0, got "
                f"{self.frequencies.tolist()}"
            )
        if rates is None:
            rates = np.ones(6)
        self.rates = np.asarray(rates, dtype=float)
        R = exchangeability_matrix(self.rates, n_states=4)
        self.Q = create_reversible_Q(R, self.frequencies, normalize=True)
        self.Q.setflags(write=False)
        self._eigenvalues, self._U, self._V = eigen_decompose_rev(self.Q, self.frequencies)

    def transition_matrix(self, v: float) -> np.ndarray:
        v = self._check_branch_length(v)
        return transition_matrix_from_eigen(self._eigenvalues, self._U, self._V, v)

    def get_parameters(self) -> Dict[str, Any]:
        return {
            'rates': self.rates.tolist(),
            'frequencies': self.frequencies.tolist(),
        }


class HKY85(GTR):
    """
    Hasegawa-Kishino-Yano model: K80 rate structure with unequal frequencies.

    Parameters
    ----------
    kappa : float
        Transition/transversion rate ratio, > 0
    frequencies : array_like, shape (4,), optional
        Stationary frequencies (default: uniform, which reduces to K80)
    """

    name = "HKY85"

    def __init__(self, kappa: float = 2.0, frequencies=None):
        kappa = float(kappa)
        if not math.isfinite(kappa) or kappa <= 0:
            raise ValueError(f"kappa must be positive, got {kappa}")
        self.kappa = kappa
        super().__init__(rates=[1.0, kappa, 1.0, 1.0, kappa, 1.0], frequencies=frequencies)

    def get_parameters(self) -> Dict[str, Any]:
        return {'kappa': self.kappa, 'frequencies': self.frequencies.tolist()}


class F81(GTR):
    """Felsenstein 1981 model: equal exchangeabilities, unequal frequencies."""

    name = "F81"

    def __init__(self, frequencies=None):
        super().__init__(rates=None, frequencies=frequencies)

    def get_parameters(self) -> Dict[str, Any]:
        return {'frequencies': self.frequencies.tolist()}


def compute_nucleotide_frequencies(
    alignment: Alignment, encoder: Optional[AlignmentEncoder] = None
) -> np.ndarray:
    """
    Empirical state frequencies from the unambiguous characters of an alignment.

    Gaps and ambiguity codes are ignored. If the alignment holds no
    unambiguous character the uniform distribution is returned.

    Parameters
    ----------
    alignment : Alignment
        Source alignment
    encoder : AlignmentEncoder, optional
        Encoder for the alphabet (default: DNA)

    Returns
    -------
    np.ndarray
        Frequencies summing to 1
    """
    encoder = encoder or AlignmentEncoder(DNA)
    counts = np.zeros(encoder.n_states)
    for vectors in encoder.encode_alignment(alignment).values():
        unambiguous = vectors[vectors.sum(axis=1) == 1.0]
        counts += unambiguous.sum(axis=0)

    total = counts.sum()
    if total == 0:
        return np.full(encoder.n_states, 1.0 / encoder.n_states)
    return counts / total
