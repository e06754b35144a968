"""
Matrix operations for substitution models.

Rate matrix construction for time-reversible models and the two ways of
turning a rate matrix into transition probabilities: the symmetrized
eigendecomposition used by the models, and scipy's matrix exponential used as
an independent reference.
"""

import numpy as np
from scipy.linalg import expm


def matrix_exponential(Q: np.ndarray, t: float) -> np.ndarray:
    """
    Compute transition probability matrix P(t) = exp(Q*t).

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Instantaneous rate matrix
    t : float
        Branch length

    Returns
    -------
    P : ndarray, shape (n, n)
        P[i, j] is the probability of ending in state j after time t when
        starting in state i
    """
    return expm(Q * t)


def exchangeability_matrix(rates, n_states: int = 4) -> np.ndarray:
    """
    Expand upper-triangle exchangeabilities into a symmetric matrix.

    Parameters
    ----------
    rates : array_like, shape (n_states * (n_states - 1) / 2,)
        Exchangeabilities in row-major upper-triangle order. For DNA in
        A, C, G, T order: AC, AG, AT, CG, CT, GT.
    n_states : int
        Alphabet size

    Returns
    -------
    ndarray, shape (n_states, n_states)
        Symmetric matrix with zero diagonal
    """
    rates = np.asarray(rates, dtype=float)
    expected = n_states * (n_states - 1) // 2
    if rates.shape != (expected,):
        raise ValueError(
            f"Expected {expected} exchangeability rates for {n_states} states, "
            f"got shape {rates.shape}"
        )
    if np.any(rates < 0) or not np.all(np.isfinite(rates)):
        raise ValueError(f"Exchangeability rates must be finite and >= 0, got {rates}")

    R = np.zeros((n_states, n_states))
    R[np.triu_indices(n_states, k=1)] = rates
    return R + R.T


def create_reversible_Q(
    rates: np.ndarray, pi: np.ndarray, normalize: bool = True
) -> np.ndarray:
    """
    Create a reversible rate matrix from exchangeabilities and frequencies.

    Q[i, j] = r[i, j] * pi[j] off the diagonal and rows sum to zero, which
    gives detailed balance pi[i] * Q[i, j] = pi[j] * Q[j, i].

    Parameters
    ----------
    rates : ndarray, shape (n, n)
        Symmetric exchangeability matrix
    pi : ndarray, shape (n,)
        Stationary distribution
    normalize : bool, default=True
        Scale Q so that branch lengths are expected substitutions per site

    Returns
    -------
    Q : ndarray, shape (n, n)
        Reversible rate matrix
    """
    Q = rates * pi[np.newaxis, :]
    np.fill_diagonal(Q, 0.0)
    np.fill_diagonal(Q, -np.sum(Q, axis=1))

    if normalize:
        expected_rate = -np.dot(pi, Q.diagonal())
        if expected_rate <= 0:
            raise ValueError("Rate matrix has no substitutions; cannot normalize")
        Q /= expected_rate

    return Q


def eigen_decompose_rev(Q: np.ndarray, pi: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Eigendecompose reversible rate matrix Q = U @ diag(eigenvalues) @ V.

    Q is symmetrized as diag(sqrt(pi)) @ Q @ diag(1/sqrt(pi)), decomposed with
    ``numpy.linalg.eigh`` and transformed back. Requires every pi > 0.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Reversible rate matrix
    pi : ndarray, shape (n,)
        Stationary distribution

    Returns
    -------
    eigenvalues : ndarray, shape (n,)
        Eigenvalues in ascending order (the largest is 0)
    U : ndarray, shape (n, n)
        Right eigenvectors (columns)
    V : ndarray, shape (n, n)
        Left eigenvectors (rows), V = U^-1
    """
    sqrt_pi = np.sqrt(pi)

    Q_sym = Q * sqrt_pi[:, np.newaxis] / sqrt_pi[np.newaxis, :]
    # Remove asymmetry from rounding before eigh
    Q_sym = (Q_sym + Q_sym.T) / 2

    eigenvalues, eigenvectors = np.linalg.eigh(Q_sym)

    U = eigenvectors / sqrt_pi[:, np.newaxis]
    V = eigenvectors.T * sqrt_pi[np.newaxis, :]

    return eigenvalues, U, V


def transition_matrix_from_eigen(
    eigenvalues: np.ndarray, U: np.ndarray, V: np.ndarray, t: float
) -> np.ndarray:
    """
    P(t) = U @ diag(exp(eigenvalues * t)) @ V.

    Entries are clipped to [0, 1] to remove rounding noise around zero.
    """
    P = (U * np.exp(eigenvalues * t)[np.newaxis, :]) @ V
    return np.clip(P, 0.0, 1.0)
