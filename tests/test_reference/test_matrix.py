"""
Reference tests for matrix operations.

These tests validate the eigendecomposition path used by the models against
scipy's matrix exponential, analytical solutions and known properties of
transition probability matrices.
"""

import numpy as np
import pytest
from pruneml.core.matrix import (
    create_reversible_Q,
    eigen_decompose_rev,
    exchangeability_matrix,
    matrix_exponential,
    transition_matrix_from_eigen,
)
from pruneml.models import F81, GTR, HKY85, JC69, K80


def random_reversible(n: int = 4, seed: int = 42):
    """Random exchangeabilities and frequencies."""
    rng = np.random.RandomState(seed)
    pi = rng.dirichlet(np.ones(n))
    rates = rng.uniform(0.1, 1.0, (n, n))
    rates = (rates + rates.T) / 2  # Make symmetric
    return rates, pi


class TestMatrixExponential:
    """Test matrix exponential computation."""

    def test_jc69_analytical(self):
        """Test matrix exponential against analytical JC69 solution."""
        alpha = 1.0 / 3.0
        Q = np.full((4, 4), alpha)
        np.fill_diagonal(Q, -3 * alpha)
        t = 0.1

        P = matrix_exponential(Q, t)

        # p_ii = 1/4 + 3/4 exp(-4t/3), p_ij = 1/4 - 1/4 exp(-4t/3)
        e_term = np.exp(-4 * alpha * t)
        np.testing.assert_allclose(np.diag(P), 0.25 + 0.75 * e_term, rtol=1e-10)
        np.testing.assert_allclose(P[0, 1], 0.25 - 0.25 * e_term, rtol=1e-10)
        np.testing.assert_allclose(P, JC69().transition_matrix(t), rtol=1e-10)

    def test_semigroup_property(self):
        """Test P(t1 + t2) = P(t1) @ P(t2)."""
        rates, pi = random_reversible()
        Q = create_reversible_Q(rates, pi)
        t1, t2 = 0.05, 0.15

        P_sum = matrix_exponential(Q, t1 + t2)
        P_prod = matrix_exponential(Q, t1) @ matrix_exponential(Q, t2)

        np.testing.assert_allclose(P_sum, P_prod, rtol=1e-8)

    def test_large_time(self):
        """Test convergence to stationary distribution at large t."""
        rates, pi = random_reversible(seed=7)
        Q = create_reversible_Q(rates, pi)
        P = matrix_exponential(Q, 100.0)

        for i in range(4):
            np.testing.assert_allclose(P[i, :], pi, rtol=1e-6)


class TestEigenDecomposition:
    """Test eigendecomposition of reversible rate matrices."""

    def test_reconstruction(self):
        """Test Q = U @ diag(eigenvalues) @ V."""
        rates, pi = random_reversible()
        Q = create_reversible_Q(rates, pi)

        eigenvalues, U, V = eigen_decompose_rev(Q, pi)

        np.testing.assert_allclose(U @ np.diag(eigenvalues) @ V, Q, atol=1e-12)
        np.testing.assert_allclose(U @ V, np.eye(4), atol=1e-12)

    def test_largest_eigenvalue_zero(self):
        rates, pi = random_reversible()
        eigenvalues, _, _ = eigen_decompose_rev(create_reversible_Q(rates, pi), pi)

        assert np.abs(eigenvalues[-1]) < 1e-10
        assert np.all(eigenvalues[:-1] < 0)

    @pytest.mark.parametrize("t", [0.0, 0.01, 0.1, 1.0, 10.0])
    def test_matches_expm(self, t):
        """Test eigendecomposition P(t) against scipy's expm."""
        rates, pi = random_reversible(seed=3)
        Q = create_reversible_Q(rates, pi)
        eigenvalues, U, V = eigen_decompose_rev(Q, pi)

        np.testing.assert_allclose(
            transition_matrix_from_eigen(eigenvalues, U, V, t),
            matrix_exponential(Q, t),
            atol=1e-12,
        )


class TestReversibleQ:
    """Test creation and properties of reversible rate matrices."""

    def test_detailed_balance(self):
        """Test pi_i Q_ij = pi_j Q_ji."""
        pi = np.array([0.3, 0.2, 0.4, 0.1])
        rates = np.array(
            [[0, 1, 2, 1], [1, 0, 1, 2], [2, 1, 0, 1], [1, 2, 1, 0]], dtype=float
        )
        Q = create_reversible_Q(rates, pi)

        flux = pi[:, np.newaxis] * Q
        np.testing.assert_allclose(flux, flux.T, atol=1e-15)

    def test_row_sums_zero(self):
        rates, pi = random_reversible()
        Q = create_reversible_Q(rates, pi)
        np.testing.assert_allclose(Q.sum(axis=1), 0.0, atol=1e-15)

    def test_normalization(self):
        """Test that normalized Q has expected rate of 1."""
        rates, pi = random_reversible()
        Q = create_reversible_Q(rates, pi, normalize=True)
        np.testing.assert_allclose(-np.dot(pi, np.diag(Q)), 1.0, rtol=1e-10)

    def test_exchangeability_order(self):
        """Test AC, AG, AT, CG, CT, GT placement."""
        R = exchangeability_matrix([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        assert R[0, 1] == R[1, 0] == 1.0   # AC
        assert R[0, 2] == 2.0              # AG
        assert R[0, 3] == 3.0              # AT
        assert R[1, 2] == 4.0              # CG
        assert R[1, 3] == 5.0              # CT
        assert R[2, 3] == R[3, 2] == 6.0   # GT
        np.testing.assert_array_equal(np.diag(R), 0.0)

    def test_negative_exchangeability(self):
        with pytest.raises(ValueError):
            exchangeability_matrix([1.0, -2.0, 1.0, 1.0, 1.0, 1.0])


class TestModelsAgainstExpm:
    """Test every model's P(v) against expm of its rate matrix."""

    PI = np.array([0.15, 0.35, 0.3, 0.2])

    def _expected(self, rates, pi, v):
        Q = create_reversible_Q(exchangeability_matrix(rates), pi)
        return matrix_exponential(Q, v)

    @pytest.mark.parametrize("v", [0.0, 0.05, 0.5, 2.0])
    def test_k80(self, v):
        expected = self._expected([1, 3, 1, 1, 3, 1], np.full(4, 0.25), v)
        np.testing.assert_allclose(K80(kappa=3.0).transition_matrix(v), expected, atol=1e-12)

    @pytest.mark.parametrize("v", [0.0, 0.05, 0.5, 2.0])
    def test_f81(self, v):
        expected = self._expected(np.ones(6), self.PI, v)
        np.testing.assert_allclose(F81(frequencies=self.PI).transition_matrix(v), expected, atol=1e-12)

    @pytest.mark.parametrize("v", [0.0, 0.05, 0.5, 2.0])
    def test_hky85(self, v):
        expected = self._expected([1, 4, 1, 1, 4, 1], self.PI, v)
        model = HKY85(kappa=4.0, frequencies=self.PI)
        np.testing.assert_allclose(model.transition_matrix(v), expected, atol=1e-12)

    @pytest.mark.parametrize("v", [0.0, 0.05, 0.5, 2.0])
    def test_gtr(self, v):
        rates = [1.2, 3.4, 0.6, 0.9, 4.1, 1.0]
        expected = self._expected(rates, self.PI, v)
        model = GTR(rates=rates, frequencies=self.PI)
        np.testing.assert_allclose(model.transition_matrix(v), expected, atol=1e-12)
