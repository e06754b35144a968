"""
Unit tests for substitution models.
"""

import math

import numpy as np
import pytest

from pruneml.exceptions import InvalidBranchLengthError, InvalidFrequenciesError
from pruneml.io.sequences import Alignment
from pruneml.models import (
    F81,
    GTR,
    HKY85,
    JC69,
    K80,
    MODELS,
    compute_nucleotide_frequencies,
    get_model,
)

PI = np.array([0.1, 0.2, 0.3, 0.4])


def all_models():
    return [
        JC69(),
        K80(kappa=3.0),
        F81(frequencies=PI),
        HKY85(kappa=3.0, frequencies=PI),
        GTR(rates=[1.0, 4.0, 0.5, 0.8, 3.0, 1.0], frequencies=PI),
    ]


class TestJC69:
    """Test closed-form Jukes-Cantor probabilities."""

    def test_half_branch(self):
        """Test values at v = 0.5."""
        model = JC69()
        assert model.transition_prob("A", "A", 0.5) == pytest.approx(0.635063, abs=1e-6)
        assert model.transition_prob("A", "G", 0.5) == pytest.approx(0.121646, abs=1e-6)

    def test_formula(self):
        """Test p_ii and p_ij against 1/4 +- exp(-4v/3)."""
        model = JC69()
        v = 0.1
        e = math.exp(-4.0 * v / 3.0)
        assert model.transition_prob(0, 0, v) == pytest.approx(0.25 + 0.75 * e)
        assert model.transition_prob(0, 3, v) == pytest.approx(0.25 - 0.25 * e)

    def test_has_no_parameters(self):
        assert JC69().get_parameters() == {}
        assert repr(JC69()) == "JC69()"


class TestK80:
    """Test the Kimura two-parameter model."""

    def test_kappa_one_is_jc69(self):
        np.testing.assert_allclose(
            K80(kappa=1.0).transition_matrix(0.3), JC69().transition_matrix(0.3), atol=1e-12
        )

    def test_transitions_more_likely(self):
        """Test that A->G exceeds A->C when kappa > 1."""
        model = K80(kappa=5.0)
        assert model.transition_prob("A", "G", 0.2) > model.transition_prob("A", "C", 0.2)
        assert model.transition_prob("C", "T", 0.2) > model.transition_prob("C", "G", 0.2)

    def test_invalid_kappa(self):
        with pytest.raises(ValueError, match="kappa"):
            K80(kappa=0.0)
        with pytest.raises(ValueError, match="kappa"):
            K80(kappa=float("inf"))


class TestGTRFamily:
    """Test models built on the reversible rate matrix."""

    def test_f81_uniform_is_jc69(self):
        np.testing.assert_allclose(
            F81().transition_matrix(0.7), JC69().transition_matrix(0.7), atol=1e-10
        )

    def test_hky_uniform_is_k80(self):
        np.testing.assert_allclose(
            HKY85(kappa=4.0).transition_matrix(0.4),
            K80(kappa=4.0).transition_matrix(0.4),
            atol=1e-10,
        )

    def test_gtr_with_hky_rates(self):
        """Test that GTR with rates (1, k, 1, 1, k, 1) is HKY85."""
        gtr = GTR(rates=[1.0, 2.5, 1.0, 1.0, 2.5, 1.0], frequencies=PI)
        hky = HKY85(kappa=2.5, frequencies=PI)
        np.testing.assert_allclose(gtr.transition_matrix(0.3), hky.transition_matrix(0.3), atol=1e-12)

    def test_rate_matrix_normalized(self):
        """Test one expected substitution per unit branch length."""
        model = GTR(rates=[1.0, 4.0, 0.5, 0.8, 3.0, 1.0], frequencies=PI)
        assert -np.dot(model.frequencies, np.diag(model.Q)) == pytest.approx(1.0)

    def test_detailed_balance(self):
        """Test pi_i P_ij(v) = pi_j P_ji(v)."""
        model = GTR(rates=[1.0, 4.0, 0.5, 0.8, 3.0, 1.0], frequencies=PI)
        P = model.transition_matrix(0.25)
        flux = PI[:, np.newaxis] * P
        np.testing.assert_allclose(flux, flux.T, atol=1e-12)

    def test_zero_frequency_rejected(self):
        with pytest.raises(InvalidFrequenciesError):
            GTR(frequencies=[0.5, 0.5, 0.0, 0.0])

    def test_frequencies_must_sum_to_one(self):
        with pytest.raises(InvalidFrequenciesError, match="sum"):
            F81(frequencies=[0.3, 0.3, 0.3, 0.3])

    def test_wrong_rate_count(self):
        with pytest.raises(ValueError, match="6 exchangeability"):
            GTR(rates=[1.0, 2.0, 1.0])

    def test_parameters(self):
        params = HKY85(kappa=2.0, frequencies=PI).get_parameters()
        assert params['kappa'] == 2.0
        assert params['frequencies'] == pytest.approx(PI.tolist())


@pytest.mark.parametrize("model", all_models(), ids=lambda m: m.name)
class TestTransitionMatrixProperties:
    """Properties every model must satisfy."""

    def test_rows_sum_to_one(self, model):
        for v in (0.0, 0.01, 0.5, 3.0):
            np.testing.assert_allclose(model.transition_matrix(v).sum(axis=1), 1.0, atol=1e-10)

    def test_identity_at_zero(self, model):
        np.testing.assert_allclose(model.transition_matrix(0.0), np.eye(4), atol=1e-10)

    def test_stationary_limit(self, model):
        """Test that every row converges to the stationary frequencies."""
        P = model.transition_matrix(200.0)
        for row in P:
            np.testing.assert_allclose(row, model.frequencies, atol=1e-8)

    def test_entries_in_unit_interval(self, model):
        P = model.transition_matrix(0.8)
        assert np.all(P >= 0.0) and np.all(P <= 1.0)

    def test_transition_prob_matches_matrix(self, model):
        P = model.transition_matrix(0.2)
        assert model.transition_prob("C", "G", 0.2) == pytest.approx(P[1, 2])

    def test_negative_branch_length(self, model):
        with pytest.raises(InvalidBranchLengthError):
            model.transition_matrix(-0.1)
        with pytest.raises(InvalidBranchLengthError):
            model.transition_prob(0, 1, float("nan"))


class TestRegistry:
    """Test model lookup by name."""

    def test_all_registered(self):
        assert set(MODELS) == {"JC69", "K80", "F81", "HKY85", "GTR"}

    def test_case_insensitive(self):
        model = get_model("hky85", kappa=3.0)
        assert isinstance(model, HKY85)
        assert model.kappa == 3.0

    def test_none_params_dropped(self):
        assert isinstance(get_model("K80", kappa=None), K80)

    def test_unknown_model(self):
        with pytest.raises(ValueError, match="Unknown model"):
            get_model("WAG")

    def test_invalid_parameter(self):
        with pytest.raises(ValueError, match="Invalid parameters"):
            get_model("JC69", kappa=2.0)

    def test_repr(self):
        assert repr(get_model("k80", kappa=4.0)) == "K80(kappa=4.0)"


class TestEmpiricalFrequencies:
    """Test frequency counting from an alignment."""

    def test_counts(self):
        aln = Alignment.from_dict({"a": "AACG", "b": "AATT"})
        np.testing.assert_allclose(
            compute_nucleotide_frequencies(aln), [0.5, 0.125, 0.125, 0.25]
        )

    def test_ambiguity_ignored(self):
        aln = Alignment.from_dict({"a": "A-NR", "b": "CY?G"})
        np.testing.assert_allclose(
            compute_nucleotide_frequencies(aln), [1 / 3, 1 / 3, 1 / 3, 0.0]
        )

    def test_all_missing_is_uniform(self):
        aln = Alignment.from_dict({"a": "--", "b": "NN"})
        np.testing.assert_allclose(compute_nucleotide_frequencies(aln), 0.25)
