"""Tests for propensity score estimation."""

import numpy as np
import pandas as pd
import pytest

from ps_epistasis.hmm import PropensityModel
from ps_epistasis.propensity import (collapse_propensity, log_conditional_probabilities,
                                     propensity_scores)
from ps_epistasis.validators import InputValidationError


@pytest.fixture
def model(make_model):
    return make_model(n_positions=6, n_states=3, seed=3)


def test_conditional_probabilities_sum_to_one(genotype_frame, model):
    log_probs = log_conditional_probabilities(genotype_frame, "SNP_3", model)
    assert log_probs.shape == (20, 3)
    np.testing.assert_allclose(np.exp(log_probs).sum(axis=1), 1.0, atol=1e-6)


def test_independent_positions_give_emission_probabilities(rng, genotype_frame):
    # with a single latent state positions are independent, so P(A=v|X) is the emission at the target
    emissions = rng.uniform(size=(6, 3, 1))
    emissions /= emissions.sum(axis=1, keepdims=True)
    model = PropensityModel(np.ones(1), np.ones((5, 1, 1)), emissions)

    probs = np.exp(log_conditional_probabilities(genotype_frame, "SNP_2", model))
    expected = np.tile(emissions[1, :, 0], (20, 1))
    np.testing.assert_allclose(probs, expected, rtol=1e-10)


def test_target_value_is_ignored(genotype_frame, model):
    flipped = genotype_frame.copy()
    flipped["SNP_4"] = 2 - flipped["SNP_4"]
    np.testing.assert_array_equal(
        log_conditional_probabilities(genotype_frame, "SNP_4", model),
        log_conditional_probabilities(flipped, "SNP_4", model),
    )


def test_dominant_binarization_is_exact(genotype_frame, model):
    log_probs = log_conditional_probabilities(genotype_frame, "SNP_1", model)
    scores = propensity_scores(genotype_frame, "SNP_1", model, mechanism='dominant')
    probs = np.exp(log_probs)
    np.testing.assert_array_equal(scores[:, 1], probs[:, 1] + probs[:, 2])
    np.testing.assert_array_equal(scores[:, 0], probs[:, 0])
    np.testing.assert_allclose(scores.sum(axis=1), 1.0, atol=1e-6)


def test_recessive_binarization_is_exact(genotype_frame, model):
    log_probs = log_conditional_probabilities(genotype_frame, "SNP_6", model)
    scores = propensity_scores(genotype_frame, "SNP_6", model, mechanism='recessive')
    probs = np.exp(log_probs)
    np.testing.assert_array_equal(scores[:, 1], probs[:, 2])
    np.testing.assert_array_equal(scores[:, 0], probs[:, 0] + probs[:, 1])
    np.testing.assert_allclose(scores.sum(axis=1), 1.0, atol=1e-6)


def test_collapse_rejects_unknown_mechanism():
    with pytest.raises(InputValidationError, match="mechanism"):
        collapse_propensity(np.log(np.full((2, 3), 1 / 3)), mechanism='additive')


def test_unknown_mechanism_fails_before_forward(genotype_frame, model, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("forward algorithm should not run")

    monkeypatch.setattr("ps_epistasis.propensity.forward", fail)
    with pytest.raises(InputValidationError):
        propensity_scores(genotype_frame, "SNP_1", model, mechanism='codominant')


def test_missing_target_is_rejected(genotype_frame, model):
    with pytest.raises(InputValidationError, match="rs999"):
        propensity_scores(genotype_frame, "rs999", model)


def test_model_position_mismatch_is_rejected(genotype_frame, make_model):
    with pytest.raises(InputValidationError, match="positions"):
        propensity_scores(genotype_frame, "SNP_1", make_model(n_positions=4))


def test_requires_named_columns(genotype_frame, model):
    with pytest.raises(InputValidationError, match="DataFrame"):
        propensity_scores(genotype_frame.to_numpy(), "SNP_1", model)


def test_duplicate_columns_are_rejected(genotype_frame, model):
    frame = genotype_frame.copy()
    frame.columns = ["SNP_1"] * 2 + list(frame.columns[2:])
    with pytest.raises(InputValidationError, match="duplicated"):
        propensity_scores(frame, "SNP_3", model)



def test_impossible_sample_is_reported():
    # genotype 2 is never emitted at the last position, whatever the target value
    emissions = np.full((3, 3, 2), 1 / 3)
    emissions[2] = [[0.5, 0.5], [0.5, 0.5], [0.0, 0.0]]
    model = PropensityModel(np.full(2, 0.5), np.full((2, 2, 2), 0.5), emissions)
    X = pd.DataFrame([[0, 1, 2], [0, 1, 0]], index=["S0", "S1"], columns=["a", "b", "c"])

    with pytest.raises(InputValidationError, match=r"zero probability.*\['S0'\]"):
        propensity_scores(X, "a", model)

    scores = propensity_scores(X.loc[["S1"]], "a", model)
    assert np.isfinite(scores).all()
    np.testing.assert_allclose(scores.sum(axis=1), 1.0)
