"""Tests for stability selection."""

import dataclasses

import numpy as np
import pytest

import ps_epistasis.stability as stability
from ps_epistasis.outcome import RegressionInput
from ps_epistasis.stability import StabilitySelector, regularization_grid
from ps_epistasis.validators import InputValidationError


@pytest.fixture
def signal_data(rng):
    """Continuous target driven by variant 2 only."""
    X = rng.binomial(2, 0.4, size=(80, 8)).astype(float)
    y = 2.0 * X[:, 2] + rng.normal(scale=0.3, size=80)
    return X, RegressionInput(target=y)


def test_scores_are_frequencies(signal_data, fast_config):
    X, data = signal_data
    result = StabilitySelector(fast_config).fit(X, data)
    assert result.scores.shape == (X.shape[1],)
    assert ((result.scores >= 0) & (result.scores <= 1)).all()
    assert result.frequencies.shape == (fast_config.n_lambdas, X.shape[1])
    assert result.n_resamples == fast_config.resample_count
    assert result.n_failed == 0


def test_selection_is_monotone_along_the_path(signal_data, fast_config):
    X, data = signal_data
    result = StabilitySelector(fast_config).fit(X, data)
    # strengths decrease along the path and selection is cumulative
    assert np.all(np.diff(result.strengths) < 0)
    assert np.all(np.diff(result.frequencies, axis=0) >= 0)


def test_signal_variant_ranks_first(signal_data, fast_config):
    X, data = signal_data
    result = StabilitySelector(fast_config).fit(X, data)
    assert int(np.argmax(result.scores)) == 2
    assert result.scores[2] > 0.8


def test_same_seed_same_scores(signal_data, fast_config):
    X, data = signal_data
    first = StabilitySelector(fast_config).fit(X, data)
    second = StabilitySelector(fast_config).fit(X, data)
    np.testing.assert_array_equal(first.scores, second.scores)


def test_scores_converge_across_seeds(rng):
    X = rng.binomial(2, 0.4, size=(60, 6)).astype(float)
    y = X[:, 0] + rng.normal(scale=1.0, size=60)
    data = RegressionInput(target=y)
    config = dataclasses.replace(StabilitySelector().config, resample_count=200, n_lambdas=8)
    first = StabilitySelector(dataclasses.replace(config, random_state=1)).fit(X, data)
    second = StabilitySelector(dataclasses.replace(config, random_state=2)).fit(X, data)
    assert np.max(np.abs(first.scores - second.scores)) < 0.2


def test_max_aggregation_dominates_area(signal_data, fast_config):
    X, data = signal_data
    area = StabilitySelector(fast_config).fit(X, data)
    peak = StabilitySelector(dataclasses.replace(fast_config, aggregation='max')).fit(X, data)
    assert np.all(peak.scores >= area.scores - 1e-12)
    # cumulative selection peaks at the weakest strength
    np.testing.assert_allclose(peak.scores, area.frequencies[-1])


def test_subsamples_are_reproducible(fast_config):
    selector = StabilitySelector(fast_config)
    first, second = selector.subsamples(30), selector.subsamples(30)
    assert len(first) == fast_config.resample_count
    for (seed_a, idx_a), (seed_b, idx_b) in zip(first, second):
        assert seed_a == seed_b
        np.testing.assert_array_equal(idx_a, idx_b)
        assert idx_a.size == 15
        assert np.unique(idx_a).size == idx_a.size


def test_constant_target_scores_zero(rng, fast_config):
    X = rng.binomial(2, 0.4, size=(30, 5)).astype(float)
    data = RegressionInput(target=np.full(30, 3.0))
    assert regularization_grid(X, data).size == 0
    result = StabilitySelector(fast_config).fit(X, data)
    np.testing.assert_array_equal(result.scores, np.zeros(5))


def test_single_class_classification_scores_zero(rng, fast_config):
    X = rng.binomial(2, 0.4, size=(30, 5)).astype(float)
    data = RegressionInput(target=np.ones(30), family='classification', sample_weight=np.ones(30))
    result = StabilitySelector(fast_config).fit(X, data)
    np.testing.assert_array_equal(result.scores, np.zeros(5))
    assert result.n_failed == 0


def test_classification_finds_signal(rng, fast_config):
    n = 120
    X = rng.binomial(2, 0.4, size=(n, 6)).astype(float)
    labels = np.where(X[:, 4] > 0, 1.0, -1.0)
    flip = rng.uniform(size=n) < 0.05
    labels[flip] *= -1
    data = RegressionInput(target=labels, family='classification', sample_weight=np.ones(n))
    result = StabilitySelector(fast_config).fit(X, data)
    assert int(np.argmax(result.scores)) == 4


def test_failed_fit_counts_as_no_selection(signal_data, fast_config, monkeypatch):
    X, data = signal_data

    def broken(*args, **kwargs):
        raise ValueError("solver diverged")

    monkeypatch.setattr(stability, "lasso_path", broken)
    with pytest.warns(UserWarning, match="solver diverged"):
        result = StabilitySelector(fast_config).fit(X, data)
    assert result.n_failed == fast_config.resample_count
    np.testing.assert_array_equal(result.scores, np.zeros(X.shape[1]))


def test_fit_many_matches_individual_fits(signal_data, fast_config):
    X, data = signal_data
    other = RegressionInput(target=-data.target)
    selector = StabilitySelector(fast_config)
    both = selector.fit_many(X, {'a': data, 'b': other})
    np.testing.assert_array_equal(both['a'].scores, selector.fit(X, data).scores)
    np.testing.assert_array_equal(both['b'].scores, selector.fit(X, other).scores)


def test_threads_match_sequential(signal_data, fast_config):
    X, data = signal_data
    sequential = StabilitySelector(fast_config).fit(X, data)
    threaded = StabilitySelector(
        dataclasses.replace(fast_config, n_jobs=2, parallel_backend='threading')).fit(X, data)
    np.testing.assert_array_equal(sequential.scores, threaded.scores)


def test_input_length_mismatch(signal_data, fast_config):
    X, data = signal_data
    with pytest.raises(InputValidationError):
        StabilitySelector(fast_config).fit(X[:10], data)


def test_non_finite_target_is_rejected(signal_data, fast_config):
    X, data = signal_data
    target = data.target.copy()
    target[0] = np.nan
    with pytest.raises(InputValidationError, match="non-finite"):
        StabilitySelector(fast_config).fit(X, RegressionInput(target=target))
