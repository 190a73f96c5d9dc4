"""Shared pytest fixtures for all test modules."""

import numpy as np
import pandas as pd
import pytest

from ps_epistasis.config import EpistasisConfig
from ps_epistasis.hmm import PropensityModel


def _random_model(n_positions: int, n_states: int, rng: np.random.Generator) -> PropensityModel:
    p_init = np.full(n_states, 1.0 / n_states)
    transitions = rng.uniform(size=(n_positions - 1, n_states, n_states))
    transitions /= transitions.sum(axis=2, keepdims=True)
    emissions = rng.uniform(size=(n_positions, 3, n_states))
    emissions /= emissions.sum(axis=1, keepdims=True)
    return PropensityModel(p_init, transitions, emissions)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(0)


@pytest.fixture
def make_model():
    """Factory for random row-stochastic HMMs: make_model(n_positions, n_states, seed)."""
    def factory(n_positions: int = 6, n_states: int = 3, seed: int = 0) -> PropensityModel:
        return _random_model(n_positions, n_states, np.random.default_rng(seed))
    return factory


@pytest.fixture
def genotype_frame(rng) -> pd.DataFrame:
    """20 samples x 6 variants named SNP_1..SNP_6."""
    values = rng.binomial(2, 0.4, size=(20, 6))
    return pd.DataFrame(values, index=[f"S{i}" for i in range(20)],
                        columns=[f"SNP_{j + 1}" for j in range(6)])


@pytest.fixture
def fast_config() -> EpistasisConfig:
    return EpistasisConfig(resample_count=20, n_lambdas=10)


@pytest.fixture
def interaction_cohort():
    """
    50 samples x 10 variants; phenotype is X[:, 3] times the symmetric target,
    target independent of X with P(A > 0) = 0.5.
    """
    gen = np.random.default_rng(7)
    n, p = 50, 10
    X = gen.binomial(2, 0.4, size=(n, p))
    present = np.repeat([0, 1], n // 2)
    gen.shuffle(present)
    A = present * gen.integers(1, 3, size=n)
    y = X[:, 3] * (2 * present - 1).astype(float)
    propensity = np.full((n, 2), 0.5)
    columns = [f"rs{j}" for j in range(p)]
    return A, pd.DataFrame(X, columns=columns), y, propensity
