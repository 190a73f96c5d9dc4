# ps_epistasis/propensity.py
"""
Propensity score estimation.

For each sample we compute both propensity scores P(A=0|X) and P(A=1|X) of
the binarized target A. Running the forward algorithm on the fitted HMM with
the target column set to each hypothesized value v = 0, 1, 2 gives the joint
probabilities P(A=v, X); Bayes' rule yields the conditional probabilities,
which are then merged according to the binarization rule.
"""

import logging
from typing import Hashable

import numpy as np
import pandas as pd
from scipy.special import logsumexp

from .config import MECHANISMS
from .hmm import PropensityModel, forward
from .validators import InputValidationError, check_genotypes, check_unique_columns

logger = logging.getLogger(__name__)


def log_conditional_probabilities(X: pd.DataFrame, target_name: Hashable,
                                  model: PropensityModel, n_jobs: int = 1) -> np.ndarray:
    """
    Log P(A = v | X) for v in {0, 1, 2}, one row per sample.

    Args:
        X: Genotype matrix over the HMM positions, columns named, target included.
        target_name: Column holding the target variant.
        model: Fitted propensity model.
        n_jobs: Workers used by the forward algorithm.

    Returns:
        np.ndarray: (n_samples, 3) array whose rows log-sum-exp to zero.

    Raises:
        InputValidationError: If a sample has zero probability under the model
            at every target value.
    """
    if not isinstance(X, pd.DataFrame):
        raise InputValidationError("genotype matrix must be a DataFrame with variant names as columns")
    check_unique_columns(X.columns)
    if target_name not in X.columns:
        raise InputValidationError(f"target variant '{target_name}' is not a column of the genotype matrix")
    if X.shape[1] != model.n_positions:
        raise InputValidationError(
            f"genotype matrix has {X.shape[1]} columns, the model has {model.n_positions} positions")
    genotypes = check_genotypes(X.to_numpy())
    target_idx = X.columns.get_loc(target_name)

    log_joint = np.empty((genotypes.shape[0], 3))
    hypothesized = genotypes.copy()
    for value in range(3):
        hypothesized[:, target_idx] = value
        log_joint[:, value] = forward(hypothesized, model, n_jobs=n_jobs)
    logger.info(f"Computed joint probabilities for {genotypes.shape[0]} samples at target '{target_name}'")

    norm = logsumexp(log_joint, axis=1, keepdims=True)
    impossible = ~np.isfinite(norm[:, 0])
    if impossible.any():
        samples = X.index[impossible].tolist()[:5]
        raise InputValidationError(
            f"{int(impossible.sum())} samples have zero probability under the propensity model "
            f"at every target value: {samples}")
    return log_joint - norm


def collapse_propensity(log_probs: np.ndarray, mechanism: str = 'dominant') -> np.ndarray:
    """
    Merge three-class conditional probabilities into the two-class propensity.

    The dominant mechanism maps the target values 0 and (1, 2) to 0 and 1;
    the recessive mechanism maps (0, 1) and 2 to 0 and 1.
    """
    if mechanism not in MECHANISMS:
        raise InputValidationError(f"mechanism must be one of {MECHANISMS}, got '{mechanism}'")
    probs = np.exp(log_probs)
    if mechanism == 'dominant':
        return np.column_stack([probs[:, 0], probs[:, 1] + probs[:, 2]])
    return np.column_stack([probs[:, 0] + probs[:, 1], probs[:, 2]])


def propensity_scores(X: pd.DataFrame, target_name: Hashable, model: PropensityModel,
                      mechanism: str = 'dominant', n_jobs: int = 1) -> np.ndarray:
    """
    Two-column propensity score matrix.

    The first column lists P(A=0|X), the second P(A=1|X), where A is the
    target binarized according to `mechanism`.
    """
    if mechanism not in MECHANISMS:
        raise InputValidationError(f"mechanism must be one of {MECHANISMS}, got '{mechanism}'")
    log_probs = log_conditional_probabilities(X, target_name, model, n_jobs=n_jobs)
    return collapse_propensity(log_probs, mechanism)
