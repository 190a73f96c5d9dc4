# ps_epistasis/validators.py
"""
Precondition checks shared by the estimation stages.

Every check raises InputValidationError naming the offending input and
dimension, and is meant to run before any row or subsample is processed.
"""

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

GENOTYPE_CODES = (0, 1, 2)


class InputValidationError(ValueError):
    """Raised when an input violates a precondition of the analysis."""


def check_genotypes(values, name: str = "genotype matrix") -> np.ndarray:
    """Return `values` as an integer array, rejecting missing or non {0,1,2} entries."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise InputValidationError(f"{name} is empty")
    if np.isnan(arr).any():
        n_missing = int(np.isnan(arr).sum())
        raise InputValidationError(f"{name} contains {n_missing} missing values")
    bad = ~np.isin(arr, GENOTYPE_CODES)
    if bad.any():
        offending = sorted(set(np.unique(arr[bad]).tolist()))[:5]
        raise InputValidationError(
            f"{name} must only contain values in {{0, 1, 2}}; found {offending}"
        )
    return arr.astype(np.int8)


def check_unique_columns(columns: Sequence, name: str = "genotype matrix") -> None:
    index = pd.Index(columns)
    if index.has_duplicates:
        dupes = index[index.duplicated()].unique().tolist()[:5]
        raise InputValidationError(f"{name} has duplicated column identifiers: {dupes}")


def check_n_samples(n_expected: int, n_found: int, name: str) -> None:
    if n_expected != n_found:
        raise InputValidationError(
            f"{name} has {n_found} samples, expected {n_expected} (rows of the genotype matrix)"
        )


def check_phenotype(values, n_samples: Optional[int] = None) -> np.ndarray:
    y = np.asarray(values, dtype=float).ravel()
    if n_samples is not None:
        check_n_samples(n_samples, y.shape[0], "phenotype")
    if not np.isfinite(y).all():
        raise InputValidationError("phenotype contains missing or non-finite values")
    return y


def check_propensity(scores, n_samples: Optional[int] = None) -> np.ndarray:
    """Two-column propensity matrix with finite, non-negative entries and positive rows."""
    ps = np.asarray(scores, dtype=float)
    if ps.ndim != 2 or ps.shape[1] != 2:
        raise InputValidationError(
            f"propensity scores must have shape (n_samples, 2), got {ps.shape}"
        )
    if n_samples is not None:
        check_n_samples(n_samples, ps.shape[0], "propensity scores")
    if not np.isfinite(ps).all():
        raise InputValidationError("propensity scores contain missing or non-finite values")
    if (ps < 0).any():
        raise InputValidationError("propensity scores must be non-negative")
    if (ps.sum(axis=1) <= 0).any():
        raise InputValidationError("every propensity row must have a positive total")
    return ps


def check_stochastic(matrix: np.ndarray, axis: int, name: str, atol: float = 1e-6) -> None:
    """Check that `matrix` sums to one along `axis`, reporting the first bad slice."""
    if (matrix < 0).any():
        raise InputValidationError(f"{name} contains negative probabilities")
    totals = matrix.sum(axis=axis)
    bad = np.argwhere(np.abs(totals - 1.0) > atol)
    if bad.size:
        where = tuple(int(i) for i in bad[0])
        raise InputValidationError(
            f"{name} is not stochastic along axis {axis}: sum at {where} is {float(totals[tuple(bad[0])]):.6g}"
        )
