# ps_epistasis/stability.py
"""
Stability selection over a regularization path.

The cohort is repeatedly subsampled without replacement; on each subsample a
penalized model is fitted along a decreasing grid of regularization strengths
(lasso for continuous transformed outcomes, L1 logistic regression for OWL)
and the variants with a non-zero coefficient are recorded. A variant counts as
selected at a strength if it was selected there or at any stronger value on
that subsample. Selection frequencies over the subsamples are finally
aggregated along the path into one score in [0, 1] per variant.

Subsample indices are drawn up front from the configured seed, so results do
not depend on the completion order of the workers. Ties in coefficient
magnitude are resolved by the solvers' native ordering.

Reference: Meinshausen, N. & Buhlmann, P. (2010). Stability selection.
Journal of the Royal Statistical Society B 72(4), 417-473.
"""

import logging
import warnings
from dataclasses import dataclass
from functools import partial
from typing import Dict, Hashable, List, Optional, Tuple

import numpy as np
from sklearn.linear_model import LogisticRegression, lasso_path
from sklearn.preprocessing import StandardScaler

from .config import EpistasisConfig
from .outcome import RegressionInput
from .parallel import run_tasks
from .validators import InputValidationError, check_n_samples

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StabilityResult:
    """Aggregated outcome of stability selection for one detection method."""
    scores: np.ndarray
    frequencies: np.ndarray
    strengths: np.ndarray
    n_resamples: int
    n_failed: int = 0


def _standardize(X: np.ndarray) -> np.ndarray:
    return StandardScaler().fit_transform(X)


def regularization_grid(X: np.ndarray, data: RegressionInput, n_lambdas: int = 20,
                        lambda_min_ratio: float = 0.05) -> np.ndarray:
    """
    Decreasing grid of strengths, starting at the smallest one that selects
    nothing on the full cohort. Strengths are expressed per sample, so the
    same grid applies to subsamples of any size.

    Returns an empty array when no strength can select anything.
    """
    Xs = _standardize(X)
    n = Xs.shape[0]
    if data.family == 'classification':
        weight = np.ones(n) if data.sample_weight is None else data.sample_weight
        labels = (data.target > 0).astype(float)
        if weight.sum() <= 0:
            return np.empty(0)
        residual = weight * (labels - np.sum(weight * labels) / weight.sum())
    else:
        residual = data.target - data.target.mean()
    strongest = np.max(np.abs(Xs.T @ residual)) / n
    if not np.isfinite(strongest) or strongest <= 0:
        return np.empty(0)
    return strongest * np.geomspace(1.0, lambda_min_ratio, n_lambdas)


def _lasso_support(Xs: np.ndarray, target: np.ndarray, strengths: np.ndarray,
                   max_iter: int) -> np.ndarray:
    _, coefs, _ = lasso_path(Xs, target - target.mean(), alphas=strengths, max_iter=max_iter)
    # coefs: (n_variants, n_strengths) in the order of `strengths`
    return coefs.T


def _logistic_support(Xs: np.ndarray, labels: np.ndarray, weight: Optional[np.ndarray],
                      strengths: np.ndarray, max_iter: int, seed: int) -> Optional[np.ndarray]:
    informative = labels if weight is None else labels[weight > 0]
    if np.unique(informative).size < 2:
        return None
    n = Xs.shape[0]
    model = LogisticRegression(penalty='l1', solver='saga', warm_start=True,
                               max_iter=max_iter, random_state=seed)
    coefs = np.zeros((strengths.shape[0], Xs.shape[1]))
    for i, strength in enumerate(strengths):
        model.set_params(C=1.0 / (strength * n))
        model.fit(Xs, labels, sample_weight=weight)
        coefs[i] = model.coef_.ravel()
    return coefs


def _selection_unit(task: Tuple[Hashable, int, np.ndarray], X: np.ndarray,
                    inputs: Dict[Hashable, RegressionInput], grids: Dict[Hashable, np.ndarray],
                    coef_threshold: float, max_iter: int) -> Tuple[Hashable, np.ndarray, bool]:
    """
    Fit one subsample for one method.

    Returns the key, the (n_strengths, n_variants) cumulative selection
    indicator and whether the fit failed. A failed or degenerate fit selects
    nothing.
    """
    key, seed, idx = task
    data = inputs[key]
    strengths = grids[key]
    selected = np.zeros((strengths.shape[0], X.shape[1]), dtype=bool)
    Xs = _standardize(X[idx])
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            if data.family == 'classification':
                weight = None if data.sample_weight is None else data.sample_weight[idx]
                coefs = _logistic_support(Xs, (data.target[idx] > 0).astype(int), weight,
                                          strengths, max_iter, seed)
            else:
                coefs = _lasso_support(Xs, data.target[idx], strengths, max_iter)
    except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
        warnings.warn(f"Subsample fit for '{key}' failed and counts as no selection: {e}")
        return key, selected, True
    if coefs is None:
        logger.debug(f"Degenerate subsample for '{key}'; nothing selected")
        return key, selected, False
    selected = np.logical_or.accumulate(np.abs(coefs) > coef_threshold, axis=0)
    return key, selected, False


class StabilitySelector:
    """
    Stability selection engine, written once against RegressionInput.

    Methods:
        fit: scores for a single regression input.
        fit_many: scores for several inputs sharing one covariate matrix; every
            (subsample, input) pair is an independent unit of work.
    """

    def __init__(self, config: Optional[EpistasisConfig] = None):
        self.config = config or EpistasisConfig()

    def subsamples(self, n_samples: int) -> List[Tuple[int, np.ndarray]]:
        """Seeds and index sets of the subsamples, reproducible from the config seed."""
        rng = np.random.default_rng(self.config.random_state)
        size = min(n_samples, max(2, int(round(n_samples * self.config.subsample_fraction))))
        seeds = rng.integers(0, 2**31 - 1, size=self.config.resample_count)
        return [(int(seed), np.sort(rng.choice(n_samples, size=size, replace=False))) for seed in seeds]

    def aggregate(self, frequencies: np.ndarray) -> np.ndarray:
        if frequencies.shape[0] == 0:
            return np.zeros(frequencies.shape[1])
        if self.config.aggregation == 'max':
            return frequencies.max(axis=0)
        return frequencies.mean(axis=0)

    def fit(self, X, data: RegressionInput) -> StabilityResult:
        return self.fit_many(X, {'input': data})['input']

    def fit_many(self, X, inputs: Dict[Hashable, RegressionInput]) -> Dict[Hashable, StabilityResult]:
        X = np.asarray(X, dtype=float)
        if X.ndim != 2:
            raise InputValidationError(f"covariate matrix must be 2D, got shape {X.shape}")
        for key, data in inputs.items():
            check_n_samples(X.shape[0], len(data), f"regression input '{key}'")
            if not np.isfinite(data.target).all():
                raise InputValidationError(f"regression input '{key}' has non-finite values")

        cfg = self.config
        grids = {key: regularization_grid(X, data, cfg.n_lambdas, cfg.lambda_min_ratio)
                 for key, data in inputs.items()}
        for key, grid in grids.items():
            if grid.size == 0:
                logger.warning(f"No variant can be selected for '{key}'; all scores are zero")

        draws = self.subsamples(X.shape[0])
        tasks = [(key, seed, idx) for key in inputs if grids[key].size for seed, idx in draws]
        logger.info(f"Running {len(tasks)} subsample fits "
                    f"({len(draws)} subsamples x {len(inputs)} inputs, n_jobs={cfg.n_jobs})")
        unit = partial(_selection_unit, X=X, inputs=inputs, grids=grids,
                       coef_threshold=cfg.coef_threshold, max_iter=cfg.max_iter)
        outputs = run_tasks(unit, tasks, n_jobs=cfg.n_jobs, backend=cfg.parallel_backend,
                            max_nbytes=cfg.max_nbytes)

        counts = {key: np.zeros((grids[key].size, X.shape[1])) for key in inputs}
        failed = dict.fromkeys(inputs, 0)
        for key, selected, unit_failed in outputs:
            counts[key] += selected
            failed[key] += int(unit_failed)

        results = {}
        for key in inputs:
            if failed[key]:
                logger.warning(f"{failed[key]}/{len(draws)} subsample fits failed for '{key}'")
            frequencies = counts[key] / len(draws)
            results[key] = StabilityResult(
                scores=np.clip(self.aggregate(frequencies), 0.0, 1.0),
                frequencies=frequencies,
                strengths=grids[key],
                n_resamples=len(draws),
                n_failed=failed[key],
            )
        return results
