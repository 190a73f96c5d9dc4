# ps_epistasis/outcome.py
"""
Outcome transformations for the five detection methods.

Each method is a pure function of the phenotype, the target variant and the
propensity scores (the robust variant also sees the covariates) returning a
RegressionInput, the only shape the stability selection engine knows about.

- OWL (outcome weighted learning): weighted classification of the symmetric
  target with weights Y / P(A = observed | X). No correction for small
  propensities beyond the propensity floor.
- Modified outcome: Y * (A / P(A=1|X) - (1 - A) / P(A=0|X)), whose conditional
  expectation on X recovers the interaction effect.
- Shifted: same, with every propensity denominator increased by `shift`.
- Normalized: both weighting terms are divided by their own total over the
  samples (Hajek normalization) before being differenced.
- Robust: augmented (doubly robust) version using a fitted main-effect model.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from sklearn.linear_model import LassoCV, LinearRegression, RidgeCV
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

from .config import EpistasisConfig
from .genotype import TargetVariant
from .validators import InputValidationError, check_n_samples

logger = logging.getLogger(__name__)


class Method(str, Enum):
    OWL = 'owl'
    MODIFIED_OUTCOME = 'modified_outcome'
    SHIFTED = 'shifted'
    NORMALIZED = 'normalized'
    ROBUST = 'robust'

    @property
    def family(self) -> str:
        return 'classification' if self is Method.OWL else 'regression'

    @classmethod
    def parse(cls, name) -> "Method":
        try:
            return cls(name.value if isinstance(name, Method) else str(name).lower())
        except ValueError:
            raise InputValidationError(
                f"Unknown detection method '{name}'; expected one of {[m.value for m in cls]}"
            ) from None


@dataclass(frozen=True)
class RegressionInput:
    """Target of the penalized fit, with optional sample weights."""
    target: np.ndarray
    family: str = 'regression'
    sample_weight: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return self.target.shape[0]


def _weights(a: np.ndarray, propensity: np.ndarray, shift: float = 0.0,
             floor: float = 1e-8) -> Tuple[np.ndarray, np.ndarray]:
    """Inverse propensity weights A / P(A=1|X) and (1 - A) / P(A=0|X)."""
    p0 = np.maximum(propensity[:, 0] + shift, floor)
    p1 = np.maximum(propensity[:, 1] + shift, floor)
    return a / p1, (1 - a) / p0


def owl(y: np.ndarray, target: TargetVariant, propensity: np.ndarray,
        floor: float = 1e-8) -> RegressionInput:
    """
    Outcome weighted learning input: label is the symmetric target, weight is
    Y / P(A = observed | X). A phenotype with negative values is shifted by
    its minimum so that the weights stay non-negative.
    """
    y = np.asarray(y, dtype=float)
    if y.min() < 0:
        logger.debug(f"Shifting phenotype by {-y.min():.4g} for non-negative OWL weights")
        y = y - y.min()
    weight = y / np.maximum(target.observed_propensity(propensity), floor)
    return RegressionInput(target=target.symmetric.astype(float), family='classification',
                           sample_weight=weight)


def modified_outcome(y: np.ndarray, a: np.ndarray, propensity: np.ndarray,
                     shift: float = 0.0, floor: float = 1e-8) -> RegressionInput:
    """Modified outcome; `shift` > 0 gives the shifted variant."""
    w1, w0 = _weights(np.asarray(a, dtype=float), propensity, shift=shift, floor=floor)
    return RegressionInput(target=np.asarray(y, dtype=float) * (w1 - w0))


def normalized_modified_outcome(y: np.ndarray, a: np.ndarray, propensity: np.ndarray,
                                floor: float = 1e-8) -> RegressionInput:
    """
    Hajek-normalized modified outcome.

    Propensity rows are first rescaled to sum to one, so the transform is
    invariant to any positive rescaling of the score matrix.
    """
    ps = propensity / propensity.sum(axis=1, keepdims=True)
    w1, w0 = _weights(np.asarray(a, dtype=float), ps, floor=floor)
    if w1.sum() > 0:
        w1 = w1 / w1.sum()
    if w0.sum() > 0:
        w0 = w0 / w0.sum()
    return RegressionInput(target=np.asarray(y, dtype=float) * (w1 - w0))


def _nuisance_estimator(kind: str, random_state: int = 42):
    if kind == 'ridge':
        return make_pipeline(StandardScaler(), RidgeCV(alphas=np.logspace(-3, 3, 13)))
    if kind == 'lasso':
        return make_pipeline(StandardScaler(), LassoCV(cv=5, random_state=random_state))
    if kind == 'linear':
        return LinearRegression()
    raise ValueError(f"Unknown nuisance model '{kind}'")


def fit_main_effects(X: np.ndarray, a: np.ndarray, y: np.ndarray, kind: str = 'ridge',
                     random_state: int = 42) -> Tuple[np.ndarray, np.ndarray]:
    """
    Regress Y on the main effects of X and A.

    Returns:
        Tuple[np.ndarray, np.ndarray]: fitted values mu0(X), mu1(X) with the
        target set to 0 and to 1.
    """
    X = np.asarray(X, dtype=float)
    a = np.asarray(a, dtype=float)
    estimator = _nuisance_estimator(kind, random_state)
    estimator.fit(np.column_stack([X, a]), y)
    mu0 = estimator.predict(np.column_stack([X, np.zeros_like(a)]))
    mu1 = estimator.predict(np.column_stack([X, np.ones_like(a)]))
    logger.debug(f"Fitted '{kind}' main-effect model on {X.shape[0]} samples")
    return mu0, mu1


def robust_modified_outcome(y: np.ndarray, a: np.ndarray, propensity: np.ndarray,
                            X: Optional[np.ndarray] = None,
                            main_effects: Optional[Tuple[np.ndarray, np.ndarray]] = None,
                            nuisance_model: str = 'ridge', floor: float = 1e-8,
                            random_state: int = 42) -> RegressionInput:
    """
    Doubly robust modified outcome.

    mu1 - mu0 + A (Y - mu1) / P(A=1|X) - (1 - A) (Y - mu0) / P(A=0|X)

    The transform stays consistent when either the propensity or the
    main-effect model is well specified. With mu0 = mu1 = 0 it reduces to the
    plain modified outcome.
    """
    y = np.asarray(y, dtype=float)
    a = np.asarray(a, dtype=float)
    if main_effects is None:
        if X is None:
            raise InputValidationError("robust modified outcome needs covariates or main_effects")
        mu0, mu1 = fit_main_effects(X, a, y, kind=nuisance_model, random_state=random_state)
    else:
        mu0, mu1 = (np.asarray(m, dtype=float) for m in main_effects)
        check_n_samples(y.shape[0], mu0.shape[0], "main effect estimate")
        check_n_samples(y.shape[0], mu1.shape[0], "main effect estimate")
    w1, w0 = _weights(a, propensity, floor=floor)
    return RegressionInput(target=mu1 - mu0 + w1 * (y - mu1) - w0 * (y - mu0))


def transform(method, y: np.ndarray, target: TargetVariant, propensity: np.ndarray,
              X: Optional[np.ndarray] = None,
              config: Optional[EpistasisConfig] = None) -> RegressionInput:
    """Dispatch to the transformation of `method` with constants from `config`."""
    config = config or EpistasisConfig()
    method = Method.parse(method)
    return TRANSFORMS[method](y, target, propensity, X, config)


TRANSFORMS: Dict[Method, Callable[..., RegressionInput]] = {
    Method.OWL: lambda y, t, ps, X, c: owl(y, t, ps, floor=c.propensity_floor),
    Method.MODIFIED_OUTCOME: lambda y, t, ps, X, c: modified_outcome(
        y, t.binary, ps, floor=c.propensity_floor),
    Method.SHIFTED: lambda y, t, ps, X, c: modified_outcome(
        y, t.binary, ps, shift=c.shift, floor=c.propensity_floor),
    Method.NORMALIZED: lambda y, t, ps, X, c: normalized_modified_outcome(
        y, t.binary, ps, floor=c.propensity_floor),
    Method.ROBUST: lambda y, t, ps, X, c: robust_modified_outcome(
        y, t.binary, ps, X=X, nuisance_model=c.nuisance_model, floor=c.propensity_floor,
        random_state=c.random_state),
}
