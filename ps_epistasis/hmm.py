# ps_epistasis/hmm.py
"""
Hidden Markov model of local genotype dependency and its forward algorithm.

The forward algorithm computes the joint probability of one genotype row,
marginalized over the latent states. It is linear in the number of positions
but quadratic in the dimensionality K of the latent space, so rows are
processed in vectorized chunks. All arithmetic is done in the log domain with
the LogSumExp transformation, so long position ranges do not underflow.

Reference: Rabiner, L. R. (1989). A tutorial on hidden Markov models and
selected applications in speech recognition. Proceedings of the IEEE 77(2).
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Union

import numpy as np
from scipy.special import logsumexp

from .parallel import run_tasks
from .validators import InputValidationError, check_genotypes, check_stochastic

logger = logging.getLogger(__name__)

N_GENOTYPES = 3


def _log(values: np.ndarray) -> np.ndarray:
    # zero probabilities become -inf and propagate through logsumexp
    with np.errstate(divide='ignore'):
        return np.log(values)


@dataclass(frozen=True)
class PropensityModel:
    """
    Fitted HMM parameters.

    Attributes:
        p_init: (K,) marginal distribution of the first latent state.
        transitions: (p - 1, K, K) row-stochastic transitions; entry [j, k, l]
            is P(state l at position j + 1 | state k at position j).
        emissions: (p, 3, K) column-stochastic emissions; entry [j, g, k] is
            P(genotype g at position j | state k).
    """
    p_init: np.ndarray
    transitions: np.ndarray
    emissions: np.ndarray
    log_init: np.ndarray = field(init=False, repr=False, compare=False)
    log_transitions: np.ndarray = field(init=False, repr=False, compare=False)
    log_emissions: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        for name in ('p_init', 'transitions', 'emissions'):
            object.__setattr__(self, name, np.asarray(getattr(self, name), dtype=float))
        self.validate()
        object.__setattr__(self, 'log_init', _log(self.p_init))
        object.__setattr__(self, 'log_transitions', _log(self.transitions))
        object.__setattr__(self, 'log_emissions', _log(self.emissions))

    @property
    def n_states(self) -> int:
        return self.p_init.shape[0]

    @property
    def n_positions(self) -> int:
        return self.emissions.shape[0]

    def validate(self) -> None:
        """Check tensor ranks, shared state dimension and stochasticity."""
        if self.p_init.ndim != 1:
            raise InputValidationError(f"p_init must be a vector, got shape {self.p_init.shape}")
        if self.transitions.ndim != 3:
            raise InputValidationError(
                f"transitions must be a 3D array (positions - 1, K, K), got shape {self.transitions.shape}")
        if self.emissions.ndim != 3:
            raise InputValidationError(
                f"emissions must be a 3D array (positions, 3, K), got shape {self.emissions.shape}")
        k = self.p_init.shape[0]
        if self.transitions.shape[1:] != (k, k):
            raise InputValidationError(
                f"transitions state dimensions {self.transitions.shape[1:]} do not match p_init length {k}")
        if self.emissions.shape[1] != N_GENOTYPES:
            raise InputValidationError(
                f"emissions must have {N_GENOTYPES} genotype rows, got {self.emissions.shape[1]}")
        if self.emissions.shape[2] != k:
            raise InputValidationError(
                f"emissions state dimension {self.emissions.shape[2]} does not match p_init length {k}")
        if self.transitions.shape[0] + 1 != self.emissions.shape[0]:
            raise InputValidationError(
                f"transitions cover {self.transitions.shape[0] + 1} positions but emissions cover "
                f"{self.emissions.shape[0]}")
        check_stochastic(self.p_init, axis=0, name="p_init")
        check_stochastic(self.transitions, axis=2, name="transitions")
        check_stochastic(self.emissions, axis=1, name="emissions")

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savez(path, p_init=self.p_init, transitions=self.transitions, emissions=self.emissions)
        logger.info(f"Saved propensity model with {self.n_states} states to: {path}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PropensityModel":
        with np.load(Path(path)) as data:
            missing = {'p_init', 'transitions', 'emissions'} - set(data.files)
            if missing:
                raise InputValidationError(f"Model file {path} lacks arrays: {sorted(missing)}")
            return cls(data['p_init'], data['transitions'], data['emissions'])


def _forward_block(genotypes: np.ndarray, model: PropensityModel) -> np.ndarray:
    """Forward recursion for a block of rows at once; returns one log probability per row."""
    rows = np.arange(genotypes.shape[0])
    log_alpha = model.log_init[None, :] + model.log_emissions[0, genotypes[:, 0], :]
    for i in range(1, genotypes.shape[1]):
        # (n, K_source, 1) + (1, K_source, K_dest), reduced over source states
        log_alpha = logsumexp(log_alpha[:, :, None] + model.log_transitions[i - 1][None, :, :], axis=1)
        log_alpha = log_alpha + model.log_emissions[i, genotypes[rows, i], :]
    return logsumexp(log_alpha, axis=1)


def forward_sample(x, model: PropensityModel) -> float:
    """
    Log joint probability of one genotype row under the HMM.

    Args:
        x: Genotype row with one {0,1,2} value per HMM position.
        model: Fitted propensity model.

    Returns:
        float: log P(x), marginalized over the latent states.
    """
    row = check_genotypes(np.ravel(x), "genotype row")
    if row.shape[0] != model.n_positions:
        raise InputValidationError(
            f"genotype row has {row.shape[0]} positions, the model has {model.n_positions} positions")
    return float(_forward_block(row[None, :].astype(np.intp), model)[0])


def forward(X, model: PropensityModel, n_jobs: int = 1, chunk_size: int = 256,
            backend: str = 'loky') -> np.ndarray:
    """
    Apply the forward algorithm to every row of a genotype matrix.

    Rows are independent; with `n_jobs` != 1 chunks of rows are dispatched to
    a joblib worker pool, falling back to a sequential run when the backend
    is unavailable.
    """
    genotypes = check_genotypes(X).astype(np.intp)
    if genotypes.ndim != 2:
        raise InputValidationError(f"genotype matrix must be 2D, got shape {genotypes.shape}")
    if genotypes.shape[1] != model.n_positions:
        raise InputValidationError(
            f"genotype matrix has {genotypes.shape[1]} columns, the model has {model.n_positions} positions")

    blocks = [genotypes[start:start + chunk_size] for start in range(0, genotypes.shape[0], chunk_size)]
    results = run_tasks(partial(_forward_block, model=model), blocks,
                        n_jobs=n_jobs, backend=backend)
    return np.concatenate(results) if results else np.empty(0)
