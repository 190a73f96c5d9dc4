# ps_epistasis/genotype.py
"""
Target variant representations.

The raw {0,1,2} dosage is the only state; the binarized {0,1} and symmetric
{-1,+1} codings used by the outcome transformations are derived views.
"""

from dataclasses import dataclass

import numpy as np

from .config import MECHANISMS
from .validators import InputValidationError, check_genotypes


def binarize(values, mechanism: str = 'dominant') -> np.ndarray:
    """Map dosages to {0,1}: dominant sends {1,2} to 1, recessive sends only 2 to 1."""
    if mechanism not in MECHANISMS:
        raise InputValidationError(f"mechanism must be one of {MECHANISMS}, got '{mechanism}'")
    raw = np.asarray(values)
    if mechanism == 'dominant':
        return (raw > 0).astype(np.int8)
    return (raw == 2).astype(np.int8)


@dataclass(frozen=True)
class TargetVariant:
    """Raw genotype of the target variant with its binary and symmetric views."""
    raw: np.ndarray
    mechanism: str = 'dominant'

    def __post_init__(self):
        object.__setattr__(self, 'raw', check_genotypes(np.ravel(self.raw), "target variant"))
        if self.mechanism not in MECHANISMS:
            raise InputValidationError(f"mechanism must be one of {MECHANISMS}, got '{self.mechanism}'")

    def __len__(self) -> int:
        return self.raw.shape[0]

    @property
    def binary(self) -> np.ndarray:
        return binarize(self.raw, self.mechanism)

    @property
    def symmetric(self) -> np.ndarray:
        return 2 * self.binary.astype(np.int8) - 1

    def observed_propensity(self, propensity: np.ndarray) -> np.ndarray:
        """Pick, per sample, the propensity of the observed binary target value."""
        return np.asarray(propensity)[np.arange(len(self)), self.binary]
