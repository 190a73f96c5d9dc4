# ps_epistasis/config.py
"""
Configuration module for ps_epistasis.
This file defines a dataclass to hold configurable parameters for the pipeline,
so that the numerical constants of the outcome transformations and of the
stability selection are explicit settings rather than hidden literals.
"""

from dataclasses import dataclass, field, fields
from typing import List

METHODS = ["owl", "modified_outcome", "shifted", "normalized", "robust"]
MECHANISMS = ("dominant", "recessive")
AGGREGATIONS = ("area", "max")
NUISANCE_MODELS = ("ridge", "lasso", "linear")


@dataclass
class EpistasisConfig:
    """
    Configuration class for propensity-score epistasis detection.

    Attributes:
        resample_count (int): Number of random subsamples drawn by the stability
            selection engine (default: 50).
        subsample_fraction (float): Fraction of the samples kept in each subsample
            (default: 0.5).
        random_state (int): Seed for subsampling; identical seeds give identical
            scores (default: 42).
        n_lambdas (int): Number of regularization strengths on the path (default: 20).
        lambda_min_ratio (float): Weakest strength as a fraction of the strongest
            one, which is the smallest value selecting nothing (default: 0.05).
        aggregation (str): 'area' averages the selection frequency over the path,
            'max' keeps its maximum (default: 'area').
        coef_threshold (float): Absolute coefficient above which a variant counts
            as selected (default: 1e-8).
        propensity_floor (float): Lower clip on propensity denominators for OWL and
            the plain modified outcome, keeping transformed values finite
            (default: 1e-8).
        shift (float): Constant added to propensity denominators by the shifted
            modified outcome (default: 0.1).
        nuisance_model (str): Main-effect regressor used by the robust modified
            outcome: 'ridge', 'lasso' or 'linear' (default: 'ridge').
        mechanism (str): Binarization of the target, 'dominant' maps {1,2} to 1,
            'recessive' maps only 2 to 1 (default: 'dominant').
        n_jobs (int): Number of parallel workers. 1 runs sequentially, -1 uses all
            available CPU cores (default: 1).
        parallel_backend (str): joblib backend for parallel runs (default: 'loky').
        max_nbytes (str): Arrays larger than this are memory-mapped and shared
            read-only between workers (default: '1M').
        max_iter (int): Iteration cap for the penalized solvers (default: 5000).
        methods (List[str]): Detection methods to run (default: all five).
        output_formats (List[str]): Result formats written by the CLI.
    """
    resample_count: int = 50
    subsample_fraction: float = 0.5
    random_state: int = 42
    n_lambdas: int = 20
    lambda_min_ratio: float = 0.05
    aggregation: str = 'area'
    coef_threshold: float = 1e-8
    propensity_floor: float = 1e-8
    shift: float = 0.1
    nuisance_model: str = 'ridge'
    mechanism: str = 'dominant'
    n_jobs: int = 1
    parallel_backend: str = 'loky'
    max_nbytes: str = '1M'
    max_iter: int = 5000
    methods: List[str] = field(default_factory=lambda: list(METHODS))
    output_formats: List[str] = field(default_factory=lambda: ["csv", "json"])

    def validate(self) -> "EpistasisConfig":
        """Check value ranges; raises ValueError on the first invalid setting."""
        if self.resample_count < 1:
            raise ValueError(f"resample_count must be >= 1, got {self.resample_count}")
        if not 0.0 < self.subsample_fraction <= 1.0:
            raise ValueError(f"subsample_fraction must lie in (0, 1], got {self.subsample_fraction}")
        if self.n_lambdas < 1:
            raise ValueError(f"n_lambdas must be >= 1, got {self.n_lambdas}")
        if not 0.0 < self.lambda_min_ratio < 1.0:
            raise ValueError(f"lambda_min_ratio must lie in (0, 1), got {self.lambda_min_ratio}")
        if self.aggregation not in AGGREGATIONS:
            raise ValueError(f"aggregation must be one of {AGGREGATIONS}, got '{self.aggregation}'")
        if self.propensity_floor <= 0:
            raise ValueError(f"propensity_floor must be positive, got {self.propensity_floor}")
        if self.shift < 0:
            raise ValueError(f"shift must be non-negative, got {self.shift}")
        if self.nuisance_model not in NUISANCE_MODELS:
            raise ValueError(f"nuisance_model must be one of {NUISANCE_MODELS}, got '{self.nuisance_model}'")
        if self.mechanism not in MECHANISMS:
            raise ValueError(f"mechanism must be one of {MECHANISMS}, got '{self.mechanism}'")
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be a non-zero integer")
        unknown = [m for m in self.methods if m not in METHODS]
        if unknown:
            raise ValueError(f"Unknown methods {unknown}; expected a subset of {METHODS}")
        return self

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]
