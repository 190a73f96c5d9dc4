# ps_epistasis/core.py
"""
Core orchestration: propensity estimation, outcome transformation and
stability selection chained into one analysis.
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from .baseline import boost_statistics
from .config import EpistasisConfig
from .data_loader import DataLoader
from .fastphase import FastPhaseFitter, HMMFitter
from .genotype import TargetVariant
from .hmm import PropensityModel
from .outcome import Method, RegressionInput, transform
from .output_generator import OutputGenerator
from .propensity import propensity_scores as estimate_propensity
from .stability import StabilitySelector
from .validators import (InputValidationError, check_genotypes, check_n_samples, check_phenotype,
                         check_propensity, check_unique_columns)

logger = logging.getLogger(__name__)


def detect_epistasis(target_values, covariate_matrix, phenotype, propensity_scores,
                     methods: Optional[Iterable] = None, resample_count: Optional[int] = None,
                     seed: Optional[int] = None, parallel: bool = False,
                     config: Optional[EpistasisConfig] = None) -> Dict[str, pd.Series]:
    """
    Stability scores of every variant for its interaction with the target.

    Args:
        target_values: Raw {0,1,2} genotype of the target variant.
        covariate_matrix: Genotype matrix without the target (DataFrame or array).
        phenotype: Binary or continuous phenotype.
        propensity_scores: (n_samples, 2) matrix of P(A=0|X), P(A=1|X).
        methods: Detection methods; defaults to those of `config`.
        resample_count: Number of subsamples; overrides `config`.
        seed: Subsampling seed; overrides `config`.
        parallel: Run the subsample fits on a worker pool.
        config: Remaining numerical settings.

    Returns:
        Dict[str, pd.Series]: method name -> scores in [0, 1], aligned with the
        columns of `covariate_matrix`.

    Raises:
        InputValidationError: On any precondition violation, before any fit runs.
    """
    config = replace(config or EpistasisConfig())
    if resample_count is not None:
        config.resample_count = resample_count
    if seed is not None:
        config.random_state = seed
    if parallel and config.n_jobs == 1:
        config.n_jobs = -1
    elif not parallel:
        config.n_jobs = 1
    try:
        config.validate()
    except ValueError as e:
        raise InputValidationError(str(e)) from e
    selected = [Method.parse(m) for m in (methods if methods is not None else config.methods)]
    if not selected:
        raise InputValidationError("at least one detection method is required")

    if isinstance(covariate_matrix, pd.DataFrame):
        check_unique_columns(covariate_matrix.columns, "covariate matrix")
        columns = covariate_matrix.columns
    else:
        columns = pd.RangeIndex(np.shape(covariate_matrix)[1])
    X = check_genotypes(covariate_matrix, "covariate matrix").astype(float)
    if X.ndim != 2:
        raise InputValidationError(f"covariate matrix must be 2D, got shape {X.shape}")
    target = TargetVariant(np.asarray(target_values), mechanism=config.mechanism)
    check_n_samples(X.shape[0], len(target), "target variant")
    y = check_phenotype(phenotype, X.shape[0])
    ps = check_propensity(propensity_scores, X.shape[0])
    if np.unique(target.binary).size < 2:
        logger.warning("Target variant is monomorphic under the binarization rule; scores will be degenerate")

    logger.info(f"Detecting interactions with the target over {X.shape[1]} variants, "
                f"{X.shape[0]} samples, methods {[m.value for m in selected]}")
    inputs: Dict[str, RegressionInput] = {
        m.value: transform(m, y, target, ps, X=X, config=config) for m in selected
    }
    results = StabilitySelector(config).fit_many(X, inputs)
    return {key: pd.Series(result.scores, index=columns, name=key) for key, result in results.items()}


class EpistasisDetector:
    """
    Orchestrates the analysis from genotype tables to per-method scores.
    """

    def __init__(self, config: Optional[EpistasisConfig] = None, fitter: Optional[HMMFitter] = None):
        self.config = (config or EpistasisConfig()).validate()
        logger.info(f"Initializing EpistasisDetector with config: {vars(self.config)}")
        self.loader = DataLoader()
        self.fitter = fitter

    def propensity(self, genotypes: pd.DataFrame, target_name: str,
                   model: Optional[PropensityModel] = None) -> np.ndarray:
        """Propensity scores from `model`, or from the injected fitter when no model is given."""
        if model is None:
            if self.fitter is None:
                raise InputValidationError("a propensity model, a fitter or precomputed scores is required")
            logger.info("Fitting the propensity HMM...")
            model = self.fitter.fit(genotypes.to_numpy())
        return estimate_propensity(genotypes, target_name, model,
                                   mechanism=self.config.mechanism, n_jobs=self.config.n_jobs)

    def run(self, genotypes: pd.DataFrame, target_name: str, phenotype,
            propensity=None, model: Optional[PropensityModel] = None,
            exclude: Optional[List[str]] = None, baseline: bool = False) -> Dict:
        """
        Full analysis on in-memory data.

        Args:
            genotypes: Genotype matrix including the target column.
            target_name: Target variant column.
            phenotype: Phenotype aligned with the genotype rows.
            propensity: Precomputed propensity scores; bypasses the HMM.
            model: Fitted propensity model over the columns of `genotypes`.
            exclude: Variants left out of the covariates (e.g. the target's LD block).
            baseline: Also compute the BOOST statistic (binary phenotype only).

        Returns:
            dict: 'scores' (DataFrame variants x methods), 'propensity', optional 'boost'.
        """
        if target_name not in genotypes.columns:
            raise InputValidationError(f"target variant '{target_name}' is not a column of the genotype matrix")
        exclude = [v for v in (exclude or []) if v != target_name]
        unknown = [v for v in exclude if v not in genotypes.columns]
        if unknown:
            logger.warning(f"Ignoring {len(unknown)} excluded variants absent from the genotype matrix")

        logger.info("🧬 Stage 1: Propensity Scores")
        if propensity is None:
            ps = self.propensity(genotypes, target_name, model)
        else:
            ps = check_propensity(propensity, genotypes.shape[0])

        logger.info("🔍 Stage 2: Interaction Detection")
        covariates = genotypes.drop(columns=[target_name] + [v for v in exclude if v in genotypes.columns])
        scores = detect_epistasis(genotypes[target_name].to_numpy(), covariates, phenotype, ps,
                                  methods=self.config.methods, parallel=self.config.n_jobs != 1,
                                  config=self.config)
        results = {'scores': pd.DataFrame(scores),
                   'propensity': pd.DataFrame(ps, index=genotypes.index, columns=['p0', 'p1'])}

        if baseline:
            logger.info("📏 Stage 3: BOOST Baseline")
            results['boost'] = boost_statistics(genotypes[target_name], covariates, phenotype,
                                                n_jobs=self.config.n_jobs)
        return results

    def run_pipeline(self, genomic_path: str, target: str, label_column: str,
                     phenotype_path: Optional[str] = None, propensity_path: Optional[str] = None,
                     hmm_path: Optional[str] = None, exclude_path: Optional[str] = None,
                     output_dir: Optional[str] = "results/", baseline: bool = False) -> Dict:
        """
        Execute the full pipeline from files: load, align, estimate propensity,
        detect interactions and write outputs.
        """
        logger.info("📥 Stage 0: Input Processing")
        genotypes = self.loader.load_genotype_matrix(genomic_path)
        phenotype = self.loader.load_phenotype(phenotype_path) if phenotype_path else None
        propensity = self.loader.load_propensity(propensity_path) if propensity_path else None
        genotypes, labels, propensity = self.loader.align_data(genotypes, phenotype, label_column, propensity,
                                                               output_dir=output_dir)
        exclude = self.loader.load_variant_list(exclude_path) if exclude_path else None
        model = PropensityModel.load(hmm_path) if hmm_path else None

        results = self.run(genotypes, target, labels.to_numpy(),
                           propensity=None if propensity is None else propensity.to_numpy(),
                           model=model, exclude=exclude, baseline=baseline)

        if output_dir:
            OutputGenerator(self.config).write(results, target, output_dir)
        logger.info("✅ Pipeline completed successfully")
        return results


def run_epistasis_analysis(**kwargs):
    """
    Entry-point function for pipeline execution.
    """
    config = kwargs.pop('config', None) or EpistasisConfig()
    fastphase_path = kwargs.pop('fastphase_path', None)
    fitter = FastPhaseFitter(fastphase_path, seed=config.random_state) if fastphase_path else None
    detector = EpistasisDetector(config, fitter=fitter)
    logger.info("Starting pipeline execution...")
    return detector.run_pipeline(**kwargs)
