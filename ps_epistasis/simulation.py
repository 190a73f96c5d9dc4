# ps_epistasis/simulation.py
"""
Synthetic cohort generation: causal SNP sampling, effect sizes, binary
phenotypes and merging of LD clusters around the target.
"""

import logging
from typing import Dict, Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.special import expit

from .validators import InputValidationError

logger = logging.getLogger(__name__)

RandomState = Optional[Union[int, np.random.Generator]]


def sample_snp(n_syner: int, n_marginal: int, n_pairs: int, clusters: pd.Series, maf: pd.Series,
               thresh_maf: float = 0.2, window_size: int = 3, overlap_marg: int = 0,
               overlap_inter: int = 0, max_iter: int = 10000,
               random_state: RandomState = None) -> Dict[str, list]:
    """
    Sample causal SNPs with different effect types.

    SNPs are drawn in the order target, synergistic, marginal, epistatic pairs.
    Every candidate must have a MAF above `thresh_maf` and, except for the
    target, lie more than `window_size` clusters away from the target cluster.
    At most one SNP is drawn per cluster. Synergistic SNPs can carry additional
    marginal (`overlap_marg`) or epistatic (`overlap_inter`) effects.

    Args:
        n_syner: Number of SNPs interacting with the target.
        n_marginal: Number of SNPs with marginal effects.
        n_pairs: Number of SNP pairs with epistatic effects.
        clusters: Cluster membership indexed by SNP id.
        maf: Minor allele frequencies, same order as `clusters`.

    Returns:
        dict: 'target', 'syner', 'marginal', 'inter1' and 'inter2' lists of SNP
        ids; the pairs are formed by equal positions in 'inter1' and 'inter2'.

    Raises:
        RuntimeError: If a SNP cannot be drawn within `max_iter` rejections.
    """
    if not 0 < thresh_maf <= 0.5:
        raise InputValidationError(f"thresh_maf must lie in (0, 0.5], got {thresh_maf}")
    if len(clusters) != len(maf):
        raise InputValidationError(f"clusters ({len(clusters)}) and maf ({len(maf)}) differ in length")
    if not overlap_marg + overlap_inter < n_syner:
        raise InputValidationError("overlap_marg + overlap_inter must be smaller than n_syner")
    if not overlap_marg < n_marginal:
        raise InputValidationError("overlap_marg must be smaller than n_marginal")
    if not overlap_inter < n_pairs:
        raise InputValidationError("overlap_inter must be smaller than n_pairs")

    rng = np.random.default_rng(random_state)
    clusters = clusters.copy()
    maf = pd.Series(np.asarray(maf, dtype=float), index=clusters.index)

    n_active = 1 + n_syner + n_marginal + 2 * n_pairs - (overlap_marg + overlap_inter)
    active = []
    target_cluster = None
    for i in range(n_active):
        for _ in range(max_iter):
            if clusters.empty:
                raise RuntimeError("Ran out of clusters while sampling causal SNPs")
            candidate = clusters.index[rng.integers(len(clusters))]
            accepted = maf[candidate] > thresh_maf
            if i == 0:
                target_cluster = clusters[candidate]
            else:
                accepted = accepted and abs(clusters[candidate] - target_cluster) > window_size
            if accepted:
                break
        else:
            raise RuntimeError("The MAF constraint can not be satisfied")
        active.append(candidate)
        keep = clusters != clusters[candidate]
        clusters, maf = clusters[keep], maf[keep]

    syner = active[1:1 + n_syner]
    marg_idx = rng.choice(n_syner, size=overlap_marg, replace=False)
    remaining = np.setdiff1d(np.arange(n_syner), marg_idx)
    inter_idx = rng.choice(remaining, size=overlap_inter, replace=False)

    start = 1 + n_syner
    marginal = active[start:start + n_marginal - overlap_marg] + [syner[i] for i in marg_idx]
    start += n_marginal - overlap_marg
    inter1 = active[start:start + n_pairs - overlap_inter] + [syner[i] for i in inter_idx]
    start += n_pairs - overlap_inter
    inter2 = active[start:]

    return {'target': active[0], 'syner': syner, 'marginal': marginal,
            'inter1': inter1, 'inter2': inter2}


def gen_model(n_syner: int, n_marginal: int, n_pairs: int, mean: Sequence = (0, 0, 0, 0),
              sd: Sequence = (1, 1, 1, 1), random_state: RandomState = None) -> Dict:
    """
    Sample normally distributed effect sizes.

    `mean` and `sd` hold four entries, in output order: synergistic effects
    when A = 0, when A = 1, marginal and epistatic effects. Each entry is a
    scalar or a vector of the matching length.
    """
    if len(mean) != 4 or len(sd) != 4:
        raise InputValidationError("mean and sd must each have four entries")
    rng = np.random.default_rng(random_state)
    sizes = (n_syner, n_syner, n_marginal, n_pairs)
    draws = [rng.normal(loc=m, scale=s, size=n) for m, s, n in zip(mean, sd, sizes)]
    return {'syner': {'A0': draws[0], 'A1': draws[1]}, 'marg': draws[2], 'inter': draws[3]}


def sim_phenotype(X: pd.DataFrame, causal: Dict, model: Dict, intercept: bool = True,
                  random_state: RandomState = None) -> pd.Series:
    """
    Simulate a binary phenotype under a logistic model with synergistic,
    marginal and epistatic effects. With `intercept`, the risk is centred so
    that cases and controls are approximately balanced.
    """
    for key in ('target', 'syner', 'marginal', 'inter1', 'inter2'):
        if key not in causal:
            raise InputValidationError(f"causal SNP list lacks '{key}'")
    if len(causal['syner']) != len(model['syner']['A0']) or len(causal['syner']) != len(model['syner']['A1']):
        raise InputValidationError("synergistic SNPs and effect sizes differ in length")
    if len(causal['marginal']) != len(model['marg']):
        raise InputValidationError("marginal SNPs and effect sizes differ in length")
    if not len(causal['inter1']) == len(causal['inter2']) == len(model['inter']):
        raise InputValidationError("epistatic pairs and effect sizes differ in length")

    rng = np.random.default_rng(random_state)
    target = X[causal['target']].to_numpy()
    syner = X[causal['syner']].to_numpy(dtype=float)
    risk = ((target == 0) * (syner @ model['syner']['A0'])
            + (target > 0) * (syner @ model['syner']['A1'])
            + X[causal['marginal']].to_numpy(dtype=float) @ model['marg']
            + (X[causal['inter1']].to_numpy(dtype=float)
               * X[causal['inter2']].to_numpy(dtype=float)) @ model['inter'])
    if intercept:
        risk = risk - risk.mean()
    phenotype = rng.uniform(size=X.shape[0]) < expit(risk)
    logger.debug(f"Simulated {int(phenotype.sum())} cases out of {X.shape[0]} samples")
    return pd.Series(phenotype, index=X.index, name='phenotype')


def merge_cluster(clusters: pd.Series, center: int, k: Union[int, Iterable[int]] = 3) -> pd.Series:
    """
    Merge the clusters around the target cluster `center` into it.

    With an integer `k`, clusters center - k to center + k are merged;
    otherwise `k` lists the cluster indices to merge. Cluster indices are
    renumbered 1..n_clusters afterwards.
    """
    levels = np.unique(clusters)
    if center not in levels:
        raise InputValidationError(f"center {center} is not a cluster index")
    if np.isscalar(k):
        if 2 * k + 1 > levels.size:
            raise InputValidationError(f"window of width {2 * k + 1} exceeds {levels.size} clusters")
        window = np.arange(center - k, center + k + 1)
    else:
        window = np.asarray(list(k))
        if not np.isin(window, levels).all():
            raise InputValidationError("every cluster index in k must be present in clusters")

    merged = clusters.where(~clusters.isin(window), center)
    ranks = {value: rank for rank, value in enumerate(np.sort(merged.unique()), start=1)}
    return merged.map(ranks)
