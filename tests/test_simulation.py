"""Tests for synthetic cohort generation."""

import numpy as np
import pandas as pd
import pytest

import ps_epistasis
from ps_epistasis.simulation import gen_model, merge_cluster, sample_snp, sim_phenotype
from ps_epistasis.validators import InputValidationError


@pytest.fixture
def snp_layout():
    """60 SNPs in 30 clusters of two, all common."""
    ids = [f"snp{i}" for i in range(60)]
    clusters = pd.Series(np.repeat(np.arange(1, 31), 2), index=ids)
    maf = pd.Series(np.full(60, 0.3), index=ids)
    return clusters, maf


def test_sample_snp_respects_constraints(snp_layout):
    clusters, maf = snp_layout
    causal = sample_snp(3, 2, 2, clusters, maf, window_size=3, overlap_marg=1, overlap_inter=1,
                        random_state=0)
    assert len(causal['syner']) == 3
    assert len(causal['marginal']) == 2
    assert len(causal['inter1']) == len(causal['inter2']) == 2

    target_cluster = clusters[causal['target']]
    others = causal['syner'] + causal['marginal'] + causal['inter1'] + causal['inter2']
    assert all(abs(clusters[s] - target_cluster) > 3 for s in others)
    # one SNP per cluster, overlapping SNPs reuse synergistic ones
    distinct = set(others) | {causal['target']}
    assert len(set(clusters[list(distinct)])) == len(distinct)
    assert len(set(causal['marginal']) & set(causal['syner'])) == 1
    assert len(set(causal['inter1']) & set(causal['syner'])) == 1


def test_sample_snp_is_seeded(snp_layout):
    clusters, maf = snp_layout
    assert sample_snp(2, 2, 1, clusters, maf, random_state=4) == sample_snp(2, 2, 1, clusters, maf, random_state=4)


def test_sample_snp_impossible_maf(snp_layout):
    clusters, maf = snp_layout
    with pytest.raises(RuntimeError, match="MAF constraint"):
        sample_snp(1, 1, 1, clusters, maf * 0.1, max_iter=50, random_state=0)


def test_sample_snp_invalid_overlap(snp_layout):
    clusters, maf = snp_layout
    with pytest.raises(InputValidationError):
        sample_snp(2, 1, 1, clusters, maf, overlap_marg=1)


def test_gen_model_shapes():
    model = gen_model(3, 2, 4, mean=(0, 1, 0, 0), sd=(1, 0, 1, 1), random_state=1)
    np.testing.assert_array_equal(model['syner']['A1'], np.ones(3))
    assert model['syner']['A0'].shape == (3,)
    assert model['marg'].shape == (2,)
    assert model['inter'].shape == (4,)


def test_gen_model_needs_four_moments():
    with pytest.raises(InputValidationError):
        gen_model(1, 1, 1, mean=(0, 0))


def test_sim_phenotype(snp_layout):
    clusters, maf = snp_layout
    rng = np.random.default_rng(2)
    X = pd.DataFrame(rng.binomial(2, 0.3, size=(500, 60)), columns=clusters.index)
    causal = sample_snp(2, 1, 1, clusters, maf, random_state=2)
    model = gen_model(2, 1, 1, random_state=2)

    phenotype = sim_phenotype(X, causal, model, random_state=3)
    assert phenotype.dtype == bool
    assert phenotype.name == 'phenotype'
    assert 0.3 < phenotype.mean() < 0.7
    pd.testing.assert_series_equal(phenotype, sim_phenotype(X, causal, model, random_state=3))


def test_sim_phenotype_length_mismatch(snp_layout):
    clusters, maf = snp_layout
    X = pd.DataFrame(np.zeros((5, 60), dtype=int), columns=clusters.index)
    causal = sample_snp(2, 1, 1, clusters, maf, random_state=2)
    with pytest.raises(InputValidationError, match="synergistic"):
        sim_phenotype(X, causal, gen_model(3, 1, 1))


def test_merge_cluster_window():
    clusters = pd.Series([1, 2, 3, 4, 5, 6, 7, 8])
    merged = merge_cluster(clusters, center=4, k=1)
    assert merged.tolist() == [1, 2, 3, 3, 3, 4, 5, 6]


def test_merge_cluster_explicit_list():
    clusters = pd.Series([1, 1, 2, 3, 4, 5])
    merged = merge_cluster(clusters, center=2, k=[2, 5])
    assert merged.tolist() == [1, 1, 2, 3, 4, 2]


def test_merge_cluster_invalid():
    clusters = pd.Series([1, 2, 3])
    with pytest.raises(InputValidationError):
        merge_cluster(clusters, center=9)
    with pytest.raises(InputValidationError):
        merge_cluster(clusters, center=2, k=3)


def test_generators_are_exported():
    assert ps_epistasis.sample_snp is sample_snp
    assert ps_epistasis.gen_model is gen_model
    assert ps_epistasis.sim_phenotype is sim_phenotype
    assert ps_epistasis.merge_cluster is merge_cluster
