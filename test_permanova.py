"""
Tests for group-wise PERMANOVA with multiple-testing correction
(symbiont_its2.stats.tests).
"""

import numpy as np
import pandas as pd
import pytest

from symbiont_its2.constants import STATUS_NOT_TESTED, STATUS_TESTED
from symbiont_its2.errors import InsufficientSampleSizeError
from symbiont_its2.stats.beta_diversity import distance_matrix
from symbiont_its2.stats.tests import (
    RESULT_COLUMNS, apply_correction, clade_batch_permanova, pairwise_permanova,
    permanova_pair
)
from symbiont_its2.utils.taxonomy import build_taxonomy


def create_test_data(n_per_group=6, seed=0):
    """Host species X and Y with distinct communities; species Z has a single
    sample."""
    rng = np.random.default_rng(seed)
    x = rng.dirichlet([30, 3, 10, 1], size=n_per_group)
    y = rng.dirichlet([3, 30, 1, 10], size=n_per_group)
    z = rng.dirichlet([5, 5, 5, 5], size=1)
    n = 2 * n_per_group + 1
    index = pd.Index([f"s{i:02d}" for i in range(n)], name='sample_id')
    table = pd.DataFrame(
        np.vstack([x, y, z]), index=index, columns=['C3', 'C15', 'D1', 'D4']
    )
    metadata = pd.DataFrame(
        {'host_species': ['X'] * n_per_group + ['Y'] * n_per_group + ['Z']},
        index=index,
    )
    return table, metadata


def test_singleton_group_is_not_tested():
    table, metadata = create_test_data()
    results = pairwise_permanova(
        np.sqrt(table), metadata, permutations=99, seed=1
    )

    assert list(results.columns) == RESULT_COLUMNS
    assert len(results) == 3
    status = results.set_index(['group_a', 'group_b'])['status']
    assert status[('X', 'Y')] == STATUS_TESTED
    assert status[('X', 'Z')] == STATUS_NOT_TESTED
    assert status[('Y', 'Z')] == STATUS_NOT_TESTED

    skipped = results[results['status'] == STATUS_NOT_TESTED]
    assert skipped['p_value'].isna().all()
    assert skipped['p_adjusted'].isna().all()
    assert not skipped['significant'].any()


def test_separated_groups_are_significant():
    table, metadata = create_test_data()
    results = pairwise_permanova(np.sqrt(table), metadata, permutations=199, seed=1)
    tested = results[results['status'] == STATUS_TESTED].iloc[0]

    assert tested['test_statistic'] > 0
    assert tested['p_value'] < 0.05
    assert bool(tested['significant'])


def test_permanova_reproducible_with_seed():
    table, metadata = create_test_data()
    dm = distance_matrix(np.sqrt(table))
    first = pairwise_permanova(dm, metadata, permutations=99, seed=5)
    second = pairwise_permanova(dm, metadata, permutations=99, seed=5)
    pd.testing.assert_frame_equal(first, second)


def test_clade_abundance_restricts_samples():
    table, metadata = create_test_data()
    clade_d = table[['D1', 'D4']].sum(axis=1)
    results = pairwise_permanova(
        np.sqrt(table), metadata,
        clade_abundance=clade_d, min_abundance=clade_d.max(),
        permutations=99,
    )
    # no sample is strictly above the maximum
    assert results.empty
    assert list(results.columns) == RESULT_COLUMNS


def test_permanova_pair_requires_two_samples_per_group():
    table, metadata = create_test_data()
    dm = distance_matrix(table)
    with pytest.raises(InsufficientSampleSizeError):
        permanova_pair(dm, metadata['host_species'], 'X', 'Z', permutations=9)


def test_correction_within_batch():
    results = pd.DataFrame({
        'p_value': [0.01, 0.02, np.nan],
        'status': [STATUS_TESTED, STATUS_TESTED, STATUS_NOT_TESTED],
    })
    bonferroni = apply_correction(results, correction='bonferroni', alpha=0.05)
    np.testing.assert_allclose(bonferroni['p_adjusted'][:2], [0.02, 0.04])
    assert np.isnan(bonferroni['p_adjusted'][2])
    assert list(bonferroni['significant']) == [True, True, False]

    fdr = apply_correction(results, correction='fdr', alpha=0.05)
    np.testing.assert_allclose(fdr['p_adjusted'][:2], [0.02, 0.02])

    with pytest.raises(ValueError):
        apply_correction(results, correction='holm-ish')


def test_clade_batches():
    table, metadata = create_test_data()
    taxonomy = build_taxonomy(table.columns)
    results = clade_batch_permanova(
        table, taxonomy, metadata, clades=['C', 'D', 'A'], permutations=99, seed=3
    )

    assert list(results.columns) == ['clade'] + RESULT_COLUMNS
    # clade A is absent and skipped; C and D each give one batch of three pairs
    assert sorted(results['clade'].unique()) == ['C', 'D']
    assert (results.groupby('clade').size() == 3).all()


def test_identical_communities_are_not_tested():
    index = pd.Index([f"s{i}" for i in range(6)], name='sample_id')
    table = pd.DataFrame({'C3': [120.0, 80.0, 300.0, 50.0, 90.0, 200.0]}, index=index)
    metadata = pd.DataFrame({'host_species': ['X'] * 3 + ['Y'] * 3}, index=index)
    taxonomy = build_taxonomy(table.columns)

    results = clade_batch_permanova(
        table, taxonomy, metadata, clades=['C'], permutations=99, seed=1
    )

    assert len(results) == 1
    row = results.iloc[0]
    assert row['status'] == STATUS_NOT_TESTED
    assert 'dispersion' in row['reason']
    assert np.isnan(row['test_statistic'])
    assert np.isnan(row['p_value'])
    assert np.isnan(row['p_adjusted'])
    assert not row['significant']


def test_permanova_pair_rejects_zero_distances():
    index = pd.Index(['a1', 'a2', 'b1', 'b2'], name='sample_id')
    dm = distance_matrix(pd.DataFrame({'C3': [1.0] * 4}, index=index))
    grouping = pd.Series(['A', 'A', 'B', 'B'], index=index)
    with pytest.raises(InsufficientSampleSizeError, match='dispersion'):
        permanova_pair(dm, grouping, 'A', 'B', permutations=9)
