"""
Tests for Bray-Curtis distances, ordination and within/between colony
comparisons (symbiont_its2.stats.beta_diversity).
"""

import numpy as np
import pandas as pd
import pytest

from symbiont_its2.constants import BETWEEN_COLONY, WITHIN_COLONY
from symbiont_its2.errors import EmptyDatasetError, LowConfidenceOrdinationWarning
from symbiont_its2.stats.beta_diversity import (
    bray_curtis, distance_matrix, hierarchical_clustering, nmds, ordinate, pcoa,
    within_between_colony
)


def create_test_data(n_per_group=5, seed=0):
    """Two clearly separated communities plus some noise."""
    rng = np.random.default_rng(seed)
    a = rng.dirichlet([20, 2, 1, 1], size=n_per_group)
    b = rng.dirichlet([1, 1, 2, 20], size=n_per_group)
    ids = [f"s{i}" for i in range(2 * n_per_group)]
    return pd.DataFrame(
        np.vstack([a, b]),
        index=pd.Index(ids, name='sample_id'),
        columns=['C3', 'C15', 'D1', 'D4'],
    )


def test_bray_curtis_known_values():
    dist = bray_curtis(np.array([[10, 0], [0, 10], [5, 5], [5, 5]]))

    assert dist[0, 1] == pytest.approx(1.0)
    assert dist[2, 3] == pytest.approx(0.0)
    assert dist[0, 2] == pytest.approx(0.5)


def test_bray_curtis_empty_pair_is_zero():
    dist = bray_curtis(np.array([[0, 0], [0, 0], [1, 0]]))
    assert dist[0, 1] == 0.0
    assert dist[0, 2] == pytest.approx(1.0)


def test_distance_matrix_properties():
    dm = distance_matrix(create_test_data())
    data = dm.data

    np.testing.assert_allclose(data, data.T)
    np.testing.assert_allclose(np.diag(data), 0.0)
    assert (data >= 0).all() and (data <= 1).all()
    assert list(dm.ids) == [f"s{i}" for i in range(10)]


def test_distance_matrix_rejects_empty_and_nan():
    with pytest.raises(EmptyDatasetError):
        distance_matrix(pd.DataFrame(columns=['C3']))

    table = create_test_data()
    table.iloc[0, 0] = np.nan
    with pytest.raises(ValueError):
        distance_matrix(table)


def test_nmds_reproducible_with_seed():
    table = create_test_data()
    first = nmds(table, seed=7, n_init=4, max_iter=200)
    second = nmds(table, seed=7, n_init=4, max_iter=200)

    assert list(first['components'].columns) == ['NMDS1', 'NMDS2']
    pd.testing.assert_frame_equal(first['components'], second['components'])
    assert first['stress'] == pytest.approx(second['stress'])


def test_nmds_flags_high_stress():
    with pytest.warns(LowConfidenceOrdinationWarning):
        result = nmds(create_test_data(), n_init=2, max_iter=50, stress_threshold=-1.0)
    assert result['low_confidence']


def test_nmds_requires_enough_samples():
    with pytest.raises(EmptyDatasetError):
        nmds(create_test_data().iloc[:2])


def test_pcoa_and_dispatch():
    table = create_test_data()
    result = pcoa(table)
    assert list(result['components'].columns) == ['PCo1', 'PCo2']
    assert result['components'].shape == (10, 2)
    assert (result['proportion_explained'] > 0).all()

    assert ordinate(table, method='pcoa')['method'] == 'PCoA'
    with pytest.raises(ValueError):
        ordinate(table, method='tsne')


def test_hierarchical_clustering_groups_similar_samples():
    result = hierarchical_clustering(distance_matrix(create_test_data()))
    order = result['order']

    assert sorted(order) == sorted(f"s{i}" for i in range(10))
    first_half = {int(s[1:]) < 5 for s in order[:5]}
    assert len(first_half) == 1


def test_within_between_colony_classification():
    table = pd.DataFrame(
        {'C': [1.0, 0.9, 0.0, 0.5, 0.2], 'D': [0.0, 0.1, 1.0, 0.5, 0.8]},
        index=pd.Index(['s1', 's2', 's3', 's4', 's5'], name='sample_id'),
    )
    metadata = pd.DataFrame(
        {
            'colony_id': ['c1', 'c1', 'c2', 'c3', 'c4'],
            'year': [2019, 2021, 2019, 2021, 2019],
            'host_species': ['A', 'A', 'A', 'A', 'B'],
        },
        index=table.index,
    )
    pairs, summary = within_between_colony(distance_matrix(table), metadata)

    labels = {
        (a, b): c
        for a, b, c in pairs[['sample_a', 'sample_b', 'comparison']].itertuples(index=False)
    }
    assert labels[('s1', 's2')] == WITHIN_COLONY
    assert labels[('s1', 's3')] == BETWEEN_COLONY
    assert labels[('s2', 's4')] == BETWEEN_COLONY
    # different colonies in different years, and cross-species pairs, are dropped
    assert ('s1', 's4') not in labels
    assert ('s1', 's5') not in labels

    within = summary[summary['comparison'] == WITHIN_COLONY].iloc[0]
    assert within['n_pairs'] == 1
    assert within['median_distance'] == pytest.approx(0.1)
