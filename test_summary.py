"""
Tests for the sampling and dominance summary tables (symbiont_its2.stats.summary).
"""

import pandas as pd

from symbiont_its2.stats.summary import (
    colony_counts_by_site_year, dominance_summary, samples_per_host
)


def create_test_data():
    metadata = pd.DataFrame(
        {
            'colony_id': ['c1', 'c1', 'c2', 'c3', 'c3'],
            'site': ['north', 'north', 'north', 'south', 'south'],
            'year': [2019, 2021, 2019, 2019, 2021],
            'host_genus': ['Acropora', 'Acropora', 'Acropora', 'Porites', 'Porites'],
            'host_species': ['A. sp', 'A. sp', 'A. sp', 'P. sp', 'P. sp'],
        },
        index=pd.Index(['s1', 's2', 's3', 's4', 's5'], name='sample_id'),
    )
    dominance = pd.DataFrame(
        {'dominant_group': ['C', 'D', 'C', 'C', 'none']}, index=metadata.index
    )
    return metadata, dominance


def test_colony_counts_by_site_year():
    metadata, _ = create_test_data()
    counts = colony_counts_by_site_year(metadata)

    assert counts.loc['north', 2019] == 2
    assert counts.loc['north', 2021] == 1
    assert counts.loc['north', 'total'] == 2
    assert counts.loc['total', 2019] == 3
    assert counts.loc['total', 'total'] == 3


def test_samples_per_host():
    metadata, _ = create_test_data()
    summary = samples_per_host(metadata).set_index(['host_species', 'year'])

    assert summary.loc[('A. sp', 2019), 'n_samples'] == 2
    assert summary.loc[('A. sp', 2019), 'n_colonies'] == 2
    assert summary.loc[('P. sp', 2021), 'n_samples'] == 1


def test_dominance_summary():
    metadata, dominance = create_test_data()
    summary = dominance_summary(dominance, metadata).set_index(
        ['host_species', 'year', 'dominant_group']
    )['n_samples']

    assert summary[('A. sp', 2019, 'C')] == 2
    assert summary[('A. sp', 2021, 'D')] == 1
    assert summary[('P. sp', 2021, 'none')] == 1
