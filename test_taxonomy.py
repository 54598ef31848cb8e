"""
Tests for clade labelling and group aggregation (symbiont_its2.utils.taxonomy).
"""

import numpy as np
import pandas as pd
import pytest

from symbiont_its2.errors import MalformedInputError
from symbiont_its2.utils.taxonomy import (
    aggregate_by_group, build_taxonomy, clade_from_name, join_metadata, to_long,
    to_wide
)


@pytest.mark.parametrize('name, clade', [
    ('C3', 'C'),
    ('D1a', 'D'),
    ('A1bw', 'A'),
    ('12345_C', 'C'),
    ('noName Clade D', 'D'),
])
def test_clade_from_name(name, clade):
    assert clade_from_name(name) == clade


def test_clade_from_unparseable_name_raises():
    with pytest.raises(MalformedInputError):
        clade_from_name('unknown')


def test_build_taxonomy_from_names_and_labels():
    taxonomy = build_taxonomy(['C3', 'D1', '999_A'])
    assert list(taxonomy['clade']) == ['C', 'D', 'A']
    assert taxonomy.loc['D1', 'genus'] == 'Durusdinium'

    profiles = build_taxonomy(['C3-C3a', 'D1/D4'], ['c', 'D'])
    assert list(profiles['clade']) == ['C', 'D']


def test_build_taxonomy_rejects_missing_or_duplicate():
    with pytest.raises(MalformedInputError):
        build_taxonomy(['C3', 'D1'], ['C', ''])
    with pytest.raises(MalformedInputError):
        build_taxonomy(['C3', 'C3'])


def test_aggregate_conserves_sample_totals():
    table = pd.DataFrame(
        {'C3': [0.5, 0.1], 'C15': [0.2, 0.0], 'D1': [0.3, 0.9]},
        index=pd.Index(['s1', 's2'], name='sample_id'),
    )
    clades = aggregate_by_group(table, build_taxonomy(table.columns))

    assert list(clades.columns) == ['C', 'D']
    assert clades.loc['s1', 'C'] == pytest.approx(0.7)
    np.testing.assert_allclose(clades.sum(axis=1), table.sum(axis=1))


def test_aggregate_by_genus_and_mapping():
    table = pd.DataFrame({'C3': [1.0], 'D1': [2.0]}, index=['s1'])
    genera = aggregate_by_group(table, build_taxonomy(table.columns), level='genus')
    assert list(genera.columns) == ['Cladocopium', 'Durusdinium']

    mapped = aggregate_by_group(table, {'C3': 'x', 'D1': 'x'})
    assert mapped.loc['s1', 'x'] == 3.0


def test_aggregate_unlabelled_taxon_raises():
    table = pd.DataFrame({'C3': [1.0], 'D1': [2.0]}, index=['s1'])
    with pytest.raises(MalformedInputError):
        aggregate_by_group(table, {'C3': 'C'})


def test_long_form_keeps_zeros_and_pivots_back():
    wide = pd.DataFrame(
        {'C': [1.0, 0.0], 'D': [0.0, 1.0]},
        index=pd.Index(['s1', 's2'], name='sample_id'),
    )
    long_df = to_long(wide)

    assert len(long_df) == 4
    assert list(long_df.columns) == ['sample_id', 'clade', 'abundance']
    pd.testing.assert_frame_equal(
        to_wide(long_df), wide, check_names=False, check_column_type=False
    )


def test_join_metadata_by_sample_id():
    wide = pd.DataFrame({'C': [1.0]}, index=pd.Index(['s1'], name='sample_id'))
    metadata = pd.DataFrame({'year': [2020]}, index=['s1'])
    joined = join_metadata(to_long(wide), metadata)
    assert joined['year'].iloc[0] == 2020
