"""
Tests for the table loaders and writers (symbiont_its2.utils.io).
"""

import pandas as pd
import pytest

from symbiont_its2.errors import MalformedInputError
from symbiont_its2.utils.io import (
    align_table_and_metadata, load_biom_table, load_metadata, load_profile_table,
    load_variant_table, write_biom, write_tsv
)
from symbiont_its2.utils.taxonomy import build_taxonomy

METADATA_HEADER = "sample_name,colony_id,host_genus,host_species,site,year"

PROFILE_TABLE = "\n".join([
    "\tITS2 type profile UID\t101\t102",
    "\tClade\tC\tD",
    "\tMajority ITS2 sequence\tC3\tD1",
    "\tAssociated species\t\t",
    "\tITS2 type abundance local\t2\t1",
    "\tITS2 type abundance DB\t5\t3",
    "\tITS2 type profile\tC3-C3a\tD1/D4",
    "sample_uid\tsample_name\t\t",
    "1\ts1\t900\t100",
    "2\ts2\t0\t1200",
    "Species references\t\t\t",
]) + "\n"

VARIANT_TABLE = "\n".join([
    "sample_uid\tsample_name\tfastq_fwd\traw_contigs\tC3\tD1\t12345_C",
    "1\ts1\ta.fq.gz\t1000\t600\t300\t100",
    "2\ts2\tb.fq.gz\t500\t0\t500\t0",
]) + "\n"


def write_metadata(tmp_path, rows, header=METADATA_HEADER):
    path = tmp_path / "metadata.csv"
    path.write_text("\n".join([header, *rows]) + "\n")
    return path


def test_load_metadata_renames_roles_and_indexes_by_sample(tmp_path):
    path = write_metadata(tmp_path, [
        "s1,c1,Acropora,A. hyacinthus,north,2019",
        "s2,c1,Acropora,A. hyacinthus,north,2021",
        "s3,RANDOM,Porites,P. lobata,south,2019",
        "s4,RANDOM,Porites,P. lobata,south,2019",
    ])
    meta = load_metadata(path)

    assert meta.index.name == 'sample_id'
    assert list(meta.index) == ['s1', 's2', 's3', 's4']
    assert meta.loc['s2', 'year'] == 2021
    assert meta.loc['s3', 'colony_id'] == 'RANDOM'


def test_load_metadata_custom_schema(tmp_path):
    path = write_metadata(
        tmp_path,
        ["s1,c1,Acropora,A. sp,north,2019"],
        header="id,tag,genus,species,reef,yr",
    )
    schema = {
        'sample_id': 'id', 'colony_id': 'tag', 'host_genus': 'genus',
        'host_species': 'species', 'site': 'reef', 'year': 'yr',
    }
    meta = load_metadata(path, schema=schema)
    assert meta.loc['s1', 'site'] == 'north'


@pytest.mark.parametrize('rows', [
    # duplicated sample id
    ["s1,c1,Acropora,A. sp,north,2019", "s1,c2,Acropora,A. sp,north,2019"],
    # tagged colony sampled twice in one year
    ["s1,c1,Acropora,A. sp,north,2019", "s2,c1,Acropora,A. sp,north,2019"],
    # non-integer year
    ["s1,c1,Acropora,A. sp,north,spring"],
    # missing sample id
    [",c1,Acropora,A. sp,north,2019"],
    # missing colony id
    ["s1,c1,Acropora,A. sp,north,2019", "s2,,Acropora,A. sp,north,2019"],
    # blank host species
    ["s1,c1,Acropora, ,north,2019"],
])
def test_load_metadata_rejects_malformed_rows(tmp_path, rows):
    with pytest.raises(MalformedInputError):
        load_metadata(write_metadata(tmp_path, rows))


def test_load_metadata_missing_column_raises(tmp_path):
    path = write_metadata(
        tmp_path, ["s1,c1,Acropora,north,2019"],
        header="sample_name,colony_id,host_genus,site,year",
    )
    with pytest.raises(MalformedInputError, match='host_species'):
        load_metadata(path)


def test_load_profile_table(tmp_path):
    path = tmp_path / "profiles.txt"
    path.write_text(PROFILE_TABLE)
    abundance, taxonomy = load_profile_table(path)

    assert list(abundance.index) == ['s1', 's2']
    assert list(abundance.columns) == ['C3-C3a', 'D1/D4']
    assert abundance.loc['s1', 'C3-C3a'] == 900
    assert abundance.loc['s2', 'D1/D4'] == 1200
    assert taxonomy.loc['D1/D4', 'clade'] == 'D'


def test_load_profile_table_missing_tag_raises(tmp_path):
    path = tmp_path / "profiles.txt"
    path.write_text(PROFILE_TABLE.replace("\tClade\t", "\tGroup\t"))
    with pytest.raises(MalformedInputError, match='Clade'):
        load_profile_table(path)


def test_load_variant_table_skips_fixed_columns(tmp_path):
    path = tmp_path / "seqs.txt"
    path.write_text(VARIANT_TABLE)
    abundance, taxonomy = load_variant_table(path, n_skip_columns=2)

    assert list(abundance.columns) == ['C3', 'D1', '12345_C']
    assert abundance.loc['s1'].sum() == 1000
    assert list(taxonomy['clade']) == ['C', 'D', 'C']


def test_load_variant_table_rejects_non_numeric_counts(tmp_path):
    path = tmp_path / "seqs.txt"
    path.write_text(VARIANT_TABLE.replace("\t600\t", "\tsix hundred\t"))
    with pytest.raises(MalformedInputError, match='Non-numeric'):
        load_variant_table(path, n_skip_columns=2)


def test_load_variant_table_without_variant_columns_raises(tmp_path):
    path = tmp_path / "seqs.txt"
    path.write_text(VARIANT_TABLE)
    with pytest.raises(MalformedInputError):
        load_variant_table(path, n_skip_columns=39)


def test_align_records_read_counts():
    table = pd.DataFrame({'C3': [10, 20], 'D1': [5, 0]}, index=['s1', 's2'])
    metadata = pd.DataFrame({'colony_id': ['c1', 'c3']}, index=['s1', 's3'])
    aligned, meta = align_table_and_metadata(table, metadata)

    assert list(aligned.index) == ['s1']
    assert meta.loc['s1', 'read_count'] == 15


def test_biom_write_and_load_keeps_clades(tmp_path):
    table = pd.DataFrame(
        {'C3-C3a': [0.9, 0.0], 'D1/D4': [0.1, 1.0]},
        index=pd.Index(['s1', 's2'], name='sample_id'),
    )
    taxonomy = build_taxonomy(table.columns, ['C', 'D'])

    path = write_biom(table, tmp_path / "profiles.biom", taxonomy)
    loaded, loaded_taxonomy = load_biom_table(path)

    assert loaded.loc['s2', 'D1/D4'] == pytest.approx(1.0)
    assert list(loaded_taxonomy['clade']) == ['C', 'D']


def test_write_tsv_creates_parent_dirs(tmp_path):
    path = write_tsv(pd.DataFrame({'a': [1]}), tmp_path / "nested" / "out.tsv")
    assert path.exists()
