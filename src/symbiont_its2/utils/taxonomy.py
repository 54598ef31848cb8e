# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Dict, Iterable, List, Optional, Union

# Third-Party Imports
import pandas as pd
from biom import Table

# Local Imports
from symbiont_its2 import constants
from symbiont_its2.constants import (
    CLADE_COLUMN, SAMPLE_ID_COLUMN, SYMBIONT_GENUS_COLUMN
)
from symbiont_its2.errors import MalformedInputError
from symbiont_its2.utils.data import table_to_df

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("symbiont_its2")

# ================================ TAXON LABELLING =================================== #

def clade_from_name(name: str) -> str:
    """Derive the clade letter from an ITS2 sequence variant name.

    Recognised forms:
        "C3", "D1a"        → leading clade letter
        "12345_C"          → trailing clade letter of an unnamed sequence
        "noName Clade C"   → clade of a pooled unnamed column

    Raises:
        MalformedInputError: If no clade label can be derived.
    """
    name = str(name).strip()
    for pattern in constants.VARIANT_NAME_PATTERNS.values():
        match = pattern.match(name)
        if match:
            return match.group(1).upper()
    raise MalformedInputError(f"Cannot derive a clade label from taxon '{name}'")


def build_taxonomy(
    taxa: Iterable[str],
    clades: Optional[Iterable[str]] = None
) -> pd.DataFrame:
    """Build a taxonomy table (taxon → clade, symbiont genus).

    Args:
        taxa:   Taxon names.
        clades: Clade labels aligned with `taxa`; derived from the names when
                omitted.

    Returns:
        DataFrame indexed by taxon name with 'clade' and 'genus' columns.

    Raises:
        MalformedInputError: For duplicated taxa or missing clade labels.
    """
    taxa = [str(t) for t in taxa]
    if clades is None:
        clades = [clade_from_name(t) for t in taxa]
    else:
        clades = [str(c).strip().upper() if pd.notna(c) else '' for c in clades]
        if len(clades) != len(taxa):
            raise MalformedInputError("Taxa and clade labels differ in length")

    missing = [t for t, c in zip(taxa, clades) if not c or c == 'NAN']
    if missing:
        raise MalformedInputError(f"Taxa without a clade label: {missing[:5]}")

    duplicated = pd.Index(taxa)[pd.Index(taxa).duplicated()].unique().tolist()
    if duplicated:
        raise MalformedInputError(f"Duplicate taxon names: {duplicated[:5]}")

    taxonomy = pd.DataFrame(
        {
            CLADE_COLUMN: clades,
            SYMBIONT_GENUS_COLUMN: [
                constants.CLADE_TO_GENUS.get(c, f"Clade {c}") for c in clades
            ],
        },
        index=pd.Index(taxa, name='taxon'),
    )
    return taxonomy

# ================================== AGGREGATION ===================================== #

def aggregate_by_group(
    table: Union[Dict, Table, pd.DataFrame],
    taxonomy: Union[pd.DataFrame, pd.Series, Dict[str, str]],
    level: str = CLADE_COLUMN
) -> pd.DataFrame:
    """Sum taxon columns sharing the same group label.

    Abundance is conserved: each sample's total over groups equals its total over
    the original taxa.

    Args:
        table:    Abundance table (samples × taxa).
        taxonomy: Taxonomy table, or a mapping taxon → group label.
        level:    Taxonomy column to group by ('clade' or 'genus').

    Returns:
        DataFrame (samples × groups), groups sorted by label.

    Raises:
        MalformedInputError: If a taxon in the table has no group label.
    """
    df = table_to_df(table)
    if isinstance(taxonomy, pd.DataFrame):
        mapping = taxonomy[level]
    else:
        mapping = pd.Series(taxonomy)

    labels = pd.Series(df.columns, index=df.columns).map(mapping)
    if labels.isna().any():
        unlabelled = labels.index[labels.isna()].tolist()
        raise MalformedInputError(f"Taxa missing from taxonomy: {unlabelled[:5]}")

    grouped = df.T.groupby(labels.to_numpy()).sum().T
    grouped = grouped.reindex(columns=sorted(grouped.columns))
    grouped.index.name = df.index.name or SAMPLE_ID_COLUMN
    grouped.columns.name = level
    return grouped


def to_long(
    table: pd.DataFrame,
    group_name: str = CLADE_COLUMN,
    value_name: str = 'abundance'
) -> pd.DataFrame:
    """Pivot a wide table (one row per sample) to long form (one row per
    sample × group). Zero cells are kept so the pivot stays lossless."""
    df = table.copy()
    df.index.name = SAMPLE_ID_COLUMN
    df.columns.name = group_name
    long_df = df.reset_index().melt(
        id_vars=SAMPLE_ID_COLUMN, var_name=group_name, value_name=value_name
    )
    return long_df.sort_values([SAMPLE_ID_COLUMN, group_name], kind='stable').reset_index(drop=True)


def to_wide(
    long_df: pd.DataFrame,
    group_name: str = CLADE_COLUMN,
    value_name: str = 'abundance'
) -> pd.DataFrame:
    """Inverse of `to_long`: one row per sample, one column per group."""
    duplicated = long_df.duplicated([SAMPLE_ID_COLUMN, group_name])
    if duplicated.any():
        raise ValueError("Long table has duplicate sample × group rows")
    wide = long_df.pivot(index=SAMPLE_ID_COLUMN, columns=group_name, values=value_name)
    wide.columns.name = group_name
    return wide


def join_metadata(
    long_df: pd.DataFrame,
    metadata: pd.DataFrame,
    columns: Optional[List[str]] = None
) -> pd.DataFrame:
    """Attach sample metadata columns to a long table by sample id."""
    meta = metadata if columns is None else metadata[columns]
    return long_df.merge(
        meta, left_on=SAMPLE_ID_COLUMN, right_index=True, how='left'
    )
