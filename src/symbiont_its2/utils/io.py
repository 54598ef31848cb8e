# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import load_table

# Local Imports
from symbiont_its2 import constants
from symbiont_its2.constants import (
    COLONY_COLUMN, READ_COUNT_COLUMN, SAMPLE_ID_COLUMN, YEAR_COLUMN
)
from symbiont_its2.errors import MalformedInputError
from symbiont_its2.utils.data import table_to_df, to_biom
from symbiont_its2.utils.taxonomy import build_taxonomy

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("symbiont_its2")

# =================================== HELPERS ======================================== #

def _separator(path: Path) -> str:
    return ',' if path.suffix.lower() == '.csv' else '\t'


def _check_duplicate_ids(ids: pd.Series, source: str) -> None:
    """Raise on duplicated sample identifiers instead of silently overwriting."""
    duplicates = ids[ids.duplicated(keep=False)].unique()
    if len(duplicates):
        raise MalformedInputError(
            f"Found {len(duplicates)} duplicate sample IDs in {source}: "
            f"{list(duplicates[:5])}"
        )


def _check_missing_ids(ids: pd.Series, source: str) -> None:
    if ids.isna().any() or (ids.astype(str).str.strip() == '').any():
        raise MalformedInputError(f"Missing sample IDs in {source}")


def _is_numeric_row(row: pd.Series) -> bool:
    return pd.to_numeric(row.replace('', np.nan), errors='coerce').notna().any()


def _to_counts(df: pd.DataFrame, source: str) -> pd.DataFrame:
    """Coerce count cells to floats, rejecting non-numeric or negative values."""
    counts = df.apply(pd.to_numeric, errors='coerce')
    bad = counts.isna() & df.notna()
    if bad.to_numpy().any():
        row, col = np.argwhere(bad.to_numpy())[0]
        raise MalformedInputError(
            f"Non-numeric count '{df.iat[row, col]}' in {source} "
            f"(sample '{df.index[row]}', taxon '{df.columns[col]}')"
        )
    counts = counts.fillna(0.0).astype(float)
    if (counts.to_numpy() < 0).any():
        raise MalformedInputError(f"Negative counts in {source}")
    return counts

# ==================================== METADATA ====================================== #

def load_metadata(
    path: Union[str, Path],
    schema: Optional[Dict[str, str]] = None,
    untagged_id: str = constants.DEFAULT_UNTAGGED_COLONY_ID
) -> pd.DataFrame:
    """Load colony/sample metadata and rename columns to their canonical roles.

    Args:
        path:        Delimited metadata file (TSV, or CSV by suffix).
        schema:      Mapping canonical role → column name in the file.
        untagged_id: Colony id shared by untagged colonies; exempt from the
                     one-sample-per-colony-per-year check.

    Returns:
        Metadata DataFrame indexed by sample id.

    Raises:
        MalformedInputError: For missing role columns, missing or duplicated
                             sample IDs, blank colony or host values,
                             non-integer years, or a tagged colony sampled
                             twice in one year.
    """
    path = Path(path)
    schema = {**constants.DEFAULT_METADATA_SCHEMA, **(schema or {})}
    meta = pd.read_csv(path, sep=_separator(path), dtype=str, keep_default_na=False)
    meta.columns = meta.columns.str.strip()

    missing = [
        f"{role} ('{column}')" for role, column in schema.items()
        if column not in meta.columns
    ]
    if missing:
        raise MalformedInputError(
            f"Metadata '{path.name}' is missing columns: {', '.join(missing)}"
        )

    meta = meta.rename(columns={column: role for role, column in schema.items()})
    meta = meta.replace('', np.nan)
    ids = meta[SAMPLE_ID_COLUMN].str.strip()
    _check_missing_ids(ids, f"metadata '{path.name}'")
    _check_duplicate_ids(ids, f"metadata '{path.name}'")
    meta[SAMPLE_ID_COLUMN] = ids

    for role in constants.REQUIRED_METADATA_ROLES:
        values = meta[role].str.strip()
        blank = values.isna() | (values == '')
        if blank.any():
            raise MalformedInputError(
                f"Missing '{role}' values in '{path.name}' for samples: "
                f"{ids[blank].tolist()[:5]}"
            )
        meta[role] = values

    years = pd.to_numeric(meta[YEAR_COLUMN], errors='coerce')
    if years.isna().any() or (years % 1 != 0).any():
        raise MalformedInputError(f"Non-integer sampling years in '{path.name}'")
    meta[YEAR_COLUMN] = years.astype(int)

    tagged = meta[meta[COLONY_COLUMN].astype(str) != str(untagged_id)]
    repeated = tagged[tagged.duplicated([COLONY_COLUMN, YEAR_COLUMN], keep=False)]
    if not repeated.empty:
        pairs = repeated[[COLONY_COLUMN, YEAR_COLUMN]].drop_duplicates()
        raise MalformedInputError(
            "Colonies with more than one sample per year: "
            f"{list(pairs.itertuples(index=False, name=None))[:5]}"
        )

    meta = meta.set_index(SAMPLE_ID_COLUMN)
    logger.info(
        f"Loaded metadata for {len(meta)} samples from "
        f"{meta[COLONY_COLUMN].nunique()} colonies ('{path.name}')"
    )
    return meta

# ================================= ABUNDANCE TABLES ================================= #

def load_profile_table(
    path: Union[str, Path],
    n_meta_rows: int = constants.DEFAULT_PROFILE_META_ROWS,
    name_tag: str = constants.DEFAULT_PROFILE_NAME_TAG,
    clade_tag: str = constants.DEFAULT_PROFILE_CLADE_TAG
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Load a SymPortal-style ITS2 type-profile abundance table.

    Layout: the first `n_meta_rows` rows form a profile metadata block whose tag
    sits in the second column (e.g. 'Clade', 'ITS2 type profile'); the remaining
    rows hold sample uid, sample name and one count per profile. Trailing rows
    without counts (species/reference footers) are ignored.

    Returns:
        Tuple of (abundance samples × profiles, taxonomy indexed by profile).

    Raises:
        MalformedInputError: For missing tag rows or sample identifiers,
                             duplicated samples or profiles, or bad counts.
    """
    path = Path(path)
    raw = pd.read_csv(
        path, sep=_separator(path), header=None, dtype=str, keep_default_na=False
    )
    if raw.shape[1] < 3 or len(raw) <= n_meta_rows:
        raise MalformedInputError(f"Profile table '{path.name}' has no sample rows")

    block = raw.iloc[:n_meta_rows]
    tags = block.iloc[:, 1].str.strip()
    rows = {}
    for tag in (name_tag, clade_tag):
        hits = block[tags == tag]
        if hits.empty:
            raise MalformedInputError(
                f"Profile table '{path.name}' is missing the '{tag}' row"
            )
        rows[tag] = hits.iloc[0, 2:].str.strip()

    body = raw.iloc[n_meta_rows:, :]
    counts = body.iloc[:, 2:].replace('', np.nan)
    body = body[counts.notna().any(axis=1)]
    # A header row naming the columns may precede the per-sample rows
    if not body.empty and not _is_numeric_row(body.iloc[0, 2:]):
        body = body.iloc[1:]

    ids = body.iloc[:, 1].str.strip()
    _check_missing_ids(ids, f"profile table '{path.name}'")
    _check_duplicate_ids(ids, f"profile table '{path.name}'")

    profiles = rows[name_tag].tolist()
    taxonomy = build_taxonomy(profiles, rows[clade_tag].tolist())

    abundance = body.iloc[:, 2:].replace('', np.nan)
    abundance.index = pd.Index(ids.tolist(), name=SAMPLE_ID_COLUMN)
    abundance.columns = profiles
    abundance = _to_counts(abundance, f"profile table '{path.name}'")
    logger.info(
        f"Loaded {abundance.shape[1]} type profiles across {abundance.shape[0]} "
        f"samples ('{path.name}')"
    )
    return abundance, taxonomy


def load_variant_table(
    path: Union[str, Path],
    sample_column: str = constants.DEFAULT_VARIANT_SAMPLE_COLUMN,
    n_skip_columns: int = constants.DEFAULT_VARIANT_SKIP_COLUMNS
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Load a SymPortal-style ITS2 sequence-variant abundance table.

    Layout: wide, with `sample_column` followed by `n_skip_columns` fixed
    non-data columns and then one column per sequence variant. Columns before
    `sample_column` (e.g. the sample uid) are ignored as well.

    Returns:
        Tuple of (abundance samples × variants, taxonomy indexed by variant).
    """
    path = Path(path)
    raw = pd.read_csv(path, sep=_separator(path), dtype=str, keep_default_na=False)
    raw.columns = raw.columns.str.strip()
    if sample_column not in raw.columns:
        raise MalformedInputError(
            f"Variant table '{path.name}' is missing the '{sample_column}' column"
        )

    start = raw.columns.get_loc(sample_column) + 1 + n_skip_columns
    if start >= raw.shape[1]:
        raise MalformedInputError(
            f"Variant table '{path.name}' has no variant columns after "
            f"skipping {n_skip_columns} columns"
        )

    ids = raw[sample_column].str.strip()
    raw = raw[ids != '']
    ids = ids[ids != '']
    _check_duplicate_ids(ids, f"variant table '{path.name}'")

    abundance = raw.iloc[:, start:].replace('', np.nan)
    abundance.index = pd.Index(ids.tolist(), name=SAMPLE_ID_COLUMN)
    taxonomy = build_taxonomy(abundance.columns)
    abundance = _to_counts(abundance, f"variant table '{path.name}'")
    logger.info(
        f"Loaded {abundance.shape[1]} sequence variants across "
        f"{abundance.shape[0]} samples ('{path.name}')"
    )
    return abundance, taxonomy


def load_biom_table(path: Union[str, Path]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Load an abundance table from a BIOM file; the taxonomy comes from a
    'clade' observation metadata entry when present, else from taxon names."""
    table = load_table(str(path))
    abundance = table_to_df(table).astype(float)
    metadata = table.metadata(axis='observation')
    clades = None
    if metadata is not None and all(m and 'clade' in m for m in metadata):
        clades = [m['clade'] for m in metadata]
    taxonomy = build_taxonomy(abundance.columns, clades)
    _check_duplicate_ids(abundance.index.to_series(), f"BIOM table '{Path(path).name}'")
    return abundance, taxonomy


def align_table_and_metadata(
    table: pd.DataFrame,
    metadata: pd.DataFrame
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Restrict abundance table and metadata to their shared sample IDs and
    record each sample's total read count in the metadata.

    Returns:
        Tuple of (aligned abundance table, aligned metadata).
    """
    table = table_to_df(table)
    shared = table.index[table.index.isin(metadata.index)]
    dropped_table = len(table) - len(shared)
    dropped_meta = len(metadata) - len(shared)
    if dropped_table or dropped_meta:
        logger.warning(
            f"{dropped_table} table samples lack metadata and {dropped_meta} "
            f"metadata samples lack abundances; both are dropped"
        )
    aligned_table = table.loc[shared]
    aligned_meta = metadata.loc[shared].copy()
    aligned_meta[READ_COUNT_COLUMN] = aligned_table.sum(axis=1)
    return aligned_table, aligned_meta

# ===================================== OUTPUT ======================================= #

def write_tsv(df: pd.DataFrame, path: Union[str, Path], index: bool = True) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep='\t', index=index)
    logger.debug(f"Wrote {path}")
    return path


def write_biom(
    table: pd.DataFrame,
    path: Union[str, Path],
    taxonomy: Optional[pd.DataFrame] = None,
    generated_by: str = "symbiont_its2"
) -> Path:
    """Write an abundance table as BIOM (JSON) with taxonomy attached."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    biom_table = to_biom(table, taxonomy)
    with open(path, 'w') as handle:
        handle.write(biom_table.to_json(generated_by))
    logger.debug(f"Wrote {path}")
    return path
