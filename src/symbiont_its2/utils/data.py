# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Callable, Dict, Optional, Tuple, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table

# Local Imports
from symbiont_its2 import constants
from symbiont_its2.constants import COLONY_COLUMN, READ_COUNT_COLUMN, SAMPLE_ID_COLUMN

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("symbiont_its2")

Predicate = Union[str, Callable[[pd.DataFrame], pd.Series]]

# ================================ TABLE CONVERSION ================================== #

def table_to_df(table: Union[Dict, Table, pd.DataFrame]) -> pd.DataFrame:
    """Convert various table formats to samples × taxa DataFrame.

    Handles:
    - Pandas DataFrame (returns unchanged)
    - BIOM Table (transposes to samples × taxa)
    - Dictionary of {sample_id: {taxon: count}} mappings

    Args:
        table: Input table in various formats.

    Returns:
        DataFrame in samples × taxa orientation.

    Raises:
        TypeError: For unsupported input types
    """
    if isinstance(table, pd.DataFrame):  # samples × taxa
        return table
    if isinstance(table, Table):         # taxa × samples
        df = table.to_dataframe(dense=True).T
        df.index.name = SAMPLE_ID_COLUMN
        return df
    if isinstance(table, dict):          # {sample: {taxon: count}}
        df = pd.DataFrame.from_dict(table, orient='index').fillna(0)
        df.index.name = SAMPLE_ID_COLUMN
        return df
    raise TypeError("Input must be BIOM Table, dict, or DataFrame.")


def to_biom(
    table: Union[Dict, Table, pd.DataFrame],
    taxonomy: Optional[pd.DataFrame] = None
) -> Table:
    """Convert an abundance table to a BIOM Table (taxa × samples), attaching the
    taxonomy as observation metadata when given.

    Args:
        table:    Input table in various formats.
        taxonomy: Optional taxonomy indexed by taxon name.

    Returns:
        BIOM Table in taxa × samples orientation.
    """
    if isinstance(table, Table):
        return table
    df = table_to_df(table)
    observation_metadata = None
    if taxonomy is not None:
        observation_metadata = [
            {key: str(value) for key, value in taxonomy.loc[taxon].items()}
            if taxon in taxonomy.index else {}
            for taxon in df.columns
        ]
    return Table(
        data=df.T.to_numpy(dtype=float),
        observation_ids=[str(taxon) for taxon in df.columns],
        sample_ids=[str(sample) for sample in df.index],
        observation_metadata=observation_metadata,
    )

# ================================ SAMPLE FILTERING ================================== #

def exclude_untagged(
    untagged_id: str = constants.DEFAULT_UNTAGGED_COLONY_ID
) -> Callable[[pd.DataFrame], pd.Series]:
    """Predicate keeping samples from tagged colonies only."""
    def predicate(meta: pd.DataFrame) -> pd.Series:
        return meta[COLONY_COLUMN].astype(str) != str(untagged_id)
    return predicate


def min_read_count(
    min_reads: int = constants.DEFAULT_MIN_READ_COUNT
) -> Callable[[pd.DataFrame], pd.Series]:
    """Predicate keeping samples with at least `min_reads` total reads."""
    def predicate(meta: pd.DataFrame) -> pd.Series:
        return meta[READ_COUNT_COLUMN] >= min_reads
    return predicate


def all_of(*predicates: Predicate) -> Callable[[pd.DataFrame], pd.Series]:
    """Combine predicates with logical AND."""
    def predicate(meta: pd.DataFrame) -> pd.Series:
        mask = pd.Series(True, index=meta.index)
        for p in predicates:
            mask &= _evaluate_predicate(meta, p)
        return mask
    return predicate


def _evaluate_predicate(meta: pd.DataFrame, predicate: Predicate) -> pd.Series:
    if isinstance(predicate, str):
        if meta.empty:
            return pd.Series(False, index=meta.index, dtype=bool)
        mask = meta.eval(predicate, engine='python')
    elif callable(predicate):
        mask = predicate(meta)
    else:
        raise TypeError("Predicate must be a query string or a callable.")
    mask = pd.Series(mask, index=meta.index)
    return mask.fillna(False).astype(bool)


def prune_empty_taxa(table: Union[Dict, Table, pd.DataFrame]) -> pd.DataFrame:
    """Drop taxa whose total abundance across the remaining samples is zero."""
    df = table_to_df(table)
    keep = df.sum(axis=0) > 0
    return df.loc[:, keep]


def filter_samples(
    table: Union[Dict, Table, pd.DataFrame],
    metadata: pd.DataFrame,
    predicate: Predicate
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Remove samples failing `predicate`, then prune taxa left with zero total.

    Sample removal always happens before taxon pruning so that pruning reflects
    the filtered sample set. Samples missing from either table are dropped. The
    inputs are never modified.

    Args:
        table:     Abundance table (samples × taxa).
        metadata:  Sample metadata indexed by sample id.
        predicate: Query string evaluated against the metadata (e.g.
                   ``"read_count >= 1000"``) or a callable returning a boolean
                   Series aligned to the metadata index.

    Returns:
        Tuple of (filtered abundance table, filtered metadata).
    """
    df = table_to_df(table)
    shared = df.index[df.index.isin(metadata.index)]
    meta = metadata.loc[shared].copy()
    if READ_COUNT_COLUMN not in meta.columns:
        meta[READ_COUNT_COLUMN] = df.loc[shared].sum(axis=1)

    mask = _evaluate_predicate(meta, predicate)
    keep = meta.index[mask.to_numpy()]

    filtered = prune_empty_taxa(df.loc[keep])
    logger.info(
        f"Sample filter kept {len(keep)}/{len(df)} samples and "
        f"{filtered.shape[1]}/{df.shape[1]} taxa"
    )
    if len(keep) == 0:
        logger.warning("Sample filter removed every sample")
    return filtered, meta.loc[keep]

# ========================== TABLE NORMALIZATION & TRANSFORM ========================= #

def to_relative_abundance(table: Union[Dict, Table, pd.DataFrame]) -> pd.DataFrame:
    """Divide each sample by its total so that rows sum to 1.

    Rows summing to zero should have been removed upstream; if not, they are
    returned as all-zero rows rather than NaN.
    """
    df = table_to_df(table).astype(float)
    totals = df.sum(axis=1)
    n_empty = int((totals <= 0).sum())
    if n_empty:
        logger.debug(f"{n_empty} samples sum to zero; kept as all-zero rows")
    return df.div(totals.where(totals > 0), axis=0).fillna(0.0)


def apply_floor(
    table: Union[Dict, Table, pd.DataFrame],
    threshold: float = constants.DEFAULT_ABUNDANCE_FLOOR,
    renormalize: bool = False
) -> pd.DataFrame:
    """Zero relative abundances below `threshold` and prune taxa left empty.

    Args:
        table:       Relative abundance table (samples × taxa).
        threshold:   Entries strictly below this value are set to zero.
        renormalize: Re-close rows to 1 after flooring.

    Returns:
        Floored relative abundance table.
    """
    df = table_to_df(table).astype(float)
    floored = df.where(df >= threshold, 0.0)
    floored = prune_empty_taxa(floored)
    if renormalize:
        floored = to_relative_abundance(floored)
    return floored


def variance_stabilize(table: Union[Dict, Table, pd.DataFrame]) -> pd.DataFrame:
    """Elementwise square root of relative abundances, applied before distance
    computation (never before dominance detection)."""
    df = table_to_df(table).astype(float)
    if (df.to_numpy() < 0).any():
        raise ValueError("Square-root transform requires non-negative abundances")
    return np.sqrt(df)
