# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging

# Third-Party Imports
import pandas as pd

# Local Imports
from symbiont_its2.constants import (
    COLONY_COLUMN, HOST_GENUS_COLUMN, HOST_SPECIES_COLUMN, SITE_COLUMN, YEAR_COLUMN
)
from symbiont_its2.stats.dominance import DOMINANT_GROUP_COLUMN

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

# ==================================== FUNCTIONS ===================================== #

def colony_counts_by_site_year(metadata: pd.DataFrame) -> pd.DataFrame:
    """Cross-tab of distinct colonies sampled per site (rows) and year (columns),
    with row and column totals."""
    if metadata.empty:
        return pd.DataFrame()
    counts = (
        metadata.groupby([SITE_COLUMN, YEAR_COLUMN])[COLONY_COLUMN]
        .nunique()
        .unstack(YEAR_COLUMN, fill_value=0)
        .sort_index(axis=1)
    )
    counts['total'] = metadata.groupby(SITE_COLUMN)[COLONY_COLUMN].nunique()
    totals = metadata.groupby(YEAR_COLUMN)[COLONY_COLUMN].nunique()
    totals['total'] = metadata[COLONY_COLUMN].nunique()
    counts.loc['total'] = totals
    return counts.astype(int)


def samples_per_host(metadata: pd.DataFrame) -> pd.DataFrame:
    """Number of samples and colonies per host genus, species and year."""
    return (
        metadata.groupby([HOST_GENUS_COLUMN, HOST_SPECIES_COLUMN, YEAR_COLUMN])
        .agg(n_samples=(COLONY_COLUMN, 'size'), n_colonies=(COLONY_COLUMN, 'nunique'))
        .reset_index()
    )


def dominance_summary(
    dominance: pd.DataFrame,
    metadata: pd.DataFrame,
    by: str = HOST_SPECIES_COLUMN
) -> pd.DataFrame:
    """Sample counts per dominant group for each `by` value and year."""
    df = dominance[[DOMINANT_GROUP_COLUMN]].join(metadata[[by, YEAR_COLUMN]], how='inner')
    return (
        df.groupby([by, YEAR_COLUMN, DOMINANT_GROUP_COLUMN])
        .size()
        .rename('n_samples')
        .reset_index()
    )
