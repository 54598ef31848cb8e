# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union

# Third-Party Imports
import pandas as pd
from biom import Table

# Local Imports
from symbiont_its2 import constants
from symbiont_its2.constants import (
    CLADE_COLUMN, COLONY_COLUMN, HOST_GENUS_COLUMN, HOST_SPECIES_COLUMN,
    NO_DOMINANT, YEAR_COLUMN
)
from symbiont_its2.utils.data import table_to_df

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

# ================================= DEFAULT VALUES =================================== #

DOMINANT_GROUP_COLUMN = 'dominant_group'
DOMINANT_PROFILE_COLUMN = 'dominant_profile'

# ==================================== FUNCTIONS ===================================== #

def _threshold_label(threshold: float) -> str:
    return f"{threshold:g}"


def dominant_taxa(
    table: Union[Dict, Table, pd.DataFrame],
    threshold: float = constants.DEFAULT_DOMINANCE_THRESHOLD
) -> pd.Series:
    """Dominant taxon (or group) per sample.

    The dominant column is the one with the highest relative abundance, reported
    only when that maximum is strictly greater than `threshold`; otherwise the
    sample has no dominant taxon ('none'). Ties at the maximum go to the
    lexicographically smallest column name so repeated runs always agree.

    Args:
        table:     Relative abundance table (samples × taxa or groups).
        threshold: Dominance threshold.

    Returns:
        Series of dominant labels indexed by sample id.
    """
    df = table_to_df(table).astype(float)
    if df.shape[1] == 0 or df.empty:
        return pd.Series(NO_DOMINANT, index=df.index, dtype=object)

    ordered = df.reindex(columns=sorted(df.columns, key=str))
    max_values = ordered.max(axis=1)
    # idxmax returns the first maximum, i.e. the lexicographically smallest tie
    winners = ordered.idxmax(axis=1).astype(object)
    return winners.where(max_values > threshold, NO_DOMINANT)


def sample_dominance(
    groups: pd.DataFrame,
    profiles: Optional[pd.DataFrame] = None,
    group_threshold: float = constants.DEFAULT_DOMINANCE_THRESHOLD,
    profile_threshold: float = constants.DEFAULT_DOMINANCE_THRESHOLD
) -> pd.DataFrame:
    """Per-sample dominant group and, when given, dominant profile.

    Args:
        groups:            Relative abundance aggregated to groups (clades).
        profiles:          Relative abundance of type profiles.
        group_threshold:   Dominance threshold at the group level.
        profile_threshold: Dominance threshold at the profile level.

    Returns:
        DataFrame indexed by sample id with 'dominant_group' and, optionally,
        'dominant_profile'.
    """
    result = pd.DataFrame({
        DOMINANT_GROUP_COLUMN: dominant_taxa(groups, group_threshold)
    })
    if profiles is not None:
        result[DOMINANT_PROFILE_COLUMN] = (
            dominant_taxa(profiles, profile_threshold)
            .reindex(result.index)
            .fillna(NO_DOMINANT)
        )
    return result


def _profile_changes_within_groups(
    profiles: Sequence[str],
    taxonomy: Optional[pd.DataFrame]
) -> List[str]:
    """Groups within which more than one distinct dominant profile occurs."""
    if taxonomy is None:
        return []
    by_group: Dict[str, set] = {}
    for profile in profiles:
        if profile == NO_DOMINANT or profile not in taxonomy.index:
            continue
        by_group.setdefault(taxonomy.at[profile, CLADE_COLUMN], set()).add(profile)
    return sorted(group for group, found in by_group.items() if len(found) > 1)


def colony_changes(
    dominance: pd.DataFrame,
    metadata: pd.DataFrame,
    taxonomy: Optional[pd.DataFrame] = None
) -> pd.DataFrame:
    """Flag colonies whose dominant symbiont changed across sampling years.

    A colony needs at least two samples to be flagged. `genus_changed` is set when
    more than one distinct dominant group (ignoring 'none') occurs across its
    samples; `profile_changed` does the same at the profile level, and
    `profile_changed_within_group` marks a profile switch inside one group, told
    apart from a switch of dominant group.

    Args:
        dominance: Output of `sample_dominance`.
        metadata:  Sample metadata with colony id and year.
        taxonomy:  Profile taxonomy (profile → clade) for within-group changes.

    Returns:
        DataFrame indexed by colony id.
    """
    meta_columns = [
        c for c in (COLONY_COLUMN, YEAR_COLUMN, HOST_GENUS_COLUMN, HOST_SPECIES_COLUMN)
        if c in metadata.columns
    ]
    df = dominance.join(metadata[meta_columns], how='inner')
    df = df.sort_values([COLONY_COLUMN, YEAR_COLUMN], kind='stable')
    has_profiles = DOMINANT_PROFILE_COLUMN in df.columns

    rows = []
    for colony, samples in df.groupby(COLONY_COLUMN, sort=True):
        n_samples = len(samples)
        repeated = n_samples >= 2
        groups = samples[DOMINANT_GROUP_COLUMN].tolist()
        distinct_groups = sorted(set(groups) - {NO_DOMINANT})

        row = {
            COLONY_COLUMN: colony,
            'n_samples': n_samples,
            'years': ','.join(str(y) for y in samples[YEAR_COLUMN]),
            'group_trajectory': constants.TRAJECTORY_SEPARATOR.join(groups),
            'dominant_groups': ','.join(distinct_groups),
            'genus_changed': repeated and len(distinct_groups) > 1,
        }
        for column in (HOST_GENUS_COLUMN, HOST_SPECIES_COLUMN):
            if column in samples.columns:
                row[column] = samples[column].iloc[0]

        if has_profiles:
            profiles = samples[DOMINANT_PROFILE_COLUMN].tolist()
            distinct_profiles = sorted(set(profiles) - {NO_DOMINANT})
            changed_groups = _profile_changes_within_groups(profiles, taxonomy)
            row.update({
                'profile_trajectory': constants.TRAJECTORY_SEPARATOR.join(profiles),
                'profile_changed': repeated and len(distinct_profiles) > 1,
                'profile_changed_within_group': repeated and bool(changed_groups),
                'within_group_changed_clades': ','.join(changed_groups),
            })
        rows.append(row)

    result = pd.DataFrame(rows)
    if result.empty:
        return pd.DataFrame(columns=[COLONY_COLUMN, 'genus_changed']).set_index(COLONY_COLUMN)
    result = result.set_index(COLONY_COLUMN)
    logger.info(
        f"{int(result['genus_changed'].sum())}/{len(result)} colonies changed "
        f"dominant symbiont genus"
    )
    return result


def threshold_counts(
    table: Union[Dict, Table, pd.DataFrame],
    thresholds: Iterable[float] = constants.DEFAULT_MULTI_GROUP_THRESHOLDS
) -> pd.DataFrame:
    """Number of groups per sample whose relative abundance exceeds each
    threshold (columns 'n_above_<threshold>')."""
    df = table_to_df(table).astype(float)
    return pd.DataFrame(
        {f"n_above_{_threshold_label(t)}": (df > t).sum(axis=1) for t in thresholds},
        index=df.index,
    )


def multi_group_colonies(
    counts: pd.DataFrame,
    metadata: pd.DataFrame
) -> pd.DataFrame:
    """A colony is multi-group at a threshold if any of its samples has more than
    one group above it. Columns follow the counts: 'multi_group_<threshold>'."""
    df = counts.join(metadata[[COLONY_COLUMN]], how='inner')
    per_colony = df.groupby(COLONY_COLUMN).max()
    flags = per_colony > 1
    flags.columns = [c.replace('n_above_', 'multi_group_') for c in flags.columns]
    return flags
