# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from itertools import combinations
from typing import Any, Dict, Iterable, List, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table
from skbio.stats.distance import DistanceMatrix, permanova
from statsmodels.stats.multitest import multipletests

# ================================== LOCAL IMPORTS =================================== #

from symbiont_its2 import constants
from symbiont_its2.constants import CLADE_COLUMN, STATUS_NOT_TESTED, STATUS_TESTED
from symbiont_its2.errors import EmptyDatasetError, InsufficientSampleSizeError
from symbiont_its2.logger import get_console
from symbiont_its2.stats.beta_diversity import distance_matrix
from symbiont_its2.utils.data import to_relative_abundance, variance_stabilize
from symbiont_its2.utils.progress import (
    _format_task_desc, get_progress_bar, pair_description
)
from symbiont_its2.utils.taxonomy import aggregate_by_group

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

# ================================= DEFAULT VALUES =================================== #

RESULT_COLUMNS = [
    'group_a', 'group_b', 'n_a', 'n_b', 'test_statistic', 'p_value',
    'p_adjusted', 'significant', 'status', 'reason'
]

# ==================================== FUNCTIONS ===================================== #

def _child_seeds(seed: Optional[int], n: int) -> List[int]:
    """Independent integer seeds, one per comparison, derived from `seed`."""
    return [
        int(child.generate_state(1)[0])
        for child in np.random.SeedSequence(seed).spawn(n)
    ]


def _correction_method(correction: str) -> str:
    try:
        return constants.CORRECTION_METHODS[correction.lower()]
    except KeyError:
        raise ValueError(
            f"Unsupported correction '{correction}'. "
            f"Expected one of {list(constants.CORRECTION_METHODS)}"
        )


def permanova_pair(
    dm: DistanceMatrix,
    grouping: pd.Series,
    group_a: Any,
    group_b: Any,
    permutations: int = constants.DEFAULT_PERMUTATIONS,
    seed: Optional[int] = None
) -> pd.Series:
    """PERMANOVA between two groups of samples.

    Raises:
        InsufficientSampleSizeError: If either group has fewer than two samples,
                                     or every distance between the pooled
                                     samples is zero so no pseudo-F exists.
    """
    members = {g: grouping.index[grouping == g].tolist() for g in (group_a, group_b)}
    for group, ids in members.items():
        if len(ids) < constants.MIN_GROUP_SIZE:
            raise InsufficientSampleSizeError(
                f"Group '{group}' has {len(ids)} sample(s); "
                f"at least {constants.MIN_GROUP_SIZE} required"
            )
    ids = members[group_a] + members[group_b]
    sub_dm = dm.filter(ids)
    if not np.any(sub_dm.data):
        raise InsufficientSampleSizeError(
            f"No within-group dispersion between '{group_a}' and '{group_b}' "
            "(all distances are zero)"
        )
    labels = grouping.loc[list(sub_dm.ids)].tolist()
    return permanova(sub_dm, labels, permutations=permutations, seed=seed)


def apply_correction(
    results: pd.DataFrame,
    correction: str = constants.DEFAULT_CORRECTION,
    alpha: float = constants.DEFAULT_ALPHA
) -> pd.DataFrame:
    """Adjust p-values of the tested comparisons in one batch.

    Comparisons that were not tested (or gave no finite p-value) keep NaN and
    are never significant.
    """
    results = results.copy()
    results['p_adjusted'] = np.nan
    results['significant'] = False
    mask = (results['status'] == STATUS_TESTED) & np.isfinite(
        results['p_value'].astype(float)
    )
    if mask.any():
        reject, p_adj, _, _ = multipletests(
            results.loc[mask, 'p_value'].astype(float),
            alpha=alpha,
            method=_correction_method(correction),
        )
        results.loc[mask, 'p_adjusted'] = p_adj
        results.loc[mask, 'significant'] = reject
    results['significant'] = results['significant'].astype(bool)
    return results


def pairwise_permanova(
    table: Union[Dict, Table, pd.DataFrame, DistanceMatrix],
    metadata: pd.DataFrame,
    group_column: str = constants.DEFAULT_TEST_GROUP_COLUMN,
    clade_abundance: Optional[pd.Series] = None,
    min_abundance: float = constants.DEFAULT_MIN_CLADE_ABUNDANCE,
    metric: str = constants.DEFAULT_METRIC,
    permutations: int = constants.DEFAULT_PERMUTATIONS,
    correction: str = constants.DEFAULT_CORRECTION,
    alpha: float = constants.DEFAULT_ALPHA,
    seed: Optional[int] = constants.DEFAULT_RANDOM_STATE,
    progress=None,
    task_id=None
) -> pd.DataFrame:
    """
    Pairwise PERMANOVA between every pair of group labels, with correction
    across the pairs of this batch.

    Each pair gets its own seed derived from `seed`, so results do not depend on
    the order in which pairs are run. A pair involving a group with fewer than
    two samples, or whose pooled samples are all identical, is reported as
    'not tested' with no p-value; the remaining pairs still run.

    Args:
        table:           Transformed abundance table (samples × taxa) or a
                         precomputed DistanceMatrix.
        metadata:        Sample metadata holding `group_column`.
        group_column:    Metadata column with group labels (host species).
        clade_abundance: Optional per-sample relative abundance of a symbiont
                         group; only samples above `min_abundance` are tested.
        min_abundance:   Abundance threshold for `clade_abundance`.
        metric:          Distance metric when `table` is an abundance table.
        permutations:    Number of permutations per test.
        correction:      'bonferroni' or 'fdr' (Benjamini-Hochberg).
        alpha:           Significance level for the corrected p-values.
        seed:            Base seed for the per-pair generators.

    Returns:
        DataFrame with one row per pair: group_a, group_b, n_a, n_b,
        test_statistic, p_value, p_adjusted, significant, status, reason.
    """
    if isinstance(table, DistanceMatrix):
        dm = table
    else:
        dm = distance_matrix(table, metric=metric)

    ids = pd.Index(dm.ids)
    if clade_abundance is not None:
        abundance = clade_abundance.reindex(ids).fillna(0.0)
        ids = ids[(abundance > min_abundance).to_numpy()]
    grouping = metadata.reindex(ids)[group_column].dropna()

    labels = sorted(grouping.unique(), key=str)
    pairs = list(combinations(labels, 2))
    if not pairs:
        logger.warning(
            f"Fewer than two '{group_column}' groups available; no pairwise tests run"
        )
        return pd.DataFrame(columns=RESULT_COLUMNS)

    sizes = grouping.value_counts()
    seeds = _child_seeds(seed, len(pairs))
    sub_task = None
    if progress is not None:
        sub_task = progress.add_task(
            _format_task_desc("PERMANOVA:"), parent=task_id, total=len(pairs)
        )

    rows = []
    for (group_a, group_b), pair_seed in zip(pairs, seeds):
        row = {
            'group_a': group_a, 'group_b': group_b,
            'n_a': int(sizes.get(group_a, 0)), 'n_b': int(sizes.get(group_b, 0)),
            'test_statistic': np.nan, 'p_value': np.nan,
            'status': STATUS_TESTED, 'reason': '',
        }
        try:
            if progress is not None:
                progress.update(
                    sub_task, description=pair_description("PERMANOVA", group_a, group_b)
                )
            result = permanova_pair(
                dm, grouping, group_a, group_b,
                permutations=permutations, seed=pair_seed
            )
            statistic = float(result['test statistic'])
            if not np.isfinite(statistic):
                raise InsufficientSampleSizeError(
                    f"Pseudo-F is undefined for '{group_a}' vs '{group_b}'"
                )
            row['test_statistic'] = statistic
            row['p_value'] = float(result['p-value'])
        except InsufficientSampleSizeError as e:
            logger.debug(f"Skipping {group_a} vs {group_b}: {e}")
            row['status'] = STATUS_NOT_TESTED
            row['reason'] = str(e)
        finally:
            if progress is not None:
                progress.update(sub_task, advance=1)
        rows.append(row)

    if progress is not None:
        progress.remove_task(sub_task)

    results = apply_correction(pd.DataFrame(rows), correction=correction, alpha=alpha)
    n_skipped = int((results['status'] == STATUS_NOT_TESTED).sum())
    if n_skipped:
        logger.warning(
            f"{n_skipped}/{len(results)} pairwise comparisons not tested "
            "(too few samples or no within-group dispersion)"
        )
    return results[RESULT_COLUMNS]


def clade_batch_permanova(
    table: pd.DataFrame,
    taxonomy: pd.DataFrame,
    metadata: pd.DataFrame,
    group_column: str = constants.DEFAULT_TEST_GROUP_COLUMN,
    clades: Optional[Iterable[str]] = None,
    min_abundance: float = constants.DEFAULT_MIN_CLADE_ABUNDANCE,
    metric: str = constants.DEFAULT_METRIC,
    permutations: int = constants.DEFAULT_PERMUTATIONS,
    correction: str = constants.DEFAULT_CORRECTION,
    alpha: float = constants.DEFAULT_ALPHA,
    seed: Optional[int] = constants.DEFAULT_RANDOM_STATE
) -> pd.DataFrame:
    """
    One pairwise PERMANOVA batch per symbiont clade.

    For each clade, samples whose clade relative abundance exceeds
    `min_abundance` are kept, the table is restricted to that clade's taxa,
    re-closed to relative abundance and square-root transformed before
    Bray-Curtis. Correction is applied within each clade batch only.

    Args:
        table:    Relative abundance table (samples × taxa).
        taxonomy: Taxonomy with a 'clade' column.
        metadata: Sample metadata.
        clades:   Clades to test (default: every clade present).

    Returns:
        Concatenated batch results with a leading 'clade' column.
    """
    groups = aggregate_by_group(table, taxonomy, level=CLADE_COLUMN)
    clades = list(clades) if clades is not None else list(groups.columns)
    seeds = _child_seeds(seed, len(clades))

    batches = []
    with get_progress_bar(console=get_console()) as progress:
        task = progress.add_task(_format_task_desc("Clade batches"), total=len(clades))
        for clade, batch_seed in zip(clades, seeds):
            progress.update(task, description=_format_task_desc(f"Clade {clade}"))
            try:
                if clade not in groups.columns:
                    raise EmptyDatasetError(f"Clade {clade} is absent from the table")
                keep = groups.index[(groups[clade] > min_abundance).to_numpy()]
                taxa = taxonomy.index[taxonomy[CLADE_COLUMN] == clade].intersection(table.columns)
                subset = variance_stabilize(to_relative_abundance(table.loc[keep, taxa]))
                batch = pairwise_permanova(
                    subset, metadata,
                    group_column=group_column,
                    metric=metric,
                    permutations=permutations,
                    correction=correction,
                    alpha=alpha,
                    seed=batch_seed,
                    progress=progress,
                    task_id=task,
                )
            except EmptyDatasetError as e:
                logger.warning(f"Skipping clade {clade} batch: {e}")
                continue
            finally:
                progress.update(task, advance=1)
            batch.insert(0, CLADE_COLUMN, clade)
            batches.append(batch)

    if not batches:
        return pd.DataFrame(columns=[CLADE_COLUMN] + RESULT_COLUMNS)
    return pd.concat(batches, ignore_index=True)
