# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import warnings
from typing import Any, Dict, List, Optional, Tuple, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table
from scipy.cluster.hierarchy import leaves_list, linkage
from scipy.spatial.distance import pdist, squareform
from skbio.stats.distance import DistanceMatrix
from skbio.stats.ordination import pcoa as PCoA
from sklearn.manifold import MDS
from sklearn.metrics import pairwise_distances

# Local Imports
from symbiont_its2 import constants
from symbiont_its2.constants import (
    BETWEEN_COLONY, COLONY_COLUMN, HOST_SPECIES_COLUMN, SAMPLE_ID_COLUMN,
    WITHIN_COLONY, YEAR_COLUMN
)
from symbiont_its2.errors import EmptyDatasetError, LowConfidenceOrdinationWarning
from symbiont_its2.utils.data import table_to_df

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

TableLike = Union[Dict, Table, pd.DataFrame]

# =============================== HELPER FUNCTIONS ==================================== #

def validate_min_samples(n_samples: int, min_samples: int, analysis: str) -> None:
    """Validate that enough samples remain for an analysis.

    Raises:
        EmptyDatasetError: If fewer than `min_samples` samples are available.
    """
    if n_samples < min_samples:
        raise EmptyDatasetError(
            f"{analysis} requires at least {min_samples} samples, got {n_samples}"
        )


def resolve_metric(metric: str) -> str:
    return constants.METRIC_ALIASES.get(str(metric).lower(), metric)


def create_result_dataframe(
    data: np.ndarray,
    index: pd.Index,
    prefix: str,
    n_components: int
) -> pd.DataFrame:
    """Create standardized result DataFrame with named components
    (prefix + number) and sample index."""
    columns = [f"{prefix}{i+1}" for i in range(n_components)]
    return pd.DataFrame(data, index=index, columns=columns)


def bray_curtis(data: np.ndarray) -> np.ndarray:
    """Square Bray-Curtis dissimilarity matrix.

    d(a, b) = sum|a_i - b_i| / sum(a_i + b_i), and 0 when both samples are
    empty. Symmetric, zero on the diagonal and bounded in [0, 1] for
    non-negative input.
    """
    data = np.asarray(data, dtype=float)
    if (data < 0).any():
        raise ValueError("Bray-Curtis requires non-negative abundances")
    n = data.shape[0]
    if n < 2:
        return np.zeros((n, n))
    with np.errstate(invalid='ignore', divide='ignore'):
        condensed = pdist(data, metric='braycurtis')
    # 0/0 for a pair of empty samples
    condensed = np.nan_to_num(condensed, nan=0.0)
    return squareform(condensed)

# =============================== CORE FUNCTIONALITY ================================== #

def distance_matrix(
    table: TableLike,
    metric: str = constants.DEFAULT_METRIC
) -> DistanceMatrix:
    """Compute the pairwise dissimilarity matrix between samples.

    Bray-Curtis ('braycurtis', alias 'bray') is computed directly so that a pair
    of empty samples has distance 0; any other metric is delegated to sklearn.

    Args:
        table:  Abundance table (samples × taxa).
        metric: Distance metric.

    Returns:
        DistanceMatrix over the table's sample ids.

    Raises:
        EmptyDatasetError: For a table without samples.
        ValueError:        For NaN or infinite values.
    """
    df = table_to_df(table)
    validate_min_samples(len(df), 1, "Distance computation")
    data = df.to_numpy(dtype=float)

    if np.isnan(data).any():
        raise ValueError("Input data contains NaN values")
    if np.isinf(data).any():
        raise ValueError("Input data contains infinite values")

    metric = resolve_metric(metric)
    if metric == 'braycurtis':
        dist_array = bray_curtis(data)
    else:
        dist_array = pairwise_distances(data, metric=metric)
        dist_array = (dist_array + dist_array.T) / 2
        np.fill_diagonal(dist_array, 0.0)

    return DistanceMatrix(dist_array, ids=[str(i) for i in df.index])


def _as_distance_matrix(
    table: Union[TableLike, DistanceMatrix],
    metric: str
) -> DistanceMatrix:
    if isinstance(table, DistanceMatrix):
        return table
    return distance_matrix(table, metric=metric)


def nmds(
    table: Union[TableLike, DistanceMatrix],
    metric: str = constants.DEFAULT_METRIC,
    n_components: int = constants.DEFAULT_N_NMDS,
    seed: int = constants.DEFAULT_RANDOM_STATE,
    n_init: int = constants.DEFAULT_NMDS_N_INIT,
    max_iter: int = constants.DEFAULT_NMDS_MAX_ITER,
    stress_threshold: float = constants.DEFAULT_STRESS_THRESHOLD
) -> Dict[str, Any]:
    """Non-metric multidimensional scaling over a dissimilarity matrix.

    The optimisation is seeded by `seed` with a fixed restart (`n_init`) and
    iteration (`max_iter`) budget, so the same input and seed reproduce the same
    embedding. A final Kruskal stress above `stress_threshold` does not fail the
    call: the result is returned flagged as low-confidence and a
    `LowConfidenceOrdinationWarning` is emitted.

    Args:
        table:            Abundance table or precomputed DistanceMatrix.
        metric:           Distance metric when `table` is an abundance table.
        n_components:     Embedding dimensions.
        seed:             Random seed for the initial configurations.
        n_init:           Number of random restarts.
        max_iter:         Maximum iterations per restart.
        stress_threshold: Stress above which the result is low-confidence.

    Returns:
        Dictionary with:
        - 'method': 'NMDS'
        - 'components': DataFrame of NMDS coordinates (n_samples × n_components)
        - 'stress': Final Kruskal stress-1
        - 'low_confidence': Whether stress exceeded the threshold
        - 'n_iter': Iterations used by the best restart

    Raises:
        EmptyDatasetError: For fewer than n_components + 1 samples.
    """
    dm = _as_distance_matrix(table, metric)
    validate_min_samples(dm.shape[0], n_components + 1, "NMDS")

    model = MDS(
        n_components=n_components,
        metric=False,
        dissimilarity='precomputed',
        n_init=n_init,
        max_iter=max_iter,
        random_state=seed,
        normalized_stress='auto',
    )
    with np.errstate(invalid='ignore', divide='ignore'):
        embeddings = model.fit_transform(dm.data)

    stress = float(model.stress_)
    low_confidence = not np.isfinite(stress) or stress > stress_threshold
    if low_confidence:
        message = (
            f"NMDS stress {stress:.3f} exceeds {stress_threshold} after "
            f"{n_init} restarts × {max_iter} iterations; result is low-confidence"
        )
        logger.warning(message)
        warnings.warn(message, LowConfidenceOrdinationWarning, stacklevel=2)

    index = pd.Index(list(dm.ids), name=SAMPLE_ID_COLUMN)
    return {
        'method': 'NMDS',
        'components': create_result_dataframe(embeddings, index, "NMDS", n_components),
        'stress': stress,
        'low_confidence': low_confidence,
        'n_iter': int(model.n_iter_),
    }


def pcoa(
    table: Union[TableLike, DistanceMatrix],
    metric: str = constants.DEFAULT_METRIC,
    n_dimensions: int = constants.DEFAULT_N_PCOA
) -> Dict[str, Any]:
    """Principal Coordinate Analysis (scikit-bio) over a dissimilarity matrix.

    Returns:
        Dictionary with 'method', 'components' (PCo1..), 'proportion_explained',
        'stress' (NaN) and 'low_confidence' (False).
    """
    dm = _as_distance_matrix(table, metric)
    validate_min_samples(dm.shape[0], 3, "PCoA")
    n_dimensions = min(n_dimensions, dm.shape[0] - 1)

    with warnings.catch_warnings():
        # Bray-Curtis is semi-metric; negative eigenvalues are expected
        warnings.simplefilter('ignore', RuntimeWarning)
        result = PCoA(dm, 'eigh', n_dimensions)

    components = result.samples.iloc[:, :n_dimensions].copy()
    components.columns = [f"PCo{i+1}" for i in range(components.shape[1])]
    components.index = pd.Index([str(i) for i in components.index], name=SAMPLE_ID_COLUMN)
    proportion = result.proportion_explained.iloc[:n_dimensions].copy()
    proportion.index = components.columns
    return {
        'method': 'PCoA',
        'components': components,
        'proportion_explained': proportion,
        'stress': float('nan'),
        'low_confidence': False,
    }


def ordinate(
    table: Union[TableLike, DistanceMatrix],
    method: str = constants.DEFAULT_ORDINATION_METHOD,
    metric: str = constants.DEFAULT_METRIC,
    **kwargs
) -> Dict[str, Any]:
    """Dispatch to NMDS or PCoA."""
    method_key = method.upper()
    if method_key == 'NMDS':
        return nmds(table, metric=metric, **kwargs)
    if method_key == 'PCOA':
        return pcoa(table, metric=metric, **kwargs)
    raise ValueError(f"Unsupported ordination method: {method}")


def hierarchical_clustering(
    dm: DistanceMatrix,
    method: str = constants.DEFAULT_LINKAGE_METHOD
) -> Dict[str, Any]:
    """Agglomerative clustering of samples over a distance matrix.

    Returns:
        Dictionary with the SciPy 'linkage' matrix and the dendrogram leaf 'order'
        as sample ids.
    """
    validate_min_samples(dm.shape[0], 2, "Hierarchical clustering")
    linkage_matrix = linkage(dm.condensed_form(), method=method)
    ids = list(dm.ids)
    return {
        'linkage': linkage_matrix,
        'order': [ids[i] for i in leaves_list(linkage_matrix)],
    }


def pairwise_distance_table(
    dm: DistanceMatrix,
    metadata: pd.DataFrame,
    columns: Optional[List[str]] = None
) -> pd.DataFrame:
    """Every unordered sample pair with its distance and the requested metadata
    of both samples (suffixes '_a' and '_b')."""
    columns = columns or [COLONY_COLUMN, YEAR_COLUMN, HOST_SPECIES_COLUMN]
    ids = np.asarray(dm.ids)
    i, j = np.triu_indices(len(ids), k=1)
    pairs = pd.DataFrame({
        'sample_a': ids[i],
        'sample_b': ids[j],
        'distance': dm.data[i, j],
    })
    meta = metadata.reindex(ids)[columns]
    for column in columns:
        pairs[f"{column}_a"] = meta[column].to_numpy()[i]
        pairs[f"{column}_b"] = meta[column].to_numpy()[j]
    return pairs


def within_between_colony(
    dm: DistanceMatrix,
    metadata: pd.DataFrame,
    species_column: str = HOST_SPECIES_COLUMN
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Compare within-colony and between-colony dissimilarities per host species.

    Only pairs of the same host species are kept. Pairs from the same colony (any
    years) are 'within_colony'; pairs from different colonies sampled in the
    same year are 'between_colony_same_year'; other pairs are discarded.

    Returns:
        Tuple of (classified pairs, median distance and pair count per species
        and comparison).
    """
    pairs = pairwise_distance_table(
        dm, metadata, [COLONY_COLUMN, YEAR_COLUMN, species_column]
    )
    pairs = pairs[pairs[f"{species_column}_a"] == pairs[f"{species_column}_b"]].copy()

    same_colony = pairs[f"{COLONY_COLUMN}_a"] == pairs[f"{COLONY_COLUMN}_b"]
    same_year = pairs[f"{YEAR_COLUMN}_a"] == pairs[f"{YEAR_COLUMN}_b"]
    pairs['comparison'] = np.select(
        [same_colony, ~same_colony & same_year],
        [WITHIN_COLONY, BETWEEN_COLONY],
        default='',
    )
    pairs = pairs[pairs['comparison'] != ''].copy()
    pairs[species_column] = pairs[f"{species_column}_a"]

    summary = (
        pairs.groupby([species_column, 'comparison'])['distance']
        .agg(median_distance='median', n_pairs='size')
        .reset_index()
    )
    logger.info(
        f"Classified {len(pairs)} same-species sample pairs into within/between "
        f"colony comparisons"
    )
    return pairs.reset_index(drop=True), summary
