# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

# Third-Party Imports
import pandas as pd
from skbio.stats.distance import DistanceMatrix

# Local Imports
from symbiont_its2 import constants
from symbiont_its2.config import section
from symbiont_its2.errors import EmptyDatasetError, MalformedInputError
from symbiont_its2.figures.beta_diversity import ordination_plot
from symbiont_its2.figures.feature_abundance import stacked_abundance_plot
from symbiont_its2.figures.figures import plotly_show_and_save, taxon_palette
from symbiont_its2.stats.beta_diversity import (
    distance_matrix, hierarchical_clustering, ordinate, within_between_colony
)
from symbiont_its2.stats.dominance import (
    colony_changes, multi_group_colonies, sample_dominance, threshold_counts
)
from symbiont_its2.stats.summary import (
    colony_counts_by_site_year, dominance_summary, samples_per_host
)
from symbiont_its2.stats.tests import clade_batch_permanova
from symbiont_its2.utils.data import (
    all_of, apply_floor, exclude_untagged, filter_samples, min_read_count,
    to_relative_abundance, variance_stabilize
)
from symbiont_its2.utils.io import (
    align_table_and_metadata, load_metadata, load_profile_table,
    load_variant_table, write_biom, write_tsv
)
from symbiont_its2.utils.taxonomy import aggregate_by_group, to_long

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

# ==================================================================================== #

class Config:
    """Configuration container for downstream analysis parameters."""
    def __init__(self, config: Dict):
        self.config = config

    def is_enabled(self, module: str, default: bool = True) -> bool:
        """Check if a specific analysis module is enabled."""
        return section(self.config, module).get('enabled', default)

    def get_parameter(self, module: str, parameter: str, default: Any = None) -> Any:
        """Get a specific parameter for an analysis module."""
        value = section(self.config, module).get(parameter)
        return default if value is None else value


class Results:
    """Container for organizing analysis results."""
    def __init__(self):
        self.metadata: pd.DataFrame = pd.DataFrame()
        self.taxonomy: Dict[str, pd.DataFrame] = {}
        self.tables: Dict[str, pd.DataFrame] = {}
        self.relative: Dict[str, pd.DataFrame] = {}
        self.clades: pd.DataFrame = pd.DataFrame()
        self.transformed: pd.DataFrame = pd.DataFrame()
        self.dominance: Dict[str, pd.DataFrame] = {}
        self.distance_matrix = None
        self.clustering: Dict[str, Any] = {}
        self.ordination: Dict[str, Dict[str, Any]] = {}
        self.distances: Dict[str, pd.DataFrame] = {}
        self.permanova: pd.DataFrame = pd.DataFrame()
        self.summaries: Dict[str, pd.DataFrame] = {}
        self.skipped: Dict[str, str] = {}

# ==================================================================================== #

class DownstreamAnalyzer:
    """Orchestrates the ITS2 symbiont community analysis:
    load → filter → normalize → aggregate → analyze → write."""

    def __init__(
        self,
        config: Dict,
        output_dir: Optional[Union[str, Path]] = None
    ):
        self.config = Config(config)
        self.output_dir = Path(
            output_dir or config.get('output_dir', constants.DEFAULT_OUTPUT_DIR)
        )
        self.results = Results()
        self.primary: Optional[str] = None

    def run(self) -> Results:
        """Execute the complete analysis pipeline."""
        logger.info("Starting ITS2 downstream analysis...")
        self._load_data()
        self._prep_data()
        self._run_modules()
        self._write_outputs()
        self._log_analysis_summary()
        logger.info("Downstream analysis completed")
        return self.results

    # ================================ DATA PREPARATION ================================ #

    def _load_data(self) -> None:
        """Load metadata and abundance tables; schema errors abort the run."""
        inputs = section(self.config.config, 'inputs')
        if not inputs.get('metadata'):
            raise MalformedInputError("No metadata file configured under 'inputs'")

        untagged_id = self.config.get_parameter(
            'filter', 'untagged_colony_id', constants.DEFAULT_UNTAGGED_COLONY_ID
        )
        metadata = load_metadata(
            inputs['metadata'],
            schema=self.config.config.get('metadata_schema'),
            untagged_id=untagged_id,
        )

        tables = {}
        if inputs.get('variants'):
            tables['variants'] = load_variant_table(
                inputs['variants'],
                sample_column=self.config.get_parameter(
                    'inputs', 'variant_sample_column',
                    constants.DEFAULT_VARIANT_SAMPLE_COLUMN
                ),
                n_skip_columns=self.config.get_parameter(
                    'inputs', 'variant_skip_columns',
                    constants.DEFAULT_VARIANT_SKIP_COLUMNS
                ),
            )
        if inputs.get('profiles'):
            tables['profiles'] = load_profile_table(
                inputs['profiles'],
                n_meta_rows=self.config.get_parameter(
                    'inputs', 'profile_meta_rows', constants.DEFAULT_PROFILE_META_ROWS
                ),
            )
        if not tables:
            raise MalformedInputError(
                "No abundance table configured; set 'inputs.variants' and/or "
                "'inputs.profiles'"
            )

        # Read counts come from the sequence-variant table when there is one
        self.primary = 'variants' if 'variants' in tables else 'profiles'
        table, metadata = align_table_and_metadata(tables[self.primary][0], metadata)
        self.results.metadata = metadata
        for name, (abundance, taxonomy) in tables.items():
            self.results.tables[name] = table if name == self.primary else abundance
            self.results.taxonomy[name] = taxonomy

    def _prep_data(self) -> None:
        """Filter samples, convert to relative abundance and derive clade and
        variance-stabilized tables."""
        predicate = all_of(
            exclude_untagged(self.config.get_parameter(
                'filter', 'untagged_colony_id', constants.DEFAULT_UNTAGGED_COLONY_ID
            )),
            min_read_count(self.config.get_parameter(
                'filter', 'min_reads', constants.DEFAULT_MIN_READ_COUNT
            )),
        )
        metadata = self.results.metadata
        for name in list(self.results.tables):
            filtered, filtered_meta = filter_samples(
                self.results.tables[name], metadata, predicate
            )
            self.results.tables[name] = filtered
            if name == self.primary:
                self.results.metadata = filtered_meta

        floor = self.config.get_parameter('normalize', 'floor', None)
        for name, table in self.results.tables.items():
            relative = to_relative_abundance(table)
            if floor is not None:
                relative = apply_floor(
                    relative, threshold=floor,
                    renormalize=self.config.get_parameter('normalize', 'renormalize', False)
                )
            self.results.relative[name] = relative

        primary = self.results.relative[self.primary]
        self.results.clades = aggregate_by_group(primary, self.results.taxonomy[self.primary])
        self.results.transformed = variance_stabilize(primary)
        logger.info(
            f"Prepared {len(primary)} samples × {primary.shape[1]} {self.primary} "
            f"({self.results.clades.shape[1]} clades)"
        )

    # ================================ ANALYSIS MODULES ================================ #

    def _run_modules(self) -> None:
        """Run all enabled analysis modules. A module that lacks samples is
        skipped with a warning; other errors propagate."""
        analysis_modules = [
            ('summaries', self._run_summaries, True),
            ('dominance', self._run_dominance, True),
            ('ordination', self._run_ordination, True),
            ('distances', self._run_distances, True),
            ('permanova', self._run_permanova, True),
            ('figures', self._run_figures, False),
        ]
        for module_name, module_func, default in analysis_modules:
            if not self.config.is_enabled(module_name, default):
                logger.info(f"Skipping '{module_name}' analysis: disabled in configuration")
                continue
            logger.info(f"Running {module_name} analysis...")
            self._guarded(module_name, module_func)

    def _guarded(self, name: str, func: Callable[[], None]) -> None:
        try:
            func()
        except EmptyDatasetError as e:
            self._record_skip(name, e)

    def _record_skip(self, name: str, error: Exception) -> None:
        logger.warning(f"Skipped '{name}': {error}")
        self.results.skipped[name] = str(error)

    def _run_summaries(self) -> None:
        metadata = self.results.metadata
        self.results.summaries['colony_counts_by_site_year'] = colony_counts_by_site_year(metadata)
        self.results.summaries['samples_per_host'] = samples_per_host(metadata)

    def _run_dominance(self) -> None:
        threshold = self.config.get_parameter(
            'dominance', 'threshold', constants.DEFAULT_DOMINANCE_THRESHOLD
        )
        profiles = self.results.relative.get('profiles')
        if profiles is not None:
            profiles = profiles.reindex(self.results.clades.index).fillna(0.0)
        dominance = sample_dominance(
            self.results.clades, profiles,
            group_threshold=threshold,
            profile_threshold=self.config.get_parameter(
                'dominance', 'profile_threshold', threshold
            ),
        )
        thresholds = self.config.get_parameter(
            'multi_group', 'thresholds', constants.DEFAULT_MULTI_GROUP_THRESHOLDS
        )
        counts = threshold_counts(self.results.clades, thresholds)

        self.results.dominance = {
            'samples': dominance,
            'colonies': colony_changes(
                dominance, self.results.metadata, self.results.taxonomy.get('profiles')
            ),
            'threshold_counts': counts,
            'multi_group_colonies': multi_group_colonies(counts, self.results.metadata),
        }
        self.results.summaries['dominance_by_year'] = dominance_summary(
            dominance, self.results.metadata
        )

    def _ordination_kwargs(self, method: str) -> Dict[str, Any]:
        if method.upper() == 'PCOA':
            return {}
        return {
            'seed': self.config.get_parameter(
                'ordination', 'seed', constants.DEFAULT_RANDOM_STATE
            ),
            'n_init': self.config.get_parameter(
                'ordination', 'n_init', constants.DEFAULT_NMDS_N_INIT
            ),
            'max_iter': self.config.get_parameter(
                'ordination', 'max_iter', constants.DEFAULT_NMDS_MAX_ITER
            ),
            'stress_threshold': self.config.get_parameter(
                'ordination', 'stress_threshold', constants.DEFAULT_STRESS_THRESHOLD
            ),
        }

    def _run_ordination(self) -> None:
        metric = self.config.get_parameter('ordination', 'metric', constants.DEFAULT_METRIC)
        method = self.config.get_parameter(
            'ordination', 'method', constants.DEFAULT_ORDINATION_METHOD
        )
        self.results.distance_matrix = distance_matrix(self.results.transformed, metric)
        self._guarded('clustering', self._run_clustering)

        self._run_ordination_for('all', self.results.distance_matrix, method)

        group_by = self.config.get_parameter(
            'ordination', 'group_by', constants.HOST_GENUS_COLUMN
        )
        if group_by not in self.results.metadata.columns:
            return
        for group, meta in self.results.metadata.groupby(group_by, sort=True):
            ids = [i for i in meta.index if i in self.results.distance_matrix.ids]
            if not ids:
                continue
            self._run_ordination_for(
                f"{group_by}:{group}", self.results.distance_matrix.filter(ids), method
            )

    def _run_ordination_for(self, key: str, dm: DistanceMatrix, method: str) -> None:
        try:
            result = ordinate(dm, method=method, **self._ordination_kwargs(method))
        except EmptyDatasetError as e:
            self._record_skip(f"ordination:{key}", e)
            return
        self.results.ordination[key] = result

    def _run_clustering(self) -> None:
        self.results.clustering = hierarchical_clustering(
            self.results.distance_matrix,
            method=self.config.get_parameter(
                'ordination', 'linkage', constants.DEFAULT_LINKAGE_METHOD
            ),
        )

    def _run_distances(self) -> None:
        dm = self.results.distance_matrix
        if dm is None:
            dm = distance_matrix(self.results.transformed)
        pairs, summary = within_between_colony(
            dm, self.results.metadata,
            species_column=self.config.get_parameter(
                'distances', 'species_column', constants.HOST_SPECIES_COLUMN
            ),
        )
        self.results.distances = {'pairs': pairs, 'summary': summary}

    def _run_permanova(self) -> None:
        get = lambda parameter, default: self.config.get_parameter(
            'permanova', parameter, default
        )
        self.results.permanova = clade_batch_permanova(
            self.results.relative[self.primary],
            self.results.taxonomy[self.primary],
            self.results.metadata,
            group_column=get('group_column', constants.DEFAULT_TEST_GROUP_COLUMN),
            clades=get('clades', None),
            min_abundance=get('min_abundance', constants.DEFAULT_MIN_CLADE_ABUNDANCE),
            permutations=get('permutations', constants.DEFAULT_PERMUTATIONS),
            correction=get('correction', constants.DEFAULT_CORRECTION),
            alpha=get('alpha', constants.DEFAULT_ALPHA),
            seed=get('seed', constants.DEFAULT_RANDOM_STATE),
        )

    def _run_figures(self) -> None:
        figure_dir = self.output_dir / 'figures'
        save_as = self.config.get_parameter('figures', 'save_as', ['html'])
        seed = self.config.get_parameter('figures', 'palette_seed', None)
        color_col = self.config.get_parameter(
            'figures', 'color_column', constants.HOST_SPECIES_COLUMN
        )
        categories = sorted(self.results.metadata[color_col].astype(str).unique())
        palette = taxon_palette(categories, seed=seed)

        for key, ordination in self.results.ordination.items():
            fig = ordination_plot(
                ordination, self.results.metadata, color_col,
                symbol_col=constants.YEAR_COLUMN if constants.YEAR_COLUMN != color_col else None,
                hover_data=[constants.COLONY_COLUMN, constants.SITE_COLUMN],
                palette=palette,
                title=f"{ordination['method']} ({key})",
            )
            stem = key.replace(':', '_').replace(' ', '_')
            plotly_show_and_save(fig, output_path=figure_dir / f"ordination_{stem}", save_as=save_as)

        fig = stacked_abundance_plot(
            self.results.clades,
            sample_order=self.results.clustering.get('order'),
            seed=seed,
            group_name=constants.CLADE_COLUMN,
            title="Clade relative abundance",
        )
        plotly_show_and_save(fig, output_path=figure_dir / "clade_abundance", save_as=save_as)

    # ===================================== OUTPUT ===================================== #

    def _write_outputs(self) -> None:
        out = self.output_dir
        results = self.results
        write_tsv(results.metadata, out / "metadata_filtered.tsv")
        for name, table in results.relative.items():
            write_tsv(table, out / "tables" / f"{name}_relative_abundance.tsv")
        write_tsv(results.clades, out / "tables" / "clade_relative_abundance.tsv")
        write_tsv(
            to_long(results.clades, group_name=constants.CLADE_COLUMN),
            out / "tables" / "clade_relative_abundance_long.tsv", index=False
        )
        if not results.clades.empty:
            write_biom(results.clades, out / "tables" / "clade_relative_abundance.biom")

        if results.distance_matrix is not None:
            write_tsv(results.distance_matrix.to_data_frame(), out / "beta" / "braycurtis.tsv")
        for key, ordination in results.ordination.items():
            stem = key.replace(':', '_').replace(' ', '_')
            write_tsv(ordination['components'], out / "beta" / f"ordination_{stem}.tsv")
        if results.clustering:
            write_tsv(
                pd.DataFrame({constants.SAMPLE_ID_COLUMN: results.clustering['order']}),
                out / "beta" / "clustering_order.tsv", index=False
            )
        for key, table in results.distances.items():
            write_tsv(table, out / "beta" / f"within_between_colony_{key}.tsv", index=False)
        for key, table in results.dominance.items():
            write_tsv(table, out / "dominance" / f"{key}.tsv")
        if not results.permanova.empty:
            write_tsv(results.permanova, out / "stats" / "pairwise_permanova.tsv", index=False)
        for key, table in results.summaries.items():
            write_tsv(table, out / "summaries" / f"{key}.tsv",
                      index=key == 'colony_counts_by_site_year')
        logger.info(f"Wrote outputs to '{out}'")

    def _log_analysis_summary(self) -> None:
        logger.info("=" * 60)
        logger.info("DOWNSTREAM ANALYSIS SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Samples after filtering: {len(self.results.metadata)}")
        colonies = self.results.dominance.get('colonies')
        if colonies is not None and not colonies.empty:
            logger.info(
                f"Colonies with a dominant genus change: "
                f"{int(colonies['genus_changed'].sum())}/{len(colonies)}"
            )
        for key, ordination in self.results.ordination.items():
            flag = " (low confidence)" if ordination['low_confidence'] else ""
            logger.info(f"Ordination {key}: stress={ordination['stress']:.3f}{flag}")
        for name, reason in self.results.skipped.items():
            logger.info(f"Skipped {name}: {reason}")
        logger.info("=" * 60)

# ==================================================================================== #

def run_downstream(
    config: Dict,
    output_dir: Optional[Union[str, Path]] = None
) -> DownstreamAnalyzer:
    analyzer = DownstreamAnalyzer(config=config, output_dir=output_dir)
    analyzer.run()
    return analyzer
