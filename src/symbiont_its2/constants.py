import re
from pathlib import Path

# ==================================================================================== #
# PROGRESS BAR
# ==================================================================================== #
# See supported colors at: https://www.w3schools.com/colors/colors_x11.asp

# Total character width of the progress bar text
DEFAULT_N: int = 65
# Color of the progress bar description text
DEFAULT_DESCRIPTION_STYLE: str = "white"
# Width of the progress bar
DEFAULT_BAR_WIDTH: int = 40
# Color of the filled/complete portion of the progress bar
DEFAULT_BAR_COLUMN_COMPLETE_STYLE: str = "honeydew2"
# Color used when the progress bar is finished
DEFAULT_FINISHED_STYLE: str = "dark_cyan"
# Color of the percentage complete text (e.g., "85%")
DEFAULT_PROGRESS_PERCENTAGE_STYLE: str = "honeydew2"
# Color of the "X of Y complete" text (e.g., "42 of 65")
DEFAULT_M_OF_N_COMPLETE_STYLE: str = "honeydew2"
# Color of the time elapsed display (e.g., "E: 00:01:25")
DEFAULT_TIME_ELAPSED_STYLE: str = "light_sky_blue1"

# ==================================================================================== #
# SETTINGS
# ==================================================================================== #
# Go up two levels
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "references" / "config.yaml"
DEFAULT_OUTPUT_DIR = "results"
DEFAULT_LOG_DIR = "logs"

# ==================================================================================== #
# METADATA
# ==================================================================================== #
SAMPLE_ID_COLUMN = 'sample_id'
COLONY_COLUMN = 'colony_id'
HOST_GENUS_COLUMN = 'host_genus'
HOST_SPECIES_COLUMN = 'host_species'
SITE_COLUMN = 'site'
YEAR_COLUMN = 'year'
READ_COUNT_COLUMN = 'read_count'

# Canonical role -> column name in the metadata file
DEFAULT_METADATA_SCHEMA = {
    SAMPLE_ID_COLUMN: 'sample_name',
    COLONY_COLUMN: 'colony_id',
    HOST_GENUS_COLUMN: 'host_genus',
    HOST_SPECIES_COLUMN: 'host_species',
    SITE_COLUMN: 'site',
    YEAR_COLUMN: 'year',
}

# Roles every metadata row must fill in
REQUIRED_METADATA_ROLES = (COLONY_COLUMN, HOST_GENUS_COLUMN, HOST_SPECIES_COLUMN)

# Colony identifier shared by untagged (randomly sampled) colonies
DEFAULT_UNTAGGED_COLONY_ID = 'RANDOM'

# ==================================================================================== #
# ITS2 TABLES
# ==================================================================================== #
# SymPortal type-profile table: leading metadata block tagged in the second column
DEFAULT_PROFILE_META_ROWS: int = 7
DEFAULT_PROFILE_NAME_TAG = 'ITS2 type profile'
DEFAULT_PROFILE_CLADE_TAG = 'Clade'

# SymPortal sequence table: sample name column followed by fixed non-data columns
DEFAULT_VARIANT_SAMPLE_COLUMN = 'sample_name'
DEFAULT_VARIANT_SKIP_COLUMNS: int = 39

CLADE_COLUMN = 'clade'
SYMBIONT_GENUS_COLUMN = 'genus'

CLADE_TO_GENUS = {
    'A': 'Symbiodinium',
    'B': 'Breviolum',
    'C': 'Cladocopium',
    'D': 'Durusdinium',
    'E': 'Effrenium',
    'F': 'Fugacium',
    'G': 'Gerakladium',
    'H': 'Halluxium',
    'I': 'Clade I',
}

VARIANT_NAME_PATTERNS = {
    # e.g. "C3", "D1a", "A1bw"
    "named": re.compile(r'^([A-I])\d'),
    # e.g. "12345_C" (unnamed sequence with clade suffix)
    "unnamed": re.compile(r'^\d+_([A-I])$'),
    # e.g. "noName Clade C"
    "no_name": re.compile(r'^noName Clade ([A-I])$', re.IGNORECASE),
}

# ==================================================================================== #
# FILTERING & NORMALIZATION
# ==================================================================================== #
DEFAULT_MIN_READ_COUNT: int = 1000
DEFAULT_ABUNDANCE_FLOOR: float = 0.001

# ==================================================================================== #
# DOMINANCE
# ==================================================================================== #
DEFAULT_DOMINANCE_THRESHOLD: float = 0.5
NO_DOMINANT = 'none'
DEFAULT_MULTI_GROUP_THRESHOLDS = (0.001, 0.01, 0.1)
TRAJECTORY_SEPARATOR = '>'

# ==================================================================================== #
# BETA DIVERSITY
# ==================================================================================== #
DEFAULT_METRIC = 'braycurtis'
METRIC_ALIASES = {
    'bray': 'braycurtis',
    'bray-curtis': 'braycurtis',
    'braycurtis': 'braycurtis',
}
DEFAULT_ORDINATION_METHOD = 'NMDS'
DEFAULT_N_NMDS: int = 2
DEFAULT_NMDS_N_INIT: int = 20
DEFAULT_NMDS_MAX_ITER: int = 300
# Kruskal stress-1 above this is reported as a low-confidence ordination
DEFAULT_STRESS_THRESHOLD: float = 0.2
DEFAULT_N_PCOA = 2
DEFAULT_RANDOM_STATE = 42
DEFAULT_LINKAGE_METHOD = 'average'

WITHIN_COLONY = 'within_colony'
BETWEEN_COLONY = 'between_colony_same_year'

# ==================================================================================== #
# STATISTICAL TESTS
# ==================================================================================== #
DEFAULT_TEST_GROUP_COLUMN = HOST_SPECIES_COLUMN
DEFAULT_MIN_CLADE_ABUNDANCE: float = 0.05
DEFAULT_PERMUTATIONS: int = 999
DEFAULT_CORRECTION = 'bonferroni'
CORRECTION_METHODS = {
    'bonferroni': 'bonferroni',
    'fdr': 'fdr_bh',
    'fdr_bh': 'fdr_bh',
}
DEFAULT_ALPHA: float = 0.05
MIN_GROUP_SIZE: int = 2

STATUS_TESTED = 'tested'
STATUS_NOT_TESTED = 'not tested'

# ==================================================================================== #
# FIGURES
# ==================================================================================== #
DEFAULT_HEIGHT = 1100
DEFAULT_WIDTH = 1600
