# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Any, Dict, Union

# Third-Party Imports
import yaml

# Local Imports
from symbiont_its2 import constants

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('symbiont_its2')

# Top-level keys understood by the pipeline
KNOWN_KEYS = {
    'output_dir', 'log_dir', 'inputs', 'metadata_schema', 'filter', 'normalize',
    'dominance', 'multi_group', 'summaries', 'ordination', 'distances',
    'permanova', 'figures',
}

# ==================================== FUNCTIONS ===================================== #

def resolve_relative_paths(config: Dict, config_dir: Path) -> Dict:
    """Converts any relative paths ('./', '../') in the configuration to absolute
    paths based on the directory of the config file. The metadata schema holds
    column names, never paths, and is left alone."""
    for key, value in config.items():
        if key == 'metadata_schema':
            continue
        if isinstance(value, str):
            if value.startswith("./") or value.startswith("../"):
                config[key] = (config_dir / value).resolve()
        elif isinstance(value, dict):
            config[key] = resolve_relative_paths(value, config_dir)
    return config


def get_config(
    config_path: Union[str, Path] = constants.DEFAULT_CONFIG_PATH
) -> Dict:
    """Load the YAML run configuration; unknown top-level keys are reported
    but kept."""
    with open(config_path, "r") as file:
        config = yaml.safe_load(file) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Configuration '{config_path}' must be a YAML mapping")

    unknown = sorted(set(config) - KNOWN_KEYS)
    if unknown:
        logger.warning(f"Unknown configuration keys ignored: {unknown}")

    config_dir = Path(config_path).resolve().parent
    return resolve_relative_paths(config, config_dir)


def section(config: Dict, name: str) -> Dict[str, Any]:
    """Return a config section as a dict, treating a missing or null section as
    empty so callers fall back to the defaults in `constants`."""
    value = config.get(name)
    return value if isinstance(value, dict) else {}
