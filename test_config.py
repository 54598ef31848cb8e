"""
Tests for configuration loading and logging setup.
"""

import logging

import pytest

from symbiont_its2.config import get_config, section
from symbiont_its2.constants import DEFAULT_CONFIG_PATH
from symbiont_its2.logger import get_console, setup_logging
from symbiont_its2.utils.progress import get_progress_bar


def test_relative_paths_resolved_against_config_dir(tmp_path):
    (tmp_path / "conf").mkdir()
    path = tmp_path / "conf" / "config.yaml"
    path.write_text(
        "output_dir: ../results\n"
        "inputs:\n"
        "  metadata: ./metadata.csv\n"
        "metadata_schema:\n"
        "  sample_id: ./odd_column_name\n"
        "permanova:\n"
    )
    config = get_config(path)

    assert config['output_dir'] == (tmp_path / "results").resolve()
    assert config['inputs']['metadata'] == (tmp_path / "conf" / "metadata.csv").resolve()
    assert config['metadata_schema']['sample_id'] == './odd_column_name'
    assert section(config, 'permanova') == {}
    assert section(config, 'figures') == {}


def test_non_mapping_config_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        get_config(path)


def test_bundled_config_loads():
    config = get_config(DEFAULT_CONFIG_PATH)
    assert section(config, 'filter')['min_reads'] == 1000
    assert section(config, 'permanova')['correction'] == 'bonferroni'


def test_setup_logging_writes_file(tmp_path):
    logger = setup_logging(tmp_path / "logs", log_filename="run.log", capture_warnings=False)
    logger.debug("debug line")
    for handler in logger.handlers:
        handler.flush()

    assert logger.name == 'symbiont_its2'
    assert "debug line" in (tmp_path / "logs" / "run.log").read_text()

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logging.getLogger("kaleido").setLevel(logging.NOTSET)


def test_console_shared_with_progress_bars(tmp_path):
    assert get_console('symbiont_its2.unconfigured') is None

    logger = setup_logging(tmp_path / "logs", log_filename="run.log", capture_warnings=False)
    console = get_console()
    assert console is not None
    assert get_progress_bar(console=console).console is console

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
