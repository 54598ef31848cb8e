# ===================================== IMPORTS ====================================== #

# Standard Library
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional, Union

# 3rd‑party (Rich)
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# ================================= DEFAULT VALUES =================================== #

PACKAGE_LOGGER = "symbiont_its2"

# Third-party loggers that are chatty at INFO during figure export
NOISY_LOGGERS = ("kaleido", "choreographer")

# ==================================== FUNCTIONS ===================================== #

def quiet_library_loggers(
    names: Iterable[str] = NOISY_LOGGERS,
    level: int = logging.WARNING
) -> None:
    for name in names:
        logging.getLogger(name).setLevel(level)


def get_console(name: str = PACKAGE_LOGGER) -> Optional[Console]:
    """Rich console behind the package's console handler, if logging is set up."""
    for handler in logging.getLogger(name).handlers:
        if isinstance(handler, RichHandler):
            return handler.console
    return None


def setup_logging(
    log_dir_path: Union[str, Path],
    log_filename: Union[str, None] = None,
    max_file_size: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 3,
    console_level: int = logging.INFO,     # console shows INFO+
    file_level: int = logging.DEBUG,       # file keeps DEBUG+
    capture_warnings: bool = True
) -> logging.Logger:
    """
    Configure logging for an ITS2 analysis run:
      • Rich console output at `console_level`
      • Rotating per-run log file at `file_level`
      • Python warnings (e.g. low-confidence ordinations) routed to the log file
    """
    # ───────────────────── log‑file path ──────────────────────
    log_dir_path = Path(log_dir_path)
    log_dir_path.mkdir(parents=True, exist_ok=True)

    if log_filename is None:
        log_filename = datetime.now().strftime("its2_%Y-%m-%d_%H%M%S.log")
    log_file_path = log_dir_path / log_filename

    # ─────────────────── package logger ─────────────────
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    # ───────────────────────── FILE HANDLER ───────────────────
    file_handler = RotatingFileHandler(
        filename=log_file_path,
        maxBytes=max_file_size,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s:%(filename)s:%(funcName)s(): %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(file_handler)

    # ────────────────────── CONSOLE HANDLER ────────────────────
    console = Console(theme=Theme({
        "logging.time": "bold white",
        "logging.level.info": "bold white",
        "logging.level.debug": "dim cyan",
        "logging.level.warning": "bold yellow",
        "logging.level.error": "bold red",
        "logging.level.critical": "reverse bold bright_white on red",
    }))
    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        level=console_level,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        log_time_format="[%X]",
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s", datefmt="%H:%M:%S"))
    logger.addHandler(rich_handler)

    # ─────────────────────── WARNINGS ─────────────────────────
    if capture_warnings:
        logging.captureWarnings(True)
        warnings_logger = logging.getLogger("py.warnings")
        for handler in warnings_logger.handlers[:]:
            warnings_logger.removeHandler(handler)
        # Already reported on the console by the emitting module
        warnings_logger.addHandler(file_handler)
        warnings_logger.propagate = False
    quiet_library_loggers()

    logger.info("Logging initialised → %s", log_file_path)
    return logger
