"""
tspl-filter
===========

CUPS raster filter for TSPL label printers (BEEPRT).

CUPS runs the filter once per job::

    rastertotspl job-id user title copies options [file]

It reads the CUPS raster stream from ``file`` or stdin, the printer's PPD
from ``$PPD``, and writes TSPL commands with 1-bit bitmaps to stdout.
Progress and errors go to stderr using the CUPS message prefixes
(``INFO:``, ``ATTR:``, ``ERROR:`` ...).

Basic usage:
    >>> from tspl_filter import PpdFile, RasterReader, parse_options, resolve
    >>> ppd = PpdFile.open_file("/etc/cups/ppd/label.ppd")
    >>> config = resolve(ppd, parse_options("Darkness=12"))
    >>> config.parse_choice_unless_default("Darkness")
    12

Configuration:
    >>> import os
    >>> os.environ["TSPL_FILTER_LOG_LEVEL"] = "DEBUG"
    >>> os.environ["TSPL_FILTER_CONFIG"] = "/etc/cups/tspl-filter.json"
    >>> from tspl_filter import load_config
    >>> config = load_config()

License: MPL-2.0
Python: 3.11+
"""

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

# =============================================================================
# VERSION METADATA
# =============================================================================

__version__ = "0.1.0"
__author__ = "tspl-filter developers"
__description__ = "CUPS raster to TSPL filter for BEEPRT label printers"
__license__ = "MPL-2.0"
__python_requires__ = ">=3.11"

VERSION_MAJOR = 0
VERSION_MINOR = 1
VERSION_PATCH = 0

if sys.version_info < (3, 11):
    raise RuntimeError(
        f"tspl-filter requires Python 3.11 or newer. "
        f"Running: {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    )

# =============================================================================
# LOGGING
# =============================================================================

LOGGER_NAME = "tspl_filter"
LOG_LEVEL_ENV = "TSPL_FILTER_LOG_LEVEL"
CONFIG_ENV = "TSPL_FILTER_CONFIG"

# CUPS "ATTR:" lines update job attributes (e.g. job-media-progress).
ATTR = logging.INFO + 5
logging.addLevelName(ATTR, "ATTR")

_CUPS_PREFIXES: Dict[int, str] = {
    logging.CRITICAL: "CRIT",
}


class CupsFormatter(logging.Formatter):
    """
    Formats records as CUPS filter messages: ``PREFIX: message``.

    CUPS reads the prefix to decide what a stderr line means, so the level
    name is the whole prefix; CRITICAL becomes ``CRIT``.
    """

    def __init__(self) -> None:
        super().__init__(fmt="%(message)s")

    def format(self, record: logging.LogRecord) -> str:
        prefix = _CUPS_PREFIXES.get(record.levelno, record.levelname)
        return f"{prefix}: {super().format(record)}"


def _resolve_level(level: Optional[str]) -> int:
    level_str = (os.environ.get(LOG_LEVEL_ENV) or level or "INFO").upper()
    log_level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "ATTR": ATTR,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return log_level_map.get(level_str, logging.INFO)


def _setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 1024 * 1024,
    backup_count: int = 3,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the package logger once per process.

    - stderr handler with CUPS prefixes (CUPS reads these lines)
    - optional rotating file handler when ``log_file`` is set
    - level from ``TSPL_FILTER_LOG_LEVEL``, then ``level``, then INFO

    Repeated calls return the already configured logger unchanged.
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    if package_logger.handlers:
        return package_logger

    log_level = _resolve_level(level)
    package_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(CupsFormatter())
    package_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter(
                    fmt="[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            package_logger.addHandler(file_handler)
        except OSError as e:
            package_logger.warning(f"Unable to open log file {log_file}: {e}. Logging to stderr only.")

    return package_logger


def get_logger(module_name: str) -> logging.Logger:
    """
    Logger inside the ``tspl_filter`` namespace.

    Args:
        module_name: Usually ``__name__``; ``__main__`` maps to
                     ``tspl_filter.main``.
    """
    if module_name.startswith(LOGGER_NAME):
        return logging.getLogger(module_name)
    if module_name == "__main__":
        return logging.getLogger(f"{LOGGER_NAME}.main")
    return logging.getLogger(f"{LOGGER_NAME}.{module_name.lstrip('.')}")


# =============================================================================
# CONFIGURATION
# =============================================================================

_DEFAULT_CONFIG: Dict[str, Any] = {
    "log_level": "INFO",
    "log_file": None,
    "log_max_bytes": 1024 * 1024,
    "log_backup_count": 3,
    "ppd_env_var": "PPD",
}


def load_config(
    config_path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Load filter settings from a JSON file, falling back to defaults.

    Keys:
        - log_level: str - stderr log level (DEBUG, INFO, ATTR, WARNING, ...)
        - log_file: str | None - optional rotating debug log
        - log_max_bytes: int - rotation size of log_file
        - log_backup_count: int - rotated files kept
        - ppd_env_var: str - environment variable holding the PPD path

    Args:
        config_path: JSON file; when None, ``$TSPL_FILTER_CONFIG`` is used
                     and without it the defaults are returned.
        environ: Environment to read ``TSPL_FILTER_CONFIG`` from.

    Returns:
        Defaults updated with the file's keys. A missing or invalid file
        logs a warning and yields the defaults.
    """
    logger = get_logger(__name__)
    env = os.environ if environ is None else environ

    config = _DEFAULT_CONFIG.copy()

    if config_path is None:
        raw_path = env.get(CONFIG_ENV)
        if not raw_path:
            return config
        config_path = Path(raw_path)

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found. Using defaults.")
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            user_config = json.load(f)

        if not isinstance(user_config, dict):
            raise ValueError(f"config must be a JSON object, got {type(user_config).__name__}")

        config.update(user_config)
        logger.debug(f"Config loaded from {config_path}: {config}")

    except json.JSONDecodeError as e:
        logger.warning(
            f"Unable to parse {config_path}: invalid JSON at line {e.lineno}, "
            f"column {e.colno}. Using defaults."
        )
    except OSError as e:
        logger.warning(f"Unable to read {config_path}: {e}. Using defaults.")
    except ValueError as e:
        logger.warning(f"Invalid config format: {e}. Using defaults.")

    return config


# =============================================================================
# PUBLIC API
# =============================================================================

# Imported after the logging/config helpers: the submodules use them.
from tspl_filter.cancel import CancellationFlag  # noqa: E402
from tspl_filter.cups.options import parse_options  # noqa: E402
from tspl_filter.cups.ppd import EffectiveConfiguration, PpdFile, resolve  # noqa: E402
from tspl_filter.cups.raster import PageHeader, RasterReader  # noqa: E402
from tspl_filter.exceptions import FilterError  # noqa: E402
from tspl_filter.filter import main, run_job  # noqa: E402
from tspl_filter.tspl.models import MediaTracking, lookup_model  # noqa: E402

__all__ = [
    # Version metadata
    "__version__",
    "__author__",
    "__description__",
    "__license__",
    "__python_requires__",
    "VERSION_MAJOR",
    "VERSION_MINOR",
    "VERSION_PATCH",
    # Utilities
    "ATTR",
    "CupsFormatter",
    "get_logger",
    "load_config",
    # Configuration resolver
    "parse_options",
    "PpdFile",
    "EffectiveConfiguration",
    "resolve",
    # Raster
    "PageHeader",
    "RasterReader",
    # Emitter
    "MediaTracking",
    "lookup_model",
    # Job
    "CancellationFlag",
    "FilterError",
    "run_job",
    "main",
]
