"""
Unit tests for tspl_filter/__init__.py
Covers version metadata, the public API, CUPS-prefixed logging and
configuration loading.
"""

import io
import json
import logging
import re
from pathlib import Path
from typing import Iterator
from unittest import mock

import pytest

import tspl_filter


@pytest.fixture
def clean_logger() -> Iterator[logging.Logger]:
    """Package logger without handlers, restored afterwards."""
    package_logger = logging.getLogger(tspl_filter.LOGGER_NAME)
    saved_handlers = package_logger.handlers[:]
    saved_level = package_logger.level
    for handler in saved_handlers:
        package_logger.removeHandler(handler)
    yield package_logger
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        package_logger.addHandler(handler)
    package_logger.setLevel(saved_level)


def make_record(level: int, message: str) -> logging.LogRecord:
    return logging.LogRecord("tspl_filter.test", level, __file__, 1, message, None, None)


class TestVersionMetadata:
    """Version metadata and constants."""

    def test_version_format(self) -> None:
        assert re.match(r"^\d+\.\d+\.\d+$", tspl_filter.__version__)

    def test_version_components(self) -> None:
        expected = f"{tspl_filter.VERSION_MAJOR}.{tspl_filter.VERSION_MINOR}.{tspl_filter.VERSION_PATCH}"
        assert tspl_filter.__version__ == expected

    def test_metadata_attributes(self) -> None:
        for name in ("__author__", "__description__", "__license__", "__python_requires__"):
            value = getattr(tspl_filter, name)
            assert isinstance(value, str) and value, f"{name} must be a non-empty string"


class TestPublicAPI:
    """Exports of the package namespace."""

    def test_all_exports_exist(self) -> None:
        for name in tspl_filter.__all__:
            assert hasattr(tspl_filter, name), f"'{name}' from __all__ is missing"

    def test_no_duplicate_exports(self) -> None:
        assert len(tspl_filter.__all__) == len(set(tspl_filter.__all__))

    def test_job_entry_points_exported(self) -> None:
        for name in ("run_job", "main", "parse_options", "resolve", "RasterReader", "lookup_model"):
            assert name in tspl_filter.__all__


class TestLogging:
    """Logger naming, the ATTR level and CUPS message prefixes."""

    def test_get_logger_name_format(self) -> None:
        assert tspl_filter.get_logger("test_module").name == "tspl_filter.test_module"

    def test_get_logger_with_qualified_name(self) -> None:
        assert tspl_filter.get_logger("tspl_filter.cups.ppd").name == "tspl_filter.cups.ppd"

    def test_get_logger_with_main(self) -> None:
        assert tspl_filter.get_logger("__main__").name == "tspl_filter.main"

    def test_attr_level_registered(self) -> None:
        assert tspl_filter.ATTR == logging.INFO + 5
        assert logging.getLevelName(tspl_filter.ATTR) == "ATTR"

    @pytest.mark.parametrize(
        "level,expected",
        [
            (logging.DEBUG, "DEBUG: hello"),
            (logging.INFO, "INFO: hello"),
            (logging.INFO + 5, "ATTR: hello"),
            (logging.WARNING, "WARNING: hello"),
            (logging.ERROR, "ERROR: hello"),
            (logging.CRITICAL, "CRIT: hello"),
        ],
    )
    def test_cups_prefixes(self, level: int, expected: str) -> None:
        assert tspl_filter.CupsFormatter().format(make_record(level, "hello")) == expected

    def test_setup_logging_writes_prefixed_lines(self, clean_logger: logging.Logger) -> None:
        stream = io.StringIO()
        with mock.patch.dict("os.environ", {}, clear=False) as env:
            env.pop(tspl_filter.LOG_LEVEL_ENV, None)
            tspl_filter._setup_logging(level="INFO", stream=stream)
        logger = tspl_filter.get_logger("test_stream")
        logger.debug("hidden")
        logger.info("printing page 1, 0% complete.")
        logger.log(tspl_filter.ATTR, "job-media-progress=0")
        logger.error("no pages were found.")
        assert stream.getvalue().splitlines() == [
            "INFO: printing page 1, 0% complete.",
            "ATTR: job-media-progress=0",
            "ERROR: no pages were found.",
        ]

    def test_setup_logging_is_idempotent(self, clean_logger: logging.Logger) -> None:
        first = tspl_filter._setup_logging(stream=io.StringIO())
        second = tspl_filter._setup_logging(stream=io.StringIO())
        assert first is second
        assert len(clean_logger.handlers) == 1

    def test_log_level_from_environment(self, clean_logger: logging.Logger) -> None:
        with mock.patch.dict("os.environ", {tspl_filter.LOG_LEVEL_ENV: "DEBUG"}):
            tspl_filter._setup_logging(level="ERROR", stream=io.StringIO())
        assert clean_logger.level == logging.DEBUG

    def test_optional_log_file(self, clean_logger: logging.Logger, tmp_path: Path) -> None:
        log_file = tmp_path / "filter.log"
        tspl_filter._setup_logging(log_file=str(log_file), stream=io.StringIO())
        assert len(clean_logger.handlers) == 2
        tspl_filter.get_logger("test_file").warning("to the file")
        for handler in clean_logger.handlers:
            handler.flush()
        assert "to the file" in log_file.read_text(encoding="utf-8")


class TestConfiguration:
    """load_config defaults, files and the TSPL_FILTER_CONFIG variable."""

    def test_defaults_without_file(self) -> None:
        config = tspl_filter.load_config(environ={})
        assert config["log_level"] == "INFO"
        assert config["log_file"] is None
        assert config["ppd_env_var"] == "PPD"

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = tspl_filter.load_config(tmp_path / "nonexistent.json", environ={})
        assert config["ppd_env_var"] == "PPD"

    def test_load_from_file_merges_defaults(self, tmp_path: Path) -> None:
        config_path = tmp_path / "tspl-filter.json"
        config_path.write_text(json.dumps({"log_level": "DEBUG", "custom_key": 1}), encoding="utf-8")
        config = tspl_filter.load_config(config_path, environ={})
        assert config["log_level"] == "DEBUG"
        assert config["custom_key"] == 1
        assert config["log_backup_count"] == 3

    def test_path_from_environment(self, tmp_path: Path) -> None:
        config_path = tmp_path / "env.json"
        config_path.write_text(json.dumps({"ppd_env_var": "LABEL_PPD"}), encoding="utf-8")
        config = tspl_filter.load_config(environ={tspl_filter.CONFIG_ENV: str(config_path)})
        assert config["ppd_env_var"] == "LABEL_PPD"

    @pytest.mark.parametrize("content", ["{invalid json", '["not", "a", "dict"]'])
    def test_invalid_file_gives_defaults(self, tmp_path: Path, content: str, caplog: pytest.LogCaptureFixture) -> None:
        config_path = tmp_path / "bad.json"
        config_path.write_text(content, encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger=tspl_filter.LOGGER_NAME):
            config = tspl_filter.load_config(config_path, environ={})
        assert config["log_level"] == "INFO"
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    def test_defaults_are_not_shared(self) -> None:
        first = tspl_filter.load_config(environ={})
        first["log_level"] = "DEBUG"
        assert tspl_filter.load_config(environ={})["log_level"] == "INFO"
