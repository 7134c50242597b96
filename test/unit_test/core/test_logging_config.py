"""Unit tests for logging configuration module.

Tests verify that the logging configuration functions work correctly with different
scenarios including various log levels, formats, and file logging options.
"""

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from cerebrin_ai.core.logging_config import (
    DETAILED_FORMAT,
    JSON_FORMAT,
    MODULE_LOG_LEVELS,
    SIMPLE_FORMAT,
    get_logger,
    setup_logging,
)


def _console_handler() -> logging.Handler:
    root_logger = logging.getLogger()
    handler = next(
        (
            h
            for h in root_logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ),
        None,
    )
    assert handler is not None
    return handler


def _file_handler():
    return next((h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)), None)


class TestSetupLoggingLogLevels:
    """Test setup_logging with different log levels."""

    @pytest.mark.parametrize(
        "log_level,expected_level",
        [
            ("DEBUG", logging.DEBUG),
            ("INFO", logging.INFO),
            ("WARNING", logging.WARNING),
            ("ERROR", logging.ERROR),
            ("debug", logging.DEBUG),
        ],
    )
    def test_setup_logging_with_different_levels(self, log_level, expected_level):
        setup_logging(log_level=log_level, enable_file=False)

        assert _console_handler().level == expected_level

    def test_root_logger_level_is_debug(self):
        """Filtering happens per handler, so the root logger lets everything through."""
        setup_logging(log_level="WARNING", enable_file=False)

        assert logging.getLogger().level == logging.DEBUG


class TestSetupLoggingFormats:
    """Test setup_logging with different log formats."""

    @pytest.mark.parametrize(
        "log_format,expected_format",
        [
            ("simple", SIMPLE_FORMAT),
            ("detailed", DETAILED_FORMAT),
            ("json", JSON_FORMAT),
            ("unknown", DETAILED_FORMAT),
        ],
    )
    def test_setup_logging_with_different_formats(self, log_format, expected_format):
        setup_logging(log_format=log_format, enable_file=False)

        handler = _console_handler()
        assert handler.formatter._fmt == expected_format
        assert handler.formatter.datefmt == "%Y-%m-%d %H:%M:%S"


class TestSetupLoggingFileHandling:
    """Test setup_logging file logging functionality."""

    def test_file_handler_when_enabled(self, tmp_path: Path):
        log_dir = tmp_path / "logs"

        with patch("cerebrin_ai.core.logging_config.LOG_FILE_DIR", str(log_dir)):
            setup_logging(log_level="ERROR", enable_file=True)

        handler = _file_handler()
        assert handler is not None
        assert handler.level == logging.DEBUG
        assert Path(handler.baseFilename) == log_dir / "cerebrin_ai.log"
        handler.close()
        setup_logging(enable_file=False)

    def test_no_file_handler_when_disabled(self):
        setup_logging(enable_file=False)

        assert _file_handler() is None

    def test_setup_logging_replaces_existing_handlers(self):
        setup_logging(enable_file=False)
        setup_logging(enable_file=False)

        assert len(logging.getLogger().handlers) == 1


class TestSetupLoggingModuleSpecificLevels:
    """Test module-specific log level configuration."""

    @pytest.mark.parametrize(
        "module_name,expected_level",
        [
            ("cerebrin_ai.agent_core", logging.DEBUG),
            ("cerebrin_ai.agent_core.pipeline", logging.DEBUG),
            ("cerebrin_ai.agent_core.budget", logging.INFO),
            ("cerebrin_ai.agent_core.repos", logging.INFO),
            ("cerebrin_ai.gateway", logging.INFO),
            ("cerebrin_ai.server.api", logging.DEBUG),
            ("sqlalchemy", logging.WARNING),
            ("httpx", logging.WARNING),
        ],
    )
    def test_module_specific_log_levels(self, module_name, expected_level):
        setup_logging(enable_file=False)

        assert logging.getLogger(module_name).level == expected_level

    def test_all_module_log_levels_configured(self):
        setup_logging(enable_file=False)

        for module_name, expected_level_str in MODULE_LOG_LEVELS.items():
            assert logging.getLogger(module_name).level == getattr(logging, expected_level_str)


class TestGetLogger:
    """Test get_logger function."""

    def test_get_logger_returns_named_logger(self):
        logger = get_logger("cerebrin_ai.agent_core.intent.router")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "cerebrin_ai.agent_core.intent.router"

    def test_get_logger_same_name_returns_same_instance(self):
        assert get_logger("same_module") is get_logger("same_module")

    def test_logger_can_log_exception_info(self):
        setup_logging(log_level="ERROR", enable_file=False)
        logger = get_logger("test_logger")

        try:
            raise ValueError("Test error")
        except ValueError:
            logger.error("An error occurred", exc_info=True)
