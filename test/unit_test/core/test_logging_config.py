"""Unit tests for logging configuration module.

Tests verify that setup_logging installs the expected handlers, levels and
formats, and that file logging honours the configured directory.
"""

import logging
from pathlib import Path

import pytest

from deepagent_ai.core import logging_config
from deepagent_ai.core.logging_config import (
    DETAILED_FORMAT,
    JSON_FORMAT,
    LOG_FILE_NAME,
    MODULE_LOG_LEVELS,
    SIMPLE_FORMAT,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_handlers():
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)


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


class TestSetupLoggingLevels:
    """Test setup_logging with different log levels."""

    @pytest.mark.parametrize(
        "log_level,expected_level",
        [
            ("DEBUG", logging.DEBUG),
            ("INFO", logging.INFO),
            ("WARNING", logging.WARNING),
            ("error", logging.ERROR),
            ("critical", logging.CRITICAL),
        ],
    )
    def test_console_handler_level(self, log_level, expected_level):
        setup_logging(log_level=log_level, enable_file=False)
        assert _console_handler().level == expected_level

    def test_root_logger_captures_everything(self):
        """Filtering happens at handler level, so the root logger stays at DEBUG."""
        setup_logging(log_level="WARNING", enable_file=False)
        assert logging.getLogger().level == logging.DEBUG

    def test_module_levels_applied(self):
        setup_logging(enable_file=False)
        for module_name, level in MODULE_LOG_LEVELS.items():
            assert logging.getLogger(module_name).level == logging.getLevelName(level)


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
    def test_formatter_selection(self, log_format, expected_format):
        setup_logging(log_format=log_format, enable_file=False)
        formatter = _console_handler().formatter
        assert formatter is not None
        assert formatter._fmt == expected_format
        assert formatter.datefmt == "%Y-%m-%d %H:%M:%S"


class TestSetupLoggingFileHandling:
    """Test setup_logging file logging functionality."""

    def test_file_handler_created_in_configured_directory(self, tmp_path: Path, monkeypatch):
        log_dir = tmp_path / "new_logs"
        monkeypatch.setattr(logging_config.settings, "log_file_dir", str(log_dir))

        setup_logging(log_level="ERROR", enable_file=True)

        file_handler = next((h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)), None)
        assert file_handler is not None
        assert file_handler.level == logging.DEBUG
        assert Path(file_handler.baseFilename) == log_dir / LOG_FILE_NAME

        get_logger("deepagent_ai.agent_core.runtime").debug("step 1: model call")
        file_handler.flush()
        assert "step 1: model call" in (log_dir / LOG_FILE_NAME).read_text()

    def test_file_handler_absent_when_disabled(self):
        setup_logging(enable_file=False)
        assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logging(enable_file=False)
        count = len(logging.getLogger().handlers)
        setup_logging(enable_file=False)
        assert len(logging.getLogger().handlers) == count


def test_get_logger_returns_named_logger():
    assert get_logger("deepagent_ai.agent_core.tools").name == "deepagent_ai.agent_core.tools"
