"""
Unit tests for logging configuration and setup.

Tests setup_logging: levels, stream and file handlers, and edge cases.
"""

import logging

import pytest

from main import setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Test setup_logging function."""

    def test_basic_logging_config(self):
        """Test basic logging configuration with defaults."""
        config = {
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        }

        setup_logging(config)

        assert logging.getLogger().level == logging.INFO
        stream_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.StreamHandler)]
        assert len(stream_handlers) >= 1

    def test_file_logging_enabled(self, tmp_path):
        """Test file logging is enabled when a log file is specified."""
        log_file = tmp_path / "logs" / "guide.log"
        setup_logging({"logging": {"level": "DEBUG", "file": str(log_file)}})

        file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1
        assert log_file.exists()
        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_log_level_defaults_to_info(self):
        """Test that an unknown level name falls back to INFO."""
        setup_logging({"logging": {"level": "INVALID_LEVEL"}})
        assert logging.getLogger().level == logging.INFO

    def test_missing_logging_section(self):
        """Test that an empty config still configures logging."""
        setup_logging({})
        assert logging.getLogger().level == logging.INFO
