"""
Unit tests for logging setup and secret masking.

WHAT: Test package-logger handler installation and credential masking
WHY: Provider keys must never reach logs in full, and the app's root logger stays untouched
HOW: Point the log file at a temp dir, restore the package logger afterwards
"""

import logging

import pytest

from chatbridge.core.config import settings
from chatbridge.utils.logger import PACKAGE_LOGGER, get_logger, mask_secret, setup_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.mark.unit
class TestLogging:
    """Test logging configuration."""

    def test_setup_logging_with_file(self, tmp_path, package_logger):
        log_file = tmp_path / "logs" / "client.log"
        root_handlers = list(logging.getLogger().handlers)

        setup_logging("debug", str(log_file))
        get_logger("chatbridge.llm.adapter").debug("provider ready")
        for handler in package_logger.handlers:
            handler.flush()

        assert package_logger.level == logging.DEBUG
        assert len(package_logger.handlers) == 2
        assert package_logger.propagate is False
        assert logging.getLogger().handlers == root_handlers
        assert "provider ready" in log_file.read_text(encoding="utf-8")

    def test_repeated_setup_replaces_handlers(self, monkeypatch, package_logger):
        monkeypatch.setattr(settings, "LOG_FILE", "")
        setup_logging()
        setup_logging()
        assert len(package_logger.handlers) == 1

    def test_defaults_come_from_settings(self, monkeypatch, package_logger):
        monkeypatch.setattr(settings, "LOG_LEVEL", "WARNING")
        monkeypatch.setattr(settings, "LOG_FILE", "")
        setup_logging()
        assert package_logger.level == logging.WARNING

    @pytest.mark.parametrize("secret,expected", [
        (None, "<none>"),
        ("", "<none>"),
        ("abc", "***"),
        ("sk-1234567890abcd", "**********abcd"),
    ])
    def test_mask_secret(self, secret, expected):
        assert mask_secret(secret) == expected
