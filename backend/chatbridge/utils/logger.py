"""
Logging utilities.

WHAT: Logger access for client modules and an opt-in handler setup for the embedding app
WHY: A client library logs under its own namespace and leaves the app's root logger alone
HOW: Modules call get_logger(__name__); apps that want client logs on screen or on disk
     call setup_logging(), which configures only the `chatbridge` logger
"""

import logging
import sys
from pathlib import Path

from ..core.config import settings

PACKAGE_LOGGER = "chatbridge"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None, log_file: str | None = None) -> logging.Logger:
    """
    Attach console and (optionally) file handlers to the client's package logger.

    Calling it again replaces the handlers it installed before. Records stop
    at the package logger, so provider traffic is not duplicated through
    the app's root handlers.

    Args:
        level: Level name (default: settings.LOG_LEVEL)
        log_file: File to also write to (default: settings.LOG_FILE; empty disables it)

    Returns:
        The configured package logger
    """
    level = (level or settings.LOG_LEVEL).upper()
    log_file = settings.LOG_FILE if log_file is None else log_file

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, level, logging.INFO))
    package_logger.propagate = False
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    package_logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        package_logger.addHandler(file_handler)

    package_logger.info(f"Client logging initialized (level={level}, file={log_file or 'disabled'})")
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def mask_secret(secret: str | None) -> str:
    """Render a credential for logs: only the last 4 characters survive."""
    if not secret:
        return "<none>"
    if len(secret) <= 4:
        return "***"
    return "*" * 10 + secret[-4:]
