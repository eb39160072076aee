"""
Application logging.

All modules log through children of the ``listentranscriber`` logger, which
writes to a rotating file in the platform's user log directory and,
optionally, to stderr.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from platformdirs import user_log_path

from ..config import APP_NAME, LOG_TO_CONSOLE, get_log_level

ROOT_LOGGER_NAME = "listentranscriber"
LOG_FILE_NAME = "app.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_root_logger: Optional[logging.Logger] = None


def get_log_dir() -> Path:
    return user_log_path(APP_NAME, ensure_exists=True)


def _build_handlers(level: int) -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handlers: List[logging.Handler] = [
        RotatingFileHandler(
            get_log_dir() / LOG_FILE_NAME,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    ]
    if LOG_TO_CONSOLE:
        handlers.append(logging.StreamHandler(sys.stderr))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        level = get_log_level()
        root.setLevel(level)
        for handler in _build_handlers(level):
            root.addHandler(handler)
        root.propagate = False
    return root


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Return a logger, configuring the application root on first use."""
    global _root_logger
    if _root_logger is None:
        _root_logger = _configure_root()
    if name == ROOT_LOGGER_NAME:
        return _root_logger
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Close and detach the file handlers so the log file is released."""
    global _root_logger
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    _root_logger = None
