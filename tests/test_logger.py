"""
Tests for logging infrastructure.

Verifies logger configuration and file creation.
"""

import logging
from unittest.mock import patch

import pytest
from platformdirs import user_log_path

import listentranscriber.utils.logger as logger_module
from listentranscriber.utils.logger import (
    ROOT_LOGGER_NAME,
    get_log_dir,
    get_logger,
    shutdown_logging,
)


@pytest.fixture
def fresh_logging(tmp_path):
    shutdown_logging()
    with patch.object(logger_module, "get_log_dir", return_value=tmp_path):
        yield tmp_path
    shutdown_logging()
    get_logger(ROOT_LOGGER_NAME)


class TestLoggerConfiguration:
    def test_get_logger_returns_logger(self):
        assert isinstance(get_logger("test"), logging.Logger)

    def test_get_logger_singleton(self):
        logger1 = get_logger(ROOT_LOGGER_NAME)
        logger2 = get_logger(ROOT_LOGGER_NAME)
        assert logger1 is logger2

    def test_module_logger_is_child_of_root(self):
        logger = get_logger("listentranscriber.core.session")
        assert logger.name == "listentranscriber.core.session"
        assert logger.parent.name.startswith(ROOT_LOGGER_NAME)

    def test_log_dir_is_platform_user_log_dir(self):
        log_dir = get_log_dir()
        assert log_dir == user_log_path("listentranscriber")
        assert log_dir.is_dir()

    def test_logger_writes_to_file(self, fresh_logging):
        logger = get_logger("listentranscriber.tests")
        logger.info("Test message")

        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        content = (fresh_logging / "app.log").read_text()
        assert "Test message" in content
        assert "INFO" in content

    def test_root_is_configured_once(self, fresh_logging):
        get_logger(ROOT_LOGGER_NAME)
        count = len(logging.getLogger(ROOT_LOGGER_NAME).handlers)

        logger_module._root_logger = None
        get_logger(ROOT_LOGGER_NAME)

        assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == count

    def test_shutdown_removes_handlers(self, fresh_logging):
        get_logger(ROOT_LOGGER_NAME)
        assert logging.getLogger(ROOT_LOGGER_NAME).handlers

        shutdown_logging()

        assert logging.getLogger(ROOT_LOGGER_NAME).handlers == []
        assert logger_module._root_logger is None
