"""Tests for logging configuration."""

import logging
import logging.handlers

import pytest

from conductor import log


@pytest.fixture(autouse=True)
def restore_logging():
    """Restore root handlers and the debug flag after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    log.set_debug_mode(False)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestConfigureLogging:
    """Test configure_logging function."""

    def test_console_only(self):
        """Without a log dir only a stderr handler is installed."""
        log.configure_logging(console_level=logging.INFO)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].level == logging.INFO

    def test_file_handler(self, tmp_path):
        """A log dir adds a rotating file handler."""
        log.configure_logging(log_dir=tmp_path / "logs")

        file_handlers = [
            h
            for h in logging.getLogger().handlers
            if isinstance(h, logging.handlers.RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert (tmp_path / "logs").is_dir()

        log.get_logger("conductor.test").info("hello file")
        file_handlers[0].flush()
        assert "hello file" in (tmp_path / "logs" / "conductor.log").read_text()

    def test_reconfigure_does_not_duplicate(self):
        log.configure_logging()
        log.configure_logging()

        assert len(logging.getLogger().handlers) == 1


class TestDebugMode:
    def test_toggle(self):
        """Debug mode moves the package logger between DEBUG and INFO."""
        log.configure_logging()

        log.set_debug_mode(True)
        assert logging.getLogger("conductor").level == logging.DEBUG

        log.set_debug_mode(False)
        assert logging.getLogger("conductor").level == logging.INFO

    def test_configure_resets_debug(self):
        log.set_debug_mode(True)
        log.configure_logging()

        assert logging.getLogger("conductor").level == logging.INFO


class TestGetLogger:
    def test_returns_named_logger(self):
        logger = log.get_logger("conductor.sessions")

        assert logger is logging.getLogger("conductor.sessions")
        assert logger.getEffectiveLevel() <= logging.WARNING
