"""Tests for logging setup."""

import logging

import pytest

from mcu_sync.logging_setup import LOGGER_NAME, get_logger, setup_logging


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def console_level(logger):
    (console,) = [h for h in logger.handlers if type(h) is logging.StreamHandler]
    return console.level


def test_setup_logging_writes_file(tmp_path):
    """Test messages reach the log file and handlers are not duplicated."""
    log_file = tmp_path / "logs" / "sync.log"

    setup_logging(str(log_file), "DEBUG")
    logger = setup_logging(str(log_file), "DEBUG", rotation_enabled=False)
    get_logger().debug("scanned 3 items")
    for handler in logger.handlers:
        handler.flush()

    assert logger.name == LOGGER_NAME
    assert len(logger.handlers) == 2
    assert "scanned 3 items" in log_file.read_text()


def test_console_shows_warnings_unless_verbose(tmp_path):
    """Test the console threshold depends on the verbose flag."""
    log_file = str(tmp_path / "sync.log")

    assert console_level(setup_logging(log_file, "INFO")) == logging.WARNING
    assert console_level(setup_logging(log_file, "info", verbose=True)) == logging.INFO
    assert console_level(setup_logging(log_file, "ERROR")) == logging.ERROR


def test_unknown_level(tmp_path):
    """Test an unknown level name is rejected."""
    with pytest.raises(ValueError, match="LOUD"):
        setup_logging(str(tmp_path / "sync.log"), "LOUD")
