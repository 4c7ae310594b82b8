"""Tests for markmv._logging quiet mode."""

import logging

import pytest

from markmv._logging import is_quiet, set_quiet_mode


@pytest.fixture
def markmv_logger():
    """The markmv logger at INFO with one DEBUG handler, restored afterwards."""
    logger = logging.getLogger("markmv")
    handler = logging.NullHandler()
    handler.setLevel(logging.DEBUG)
    previous = logger.level
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    try:
        yield logger, handler
    finally:
        set_quiet_mode(False)
        logger.removeHandler(handler)
        logger.setLevel(previous)


class TestQuietMode:
    def test_quiet_raises_levels(self, markmv_logger):
        logger, handler = markmv_logger

        set_quiet_mode(True)

        assert is_quiet()
        assert logger.level == logging.ERROR
        assert handler.level == logging.ERROR

    def test_unquiet_restores_previous_levels(self, markmv_logger):
        logger, handler = markmv_logger

        set_quiet_mode(True)
        set_quiet_mode(False)

        assert not is_quiet()
        assert logger.level == logging.INFO
        assert handler.level == logging.DEBUG

    def test_repeated_calls_keep_saved_levels(self, markmv_logger):
        logger, handler = markmv_logger

        set_quiet_mode(True)
        set_quiet_mode(True)
        set_quiet_mode(False)

        assert logger.level == logging.INFO
        assert handler.level == logging.DEBUG

    def test_unquiet_when_not_quiet_is_a_no_op(self, markmv_logger):
        logger, handler = markmv_logger

        set_quiet_mode(False)

        assert logger.level == logging.INFO
        assert handler.level == logging.DEBUG
