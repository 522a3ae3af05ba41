"""Logging configuration tests."""

import logging

import structlog

from arena.config import Settings
from arena.logging_config import QUIET_LOGGERS, configure_logging, log_context


class TestConfigureLogging:
    def test_levels_from_settings(self):
        configure_logging(Settings(_env_file=None, app_env="test", log_level="warning"))

        assert logging.getLogger().level == logging.WARNING
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestLogContext:
    def test_binds_only_inside_block(self):
        structlog.contextvars.clear_contextvars()

        with log_context(game_id=7, cycle=3):
            assert structlog.contextvars.get_contextvars() == {"game_id": 7, "cycle": 3}

        assert structlog.contextvars.get_contextvars() == {}

    def test_nested_blocks_restore_outer_values(self):
        structlog.contextvars.clear_contextvars()

        with log_context(request_id="abc"):
            with log_context(game_id=7):
                assert structlog.contextvars.get_contextvars() == {"request_id": "abc", "game_id": 7}
            assert structlog.contextvars.get_contextvars() == {"request_id": "abc"}
