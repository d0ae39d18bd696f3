"""
Unit tests for logging configuration.
"""

import logging

import pytest
import structlog

from evidence_fusion.utils.cli_logging import NOISY_LOGGERS, configure_cli_logging
from evidence_fusion.utils.logging import configure_logging, get_logger

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    noisy_levels = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, noisy_level in noisy_levels.items():
        logging.getLogger(name).setLevel(noisy_level)
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_quiet_loggers_are_held_at_warning(self):
        configure_logging("DEBUG", quiet_loggers=["evidence_fusion.test_quiet"])
        assert logging.getLogger("evidence_fusion.test_quiet").level == logging.WARNING

    def test_settings_supply_defaults(self):
        configure_logging()
        assert logging.getLogger("evidence_fusion.data.cache.cache_manager").level == logging.WARNING

    def test_get_logger_is_structured(self):
        configure_logging("INFO", json_output=True)
        logger = get_logger("evidence_fusion.test")
        assert hasattr(logger, "bind")
        logger.info("configured", component="test")

    def test_get_logger_binds_context(self):
        configure_logging("INFO", json_output=False)
        logger = get_logger("evidence_fusion.test", instrument="EURUSD")
        logger.info("bound")


class TestConfigureCliLogging:
    """Test CLI verbosity mapping."""

    def test_default_shows_warnings(self):
        configure_cli_logging(verbose=1)
        handler = logging.getLogger().handlers[0]
        assert handler.level == logging.WARNING

    def test_silent_mode(self):
        configure_cli_logging(verbose=0)
        assert logging.getLogger().handlers[0].level == logging.ERROR
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.ERROR

    def test_debug_opens_internal_loggers(self):
        configure_cli_logging(verbose=3)
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.DEBUG

    def test_log_file_receives_debug(self, tmp_path):
        log_file = tmp_path / "logs" / "fusion.log"
        configure_cli_logging(verbose=0, log_file=str(log_file))

        logging.getLogger("evidence_fusion.test").debug("written to file only")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "written to file only" in log_file.read_text()
