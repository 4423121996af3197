"""
Tests for configure_logging().

Run with: pytest src/correlator/logs_test.py -v
"""

import logging

import pytest

from correlator.logs import LOG_FORMAT, configure_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("correlator")
    handlers, level = list(logger.handlers), logger.level
    logger.handlers.clear()
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


class TestConfigureLogging:
    """Tests for configure_logging()"""

    def test_installs_one_handler(self, package_logger):
        configure_logging("DEBUG")
        configure_logging("WARNING")

        assert len(package_logger.handlers) == 1
        assert package_logger.handlers[0].formatter._fmt == LOG_FORMAT
        assert package_logger.level == logging.WARNING

    def test_module_loggers_inherit(self, package_logger):
        configure_logging(logging.ERROR)

        assert logging.getLogger("correlator.repository").getEffectiveLevel() == logging.ERROR
