"""Tests for resilience_core.utils.logging_factory module."""

import io
import json
import logging

from rich.console import Console
from rich.logging import RichHandler

from resilience_core.utils.logging_factory import PACKAGE_LOGGER, LoggingFactory, get_logger


class TestLoggingFactoryInitialize:
    """Tests for LoggingFactory.initialize() method."""

    def setup_method(self):
        """Reset LoggingFactory state before each test."""
        LoggingFactory.reset()
        logging.getLogger(PACKAGE_LOGGER).setLevel(logging.NOTSET)

    def teardown_method(self):
        LoggingFactory.reset()
        logging.getLogger(PACKAGE_LOGGER).setLevel(logging.NOTSET)

    def test_rich_handler_by_default(self):
        LoggingFactory.initialize(console=Console(file=io.StringIO()))

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        assert LoggingFactory._initialized is True
        assert package_logger.level == logging.INFO
        assert any(isinstance(h, RichHandler) for h in package_logger.handlers)

    def test_level_by_name(self):
        LoggingFactory.initialize(level="debug", console=Console(file=io.StringIO()))
        assert logging.getLogger(PACKAGE_LOGGER).level == logging.DEBUG

    def test_unknown_level_name_falls_back_to_info(self):
        LoggingFactory.initialize(level="CHATTY", console=Console(file=io.StringIO()))
        assert logging.getLogger(PACKAGE_LOGGER).level == logging.INFO

    def test_second_initialize_is_ignored(self):
        LoggingFactory.initialize(console=Console(file=io.StringIO()))
        LoggingFactory.initialize(level=logging.DEBUG)

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        assert package_logger.level == logging.INFO
        assert len(LoggingFactory._handlers) == 1

    def test_json_output(self, monkeypatch):
        captured = io.StringIO()
        monkeypatch.setattr("sys.stderr", captured)
        LoggingFactory.initialize(json_output=True)

        logging.getLogger("resilience_core.test").info("hello json")

        line = json.loads(captured.getvalue().strip().splitlines()[-1])
        assert line["type"] == "log"
        assert line["level"] == "INFO"
        assert line["logger"] == "resilience_core.test"
        assert line["message"] == "hello json"

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "nested" / "resilience.log"
        LoggingFactory.initialize(log_file=log_file, console=Console(file=io.StringIO()))

        logging.getLogger("resilience_core.test").warning("written to file")
        for handler in LoggingFactory._handlers:
            handler.flush()

        assert "written to file" in log_file.read_text()

    def test_reset_removes_handlers(self):
        LoggingFactory.initialize(console=Console(file=io.StringIO()))
        LoggingFactory.reset()

        assert LoggingFactory._initialized is False
        assert not any(isinstance(h, RichHandler) for h in logging.getLogger(PACKAGE_LOGGER).handlers)


class TestLoggingFactoryHelpers:
    def teardown_method(self):
        LoggingFactory.reset()
        logging.getLogger(PACKAGE_LOGGER).setLevel(logging.NOTSET)

    def test_get_logger_initializes(self):
        LoggingFactory.reset()
        logger = get_logger("resilience_core.module")

        assert logger.name == "resilience_core.module"
        assert LoggingFactory._initialized is True

    def test_configure_verbose(self):
        LoggingFactory.configure_verbose(True)
        assert logging.getLogger(PACKAGE_LOGGER).level == logging.DEBUG

        LoggingFactory.configure_verbose(False)
        assert logging.getLogger(PACKAGE_LOGGER).level == logging.INFO

    def test_set_level(self):
        LoggingFactory.set_level("resilience_core.cooldown", logging.ERROR)
        assert logging.getLogger("resilience_core.cooldown").level == logging.ERROR
        logging.getLogger("resilience_core.cooldown").setLevel(logging.NOTSET)
