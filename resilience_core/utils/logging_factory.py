"""Centralized logging setup for the resilience_core package logger.

Usage:
    # Explicit initialization (optional - auto-initializes on first use)
    LoggingFactory.initialize(level=logging.INFO, log_file="resilience.log")

    # Get a logger for your module
    logger = LoggingFactory.get_logger(__name__)
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

from ..ui.console import JsonLineFormatter

PACKAGE_LOGGER = "resilience_core"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LoggingFactory:
    """Configures the package logger once per process.

    Text mode logs through a ``rich.logging.RichHandler``; JSON mode writes one
    JSON object per line. An optional file handler always uses the plain format.

    Class Attributes:
        _initialized: Flag to ensure single initialization
        _handlers: Handlers installed by initialize(), removed by reset()
    """

    _initialized = False
    _handlers: list = []

    @classmethod
    def initialize(
        cls,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Union[str, Path]] = None,
        json_output: bool = False,
        console: Optional[Console] = None,
    ) -> None:
        """Initialize package logging; later calls are ignored until reset().

        Args:
            level: Logging level for the package logger (int or name such as "INFO")
            log_file: Optional path of a log file; parent directories are created
            json_output: Emit JSON lines instead of Rich-formatted records
            console: Rich console for the handler (defaults to stderr)
        """
        if cls._initialized:
            return

        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(level)

        if json_output:
            handler: logging.Handler = logging.StreamHandler()
            handler.setFormatter(JsonLineFormatter())
        else:
            handler = RichHandler(
                console=console or Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
            )
        cls._add_handler(package_logger, handler)

        if log_file:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path)
            file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
            cls._add_handler(package_logger, file_handler)

        cls._initialized = True

    @classmethod
    def _add_handler(cls, logger: logging.Logger, handler: logging.Handler) -> None:
        logger.addHandler(handler)
        cls._handlers.append(handler)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger, initializing package logging with defaults if needed."""
        if not cls._initialized:
            cls.initialize()
        return logging.getLogger(name)

    @classmethod
    def set_level(cls, name: str, level: int) -> None:
        logging.getLogger(name).setLevel(level)

    @classmethod
    def configure_verbose(cls, verbose: bool = False) -> None:
        """Switch the package logger between DEBUG and INFO."""
        logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if verbose else logging.INFO)

    @classmethod
    def reset(cls) -> None:
        """Remove installed handlers so initialize() can run again."""
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        for handler in cls._handlers:
            package_logger.removeHandler(handler)
            handler.close()
        cls._handlers = []
        cls._initialized = False


def get_logger(name: str) -> logging.Logger:
    """Convenience wrapper around LoggingFactory.get_logger()."""
    return LoggingFactory.get_logger(name)
