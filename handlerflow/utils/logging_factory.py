"""Centralized logging factory for consistent logger creation across the engine.

This module provides a singleton-based logging factory that ensures consistent
logger configuration throughout the package. It handles:
- Automatic initialization of the logging system
- Optional log file output
- Consistent formatting across all loggers
- Per-module logging level configuration

Usage:
    # Explicit initialization (optional - auto-initializes on first use)
    LoggingFactory.initialize(level=logging.INFO)

    # Get a logger for your module
    logger = LoggingFactory.get_logger(__name__)
    logger.info("Migration started")
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..config import get_config


class LoggingFactory:
    """Factory for creating and configuring loggers consistently.

    The logging system is initialized only once regardless of how many times
    initialize() is called. Library modules still use
    ``logging.getLogger(__name__)`` directly; the factory is for the host
    application that wants the engine's default handlers and format.

    Class Attributes:
        _initialized: Flag to ensure single initialization
    """

    _initialized = False

    @classmethod
    def initialize(
        cls,
        log_file: Optional[Path] = None,
        level: Optional[int] = None,
        format_string: Optional[str] = None,
    ) -> None:
        """Initialize the logging system once for the entire application.

        Args:
            log_file: Optional file to mirror console output into. Defaults to
                the LOG_FILE setting.
            level: Root logging level. Defaults to the LOG_LEVEL setting.
            format_string: Custom format string. Defaults to the LOG_FORMAT setting.
        """
        if cls._initialized:
            return

        config = get_config()
        if level is None:
            level = logging.getLevelName(config.log_level)
            if not isinstance(level, int):
                level = logging.INFO
        if format_string is None:
            format_string = config.log_format
        if log_file is None and config.log_file:
            log_file = Path(config.log_file)

        handlers: List[logging.Handler] = [logging.StreamHandler()]
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))

        logging.basicConfig(level=level, format=format_string, handlers=handlers)

        # Migration runs are the noisiest component; keep them at the root level
        logging.getLogger("handlerflow.migration").setLevel(level)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a configured logger for the given module name.

        Auto-initializes the logging system with defaults on first use.

        Args:
            name: Module name for the logger, typically __name__.

        Returns:
            Configured logger instance ready for use.
        """
        if not cls._initialized:
            cls.initialize()

        return logging.getLogger(name)

    @classmethod
    def set_level(cls, name: str, level: int) -> None:
        """Set the logging level for a specific logger.

        Args:
            name: Logger name to configure (e.g. 'handlerflow.handlers.factory')
            level: Logging level to set
        """
        logging.getLogger(name).setLevel(level)

    @classmethod
    def configure_verbose(cls, verbose: bool = False) -> None:
        """Switch the root and package loggers between INFO and DEBUG.

        Args:
            verbose: If True, use DEBUG; otherwise INFO.
        """
        level = logging.DEBUG if verbose else logging.INFO
        logging.getLogger().setLevel(level)
        logging.getLogger("handlerflow").setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Convenience wrapper around LoggingFactory.get_logger."""
    return LoggingFactory.get_logger(name)
