"""
Logging Utilities

Handler setup for entry points (scripts, host applications). Engine
components never call this themselves: they take an optional injected
``logging.Logger`` and otherwise log through their module logger, which
propagates to whatever the host configured here.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER_NAME = "point_set_alignment"


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        value = logging.getLevelName(level.upper())
        if not isinstance(value, int):
            raise ValueError(f"Unknown logging level: {level!r}")
        return value
    return int(level)


def setup_logger(name: str = PACKAGE_LOGGER_NAME,
                 level: Union[int, str] = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Calling this on the package logger (the default name) configures every
    engine module at once, since their loggers are children of it.

    Args:
        name: Logger name (defaults to the package logger)
        level: Logging level as int or name (default: INFO)
        log_file: Optional log file path. If provided, logs are also written there

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    level = _coerce_level(level)

    # Already configured: only refresh the level
    if logger.handlers:
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    logger.setLevel(level)

    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(funcName)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger
