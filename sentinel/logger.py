"""
Logging setup

All modules log through ``get_logger(name, config)`` so every logger hangs
off the ``sentinel`` root and shares its handlers.
"""

import logging
import os
import sys
from pathlib import Path


ROOT_LOGGER = "sentinel"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class LoggingSetupError(RuntimeError):
    """The process log could not be opened."""


def _level_from(config, default: str = "INFO") -> int:
    name = config.get("system.log_level", default) if config is not None else default
    return getattr(logging, str(name).upper(), logging.INFO)


def setup_logging(config) -> logging.Handler:
    """Attach the file (and optionally stderr) handlers to the root logger.

    Raises:
        LoggingSetupError: the log file cannot be opened
    """
    log_file = Path(config.get("system.log_file", "sentinel.log"))
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(_level_from(config))
    root.propagate = False

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        raise LoggingSetupError(f"Cannot open log file {log_file}: {e}") from e

    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)

    # Console mode sets this so log lines never tear the prompt
    if os.environ.get("SENTINEL_LOG_FILE_ONLY") != "1":
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        stream_handler.setLevel(logging.WARNING)
        root.addHandler(stream_handler)

    return file_handler


def get_logger(name: str, config=None) -> logging.Logger:
    """Get a child logger of the ``sentinel`` root."""
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    logger = logging.getLogger(name)
    if config is not None:
        logger.setLevel(_level_from(config))
    return logger
