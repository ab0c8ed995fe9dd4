"""
Logging configuration for Semantic Atlas.

Centralizes logger creation so every module logs under the
``semantic_atlas`` namespace with a consistent format.

Usage:
    from semantic_atlas.utils.logging_config import get_logger, setup_logging

    setup_logging("DEBUG")
    logger = get_logger(__name__)
    logger.info("Clustering %d points", n)
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROOT_LOGGER_NAME = "semantic_atlas"


def setup_logging(
    level: Union[int, str] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Configure the package root logger.

    Safe to call more than once: existing handlers installed by a previous
    call are replaced rather than duplicated.

    Args:
        level: Logging level name or number (e.g. "DEBUG", logging.INFO)
        log_file: Optional path; when given, records are also written there

    Returns:
        The configured ``semantic_atlas`` logger

    Raises:
        ValueError: If ``level`` is not a known logging level name
    """
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level}")
        level = numeric

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Names outside the package namespace are nested under it so a single
    ``setup_logging`` call controls them.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
