"""Utility modules for Semantic Atlas."""

from .logging_config import get_logger, setup_logging
from .text_utils import sanitize_label, clean_texts

__all__ = [
    "get_logger",
    "setup_logging",
    "sanitize_label",
    "clean_texts",
]
