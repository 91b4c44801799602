"""Logging setup for KanaSchool.

Library modules log through ``logging.getLogger(__name__)``; everything hangs
off the ``kana_school`` logger configured here.
"""

import logging
from typing import Optional


def setup_logging(debug: bool = False, log_level: Optional[str] = None) -> logging.Logger:
    """Configure the ``kana_school`` logger with a single console handler."""
    if log_level is None:
        log_level = "DEBUG" if debug else "INFO"
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger("kana_school")
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(module)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    logger.propagate = True
    return logger
