"""Root logger configuration for command line use."""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ConsoleHandler(logging.StreamHandler):
    """Stream handler installed by :func:`setup_logging`."""


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger with a single stream handler.

    ``level`` falls back to ``MENU_SCAN_LOG_LEVEL`` and then to ``INFO``.
    """

    logger = logging.getLogger()
    level_name = (level or os.getenv("MENU_SCAN_LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Avoid adding multiple handlers if setup_logging is called more than once
    if any(isinstance(h, ConsoleHandler) for h in logger.handlers):
        return

    handler = ConsoleHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
