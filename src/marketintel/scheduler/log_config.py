"""Logging configuration for scrape cycles."""
import logging
import os
from logging.handlers import RotatingFileHandler

from marketintel.config import LOG_DIR


def configure_logging(log_dir: str = LOG_DIR) -> None:
    """
    Attach a rotating file handler to the marketintel logger.

    Creates the log directory if it doesn't exist.
    File: logs/scrape_cycle.log (5 MB per file, 7 backups = ~40 MB max)
    """
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.abspath(os.path.join(log_dir, "scrape_cycle.log"))

    logger = logging.getLogger("marketintel")
    # Repeated calls (scheduler restarts, tests) must not stack handlers
    for existing in logger.handlers:
        if isinstance(existing, RotatingFileHandler) and existing.baseFilename == path:
            return

    handler = RotatingFileHandler(
        path,
        maxBytes=5 * 1024 * 1024,   # 5 MB
        backupCount=7,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s"
    ))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
