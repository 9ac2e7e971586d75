# campus_parking/utils/logger.py
"""
Centralised logging configuration for the parking core and API.
Logs to console and to a rotating file (LOG_DIR/LOG_FILE).
Core services tag their lines with the component: [REGISTRY], [LEDGER], [QUEUE], [STORAGE], [LPR].
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from campus_parking.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_configured = False


def _log_dir() -> str:
    if settings.LOG_DIR:
        return settings.LOG_DIR
    return os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")


def configure_logging(level: str | None = None):
    """
    Attach console + rotating file handlers to the root logger once.
    Safe to call repeatedly; only the first call installs handlers.
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = (level or settings.LOG_LEVEL).upper()
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(console)

    if settings.LOG_TO_FILE:
        log_dir = _log_dir()
        os.makedirs(log_dir, exist_ok=True)
        # Keeps last 10 × 5MB log files
        file_handler = RotatingFileHandler(
            filename=os.path.join(log_dir, settings.LOG_FILE),
            maxBytes=5 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    # SQL echo is controlled by the engine, not by the root level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Call this at the top of every module."""
    configure_logging()
    return logging.getLogger(name)
