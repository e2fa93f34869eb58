"""Logging configuration for Auscult.

The CLI writes everything at the configured level to a dated log file
and mirrors it on the console. Library modules ask for a component
logger (``auscult.coordinator``, ``auscult.store``, ...) so the file
shows which layer a message came from.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Optional

from config import Config

LOGGER_NAME = "auscult"


def get_log_file(config: Config, day: Optional[date] = None) -> Path:
    """Return the log file for a given day (today by default)."""
    day = day or date.today()
    return config.log_dir / f"{LOGGER_NAME}-{day.isoformat()}.log"


def setup_logging(config: Config) -> logging.Logger:
    """Attach file and console handlers to the application logger.

    Safe to call more than once; previous handlers are closed and replaced.

    Args:
        config: Application configuration containing log settings.

    Returns:
        The root ``auscult`` logger.
    """
    config.log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(config.log_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(get_log_file(config), encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    # Console output is for operators reading CLI results
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """Get the application logger, or a child logger for one component.

    Args:
        component: Optional suffix such as ``"coordinator"``.

    Returns:
        ``auscult`` or ``auscult.<component>``.
    """
    if component:
        return logging.getLogger(f"{LOGGER_NAME}.{component}")
    return logging.getLogger(LOGGER_NAME)
