# app_logging.py
"""
Logging setup for the invoice desk.

Call setup_logger() (or setup_logger_from_settings()) once at start-up, then
use get_logger(__name__) in each module:

    logger = get_logger(__name__)
    logger.info("Imported %d invoices", n)
"""
from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "bulkinvoice"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 1048576,  # 1 MB
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure the application logger: console always, rotating file when
    log_file is given. Calling it again replaces the previous handlers.
    """
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(lvl)
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(lvl)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(lvl)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.propagate = False
    root_logger.debug("Logging initialized")
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Child logger under the application namespace."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logger_from_settings() -> logging.Logger:
    """Initialize logging from the logging.* settings keys."""
    import settings

    log_file = None
    if settings.get("logging.file_enabled", True):
        log_file = str(settings.get_data_dir() / str(settings.get("logging.file_name", "bulkinvoice.log")))
    return setup_logger(level=str(settings.get("logging.level", "INFO")), log_file=log_file)
