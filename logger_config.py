"""Centralized logging configuration for the reminder bot.

One rotating log file per component (store, worker, bot, api, mcp, telegram)
plus console output. Location, rotation and verbosity come from settings:
LOG_DIR, LOG_MAX_BYTES, LOG_BACKUP_COUNT and IS_VERBOSE.
"""

import logging
from logging.handlers import RotatingFileHandler
import os
from typing import Optional

from config import settings

DEFAULT_LOG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'logs')

LOG_FORMAT = '[%(asctime)s] %(levelname)s - %(name)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def resolve_log_dir() -> str:
    """LOG_DIR from settings, or logs/ beside the modules; created if missing."""
    log_dir = settings.LOG_DIR or DEFAULT_LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    return log_dir


def setup_logger(name: str, log_file: str = 'bot.log', verbose: Optional[bool] = None) -> logging.Logger:
    """Setup logger with file rotation and console output.

    Args:
        name: Logger name (usually __name__)
        log_file: Log file name (e.g., 'store.log', 'worker.log')
        verbose: Lower the level to DEBUG; defaults to IS_VERBOSE

    Returns:
        Configured logger instance
    """
    if verbose is None:
        verbose = settings.IS_VERBOSE

    logger = logging.getLogger(name)
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = RotatingFileHandler(
        os.path.join(resolve_log_dir(), log_file),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def configure_root_logger():
    """Reduce third-party library noise."""
    for noisy in ('uvicorn', 'uvicorn.access', 'fastapi', 'sqlalchemy', 'httpx', 'httpcore', 'mcp'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# Auto-configure on import
configure_root_logger()
