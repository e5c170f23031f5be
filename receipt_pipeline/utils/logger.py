"""
Logging Configuration Module.

All pipeline modules log under the ``receipt_pipeline`` namespace so a
single call at startup configures console colors and the optional
rotating log file for every stage.

Usage:
    from receipt_pipeline.utils.logger import setup_logger, get_logger

    setup_logger(level="DEBUG")
    logger = get_logger(__name__)
    logger.info("Scanning receipt...")
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import colorama
from colorama import Fore, Style

colorama.init()

APP_LOGGER_NAME = "receipt_pipeline"

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class LevelColorFormatter(logging.Formatter):
    """
    Console formatter that wraps each record in a colorama color.

    Stage progress (INFO) is green, degradations and fallbacks (WARNING)
    are yellow, terminal failures (ERROR and above) are red.
    """

    LEVEL_COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        if not color:
            return text
        return f"{color}{text}{Style.RESET_ALL}"


def _console_handler(level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _file_handler(
    path: str,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int
) -> logging.Handler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = 5,
    colorize: bool = True
) -> logging.Logger:
    """
    Configure the ``receipt_pipeline`` logger.

    Calling it again replaces the handlers installed by the previous
    call, so the CLI can reconfigure after loading a custom config file.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Record format; defaults to DEFAULT_FORMAT.
        date_format: Timestamp format; defaults to DEFAULT_DATE_FORMAT.
        log_file: Rotating log file path, or None for console only.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files kept.
        colorize: Color console output by level.

    Returns:
        The configured application logger.

    Example:
        >>> setup_logger(level="DEBUG", log_file="logs/pipeline.log")
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    log_format = log_format or DEFAULT_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    formatter_cls = LevelColorFormatter if colorize else logging.Formatter

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(numeric_level)
    app_logger.handlers.clear()
    app_logger.addHandler(
        _console_handler(numeric_level, formatter_cls(log_format, datefmt=date_format))
    )
    if log_file:
        app_logger.addHandler(_file_handler(
            log_file,
            numeric_level,
            logging.Formatter(log_format, datefmt=date_format),
            max_bytes,
            backup_count,
        ))
    app_logger.propagate = False

    app_logger.debug(f"Logging configured at {logging.getLevelName(numeric_level)}")
    return app_logger


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger under the ``receipt_pipeline`` namespace.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Vendor detection started")
    """
    if name == APP_LOGGER_NAME or name.startswith(APP_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")


def setup_logger_from_config() -> logging.Logger:
    """Configure logging from the ``logging`` section of the settings file."""
    from config import get_config

    settings: Dict[str, Any] = get_config("logging", {}) or {}
    file_settings = settings.get('file') or {}
    console_settings = settings.get('console') or {}

    return setup_logger(
        level=settings.get('level', "INFO"),
        log_format=settings.get('format'),
        date_format=settings.get('date_format'),
        log_file=file_settings.get('path') if file_settings.get('enabled') else None,
        max_bytes=file_settings.get('max_bytes', DEFAULT_MAX_BYTES),
        backup_count=file_settings.get('backup_count', 5),
        colorize=console_settings.get('colorize', True),
    )
