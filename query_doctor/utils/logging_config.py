"""
Logging configuration for the CLI.
Colorized console output on stderr (stdout carries reports) and a
rotating analysis log in LOG_DIR.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import colorlog
from config.settings import Settings

ANALYSIS_LOG_FILE = 'query_doctor.log'
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Libraries that log every tolerated dialect quirk or emitted statement
QUIET_LOGGERS = ('sqlglot', 'sqlalchemy.engine')

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        '%(log_color)s%(levelname)-8s%(reset)s %(blue)s%(name)s%(reset)s: %(message)s',
        log_colors=LOG_COLORS,
    ))
    return handler


def _analysis_file_handler(log_dir: Path, log_format: str) -> logging.Handler:
    handler = RotatingFileHandler(
        log_dir / ANALYSIS_LOG_FILE,
        mode='a',
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding='utf-8',
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging(settings: Settings) -> logging.Logger:
    """
    Replace the root handlers with a console handler at LOG_LEVEL and a
    DEBUG-level rotating file handler using LOG_FORMAT.

    Args:
        settings: Application settings (``logging`` and ``paths`` sections)

    Returns:
        Configured root logger
    """
    log_dir = settings.paths.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    root_logger.addHandler(_console_handler(console_level))
    root_logger.addHandler(_analysis_file_handler(log_dir, settings.logging.format))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)

    return root_logger
