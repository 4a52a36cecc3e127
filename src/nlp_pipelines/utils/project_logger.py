"""Logger configuration for the pipeline runner.

Console records get a color and an emoji per level and go to stderr, keeping
stdout free for results. An optional log file receives plain records that
also name the worker thread.

Key Functions:
- setup_logger: Configure the package logger with its handlers
- get_logger: Get a child logger under the package namespace
"""

import logging
import os
import sys
from typing import Optional

LOGGER_NAME = 'nlp_pipelines'
RESET = '\033[0m'

# level name -> (ANSI color, emoji)
LEVEL_STYLES = {
    'DEBUG': ('\033[36m', '🔍'),
    'INFO': ('\033[32m', '✨'),
    'WARNING': ('\033[33m', '⚠️'),
    'ERROR': ('\033[31m', '❌'),
    'CRITICAL': ('\033[1;31m', '🔥'),
}

CONSOLE_FORMAT = '%(color)s%(emoji)s %(asctime)s - %(name)s - %(levelname)s - %(message)s%(reset)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s'


class ColoredFormatter(logging.Formatter):
    """Formatter filling the ``color``, ``emoji`` and ``reset`` record fields."""

    def __init__(self, fmt: str, use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record):
        color, emoji = LEVEL_STYLES.get(record.levelname, ('', ''))
        record.emoji = emoji
        record.color = color if self.use_color else ''
        record.reset = RESET if self.use_color and color else ''
        return super().format(record)


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, use_color=sys.stderr.isatty()))
    return handler


def _file_handler(log_file: str, level: int) -> logging.Handler:
    log_dir = os.path.dirname(os.path.abspath(log_file))
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logger(log_file: Optional[str] = None,
                 level: int = logging.INFO) -> logging.Logger:
    """Configures the package logger, replacing handlers from earlier calls.

    Args:
        log_file: Optional path of a plain-text log file, parent directories are created
        level: Logging level (default: logging.INFO)

    Returns:
        The package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    logger.setLevel(level)
    logger.propagate = False
    if log_file:
        logger.addHandler(_file_handler(log_file, level))
    logger.addHandler(_console_handler(level))
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Returns a logger under the package namespace.

    Module names that already start with the package name are used as-is.
    """
    if not name:
        return logging.getLogger(LOGGER_NAME)
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + '.'):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
