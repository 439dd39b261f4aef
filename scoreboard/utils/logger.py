"""
Logging setup for the scoreboard package.

Modules log through logging.getLogger(__name__); those loggers propagate to
the package logger, which entry points configure once with setup_logger().
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from scoreboard.config import Config

PACKAGE_LOGGER = 'scoreboard'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def log_file_path(log_dir: str, day: Optional[datetime] = None) -> Path:
    """Daily log file inside log_dir."""
    day = day or datetime.now()
    return Path(log_dir) / f'scoreboard_{day.strftime("%Y%m%d")}.log'


def setup_logger(log_dir: Optional[str] = None, debug: Optional[bool] = None) -> logging.Logger:
    """Attach console and daily file handlers to the package logger.

    Safe to call repeatedly; handlers are only added the first time.

    Args:
        log_dir: directory for the daily log file, Config.LOG_DIR by default.
            An empty value logs to the console only.
        debug: DEBUG level when true, INFO otherwise; Config.DEBUG by default
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if logger.handlers:
        return logger

    debug = Config.DEBUG if debug is None else debug
    log_level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(log_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_dir = Config.LOG_DIR if log_dir is None else log_dir
    if log_dir:
        path = log_file_path(log_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        # The file keeps DEBUG detail even when the console runs at INFO
        file_handler = logging.FileHandler(path, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
