import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from select_start.config import Config

PACKAGE_LOGGER = 'select_start'
LIBRARY_LOGGERS = ('discord', 'discord.http', 'discord.gateway', 'sqlalchemy.engine', 'aiosqlite')

def setup_logger(name: str = PACKAGE_LOGGER, level: Optional[int] = None) -> logging.Logger:
    """Attach console and daily file handlers to a logger.

    Module loggers created with ``logging.getLogger(__name__)`` inside the
    package propagate to the package logger, so configuring it once covers
    every service.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    log_level = level or (logging.DEBUG if Config.DEBUG else logging.INFO)
    logger.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_dir = Path(os.getenv('LOG_DIR', 'logs'))
    log_dir.mkdir(parents=True, exist_ok=True)

    # Full detail goes to the file regardless of console level
    file_handler = logging.FileHandler(
        log_dir / f'select_start_{datetime.now().strftime("%Y%m%d")}.log',
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger

def quiet_library_loggers():
    """Raise discord.py and SQLAlchemy loggers to WARNING unless DEBUG is set"""
    library_level = logging.DEBUG if Config.DEBUG else logging.WARNING
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
