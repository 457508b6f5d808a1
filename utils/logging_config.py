"""
Logging setup for the raffle service
Console output always, a rotating file when LOG_FILE is set
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

CONSOLE_FORMAT = '[%(asctime)s] %(levelname)-8s %(message)s'
FILE_FORMAT = '[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'

# Rotate at 10MB, keep 5 old files
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Library loggers that drown out raffle events below WARNING
QUIET_LOGGERS = ('sqlalchemy.engine', 'sqlalchemy.pool')


def _attach(logger, handler, level, fmt, datefmt):
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    logger.addHandler(handler)


def setup_logging(app_name='prize_raffle', log_level=None, log_file=None):
    """
    Configure the raffle logger

    Args:
        app_name: Top-level logger to configure (module loggers below it inherit)
        log_level: Level name, case-insensitive (default LOG_LEVEL env or INFO)
        log_file: Path for a rotating log file (default LOG_FILE env; empty disables)

    Returns:
        logging.Logger: The configured logger
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')
    if log_file is None:
        log_file = os.getenv('LOG_FILE') or None

    level = getattr(logging, str(log_level).upper(), logging.INFO)

    logger = logging.getLogger(app_name)
    logger.setLevel(level)
    # Reconfiguring replaces handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    _attach(logger, logging.StreamHandler(sys.stdout), level, CONSOLE_FORMAT, '%H:%M:%S')

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding='utf-8'
        )
        _attach(logger, file_handler, level, FILE_FORMAT, '%Y-%m-%d %H:%M:%S')
        logger.info(f"📝 Raffle log file: {log_file}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.propagate = False
    return logger
