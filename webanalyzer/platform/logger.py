import logging
import os
from logging.handlers import RotatingFileHandler

from webanalyzer.platform.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _file_handler(formatter: logging.Formatter) -> RotatingFileHandler:
    log_dir = os.path.join(os.getcwd(), settings.LOG_DIR)
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, settings.LOG_FILE), maxBytes=10_000_000, backupCount=5
    )
    handler.setFormatter(formatter)
    return handler


def get_logger(name: str):
    """
    Logger for ``name`` that writes to the console and to the rotating
    file under ``settings.LOG_DIR``. Handlers are attached once per name,
    so calling this at import time from every module is safe.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)

    for handler in (_file_handler(formatter), console):
        logger.addHandler(handler)

    return logger
