"""Process-wide logging setup.

``setup_logging`` is called once by the entry points; every module obtains
its logger through ``get_logger(__name__)``.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

ROOT_LOGGER_NAME = "localchat"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class RedactingFormatter(logging.Formatter):
    """Mask obvious secrets that end up in log lines."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        return message.replace("password=", "password=***")


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level.upper())

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = RedactingFormatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    # Loggers from inside the package already hang under "localchat.*".
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


__all__ = ["setup_logging", "get_logger", "RedactingFormatter"]
