import logging
import os
import sys

LOGGER_NAME = "generative_cms"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(module)s] %(message)s"


def setup_logger(name: str = LOGGER_NAME, level: str | None = None) -> logging.Logger:
    """Configure the application logger once and return it."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel((level or os.getenv("LOG_LEVEL") or "INFO").upper())
    return logger


def get_logger() -> logging.Logger:
    return setup_logger()
