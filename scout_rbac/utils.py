"""
Shared helpers.
"""
import logging
import sys

from scout_rbac.core import config


_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger writing to stderr at the configured level.

    Usage:
        from scout_rbac.utils import get_logger

        log = get_logger(__name__)
        log.info("Role created")
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(config.LOG_LEVEL.upper())
        logger.propagate = False
    return logger
