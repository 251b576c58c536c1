"""Logging to STDERR. Library modules get their logger here; the CLI sets the level."""

from __future__ import annotations
import logging
import sys

_ROOT = "chunkstream"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger


# This function changes the level of every chunkstream logger created so far.
def set_level(level: int) -> None:
    for name, logger in logging.Logger.manager.loggerDict.items():
        if isinstance(logger, logging.Logger) and (name == _ROOT or name.startswith(_ROOT + ".")):
            logger.setLevel(level)
