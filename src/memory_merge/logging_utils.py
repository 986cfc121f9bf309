from __future__ import annotations

import logging
import sys
from pathlib import Path

LOGGER_NAME = "memory_merge"
RUN_LOG_FILENAME = "run.log"

_FORMAT = "[%(asctime)s] %(levelname)-7s %(name)s — %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure and return the application logger.

    Safe to call more than once; later calls only change the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
    if any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
           for h in logger.handlers):
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)
    return logger


def attach_run_log(run_dir: Path) -> logging.FileHandler:
    """Mirror the application logger into ``run_dir/run.log``.

    The caller removes the returned handler with :func:`detach_run_log`.
    """
    logger = logging.getLogger(LOGGER_NAME)
    handler = logging.FileHandler(run_dir / RUN_LOG_FILENAME, encoding="utf-8")
    handler.setLevel(logger.level or logging.INFO)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)
    return handler


def detach_run_log(handler: logging.FileHandler) -> None:
    logging.getLogger(LOGGER_NAME).removeHandler(handler)
    handler.close()
