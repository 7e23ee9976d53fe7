"""
Logging setup shared by every feedhub module.

All modules log through one named logger so a single call decides where
records go: stderr always, plus a log file when LOG_DIR is set.

Design Pattern: Single shared logger configured from the environment
Algorithm: Handlers rebuilt on every setup call, never stacked
Big O: O(1) per record
"""

import logging
import os
import sys
from pathlib import Path
from typing import Callable, Optional

_TRUTHY = ("true", "1", "yes", "on")

DEBUG_MODE = os.environ.get("DEBUG", "false").strip().lower() in _TRUTHY

# File logging is opt-in; containers usually only collect stderr.
LOG_DIR = os.environ.get("LOG_DIR") or None

LOGGER_NAME = "feedhub_api"

_FORMATS = {
    True: "%(asctime)s | %(levelname)-8s | %(module)s.%(funcName)s:%(lineno)d | %(message)s",
    False: "%(asctime)s | %(levelname)-8s | %(message)s",
}
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_configured_once = False


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_logging(debug: Optional[bool] = None, overwrite_log_file: Optional[bool] = None) -> logging.Logger:
    """
    (Re)configure the shared feedhub logger.

    Args:
        debug: Verbose records with call sites. Defaults to the DEBUG env flag.
        overwrite_log_file: Truncate the log file instead of appending. Only
            matters when LOG_DIR is set. Defaults to truncating on the first
            setup of the process.
    """
    global _configured_once

    verbose = DEBUG_MODE if debug is None else debug
    truncate = overwrite_log_file if overwrite_log_file is not None else not _configured_once
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter(_FORMATS[verbose], datefmt=_DATE_FORMAT)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    _attach(logger, logging.StreamHandler(sys.stderr), level, formatter)

    log_path = None
    if LOG_DIR:
        directory = Path(LOG_DIR)
        directory.mkdir(parents=True, exist_ok=True)
        log_path = directory / f"{LOGGER_NAME}.log"
        file_handler = logging.FileHandler(log_path, mode="w" if truncate else "a", encoding="utf-8")
        _attach(logger, file_handler, level, formatter)

    _configured_once = True

    if verbose:
        logger.debug(f"[LOGGING] verbose output on, file={log_path or 'disabled'}")

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Return the shared feedhub logger; ``name`` is accepted for call-site symmetry."""
    return logging.getLogger(LOGGER_NAME)


def create_retry_logger(endpoint: str) -> Callable[[int, BaseException, float], None]:
    """
    Build an ``on_retry`` observer for RetryOptions that logs each retry.

    The retry core never logs on its own; callers inject this.
    """
    logger = get_logger(__name__)

    def _on_retry(attempt: int, error: BaseException, delay_seconds: float) -> None:
        logger.warning(
            f"[RETRY] {endpoint} - attempt {attempt} failed "
            f"({type(error).__name__}: {error}), retrying in {delay_seconds:.2f}s"
        )

    return _on_retry


setup_logging()
