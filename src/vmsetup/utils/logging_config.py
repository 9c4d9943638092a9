"""Application-wide logging configuration using rich handlers."""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

from rich.logging import RichHandler

PACKAGE_LOGGER = "vmsetup"

# Libraries that log every HTTP request or span export at INFO/DEBUG.
QUIET_LOGGERS = ("urllib3", "requests", "opentelemetry", "asyncio")


def setup_logging(level: int = logging.INFO, log_file: str | None = None) -> logging.Logger:
    """Configure logging for the ``vmsetup`` command line.

    Parameters
    ----------
    level:
        Minimum severity for ``vmsetup`` loggers. Third-party loggers listed
        in :data:`QUIET_LOGGERS` never go below ``WARNING``.
    log_file:
        Optional path to a log file. If ``None``, ``VMSETUP_LOG_FILE`` is
        consulted. The file always records ``DEBUG`` output from ``vmsetup``
        so a failed setup can be diagnosed after the fact.

    Returns the package logger.
    """
    if log_file is None:
        log_file = os.getenv("VMSETUP_LOG_FILE")

    console_handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_path=level <= logging.DEBUG,
    )
    console_handler.setLevel(level)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=5)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        handlers=handlers,
        format="%(message)s",
        force=True,
    )
    package = logging.getLogger(PACKAGE_LOGGER)
    package.setLevel(logging.DEBUG if log_file else level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return package


__all__ = ["PACKAGE_LOGGER", "QUIET_LOGGERS", "setup_logging"]
