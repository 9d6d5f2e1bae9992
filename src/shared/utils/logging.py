"""Logging setup shared by the ingestion and recheck entry points."""

from __future__ import annotations
import logging
import os
import sys
from typing import Any, Iterable, Mapping, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FORMAT_NO_TIME = "[%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest")


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Send every log record to stdout at *level*.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL. Falls back to the
               LOG_LEVEL environment variable, then INFO.
        format_string: Overrides the default record format.
        include_timestamp: Prefix records with the wall-clock time.
        quiet_loggers: Library loggers capped at WARNING.

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logging.getLogger(__name__).debug("Checkpoint loaded")
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    if format_string is None:
        format_string = LOG_FORMAT if include_timestamp else LOG_FORMAT_NO_TIME

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=format_string,
        datefmt=DATE_FORMAT,
        stream=sys.stdout,
        force=True,
    )

    # Third-party HTTP and PostgREST clients log every request at INFO
    for logger_name in quiet_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def log_settings(logger: logging.Logger, title: str, values: Mapping[str, Any]) -> None:
    """Log one ``key=value`` line per setting under a heading."""
    logger.info("%s:", title)
    for key in sorted(values):
        logger.info("  %s=%s", key, values[key])
