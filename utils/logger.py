"""Logging setup for the CLI; library modules only call logging.getLogger(__name__)."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def setup_logging(
    level: str = "INFO",
    stream: Any = None,
    log_file: str | Path | None = None,
) -> None:
    """
    Configure root logger once. Safe to call from main or tests.
    When log_file is given, records are also appended there (one file per deployment, not per batch).
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
    # urllib3 logs every retry/connection at DEBUG; keep it out of batch logs.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def log_structured(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """Emit a log record with extra keys for structured aggregation; keys are also appended to the message."""
    suffix = " ".join(f"{k}={v}" for k, v in kwargs.items())
    logger.log(level, "%s %s", msg, suffix, extra=kwargs)
