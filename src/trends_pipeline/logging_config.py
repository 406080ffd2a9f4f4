"""Utilities to configure consistent logging across the pipeline."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# chatty third-party loggers kept at WARNING unless the run is at DEBUG
_NOISY_LOGGERS = ("urllib3", "pymongo", "distributed", "fsspec")


def configure_logging(
    log_path: Path | None = None,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Configure root logging handlers and formatting.

    Calling it again replaces the handlers installed by an earlier call, so
    the CLI and tests can reconfigure without duplicating output.

    Args:
        log_path: Optional path to a file where logs will also be written.
        level: Logging level as an int or a level name such as "DEBUG".
        stream: Console stream; defaults to stdout.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)
