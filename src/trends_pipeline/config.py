"""Configuration helpers and Settings container.

This module provides a small `Settings` dataclass and `get_settings` which
reads the environment (after loading `.env` from the project root) and
validates the year filter and numeric knobs.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import os

from dotenv import load_dotenv

from trends_pipeline.aggregate.derived import DEFAULT_YOY_LAG
from trends_pipeline.models import YearRange

# Explicitly load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(PROJECT_ROOT / ".env")


@dataclass(frozen=True)
class Settings:
    """Container for pipeline configuration read from the environment.

    Attributes:
        data_dir: Directory that relative source locations resolve against.
        cache_dir: Local cache directory for downloaded sources.
        year_range: Inclusive year filter applied before bucketing.
        yoy_lag: Lag in months for year-over-year change.
        mongo_uri: MongoDB connection URI (only needed for publishing).
        mongo_db: Target MongoDB database name.
        log_level: Logging level name.
    """
    data_dir: Path
    cache_dir: Path
    year_range: YearRange
    yoy_lag: int
    mongo_uri: str | None
    mongo_db: str
    log_level: str


def _int_env(name: str, default: int | None) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def get_settings() -> Settings:
    """Read environment variables and return a frozen `Settings` object.

    Raises:
        RuntimeError: if a numeric variable is not an integer, the YoY lag is not
            positive, the log level is unknown, or the year range is inverted.
    """
    data_dir = Path(os.getenv("TRENDS_DATA_DIR", "data"))
    cache_dir = Path(os.getenv("TRENDS_CACHE_DIR", "data/cache"))
    min_year = _int_env("TRENDS_MIN_YEAR", None)
    max_year = _int_env("TRENDS_MAX_YEAR", None)
    yoy_lag = _int_env("TRENDS_YOY_LAG", DEFAULT_YOY_LAG)
    mongo_uri = os.getenv("MONGO_URI", "").strip() or None
    mongo_db = os.getenv("MONGO_DB", "trends")
    log_level = os.getenv("TRENDS_LOG_LEVEL", "INFO").strip().upper()

    if min_year is not None and max_year is not None and min_year > max_year:
        raise RuntimeError(
            f"TRENDS_MIN_YEAR ({min_year}) must not be after TRENDS_MAX_YEAR ({max_year})."
        )
    if yoy_lag is None or yoy_lag < 1:
        raise RuntimeError("TRENDS_YOY_LAG must be a positive number of months.")
    if not isinstance(logging.getLevelName(log_level), int):
        raise RuntimeError(f"TRENDS_LOG_LEVEL {log_level!r} is not a logging level.")

    return Settings(
        data_dir=data_dir,
        cache_dir=cache_dir,
        year_range=YearRange(min_year=min_year, max_year=max_year),
        yoy_lag=yoy_lag,
        mongo_uri=mongo_uri,
        mongo_db=mongo_db,
        log_level=log_level,
    )
