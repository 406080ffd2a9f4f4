from __future__ import annotations

from pathlib import Path

import pytest

from trends_pipeline.config import get_settings

_VARS = (
    "TRENDS_DATA_DIR",
    "TRENDS_CACHE_DIR",
    "TRENDS_MIN_YEAR",
    "TRENDS_MAX_YEAR",
    "TRENDS_YOY_LAG",
    "TRENDS_LOG_LEVEL",
    "MONGO_URI",
    "MONGO_DB",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    s = get_settings()
    assert s.data_dir == Path("data")
    assert s.yoy_lag == 12
    assert s.year_range.min_year is None and s.year_range.max_year is None
    assert s.mongo_uri is None
    assert s.mongo_db == "trends"
    assert s.log_level == "INFO"


def test_reads_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TRENDS_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TRENDS_MIN_YEAR", "2018")
    monkeypatch.setenv("TRENDS_MAX_YEAR", "2022")
    monkeypatch.setenv("TRENDS_YOY_LAG", "3")
    monkeypatch.setenv("TRENDS_LOG_LEVEL", "debug")
    monkeypatch.setenv("MONGO_URI", "mongodb://localhost:27017")

    s = get_settings()

    assert s.data_dir == tmp_path
    assert (s.year_range.min_year, s.year_range.max_year) == (2018, 2022)
    assert s.yoy_lag == 3
    assert s.log_level == "DEBUG"
    assert s.mongo_uri == "mongodb://localhost:27017"


@pytest.mark.parametrize(
    "name, value",
    [
        ("TRENDS_MIN_YEAR", "twenty"),
        ("TRENDS_YOY_LAG", "0"),
        ("TRENDS_LOG_LEVEL", "LOUD"),
    ],
)
def test_rejects_bad_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(RuntimeError):
        get_settings()


def test_rejects_inverted_year_range(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRENDS_MIN_YEAR", "2023")
    monkeypatch.setenv("TRENDS_MAX_YEAR", "2018")
    with pytest.raises(RuntimeError, match="TRENDS_MIN_YEAR"):
        get_settings()
