from __future__ import annotations

from datetime import datetime, timezone
import pytest
from pydantic import ValidationError
from trends_pipeline.models import PublishedPoint, SourceSpec, ValueKind, YearRange


def test_published_point_validates() -> None:
    rec = {
        "view": "one_star_vs_inflation",
        "metric": "prop_1star",
        "month": "2020-01",
        "value": None,
        "published_ts": datetime.now(timezone.utc),
    }
    PublishedPoint.model_validate(rec)


def test_published_point_rejects_bad_month() -> None:
    rec = {
        "view": "v",
        "metric": "m",
        "month": "2020-1",
        "value": 1.0,
        "published_ts": datetime.now(timezone.utc),
    }
    with pytest.raises(ValidationError):
        PublishedPoint.model_validate(rec)


def test_source_spec_rejects_unknown_keys_and_bad_delimiter() -> None:
    with pytest.raises(ValidationError):
        SourceSpec(name="a", location="a.csv", date_column="d")  # type: ignore[call-arg]
    with pytest.raises(ValidationError):
        SourceSpec(name="a", location="a.csv", delimiter=";;")


def test_source_spec_declared_fields() -> None:
    spec = SourceSpec(
        name="meta",
        location="meta.csv",
        date_fields="date_first_available",
        value_field="price",
        value_kind="currency",
        text_fields=["title", "details"],
        extra_fields=["average_rating"],
    )
    assert spec.value_kind is ValueKind.CURRENCY
    assert spec.declared_fields == {"date_first_available", "price", "title", "details", "average_rating"}


def test_year_range() -> None:
    yr = YearRange(min_year=2018, max_year=2022)
    assert yr.contains(2018) and yr.contains(2022)
    assert not yr.contains(2017) and not yr.contains(2023)
    assert YearRange().contains(1900)
    with pytest.raises(ValidationError):
        YearRange(min_year=2022, max_year=2018)
