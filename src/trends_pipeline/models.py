"""Pydantic models for configuration and published documents.

These models define the configuration surface of a run (sources, category
rules, year filters) and the schema of the monthly points written out by
`trends_pipeline.publish`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CategoryRule(BaseModel):
    """Keyword rule assigning a semantic category to free text.

    Attributes:
        id: Stable identifier used as the category key in aggregates.
        label: Human-readable label.
        keywords: Lower-cased substrings; any one present in the text matches.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)
    id: str = Field(..., min_length=1)
    label: str
    keywords: frozenset[str] = Field(..., min_length=1)

    @field_validator("keywords", mode="before")
    @classmethod
    def _lower_keywords(cls, value: object) -> object:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple, set, frozenset)):
            cleaned = {str(k).strip().lower() for k in value}
            cleaned.discard("")
            return frozenset(cleaned)
        return value


class YearRange(BaseModel):
    """Inclusive calendar-year filter applied before bucketing."""
    model_config = ConfigDict(extra="forbid", frozen=True)
    min_year: int | None = None
    max_year: int | None = None

    @model_validator(mode="after")
    def _check_order(self) -> "YearRange":
        if (
            self.min_year is not None
            and self.max_year is not None
            and self.min_year > self.max_year
        ):
            raise ValueError(f"min_year {self.min_year} is after max_year {self.max_year}")
        return self

    def contains(self, year: int) -> bool:
        """Return True when `year` falls inside the range (open ends allowed)."""
        if self.min_year is not None and year < self.min_year:
            return False
        if self.max_year is not None and year > self.max_year:
            return False
        return True


class ValueKind(str, Enum):
    NUMBER = "number"
    CURRENCY = "currency"


class SourceSpec(BaseModel):
    """Declares where a source lives and which columns feed aggregation.

    Attributes:
        name: Short name used in logs and results (e.g. "reviews").
        location: Local path or http(s) URL of a delimited file.
        date_fields: Candidate date columns, tried in order.
        value_field: Column holding the numeric value (rating, price, CPI).
        value_kind: How to read the value column.
        text_fields: Columns concatenated into the classification text.
        extra_fields: Further columns read directly by views.
        delimiter: Field delimiter.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)
    name: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    date_fields: tuple[str, ...] = ()
    value_field: str | None = None
    value_kind: ValueKind = ValueKind.NUMBER
    text_fields: tuple[str, ...] = ()
    extra_fields: tuple[str, ...] = ()
    delimiter: str = Field(",", min_length=1, max_length=1)

    @field_validator("date_fields", "text_fields", "extra_fields", mode="before")
    @classmethod
    def _single_to_tuple(cls, value: object) -> object:
        if isinstance(value, str):
            return (value,)
        return value

    @property
    def declared_fields(self) -> frozenset[str]:
        """All columns this spec names, used to catch undeclared lookups."""
        fields = set(self.date_fields) | set(self.text_fields) | set(self.extra_fields)
        if self.value_field:
            fields.add(self.value_field)
        return frozenset(fields)


class PublishedPoint(BaseModel):
    """One aligned monthly point as stored in the published collection."""
    model_config = ConfigDict(extra="forbid")
    view: str
    metric: str
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    value: float | None
    published_ts: datetime
