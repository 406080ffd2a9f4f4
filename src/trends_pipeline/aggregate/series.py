"""Month keys and immutable monthly series.

`MonthKey` is the universal join key; `Series` is an ordered, gap-explicit
sequence of `(MonthKey, value)` points where a missing value is ``None``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Iterator, Mapping

import numpy as np
import pandas as pd

MISSING = None

MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")


@dataclass(frozen=True, order=True)
class MonthKey:
    """Calendar year-month, ordered by (year, month)."""
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month out of range: {self.month}")

    @classmethod
    def from_date(cls, d: date) -> "MonthKey":
        return cls(d.year, d.month)

    @classmethod
    def parse(cls, text: str) -> "MonthKey":
        """Parse ``"YYYY-MM"`` (a trailing day component is ignored)."""
        m = MONTH_RE.match(text.strip()[:7])
        if not m:
            raise ValueError(f"not a year-month: {text!r}")
        return cls(int(m.group(1)), int(m.group(2)))

    @property
    def ordinal(self) -> int:
        """Months since year 0; consecutive months differ by one."""
        return self.year * 12 + (self.month - 1)

    @classmethod
    def from_ordinal(cls, ordinal: int) -> "MonthKey":
        return cls(ordinal // 12, ordinal % 12 + 1)

    def shift(self, months: int) -> "MonthKey":
        return MonthKey.from_ordinal(self.ordinal + months)

    def to_period(self) -> pd.Period:
        return pd.Period(year=self.year, month=self.month, freq="M")

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


Point = tuple[MonthKey, float | None]


def period_index(keys: Iterable[MonthKey]) -> pd.PeriodIndex:
    """Monthly `PeriodIndex` named "month" for `keys`."""
    return pd.PeriodIndex([k.to_period() for k in keys], freq="M", name="month")


def _clean_value(value: object) -> float | None:
    if value is None or pd.isna(value):
        return MISSING
    v = float(value)  # type: ignore[arg-type]
    return v if math.isfinite(v) else MISSING


class Series:
    """Immutable monthly series with strictly increasing keys.

    Args:
        points: `(MonthKey, value)` pairs, already in ascending key order.
            ``None`` or NaN values are stored as missing.

    Raises:
        ValueError: if keys are not strictly increasing.
    """

    __slots__ = ("_keys", "_values", "_index")

    def __init__(self, points: Iterable[tuple[MonthKey, object]] = ()) -> None:
        keys: list[MonthKey] = []
        values: list[float | None] = []
        for key, value in points:
            if keys and key <= keys[-1]:
                raise ValueError(
                    f"series keys must be strictly increasing: {keys[-1]} then {key}"
                )
            keys.append(key)
            values.append(_clean_value(value))
        self._keys = tuple(keys)
        self._values = tuple(values)
        self._index = dict(zip(self._keys, self._values))

    @classmethod
    def from_mapping(cls, data: Mapping[MonthKey, object]) -> "Series":
        """Build a series from an unordered month -> value mapping."""
        return cls(sorted(data.items(), key=lambda kv: kv[0]))

    @classmethod
    def from_pandas(cls, s: pd.Series) -> "Series":
        """Build from a pandas Series indexed by monthly periods, timestamps or "YYYY-MM"."""
        points: dict[MonthKey, object] = {}
        for idx, value in s.items():
            if isinstance(idx, pd.Period):
                key = MonthKey(idx.year, idx.month)
            elif isinstance(idx, (pd.Timestamp, date)):
                key = MonthKey(idx.year, idx.month)
            else:
                key = MonthKey.parse(str(idx))
            if key in points:
                raise ValueError(f"duplicate month in pandas index: {key}")
            points[key] = value
        return cls.from_mapping(points)

    @property
    def keys(self) -> tuple[MonthKey, ...]:
        return self._keys

    @property
    def values(self) -> tuple[float | None, ...]:
        return self._values

    def get(self, key: MonthKey) -> float | None:
        """Value at `key`; missing both for gaps and for keys outside the series."""
        return self._index.get(key)

    def as_dict(self) -> dict[MonthKey, float | None]:
        return dict(self._index)

    def present(self) -> Iterator[tuple[MonthKey, float]]:
        """Points whose value is not missing."""
        for key, value in zip(self._keys, self._values):
            if value is not None:
                yield key, value

    def between(self, start: MonthKey | None = None, end: MonthKey | None = None) -> "Series":
        """Points with ``start <= key <= end``; either bound may be open."""
        return Series(
            (k, v)
            for k, v in self
            if (start is None or k >= start) and (end is None or k <= end)
        )

    def to_pandas(self, name: str | None = None) -> pd.Series:
        """Return a float pandas Series on a monthly PeriodIndex, NaN for missing."""
        index = period_index(self._keys)
        data = np.array(
            [np.nan if v is None else v for v in self._values], dtype=float
        )
        return pd.Series(data, index=index, name=name)

    def __iter__(self) -> Iterator[Point]:
        return iter(zip(self._keys, self._values))

    def __len__(self) -> int:
        return len(self._keys)

    def __getitem__(self, index: int) -> Point:
        return self._keys[index], self._values[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Series):
            return NotImplemented
        return self._keys == other._keys and self._values == other._values

    def __hash__(self) -> int:
        return hash((self._keys, self._values))

    def __repr__(self) -> str:
        body = ", ".join(f"{k}: {v}" for k, v in self)
        return f"Series({{{body}}})"
