"""Alignment of independently-shaped monthly series onto one timeline.

Alignment is the only place where series from different sources meet. The
shared timeline is the ascending union of all input keys; each series is
re-expressed against it with explicit missing values for absent months.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import pandas as pd

from trends_pipeline.aggregate.series import MonthKey, Series, period_index


def union_keys(*series: Series) -> tuple[MonthKey, ...]:
    """Ascending union of the keys of every input series."""
    keys: set[MonthKey] = set()
    for s in series:
        keys.update(s.keys)
    return tuple(sorted(keys))


def reindex(series: Series, keys: tuple[MonthKey, ...]) -> Series:
    """Express `series` over `keys`, missing where it has no point."""
    return Series.from_pandas(series.to_pandas().reindex(period_index(keys)))


def align(*series: Series) -> list[Series]:
    """Align every input onto the union of their keys.

    Each output has exactly ``len(union_keys(*series))`` points and aligning
    the output again returns equal series.
    """
    keys = union_keys(*series)
    return [reindex(s, keys) for s in series]


@dataclass(frozen=True)
class AlignedFrame:
    """Named series sharing one ordered month sequence.

    Attributes:
        keys: The shared timeline.
        columns: Metric name -> series over `keys`, in insertion order.
    """
    keys: tuple[MonthKey, ...]
    columns: Mapping[str, Series]

    def __len__(self) -> int:
        return len(self.keys)

    def __getitem__(self, name: str) -> Series:
        return self.columns[name]

    def to_frame(self) -> pd.DataFrame:
        """Return a DataFrame with a "YYYY-MM" `month` column and one float column per metric."""
        frame = pd.DataFrame({"month": [str(k) for k in self.keys]})
        for name, s in self.columns.items():
            frame[name] = s.to_pandas(name).to_numpy()
        return frame

    def records(self) -> list[dict[str, object]]:
        """Row dicts with ``None`` for missing values, ready for JSON or Mongo."""
        rows: list[dict[str, object]] = []
        for i, key in enumerate(self.keys):
            row: dict[str, object] = {"month": str(key)}
            for name, s in self.columns.items():
                row[name] = s.values[i]
            rows.append(row)
        return rows


def align_named(named: Mapping[str, Series]) -> AlignedFrame:
    """Align a mapping of metric name -> series into an `AlignedFrame`."""
    names = list(named)
    aligned = align(*(named[n] for n in names))
    return AlignedFrame(keys=union_keys(*named.values()), columns=dict(zip(names, aligned)))
