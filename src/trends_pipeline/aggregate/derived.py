"""Derived monthly metrics computed from finalized series.

All functions are pure: they take `Series` objects and return new ones. The
arithmetic runs on pandas Series over a monthly `PeriodIndex`. Undefined
arithmetic (division by zero, missing operands, empty windows) always
produces a missing value rather than an error or infinity.
"""

from __future__ import annotations

from typing import Mapping

import pandas as pd

from trends_pipeline.aggregate.series import Series, period_index

DEFAULT_YOY_LAG = 12


def proportion(numerator: Series, denominator: Series) -> Series:
    """Return ``numerator / denominator`` per month over the union of both keys.

    A month is missing when the denominator is zero or missing there, or the
    numerator is missing there.
    """
    index = period_index(sorted(set(numerator.keys) | set(denominator.keys)))
    num = numerator.to_pandas().reindex(index)
    den = denominator.to_pandas().reindex(index)
    return Series.from_pandas((num / den).where(den != 0))


def share_matrix(category_counts: Mapping[str, Series], total: Series) -> dict[str, Series]:
    """Return the proportion of `total` taken by each category, per month."""
    return {cat: proportion(counts, total) for cat, counts in category_counts.items()}


def year_over_year(series: Series, lag: int = DEFAULT_YOY_LAG) -> Series:
    """Relative change against the point `lag` months earlier.

    ``YoY(t) = (v(t) - v(t - lag)) / v(t - lag)``. The predecessor is found
    by shifting the period index, not by list position, so a gap in the
    series never pairs a month with the wrong predecessor. Months whose
    predecessor is not a point of the series are omitted; months where
    either value is missing or the predecessor is zero are present as
    missing.

    Raises:
        ValueError: if `lag` is less than one month.
    """
    if lag < 1:
        raise ValueError(f"lag must be at least one month, got {lag}")

    s = series.to_pandas()
    prior = pd.Series(s.to_numpy(), index=s.index + lag)
    s = s[s.index.isin(prior.index)]
    prior = prior.reindex(s.index)
    return Series.from_pandas(((s - prior) / prior).where(prior != 0))


def windowed_average(series: Series, start: int, end: int) -> float | None:
    """Mean of the present values between positions `start` and `end` inclusive.

    Positions outside the series are clipped. An empty or all-missing window
    returns None.
    """
    start = max(start, 0)
    if start > end:
        return None
    mean = series.to_pandas().iloc[start : end + 1].mean()
    return None if pd.isna(mean) else float(mean)


def rolling_average(series: Series, window: int, min_periods: int = 1) -> Series:
    """Trailing mean over the `window` calendar months ending at each point.

    Only present values inside the window count; a point is missing when
    fewer than `min_periods` values are available.

    Raises:
        ValueError: if `window` or `min_periods` is not positive.
    """
    if window < 1 or min_periods < 1:
        raise ValueError("window and min_periods must be positive")
    if len(series) == 0:
        return Series()

    s = series.to_pandas()
    # fill calendar gaps so the window counts months, not points
    full = pd.period_range(s.index[0], s.index[-1], freq="M", name="month")
    rolled = s.reindex(full).rolling(window, min_periods=min_periods).mean()
    return Series.from_pandas(rolled.reindex(s.index))
