from __future__ import annotations

import math
import random
from datetime import date

import pandas as pd
import pytest

from trends_pipeline.aggregate.align import align, align_named, union_keys
from trends_pipeline.aggregate.derived import (
    proportion,
    rolling_average,
    share_matrix,
    windowed_average,
    year_over_year,
)
from trends_pipeline.aggregate.series import MonthKey, Series


def _series(data: dict[str, float | None]) -> Series:
    return Series.from_mapping({MonthKey.parse(k): v for k, v in data.items()})


def _months(start: str, n: int) -> list[MonthKey]:
    first = MonthKey.parse(start)
    return [first.shift(i) for i in range(n)]


# --------------------------------------------------
# MonthKey / Series
# --------------------------------------------------
def test_month_key_ordering_and_shift() -> None:
    assert MonthKey(2019, 12) < MonthKey(2020, 1)
    assert MonthKey(2020, 1).shift(-1) == MonthKey(2019, 12)
    assert MonthKey(2020, 3).shift(-12) == MonthKey(2019, 3)
    assert str(MonthKey(2020, 3)) == "2020-03"
    assert MonthKey.from_date(date(2021, 7, 30)) == MonthKey(2021, 7)
    assert MonthKey.parse("2021-07-30") == MonthKey(2021, 7)


def test_month_key_rejects_bad_month() -> None:
    with pytest.raises(ValueError):
        MonthKey(2020, 13)


def test_series_requires_strictly_increasing_keys() -> None:
    with pytest.raises(ValueError):
        Series([(MonthKey(2020, 2), 1), (MonthKey(2020, 1), 2)])
    with pytest.raises(ValueError):
        Series([(MonthKey(2020, 1), 1), (MonthKey(2020, 1), 2)])


def test_series_stores_nan_as_missing() -> None:
    s = _series({"2020-01": float("nan"), "2020-02": 0.0})
    assert s.values == (None, 0.0)
    assert list(s.present()) == [(MonthKey(2020, 2), 0.0)]


def test_series_pandas_round_trip() -> None:
    s = _series({"2020-01": 1.0, "2020-02": None})
    ps = s.to_pandas("x")
    assert ps.index.freqstr.startswith("M")
    assert math.isnan(ps.iloc[1])
    assert Series.from_pandas(ps) == s


def test_series_between() -> None:
    s = _series({"2019-12": 1.0, "2020-01": 2.0, "2020-12": 3.0, "2021-01": 4.0})
    assert s.between(MonthKey(2020, 1), MonthKey(2020, 12)).values == (2.0, 3.0)
    assert s.between(None, MonthKey(2019, 12)).values == (1.0,)


# --------------------------------------------------
# Derived metrics
# --------------------------------------------------
def test_proportion_with_zero_denominator_is_missing() -> None:
    num = _series({"2020-01": 10, "2020-02": 0, "2020-03": 5})
    den = _series({"2020-01": 20, "2020-02": 0, "2020-03": 10})

    result = proportion(num, den)

    assert result.as_dict() == {
        MonthKey(2020, 1): 0.5,
        MonthKey(2020, 2): None,
        MonthKey(2020, 3): 0.5,
    }


def test_proportion_zero_numerator_is_zero() -> None:
    result = proportion(_series({"2020-01": 0}), _series({"2020-01": 4}))
    assert result.values == (0.0,)


def test_proportion_covers_union_of_keys() -> None:
    result = proportion(_series({"2020-01": 1}), _series({"2020-01": 2, "2020-02": 2}))
    assert result.as_dict() == {MonthKey(2020, 1): 0.5, MonthKey(2020, 2): None}


def test_share_matrix() -> None:
    total = _series({"2020-01": 4})
    shares = share_matrix({"r1": _series({"2020-01": 1}), "r5": _series({"2020-01": 3})}, total)
    assert shares["r1"].values == (0.25,)
    assert shares["r5"].values == (0.75,)


def test_year_over_year_defined_only_after_lag() -> None:
    keys = _months("2020-01", 14)
    values = [100.0] * 12 + [110.0, 110.0]
    s = Series(zip(keys, values))

    yoy = year_over_year(s)

    assert yoy.keys == tuple(keys[12:])
    assert yoy.values == pytest.approx((0.10, 0.10))


def test_year_over_year_gap_yields_no_value() -> None:
    # 2020-02 is absent, so 2021-02 has no predecessor
    s = _series({"2020-01": 100.0, "2020-03": 100.0, "2021-01": 105.0, "2021-02": 106.0, "2021-03": 90.0})

    yoy = year_over_year(s)

    assert yoy.keys == (MonthKey(2021, 1), MonthKey(2021, 3))
    assert yoy.values == pytest.approx((0.05, -0.10))


def test_year_over_year_missing_or_zero_prior_is_missing() -> None:
    s = _series({"2020-01": 0.0, "2020-02": None, "2021-01": 5.0, "2021-02": 5.0})
    assert year_over_year(s).values == (None, None)


def test_year_over_year_rejects_bad_lag() -> None:
    with pytest.raises(ValueError):
        year_over_year(_series({"2020-01": 1.0}), lag=0)


def test_windowed_average() -> None:
    s = Series(zip(_months("2020-01", 5), [1.0, None, 3.0, 5.0, 7.0]))
    assert windowed_average(s, 0, 2) == 2.0
    assert windowed_average(s, 3, 99) == 6.0
    assert windowed_average(s, 1, 1) is None
    assert windowed_average(Series(), 0, 3) is None


def test_rolling_average_uses_calendar_window() -> None:
    s = _series({"2020-01": 1.0, "2020-02": 3.0, "2020-05": 5.0})
    rolled = rolling_average(s, window=2)
    assert rolled.values == (1.0, 2.0, 5.0)
    assert rolling_average(s, window=2, min_periods=2).values == (None, 2.0, None)


# --------------------------------------------------
# Alignment
# --------------------------------------------------
def test_align_builds_shared_timeline() -> None:
    a = _series({"2020-01": 1, "2020-03": 3})
    b = _series({"2020-02": 2})

    a2, b2 = align(a, b)

    expected_keys = (MonthKey(2020, 1), MonthKey(2020, 2), MonthKey(2020, 3))
    assert a2.keys == b2.keys == expected_keys
    assert a2.values == (1.0, None, 3.0)
    assert b2.values == (None, 2.0, None)


def test_align_is_idempotent() -> None:
    a = _series({"2020-01": 1, "2020-03": 3})
    b = _series({"2020-02": 2, "2021-01": None})
    once = align(a, b)
    assert align(*once) == once
    assert len(once[0]) == len(union_keys(a, b)) == 4


def test_aligned_frame_to_frame() -> None:
    frame = align_named({"a": _series({"2020-01": 1}), "b": _series({"2020-02": 2})})

    df = frame.to_frame()

    assert list(df.columns) == ["month", "a", "b"]
    assert df["month"].tolist() == ["2020-01", "2020-02"]
    assert pd.isna(df.loc[1, "a"])
    assert df.loc[1, "b"] == 2.0
    assert frame.records() == [
        {"month": "2020-01", "a": 1.0, "b": None},
        {"month": "2020-02", "a": None, "b": 2.0},
    ]


def test_align_named_empty() -> None:
    frame = align_named({})
    assert len(frame) == 0
    assert frame.to_frame().columns.tolist() == ["month"]


def test_proportion_stays_within_unit_interval_for_random_counts() -> None:
    rng = random.Random(20240601)
    keys = _months("2018-01", 60)
    for _ in range(50):
        den_values = [rng.randint(0, 500) for _ in keys]
        num_values = [rng.randint(0, d) for d in den_values]

        result = proportion(Series(zip(keys, num_values)), Series(zip(keys, den_values)))

        assert result.keys == tuple(keys)
        for (_, value), d in zip(result, den_values):
            if d == 0:
                assert value is None
            else:
                assert value is not None and 0.0 <= value <= 1.0


def test_rolling_average_of_empty_series() -> None:
    assert rolling_average(Series(), window=3) == Series()


def test_year_over_year_on_pandas_matches_pct_change_for_contiguous_series() -> None:
    keys = _months("2019-01", 30)
    values = [100.0 + i * 1.5 for i in range(30)]
    s = Series(zip(keys, values))

    expected = s.to_pandas().pct_change(12).dropna()

    yoy = year_over_year(s)
    assert yoy.keys == Series.from_pandas(expected).keys
    assert yoy.values == pytest.approx(tuple(expected.to_numpy()))
