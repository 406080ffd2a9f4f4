"""Monthly bucketing of typed records per category.

The fold state lives in a caller-owned `MonthlyAccumulator`: one per source
and per pass, so concurrent sources never share mutable state. Results are
only handed out through `MonthlyAccumulator.finalize`, after which the
accumulator refuses further updates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from trends_pipeline.aggregate.series import MonthKey, Series
from trends_pipeline.classify.classifier import Classifier
from trends_pipeline.clean.normalize import TypedRecord
from trends_pipeline.models import YearRange

log = logging.getLogger(__name__)

ALL_RECORDS = "__all__"


@dataclass
class Bucket:
    """Running statistics for one (category, month) pair."""
    count: int = 0
    value_sum: float = 0.0
    value_count: int = 0

    def add(self, value: float | None) -> None:
        self.count += 1
        if value is not None:
            self.value_sum += value
            self.value_count += 1

    @property
    def mean(self) -> float | None:
        if self.value_count == 0:
            return None
        return self.value_sum / self.value_count


@dataclass(frozen=True)
class CategorySeries:
    """Finalized monthly statistics for one category.

    Attributes:
        category: Category id.
        counts: Records per month.
        means: Mean numeric value per month (missing where no values).
        total_count: Records across all months.
        total_mean: Mean value across all months, or None.
    """
    category: str
    counts: Series
    means: Series
    total_count: int
    total_mean: float | None


@dataclass(frozen=True)
class AggregationResult:
    """Immutable output of one aggregation pass over a source.

    Attributes:
        categories: Category id -> finalized series. Always has `ALL_RECORDS`.
        records_seen: Typed records offered to the accumulator.
        records_bucketed: Records placed on the timeline (dated, in range).
        undated: Records skipped because no date resolved.
        filtered_out: Dated records outside the year range.
        valueless: Bucketed records without a numeric value.
    """
    categories: Mapping[str, CategorySeries]
    records_seen: int
    records_bucketed: int
    undated: int
    filtered_out: int
    valueless: int

    def counts(self, category: str = ALL_RECORDS) -> Series:
        return self.categories[category].counts

    def means(self, category: str = ALL_RECORDS) -> Series:
        return self.categories[category].means

    @property
    def is_empty(self) -> bool:
        return self.records_bucketed == 0


class MonthlyAccumulator:
    """Fold state for bucketing one source.

    Args:
        categories: Category ids that should appear in the result even when
            no record matched them (their counts are then all zero).
    """

    def __init__(self, categories: Iterable[str] = ()) -> None:
        self._buckets: dict[str, dict[MonthKey, Bucket]] = {ALL_RECORDS: {}}
        for cat in categories:
            self._buckets.setdefault(cat, {})
        self._finalized = False
        self.records_seen = 0
        self.records_bucketed = 0
        self.undated = 0
        self.filtered_out = 0
        self.valueless = 0

    def add(
        self,
        record: TypedRecord,
        categories: Iterable[str] = (),
        year_range: YearRange | None = None,
    ) -> bool:
        """Place one record in the `ALL_RECORDS` bucket and every category bucket.

        Returns:
            True when the record reached the timeline.

        Raises:
            RuntimeError: if the accumulator has already been finalized.
        """
        if self._finalized:
            raise RuntimeError("accumulator already finalized")

        self.records_seen += 1
        if record.date is None:
            self.undated += 1
            return False
        if year_range is not None and not year_range.contains(record.date.year):
            self.filtered_out += 1
            return False

        key = MonthKey.from_date(record.date)
        targets = {ALL_RECORDS, *categories}
        for cat in targets:
            by_month = self._buckets.setdefault(cat, {})
            bucket = by_month.get(key)
            if bucket is None:
                bucket = by_month[key] = Bucket()
            bucket.add(record.value)

        self.records_bucketed += 1
        if record.value is None:
            self.valueless += 1
        return True

    def finalize(self) -> AggregationResult:
        """Freeze the buckets into per-category series.

        Every category is reported over the months observed in this source;
        a month where the category had no record has a count of zero and a
        missing mean.
        """
        if self._finalized:
            raise RuntimeError("accumulator already finalized")
        self._finalized = True

        timeline = sorted(self._buckets[ALL_RECORDS])
        categories: dict[str, CategorySeries] = {}
        for cat, by_month in self._buckets.items():
            counts = []
            means = []
            total = Bucket()
            for key in timeline:
                bucket = by_month.get(key)
                if bucket is None:
                    counts.append((key, 0))
                    means.append((key, None))
                    continue
                counts.append((key, bucket.count))
                means.append((key, bucket.mean))
                total.count += bucket.count
                total.value_sum += bucket.value_sum
                total.value_count += bucket.value_count
            categories[cat] = CategorySeries(
                category=cat,
                counts=Series(counts),
                means=Series(means),
                total_count=total.count,
                total_mean=total.mean,
            )

        self._buckets = {}
        log.debug(
            "Finalized %d categories over %d months (%d records bucketed)",
            len(categories), len(timeline), self.records_bucketed,
        )
        return AggregationResult(
            categories=MappingProxyType(categories),
            records_seen=self.records_seen,
            records_bucketed=self.records_bucketed,
            undated=self.undated,
            filtered_out=self.filtered_out,
            valueless=self.valueless,
        )


def accumulate(
    records: Iterable[TypedRecord],
    accumulator: MonthlyAccumulator,
    classifier: Classifier | None = None,
    year_range: YearRange | None = None,
) -> MonthlyAccumulator:
    """Fold `records` into `accumulator` and return it.

    The year filter is checked before classification, so out-of-range
    records never touch any bucket.
    """
    for record in records:
        cats: Iterable[str] = ()
        if (
            classifier is not None
            and record.date is not None
            and (year_range is None or year_range.contains(record.date.year))
        ):
            cats = classifier(record)
        accumulator.add(record, cats, year_range)
    return accumulator


def aggregate_records(
    records: Iterable[TypedRecord],
    classifier: Classifier | None = None,
    year_range: YearRange | None = None,
    categories: Iterable[str] = (),
) -> AggregationResult:
    """Bucket a stream of records by month and category in one pass.

    Args:
        records: Typed records of a single source.
        classifier: Returns the categories of a record; without one only the
            `ALL_RECORDS` pseudo-category is produced.
        year_range: Optional inclusive year filter.
        categories: Category ids to report even if nothing matched them.

    Returns:
        The finalized `AggregationResult`.
    """
    acc = MonthlyAccumulator(categories)
    accumulate(records, acc, classifier, year_range)
    return acc.finalize()
