"""Named joint analyses built on the aggregation engine.

Each view describes which sources to aggregate and how, runs them through
`pipeline.run_sources` (the only join point), then derives and aligns the
metrics it reports. A view never hides source failures: its `sources`
mapping carries every `SourceResult`, and metrics from a failed or empty
source are simply absent from the aligned frame.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from trends_pipeline.aggregate.align import AlignedFrame, align_named
from trends_pipeline.aggregate.derived import (
    DEFAULT_YOY_LAG,
    proportion,
    rolling_average,
    share_matrix,
    year_over_year,
)
from trends_pipeline.aggregate.monthly import ALL_RECORDS, Bucket
from trends_pipeline.aggregate.series import MonthKey, Series
from trends_pipeline.classify.classifier import (
    KeywordClassifier,
    combine,
    exact_field_classifier,
    has_value_classifier,
    rating_band_classifier,
)
from trends_pipeline.classify.rules import DEFAULT_CATEGORY_RULES, PRODUCT_TYPE_LABELS
from trends_pipeline.clean.normalize import FieldNormalizer, parse_number
from trends_pipeline.errors import SourceUnavailable
from trends_pipeline.ingest.fetch_source import resolve_source
from trends_pipeline.ingest.parse_source import ParseStats, iter_raw_records
from trends_pipeline.models import CategoryRule, SourceSpec, YearRange
from trends_pipeline.pipeline import SourceResult, SourceStatus, SourceTask, run_sources

log = logging.getLogger(__name__)

RATED = "rated"
ONE_STAR = "one_star"
STAR_LEVELS = (1, 2, 3, 4, 5)


@dataclass(frozen=True)
class ViewResult:
    """Aligned metrics of one view plus the outcome of every source it used."""
    name: str
    frame: AlignedFrame
    sources: Mapping[str, SourceResult]

    @property
    def complete(self) -> bool:
        """True when every source aggregated at least one record."""
        return all(r.status == SourceStatus.OK for r in self.sources.values())

    @property
    def failed_sources(self) -> list[str]:
        return [
            n for n, r in self.sources.items()
            if r.status in (SourceStatus.UNAVAILABLE, SourceStatus.FAILED)
        ]


def _range_bounds(year_range: YearRange | None) -> tuple[MonthKey | None, MonthKey | None]:
    if year_range is None:
        return None, None
    start = MonthKey(year_range.min_year, 1) if year_range.min_year is not None else None
    end = MonthKey(year_range.max_year, 12) if year_range.max_year is not None else None
    return start, end


def _view(name: str, metrics: Mapping[str, Series], sources: Mapping[str, SourceResult]) -> ViewResult:
    frame = align_named(metrics)
    log.info("View %s: %d metrics over %d months", name, len(metrics), len(frame))
    return ViewResult(name=name, frame=frame, sources=dict(sources))


def category_trends(
    reviews: SourceSpec,
    data_dir: Path,
    cache_dir: Path,
    field_name: str = "product_type",
    categories: Iterable[str] = tuple(PRODUCT_TYPE_LABELS),
    year_range: YearRange | None = None,
) -> ViewResult:
    """Monthly review counts per exact product type (e.g. dress vs professional)."""
    cats = tuple(c.lower() for c in categories)
    task = SourceTask(
        spec=reviews,
        classifier=exact_field_classifier(field_name, cats),
        categories=cats,
        year_range=year_range,
    )
    results = run_sources([task], data_dir, cache_dir)
    metrics: dict[str, Series] = {}
    agg = results[reviews.name].aggregation
    if agg is not None:
        for cat in cats:
            metrics[cat] = agg.counts(cat)
    return _view("category_trends", metrics, results)


def one_star_vs_inflation(
    reviews: SourceSpec,
    cpi: SourceSpec,
    data_dir: Path,
    cache_dir: Path,
    year_range: YearRange | None = None,
    lag: int = DEFAULT_YOY_LAG,
) -> ViewResult:
    """Share of 1-star ratings among rated reviews next to CPI year-over-year change.

    The review source is filtered to `year_range` before bucketing. The CPI
    source is aggregated unfiltered so the first months of the range still
    have a 12-month predecessor, and its YoY series is then restricted to
    the same range.
    """
    review_task = SourceTask(
        spec=reviews,
        classifier=combine(
            has_value_classifier(RATED),
            rating_band_classifier(levels=(1,), labels={1: ONE_STAR}),
        ),
        categories=(RATED, ONE_STAR),
        year_range=year_range,
    )
    cpi_task = SourceTask(spec=cpi)
    results = run_sources([review_task, cpi_task], data_dir, cache_dir)

    metrics: dict[str, Series] = {}
    review_agg = results[reviews.name].aggregation
    if review_agg is not None:
        metrics["prop_1star"] = proportion(review_agg.counts(ONE_STAR), review_agg.counts(RATED))
    cpi_agg = results[cpi.name].aggregation
    if cpi_agg is not None:
        start, end = _range_bounds(year_range)
        metrics["inflation_yoy"] = year_over_year(cpi_agg.means(ALL_RECORDS), lag=lag).between(start, end)
    return _view("one_star_vs_inflation", metrics, results)


def star_rating_mix(
    reviews: SourceSpec,
    data_dir: Path,
    cache_dir: Path,
    year_range: YearRange | None = None,
) -> ViewResult:
    """Monthly share of each star level among rated reviews."""
    levels = {lvl: f"r{lvl}" for lvl in STAR_LEVELS}
    task = SourceTask(
        spec=reviews,
        classifier=combine(has_value_classifier(RATED), rating_band_classifier(levels, levels)),
        categories=(RATED, *levels.values()),
        year_range=year_range,
    )
    results = run_sources([task], data_dir, cache_dir)
    metrics: dict[str, Series] = {}
    agg = results[reviews.name].aggregation
    if agg is not None:
        metrics.update(
            share_matrix({cat: agg.counts(cat) for cat in levels.values()}, agg.counts(RATED))
        )
    return _view("star_rating_mix", metrics, results)


def category_share(
    source: SourceSpec,
    data_dir: Path,
    cache_dir: Path,
    rules: Iterable[CategoryRule],
    category: str,
    year_range: YearRange | None = None,
    rolling_window: int | None = None,
) -> ViewResult:
    """Proportion of records per month that fall in one keyword category.

    Args:
        rolling_window: When set, also report a trailing average of the share
            over this many months.

    Raises:
        ValueError: if `category` is not one of the rule ids.
    """
    classifier = KeywordClassifier(rules)
    if category not in classifier.category_ids:
        raise ValueError(f"unknown category {category!r}")
    task = SourceTask(
        spec=source,
        classifier=classifier,
        categories=classifier.category_ids,
        year_range=year_range,
    )
    results = run_sources([task], data_dir, cache_dir)
    metrics: dict[str, Series] = {}
    agg = results[source.name].aggregation
    if agg is not None:
        share = proportion(agg.counts(category), agg.counts(ALL_RECORDS))
        metrics[f"{category}_share"] = share
        if rolling_window:
            metrics[f"{category}_share_rolling"] = rolling_average(share, rolling_window)
    return _view("category_share", metrics, results)


@dataclass(frozen=True)
class UniformItem:
    """Whole-source statistics for one wardrobe category."""
    id: str
    label: str
    count: int
    avg_price: float | None
    avg_rating: float | None


@dataclass(frozen=True)
class UniformSummary:
    """Per-category totals from product metadata, which carries no dates."""
    status: SourceStatus
    items: tuple[UniformItem, ...] = ()
    rows_parsed: int = 0
    rows_skipped: int = 0
    error: str | None = None
    skip_reasons: dict[str, int] = field(default_factory=dict)


def uniform_summary(
    metadata: SourceSpec,
    data_dir: Path,
    cache_dir: Path,
    rules: Iterable[CategoryRule] = DEFAULT_CATEGORY_RULES,
    rating_field: str = "average_rating",
) -> UniformSummary:
    """Count, average price and average rating per keyword category.

    `metadata.value_field` supplies the price and `rating_field` (which must
    be listed in `metadata.extra_fields`) the rating. Product metadata is not
    dated, so this summary is computed over the whole source instead of per
    month.
    """
    rules = tuple(rules)
    classifier = KeywordClassifier(rules)
    normalizer = FieldNormalizer(metadata)
    stats = ParseStats()
    price = {r.id: Bucket() for r in rules}
    rating = {r.id: Bucket() for r in rules}

    try:
        path = resolve_source(metadata.location, data_dir, cache_dir)
        for raw in iter_raw_records(path, stats, delimiter=metadata.delimiter):
            record = normalizer.to_typed(raw)
            rating_value = parse_number(normalizer.field(raw, rating_field))
            for cat in classifier(record):
                price[cat].add(record.value)
                rating[cat].add(rating_value)
    except SourceUnavailable as e:
        log.error("Source %s unavailable: %s", metadata.name, e.reason)
        return UniformSummary(status=SourceStatus.UNAVAILABLE, error=e.reason)
    except Exception as e:  # isolate this source from the caller
        log.exception("Source %s failed", metadata.name)
        return UniformSummary(
            status=SourceStatus.FAILED,
            rows_parsed=stats.rows_parsed,
            rows_skipped=stats.rows_skipped,
            error=f"{type(e).__name__}: {e}",
            skip_reasons=dict(stats.skip_reasons),
        )

    items = tuple(
        UniformItem(
            id=r.id,
            label=r.label,
            count=price[r.id].count,
            avg_price=price[r.id].mean,
            avg_rating=rating[r.id].mean,
        )
        for r in rules
    )
    status = SourceStatus.OK if stats.rows_parsed else SourceStatus.EMPTY
    return UniformSummary(
        status=status,
        items=items,
        rows_parsed=stats.rows_parsed,
        rows_skipped=stats.rows_skipped,
        skip_reasons=dict(stats.skip_reasons),
    )


def reviews_spec(location: str, name: str = "reviews") -> SourceSpec:
    """Column layout of the cleaned review export."""
    return SourceSpec(
        name=name,
        location=location,
        date_fields=("date_posted", "reviewTime", "timestamp"),
        value_field="rating",
        text_fields=("title", "text"),
        extra_fields=("product_type",),
    )


def cpi_spec(location: str, name: str = "cpi") -> SourceSpec:
    """Column layout of the FRED CPIAUCSL download."""
    return SourceSpec(
        name=name,
        location=location,
        date_fields=("observation_date", "DATE"),
        value_field="CPIAUCSL",
    )


def metadata_spec(location: str, name: str = "metadata") -> SourceSpec:
    """Column layout of the product metadata export (price as currency)."""
    return SourceSpec(
        name=name,
        location=location,
        date_fields=("date_first_available",),
        value_field="price",
        value_kind="currency",
        text_fields=("title", "categories", "features", "details"),
        extra_fields=("average_rating",),
    )
