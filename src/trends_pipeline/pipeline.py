"""Per-source aggregation runs and the concurrent multi-source driver.

Each source goes through parse -> normalize -> classify -> aggregate in its
own task with its own accumulator. `run_sources` executes tasks with Dask
and waits for all of them; a failing source only affects its own
`SourceResult`.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, cast

from dask import compute, delayed  # type: ignore[attr-defined]

from trends_pipeline.aggregate.monthly import AggregationResult, aggregate_records
from trends_pipeline.classify.classifier import Classifier
from trends_pipeline.clean.normalize import FieldNormalizer
from trends_pipeline.errors import AggregationEmpty, SourceUnavailable, TrendsPipelineError
from trends_pipeline.ingest.fetch_source import resolve_source
from trends_pipeline.ingest.parse_source import ParseStats, iter_raw_records
from trends_pipeline.models import SourceSpec, YearRange

log = logging.getLogger(__name__)


class SourceStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceTask:
    """One source plus how its records are classified and filtered.

    Attributes:
        spec: Where the source lives and which columns to read.
        classifier: Category function; None buckets only all records.
        categories: Category ids reported even when nothing matched.
        year_range: Inclusive year filter applied before bucketing.
    """
    spec: SourceSpec
    classifier: Classifier | None = None
    categories: tuple[str, ...] = ()
    year_range: YearRange | None = None

    @property
    def name(self) -> str:
        return self.spec.name


@dataclass(frozen=True)
class SourceResult:
    """Outcome of one source run.

    Attributes:
        name: Source name.
        status: OK, EMPTY (no records within filters), UNAVAILABLE (could
            not be opened) or FAILED (unexpected error in this source).
        rows_parsed: Well-formed rows read.
        rows_skipped: Malformed rows dropped.
        skip_reasons: Skipped rows per reason.
        aggregation: Finalized aggregation; None unless OK or EMPTY.
        error: Error message for UNAVAILABLE and FAILED.
    """
    name: str
    status: SourceStatus
    rows_parsed: int = 0
    rows_skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    aggregation: AggregationResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SourceStatus.OK

    def require_data(self) -> AggregationResult:
        """Return the aggregation or raise the error matching the status.

        Raises:
            SourceUnavailable: when the source could not be opened.
            AggregationEmpty: when no record fell inside the filters.
            TrendsPipelineError: when the run failed unexpectedly.
        """
        if self.status == SourceStatus.UNAVAILABLE:
            raise SourceUnavailable(self.name, self.error or "unavailable")
        if self.status == SourceStatus.FAILED:
            raise TrendsPipelineError(f"source {self.name} failed: {self.error}")
        if self.status == SourceStatus.EMPTY or self.aggregation is None:
            raise AggregationEmpty(self.name)
        return self.aggregation

    def summary(self) -> str:
        bucketed = self.aggregation.records_bucketed if self.aggregation else 0
        return (
            f"{self.name}: {self.status.value} parsed={self.rows_parsed} "
            f"skipped={self.rows_skipped} bucketed={bucketed}"
        )


def run_source(task: SourceTask, data_dir: Path, cache_dir: Path) -> SourceResult:
    """Parse and aggregate one source, never raising.

    Args:
        task: Source task to run.
        data_dir: Base directory for relative source paths.
        cache_dir: Cache directory for remote sources.

    Returns:
        A `SourceResult`; errors are reported through its status.
    """
    stats = ParseStats()
    log.info("Aggregating source %s (%s)", task.name, task.spec.location)

    try:
        path = resolve_source(task.spec.location, data_dir, cache_dir)
        normalizer = FieldNormalizer(task.spec)
        records = (
            normalizer.to_typed(raw)
            for raw in iter_raw_records(path, stats, delimiter=task.spec.delimiter)
        )
        aggregation = aggregate_records(
            records,
            classifier=task.classifier,
            year_range=task.year_range,
            categories=task.categories,
        )
    except SourceUnavailable as e:
        log.error("Source %s unavailable: %s", task.name, e.reason)
        return SourceResult(
            name=task.name,
            status=SourceStatus.UNAVAILABLE,
            rows_parsed=stats.rows_parsed,
            rows_skipped=stats.rows_skipped,
            skip_reasons=dict(stats.skip_reasons),
            error=e.reason,
        )
    except Exception as e:  # isolate this source from its siblings
        log.exception("Source %s failed", task.name)
        return SourceResult(
            name=task.name,
            status=SourceStatus.FAILED,
            rows_parsed=stats.rows_parsed,
            rows_skipped=stats.rows_skipped,
            skip_reasons=dict(stats.skip_reasons),
            error=f"{type(e).__name__}: {e}",
        )

    if stats.rows_skipped:
        log.warning(
            "Source %s: skipped %d malformed rows (%s)",
            task.name,
            stats.rows_skipped,
            ", ".join(f"{k}={v}" for k, v in sorted(stats.skip_reasons.items())),
        )

    status = SourceStatus.EMPTY if aggregation.is_empty else SourceStatus.OK
    result = SourceResult(
        name=task.name,
        status=status,
        rows_parsed=stats.rows_parsed,
        rows_skipped=stats.rows_skipped,
        skip_reasons=dict(stats.skip_reasons),
        aggregation=aggregation,
    )
    if status == SourceStatus.EMPTY:
        log.warning(
            "Source %s produced no records in range (undated=%d filtered_out=%d)",
            task.name, aggregation.undated, aggregation.filtered_out,
        )
    log.info("%s", result.summary())
    return result


def run_sources(
    tasks: Iterable[SourceTask],
    data_dir: Path,
    cache_dir: Path,
    scheduler: str = "threads",
) -> dict[str, SourceResult]:
    """Run independent source tasks concurrently and wait for all of them.

    Args:
        tasks: Source tasks with unique names.
        data_dir: Base directory for relative source paths.
        cache_dir: Cache directory for remote sources.
        scheduler: Dask scheduler name ("threads", "processes", "sync").

    Returns:
        Source name -> result, in task order. Failed sources are present
        with a non-OK status; they never prevent sibling results.

    Raises:
        ValueError: if two tasks share a name.
    """
    tasks = list(tasks)
    names = Counter(t.name for t in tasks)
    dupes = sorted(n for n, c in names.items() if c > 1)
    if dupes:
        raise ValueError(f"duplicate source names: {', '.join(dupes)}")
    if not tasks:
        return {}

    parts = [
        delayed(run_source, pure=False)(t, data_dir, cache_dir)
        for t in tasks
    ]
    # `compute` is untyped in our environment; cast to Any before calling
    results = cast(Any, compute)(*parts, scheduler=scheduler)

    by_name = {r.name: r for r in results}
    failed = [r.name for r in results if r.status in (SourceStatus.UNAVAILABLE, SourceStatus.FAILED)]
    if failed:
        log.warning("Sources not aggregated: %s", ", ".join(failed))
    return {t.name: by_name[t.name] for t in tasks}
