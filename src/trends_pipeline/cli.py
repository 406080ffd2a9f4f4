"""Command-line interface for running aggregations and views.

Provides subcommands: `aggregate`, `view` and `uniform`. Each command is
implemented as a `cmd_*` function that accepts an argparse namespace and
returns a process exit code.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

from trends_pipeline.aggregate.derived import proportion, year_over_year
from trends_pipeline.aggregate.monthly import ALL_RECORDS
from trends_pipeline.aggregate.align import align_named
from trends_pipeline.aggregate.series import Series
from trends_pipeline.classify.classifier import KeywordClassifier
from trends_pipeline.classify.rules import DEFAULT_CATEGORY_RULES, OFFICE_WEAR_RULE, load_rules
from trends_pipeline.config import Settings, get_settings
from trends_pipeline.logging_config import configure_logging
from trends_pipeline.models import CategoryRule, SourceSpec, YearRange
from trends_pipeline.pipeline import SourceStatus, SourceTask, run_sources
from trends_pipeline.publish import publish_to_mongo
from trends_pipeline import views

log = logging.getLogger(__name__)

EXIT_CODES = {
    SourceStatus.OK: 0,
    SourceStatus.EMPTY: 3,
    SourceStatus.UNAVAILABLE: 4,
    SourceStatus.FAILED: 5,
}

VIEW_NAMES = ("category-trends", "inflation-sentiment", "star-mix", "category-share")


# --------------------------------------------------
# Helpers
# --------------------------------------------------
def _year_range(args: argparse.Namespace, settings: Settings) -> YearRange:
    """CLI year bounds override the ones from the environment."""
    min_year = args.min_year if args.min_year is not None else settings.year_range.min_year
    max_year = args.max_year if args.max_year is not None else settings.year_range.max_year
    return YearRange(min_year=min_year, max_year=max_year)


def _rules(args: argparse.Namespace) -> tuple[CategoryRule, ...]:
    if args.rules:
        return load_rules(Path(args.rules))
    return (*DEFAULT_CATEGORY_RULES, OFFICE_WEAR_RULE)


def _write_frame(frame: pd.DataFrame, out: str | None) -> None:
    if out:
        out_path = Path(out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(out_path, index=False)
        log.info("Wrote %d rows to %s", len(frame), out_path)
    else:
        frame.to_csv(sys.stdout, index=False)


def _worst_exit_code(statuses: list[SourceStatus]) -> int:
    codes = [EXIT_CODES[s] for s in statuses]
    return max(codes) if codes else 0


# --------------------------------------------------
# AGGREGATE
# --------------------------------------------------
def cmd_aggregate(args: argparse.Namespace) -> int:
    """Aggregate one source by month and write counts, means and category shares.

    Args:
        args: argparse namespace with the source layout, `rules`, year bounds,
            `yoy` and `out`.
    """
    s = get_settings()
    spec = SourceSpec(
        name=args.name,
        location=args.source,
        date_fields=tuple(args.date_field),
        value_field=args.value_field,
        value_kind=args.value_kind,
        text_fields=tuple(args.text_field or ()),
        delimiter=args.delimiter,
    )
    classifier = None
    category_ids: tuple[str, ...] = ()
    if spec.text_fields:
        classifier = KeywordClassifier(_rules(args))
        category_ids = classifier.category_ids

    task = SourceTask(
        spec=spec,
        classifier=classifier,
        categories=category_ids,
        year_range=_year_range(args, s),
    )
    result = run_sources([task], s.data_dir, s.cache_dir)[spec.name]
    log.info("%s", result.summary())

    if result.aggregation is None:
        log.error("Source %s: %s", spec.name, result.error)
        return EXIT_CODES[result.status]

    agg = result.aggregation
    metrics: dict[str, Series] = {
        "count": agg.counts(ALL_RECORDS),
        "mean": agg.means(ALL_RECORDS),
    }
    if args.yoy:
        metrics["mean_yoy"] = year_over_year(agg.means(ALL_RECORDS), lag=s.yoy_lag)
    for cat in category_ids:
        metrics[f"{cat}_count"] = agg.counts(cat)
        metrics[f"{cat}_share"] = proportion(agg.counts(cat), agg.counts(ALL_RECORDS))

    _write_frame(align_named(metrics).to_frame(), args.out)
    return EXIT_CODES[result.status]


# --------------------------------------------------
# VIEW
# --------------------------------------------------
def _require(args: argparse.Namespace, *names: str) -> None:
    missing = [f"--{n}" for n in names if not getattr(args, n)]
    if missing:
        raise SystemExit(f"view {args.view} requires {', '.join(missing)}")


def build_view(args: argparse.Namespace, s: Settings) -> views.ViewResult:
    """Run the view selected on the command line."""
    year_range = _year_range(args, s)
    if args.view == "category-trends":
        _require(args, "reviews")
        return views.category_trends(
            views.reviews_spec(args.reviews), s.data_dir, s.cache_dir, year_range=year_range
        )
    if args.view == "inflation-sentiment":
        _require(args, "reviews", "cpi")
        return views.one_star_vs_inflation(
            views.reviews_spec(args.reviews),
            views.cpi_spec(args.cpi),
            s.data_dir,
            s.cache_dir,
            year_range=year_range,
            lag=s.yoy_lag,
        )
    if args.view == "star-mix":
        _require(args, "reviews")
        return views.star_rating_mix(
            views.reviews_spec(args.reviews), s.data_dir, s.cache_dir, year_range=year_range
        )
    if args.view == "category-share":
        _require(args, "metadata")
        return views.category_share(
            views.metadata_spec(args.metadata),
            s.data_dir,
            s.cache_dir,
            rules=_rules(args),
            category=args.category,
            year_range=year_range,
            rolling_window=args.rolling,
        )
    raise SystemExit(2)


def cmd_view(args: argparse.Namespace) -> int:
    """Run a named view, write its aligned frame and optionally publish it."""
    s = get_settings()
    result = build_view(args, s)

    for source in result.sources.values():
        log.info("%s", source.summary())
    _write_frame(result.frame.to_frame(), args.out)

    if args.publish:
        if result.failed_sources:
            log.error("Not publishing %s: sources failed: %s", result.name, result.failed_sources)
        else:
            publish_to_mongo(result, s)

    return _worst_exit_code([r.status for r in result.sources.values()])


# --------------------------------------------------
# UNIFORM
# --------------------------------------------------
def cmd_uniform(args: argparse.Namespace) -> int:
    """Print count, average price and average rating per wardrobe category."""
    s = get_settings()
    summary = views.uniform_summary(
        views.metadata_spec(args.metadata),
        s.data_dir,
        s.cache_dir,
        rules=_rules(args),
    )
    if summary.status in (SourceStatus.UNAVAILABLE, SourceStatus.FAILED):
        log.error("Metadata source: %s", summary.error)
        return EXIT_CODES[summary.status]

    frame = pd.DataFrame(
        [
            {
                "id": item.id,
                "label": item.label,
                "count": item.count,
                "avg_price": item.avg_price,
                "avg_rating": item.avg_rating,
            }
            for item in summary.items
        ]
    )
    _write_frame(frame, args.out)
    return EXIT_CODES[summary.status]


# --------------------------------------------------
# CLI
# --------------------------------------------------
def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--min-year", type=int, default=None)
    p.add_argument("--max-year", type=int, default=None)
    p.add_argument("--rules", default=None, help="JSON file of category rules")
    p.add_argument("--out", default=None, help="CSV output path (stdout if omitted)")


def build_parser() -> argparse.ArgumentParser:
    """Build and return the top-level argument parser for the CLI.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    p = argparse.ArgumentParser(prog="trends-pipeline")
    p.add_argument("--log-file", default=None)
    sub = p.add_subparsers(dest="cmd", required=True)

    p_agg = sub.add_parser("aggregate")
    p_agg.add_argument("source")
    p_agg.add_argument("--name", default="source")
    p_agg.add_argument("--date-field", action="append", required=True)
    p_agg.add_argument("--value-field", default=None)
    p_agg.add_argument("--value-kind", choices=["number", "currency"], default="number")
    p_agg.add_argument("--text-field", action="append", default=None)
    p_agg.add_argument("--delimiter", default=",")
    p_agg.add_argument("--yoy", action="store_true")
    _add_common(p_agg)

    p_view = sub.add_parser("view")
    p_view.add_argument("view", choices=VIEW_NAMES)
    p_view.add_argument("--reviews", default=None)
    p_view.add_argument("--cpi", default=None)
    p_view.add_argument("--metadata", default=None)
    p_view.add_argument("--category", default=OFFICE_WEAR_RULE.id)
    p_view.add_argument("--rolling", type=int, default=None)
    p_view.add_argument("--publish", action="store_true")
    _add_common(p_view)

    p_uniform = sub.add_parser("uniform")
    p_uniform.add_argument("metadata")
    _add_common(p_uniform)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entry point: parse args, configure logging and dispatch commands."""
    args = build_parser().parse_args(argv)
    s = get_settings()
    # CSV output may go to stdout, so console logs go to stderr
    configure_logging(
        Path(args.log_file) if args.log_file else None, s.log_level, stream=sys.stderr
    )

    if args.cmd == "aggregate":
        return cmd_aggregate(args)
    if args.cmd == "view":
        return cmd_view(args)
    if args.cmd == "uniform":
        return cmd_uniform(args)
    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())
