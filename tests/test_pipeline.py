from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from trends_pipeline.aggregate.series import MonthKey
from trends_pipeline.classify.classifier import KeywordClassifier
from trends_pipeline.classify.rules import DEFAULT_CATEGORY_RULES
from trends_pipeline.clean.normalize import TypedRecord
from trends_pipeline.errors import AggregationEmpty, SourceUnavailable, TrendsPipelineError
from trends_pipeline.models import SourceSpec, YearRange
from trends_pipeline.pipeline import SourceStatus, SourceTask, run_source, run_sources

REVIEWS = (
    "date_posted,rating,title\n"
    "2020-01-03,5,Black trench coat\n"
    "2020-01-09,1,Jeans ripped\n"
    "2020-02-11,,Coat\n"
    "2020-02-12,4,torn,extra\n"
    ",3,undated\n"
)


def _spec(name: str, location: Path | str) -> SourceSpec:
    return SourceSpec(
        name=name,
        location=str(location),
        date_fields="date_posted",
        value_field="rating",
        text_fields="title",
    )


def test_run_source_reports_counts_and_aggregation(tmp_path: Path, write_csv: Callable[..., Path]) -> None:
    path = write_csv("reviews.csv", REVIEWS)
    classifier = KeywordClassifier(DEFAULT_CATEGORY_RULES)
    task = SourceTask(spec=_spec("reviews", path), classifier=classifier, categories=classifier.category_ids)

    result = run_source(task, tmp_path, tmp_path / "cache")

    assert result.status == SourceStatus.OK
    assert result.rows_parsed == 4
    assert result.rows_skipped == 1
    assert result.skip_reasons == {"structure": 1}
    agg = result.require_data()
    assert agg.undated == 1
    assert agg.valueless == 1
    assert agg.counts().as_dict() == {MonthKey(2020, 1): 2, MonthKey(2020, 2): 1}
    assert agg.means().get(MonthKey(2020, 1)) == 3.0
    assert agg.counts("coat").values == (1.0, 1.0)
    assert agg.counts("denim").values == (1.0, 0.0)


def test_run_source_relative_location_resolves_under_data_dir(tmp_path: Path, write_csv: Callable[..., Path]) -> None:
    write_csv("reviews.csv", REVIEWS)
    result = run_source(SourceTask(spec=_spec("reviews", "reviews.csv")), tmp_path, tmp_path / "cache")
    assert result.ok


def test_missing_source_is_unavailable(tmp_path: Path) -> None:
    result = run_source(SourceTask(spec=_spec("gone", tmp_path / "gone.csv")), tmp_path, tmp_path)

    assert result.status == SourceStatus.UNAVAILABLE
    assert result.aggregation is None
    with pytest.raises(SourceUnavailable):
        result.require_data()


def test_source_with_nothing_in_range_is_empty(tmp_path: Path, write_csv: Callable[..., Path]) -> None:
    path = write_csv("reviews.csv", REVIEWS)
    task = SourceTask(spec=_spec("reviews", path), year_range=YearRange(min_year=2030))

    result = run_source(task, tmp_path, tmp_path)

    assert result.status == SourceStatus.EMPTY
    assert result.aggregation is not None
    assert result.aggregation.filtered_out == 3
    with pytest.raises(AggregationEmpty):
        result.require_data()


def _exploding_classifier(record: TypedRecord) -> frozenset[str]:
    raise KeyError("boom")


def test_failing_source_does_not_affect_siblings(tmp_path: Path, write_csv: Callable[..., Path]) -> None:
    good = write_csv("good.csv", REVIEWS)
    bad = write_csv("bad.csv", REVIEWS)
    tasks = [
        SourceTask(spec=_spec("bad", bad), classifier=_exploding_classifier),
        SourceTask(spec=_spec("missing", tmp_path / "missing.csv")),
        SourceTask(spec=_spec("good", good)),
    ]

    results = run_sources(tasks, tmp_path, tmp_path / "cache")

    assert list(results) == ["bad", "missing", "good"]
    assert results["bad"].status == SourceStatus.FAILED
    assert "KeyError" in (results["bad"].error or "")
    assert results["missing"].status == SourceStatus.UNAVAILABLE
    assert results["good"].status == SourceStatus.OK
    with pytest.raises(TrendsPipelineError):
        results["bad"].require_data()


def test_run_sources_matches_sequential_results(tmp_path: Path, write_csv: Callable[..., Path]) -> None:
    path = write_csv("reviews.csv", REVIEWS)
    classifier = KeywordClassifier(DEFAULT_CATEGORY_RULES)
    tasks = [
        SourceTask(spec=_spec("a", path), classifier=classifier, categories=classifier.category_ids),
        SourceTask(spec=_spec("b", path), classifier=classifier, categories=classifier.category_ids),
    ]

    threaded = run_sources(tasks, tmp_path, tmp_path)
    sequential = run_sources(tasks, tmp_path, tmp_path, scheduler="sync")

    for name in ("a", "b"):
        t_agg = threaded[name].require_data()
        s_agg = sequential[name].require_data()
        for cat in t_agg.categories:
            assert t_agg.counts(cat) == s_agg.counts(cat)
            assert t_agg.means(cat) == s_agg.means(cat)


def test_run_sources_rejects_duplicate_names(tmp_path: Path) -> None:
    spec = _spec("same", tmp_path / "x.csv")
    with pytest.raises(ValueError, match="duplicate"):
        run_sources([SourceTask(spec=spec), SourceTask(spec=spec)], tmp_path, tmp_path)


def test_run_sources_with_no_tasks(tmp_path: Path) -> None:
    assert run_sources([], tmp_path, tmp_path) == {}
