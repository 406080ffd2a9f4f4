"""Exception types raised across the pipeline.

Parse-level faults (a malformed row, an unparseable cell) never surface as
exceptions; they are counted and the scan continues. Only source-level
failures and programmer errors are raised.
"""

from __future__ import annotations


class TrendsPipelineError(Exception):
    """Base class for all pipeline errors."""


class SourceUnavailable(TrendsPipelineError):
    """A source could not be opened or fetched at all.

    Attributes:
        source: Source identifier (path or URL) that failed.
        reason: Short human-readable cause.
    """

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"source unavailable: {source} ({reason})")
        self.source = source
        self.reason = reason


class RowMalformed(TrendsPipelineError):
    """A single row failed structural parsing.

    Only used internally by the parser to describe a skipped row; it is never
    raised past `iter_raw_records`.
    """

    def __init__(self, message: str, reason: str = "structure") -> None:
        super().__init__(message)
        self.reason = reason


class AggregationEmpty(TrendsPipelineError):
    """A source parsed successfully but yielded no records within the filters."""

    def __init__(self, source: str) -> None:
        super().__init__(f"no usable records in source: {source}")
        self.source = source


class UndeclaredFieldError(TrendsPipelineError):
    """A caller asked the normalizer for a field its source spec does not declare."""
