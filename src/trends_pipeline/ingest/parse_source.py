"""Streaming parser for delimited source files.

`iter_raw_records` reads a header row and then yields one `RawRecord` per
well-formed data row without ever holding the whole file in memory. Rows
with the wrong number of fields or undecodable bytes are dropped and counted
on a caller-owned `ParseStats`; the scan always continues.
"""

from __future__ import annotations

import csv
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from trends_pipeline.errors import RowMalformed, SourceUnavailable

log = logging.getLogger(__name__)

RawRecord = dict[str, str]

# csv fields can legitimately be long (review text, product details)
csv.field_size_limit(16 * 1024 * 1024)


@dataclass
class ParseStats:
    """Diagnostics accumulated while scanning one source.

    Attributes:
        rows_parsed: Data rows yielded as records.
        rows_skipped: Data rows dropped as malformed.
        skip_reasons: Count of skipped rows per reason.
    """
    rows_parsed: int = 0
    rows_skipped: int = 0
    skip_reasons: Counter[str] = field(default_factory=Counter)

    def skip(self, reason: str) -> None:
        self.rows_skipped += 1
        self.skip_reasons[reason] += 1


def _has_undecodable(cells: list[str]) -> bool:
    # surrogateescape maps each undecodable byte to U+DC80..U+DCFF
    return any("\udc80" <= ch <= "\udcff" for cell in cells for ch in cell)


def _check_row(cells: list[str], header: list[str], line_no: int) -> None:
    """Raise `RowMalformed` when a row cannot be mapped onto the header."""
    if len(cells) != len(header):
        raise RowMalformed(
            f"line {line_no}: expected {len(header)} fields, got {len(cells)}",
            reason="structure",
        )
    if _has_undecodable(cells):
        raise RowMalformed(f"line {line_no}: undecodable bytes", reason="encoding")


def iter_raw_records(
    path: Path,
    stats: ParseStats,
    *,
    delimiter: str = ",",
    encoding: str = "utf-8",
) -> Iterator[RawRecord]:
    """Lazily yield rows of a delimited file as column -> cell dicts.

    Args:
        path: Local file to read (see `fetch_source.resolve_source`).
        stats: Caller-owned diagnostics, updated as rows are consumed.
        delimiter: Field delimiter.
        encoding: Text encoding; undecodable bytes mark a row as malformed.

    Yields:
        One `RawRecord` per well-formed data row. Blank lines are ignored
        and are not counted as malformed.

    Raises:
        SourceUnavailable: if the file cannot be opened.
    """
    try:
        fh = open(path, newline="", encoding=encoding, errors="surrogateescape")
    except OSError as e:
        raise SourceUnavailable(str(path), e.strerror or str(e)) from e

    with fh:
        reader = csv.reader(fh, delimiter=delimiter)
        header: list[str] | None = None

        while True:
            try:
                cells = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                # a broken quoted field; the reader resumes on the next line
                if header is None:
                    stats.skip("header")
                    log.warning("%s: unreadable header line %d: %s", path, reader.line_num, e)
                else:
                    stats.skip("structure")
                    log.debug("%s: skipped row: %s", path, e)
                continue

            if not cells or (len(cells) == 1 and not cells[0].strip()):
                continue

            if header is None:
                header = [c.lstrip("\ufeff").strip() for c in cells]
                continue

            try:
                _check_row(cells, header, reader.line_num)
            except RowMalformed as e:
                stats.skip(e.reason)
                log.debug("%s: skipped row: %s", path, e)
                continue

            stats.rows_parsed += 1
            yield dict(zip(header, cells))

    if header is None:
        log.info("%s: no header row; source is empty", path)
