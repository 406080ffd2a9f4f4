"""Field normalization: typed values from raw string cells.

Every parser here is total over its input: a missing, blank or garbled cell
comes back as ``None`` and never as ``0`` or an empty string, so "absent"
and "zero" stay distinguishable downstream. The only exception raised is
`UndeclaredFieldError`, which signals a programming mistake (asking for a
column the source spec never declared), not bad data.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping

import pandas as pd

from trends_pipeline.errors import UndeclaredFieldError
from trends_pipeline.models import SourceSpec, ValueKind

log = logging.getLogger(__name__)

# Tried in order with pd.to_datetime after the epoch and slash checks. Slash
# forms with two small numbers (3/4/2020) are absent: _parse_slash_date
# handles them.
DATE_FORMATS = (
    "ISO8601",
    "%Y/%m/%d",
    "%Y-%m",
    "%Y/%m",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%m %d, %Y",  # Amazon reviewTime, e.g. "01 5, 2018"
)

SLASH_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})(?:[ T].*)?$")
EPOCH_RE = re.compile(r"^\d{10}(?:\d{3})?(?:\.\d+)?$")
NUMBER_TOKEN_RE = re.compile(r"-?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?|-?\.\d+")
ACCOUNTING_NEGATIVE_RE = re.compile(r"^\((.*)\)$")
MINUS_SIGNS = ("-", "\u2212")


def _parse_slash_date(s: str) -> date | None:
    m = SLASH_DATE_RE.match(s)
    if not m:
        return None
    a, b, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
    if a > 12 and b <= 12:
        day, month = a, b
    elif b > 12 and a <= 12:
        month, day = a, b
    elif a == b:
        month = day = a
    else:
        # 03/04/2020 reads as March 4th or 3rd April; refuse to guess
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_epoch(s: str) -> date | None:
    seconds = float(s)
    if len(s.split(".")[0]) == 13:
        seconds /= 1000.0
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).date()
    except (OverflowError, OSError, ValueError):
        return None


def parse_date(raw: Any) -> date | None:
    """Parse a calendar day from a raw cell.

    Accepts ISO dates and datetimes (with or without offset), ``YYYY/MM/DD``,
    year-month strings (first day of the month), month-name forms, the
    ``MM DD, YYYY`` review form, Unix epoch seconds or milliseconds, and
    slash dates whose day/month reading is unambiguous.

    Returns:
        A `date`, or ``None`` when the input is missing, unparseable or
        ambiguous.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    s = str(raw).strip()
    if not s:
        return None

    if EPOCH_RE.match(s):
        return _parse_epoch(s)

    if "/" in s and SLASH_DATE_RE.match(s):
        return _parse_slash_date(s)

    for fmt in DATE_FORMATS:
        ts = pd.to_datetime(s, format=fmt, errors="coerce")
        if not pd.isna(ts):
            return ts.date()
    return None


def parse_number(raw: Any, accounting: bool = False) -> float | None:
    """Parse a number from a decorated cell such as ``"$1,299.00"``.

    Currency symbols, thousands separators, units and surrounding words are
    ignored as long as exactly one number remains. Ranges (``"$10 - $20"``)
    and cells with several numbers are not guessed.

    Args:
        raw: Raw cell value.
        accounting: Read ``"(12.50)"`` as ``-12.5``.

    Returns:
        A finite float, or ``None`` when no single number can be read.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        v = float(raw)
        return v if math.isfinite(v) else None

    s = str(raw).strip()
    if not s:
        return None

    try:
        v = float(s)
        return v if math.isfinite(v) else None
    except ValueError:
        pass

    negative = False
    if accounting:
        m = ACCOUNTING_NEGATIVE_RE.match(s)
        if m:
            negative = True
            s = m.group(1).strip()

    matches = list(NUMBER_TOKEN_RE.finditer(s))
    if len(matches) != 1:
        return None
    token = matches[0]
    # a sign split from its digits by a currency symbol or space: "-$5", "$−5", "- 5"
    prefix = s[: token.start()].strip()
    if prefix[:1] in MINUS_SIGNS or prefix[-1:] in MINUS_SIGNS:
        negative = True
    v = float(token.group().replace(",", ""))
    return -abs(v) if negative else v


def assemble_text(raw: Mapping[str, Any], fields: Iterable[str], sep: str = " ") -> str:
    """Join the present text fields of a row, lower-cased, for classification."""
    parts: list[str] = []
    for name in fields:
        value = raw.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            parts.append(text)
    return sep.join(parts).lower()


@dataclass(frozen=True)
class TypedRecord:
    """A raw row plus the fields resolved for aggregation.

    Attributes:
        raw: The original column -> cell mapping.
        date: Calendar day, or None when no date column parsed.
        value: Numeric value, or None when absent or unparseable.
        text: Lower-cased classification text (may be empty).
    """
    raw: Mapping[str, Any] = field(repr=False)
    date: date | None
    value: float | None
    text: str = ""


class FieldNormalizer:
    """Turns `RawRecord`s of one source into `TypedRecord`s.

    Args:
        spec: The source spec declaring date, value and text columns.
    """

    def __init__(self, spec: SourceSpec) -> None:
        self.spec = spec
        self._accounting = spec.value_kind == ValueKind.CURRENCY

    def field(self, raw: Mapping[str, Any], name: str) -> str | None:
        """Return the stripped cell for a declared column, or None if blank.

        Raises:
            UndeclaredFieldError: if `name` is not declared by the source spec.
        """
        if name not in self.spec.declared_fields:
            raise UndeclaredFieldError(
                f"field {name!r} is not declared for source {self.spec.name!r}"
            )
        value = raw.get(name)
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def date_of(self, raw: Mapping[str, Any]) -> date | None:
        """Return the first candidate date column that parses."""
        for name in self.spec.date_fields:
            parsed = parse_date(self.field(raw, name))
            if parsed is not None:
                return parsed
        return None

    def value_of(self, raw: Mapping[str, Any]) -> float | None:
        if not self.spec.value_field:
            return None
        return parse_number(self.field(raw, self.spec.value_field), accounting=self._accounting)

    def to_typed(self, raw: Mapping[str, Any]) -> TypedRecord:
        return TypedRecord(
            raw=raw,
            date=self.date_of(raw),
            value=self.value_of(raw),
            text=assemble_text(raw, self.spec.text_fields),
        )
