"""Set-valued classification of typed records.

Keyword matching is a coarse heuristic: a record matches a rule when any
keyword is a plain substring of its lower-cased text. There is no stemming
or tokenization, so "tee" also matches "steel" and "coat" matches
"petticoat". Such false positives (and misses for unlisted synonyms) are an
accepted property of this classifier.

A record may match zero, one or many categories. Every classifier returns a
frozenset of category ids, and aggregation fans the record out to each.
"""

from __future__ import annotations

from typing import Callable, Iterable, Mapping

from trends_pipeline.clean.normalize import TypedRecord
from trends_pipeline.models import CategoryRule

Classifier = Callable[[TypedRecord], frozenset[str]]

NO_CATEGORIES: frozenset[str] = frozenset()


def classify(text: str, rules: Iterable[CategoryRule]) -> frozenset[str]:
    """Return the ids of every rule with a keyword contained in `text`.

    Matching is case-insensitive; rule order never changes the result.
    """
    haystack = text.lower()
    return frozenset(
        rule.id
        for rule in rules
        if any(kw in haystack for kw in rule.keywords)
    )


class KeywordClassifier:
    """Classifier over a fixed keyword ruleset."""

    def __init__(self, rules: Iterable[CategoryRule]) -> None:
        self.rules = tuple(rules)

    @property
    def category_ids(self) -> tuple[str, ...]:
        return tuple(r.id for r in self.rules)

    def __call__(self, record: TypedRecord) -> frozenset[str]:
        if not record.text:
            return NO_CATEGORIES
        return classify(record.text, self.rules)


def exact_field_classifier(field: str, categories: Iterable[str]) -> Classifier:
    """Classify by the exact, lower-cased value of one raw column.

    Args:
        field: Raw column name (e.g. "product_type").
        categories: Accepted values; anything else matches nothing.
    """
    accepted = frozenset(c.lower() for c in categories)

    def _classify(record: TypedRecord) -> frozenset[str]:
        value = record.raw.get(field)
        if value is None:
            return NO_CATEGORIES
        key = str(value).strip().lower()
        return frozenset((key,)) if key in accepted else NO_CATEGORIES

    return _classify


def rating_band_classifier(
    levels: Iterable[int] = (1, 2, 3, 4, 5),
    labels: Mapping[int, str] | None = None,
) -> Classifier:
    """Classify by the record's numeric value matching a whole rating level.

    Args:
        levels: Rating levels to recognise.
        labels: Optional level -> category id mapping; defaults to "r<level>".
    """
    ids = {lvl: (labels or {}).get(lvl, f"r{lvl}") for lvl in levels}

    def _classify(record: TypedRecord) -> frozenset[str]:
        if record.value is None:
            return NO_CATEGORIES
        for lvl, cat in ids.items():
            if record.value == lvl:
                return frozenset((cat,))
        return NO_CATEGORIES

    return _classify


def has_value_classifier(category: str = "rated") -> Classifier:
    """Match every record that carries a numeric value."""
    matched = frozenset((category,))

    def _classify(record: TypedRecord) -> frozenset[str]:
        return matched if record.value is not None else NO_CATEGORIES

    return _classify


def combine(*classifiers: Classifier) -> Classifier:
    """Union of the categories assigned by several classifiers."""

    def _classify(record: TypedRecord) -> frozenset[str]:
        cats: set[str] = set()
        for c in classifiers:
            cats.update(c(record))
        return frozenset(cats)

    return _classify
