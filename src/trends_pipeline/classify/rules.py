"""Category rulesets: built-in defaults and JSON loading.

The built-in rules describe the "recession uniform" wardrobe staples. They
are keyword lists, not a taxonomy; see `classify.classifier` for what that
implies about match quality.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import TypeAdapter

from trends_pipeline.models import CategoryRule

log = logging.getLogger(__name__)

DEFAULT_CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(id="denim", label="Denim", keywords=["denim", "jean", "jeans"]),
    CategoryRule(id="coat", label="Black coat", keywords=["coat", "trench", "overcoat"]),
    CategoryRule(id="tee", label="White tee", keywords=["t-shirt", "tee", "t shirt"]),
    CategoryRule(id="tote", label="Tote", keywords=["tote", "shopper bag"]),
    CategoryRule(id="sneaker", label="Sneaker", keywords=["sneaker", "trainer", "running shoe"]),
    CategoryRule(id="heels", label="Heels", keywords=["heel", "pumps", "stiletto"]),
)

# office/professional wear share panel
OFFICE_WEAR_RULE = CategoryRule(
    id="professional",
    label="Office / professional wear",
    keywords=["office", "professional", "blazer", "business", "suit", "workwear"],
)

# product_type values of the cleaned review export
PRODUCT_TYPE_LABELS = {
    "dress": "Dress",
    "professional": "Professional",
}

_rules_adapter = TypeAdapter(list[CategoryRule])


def validate_rules(rules: list[CategoryRule] | tuple[CategoryRule, ...]) -> tuple[CategoryRule, ...]:
    """Return `rules` as a tuple after checking that ids are unique.

    Raises:
        ValueError: if two rules share an id.
    """
    seen: set[str] = set()
    for rule in rules:
        if rule.id in seen:
            raise ValueError(f"duplicate category rule id: {rule.id!r}")
        seen.add(rule.id)
    return tuple(rules)


def load_rules(path: Path) -> tuple[CategoryRule, ...]:
    """Load a ruleset from a JSON file.

    The file holds a list of ``{"id", "label", "keywords"}`` objects.

    Raises:
        pydantic.ValidationError: if an entry is malformed.
        ValueError: if ids are duplicated.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    rules = validate_rules(_rules_adapter.validate_python(data))
    log.info("Loaded %d category rules from %s", len(rules), path)
    return rules
