"""Publish finalized view metrics to MongoDB.

Each aligned point becomes one document keyed on ``(view, metric, month)``
so re-publishing a view overwrites its previous values in place. Only
finalized, aligned series reach this module.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pymongo.collection import Collection

from trends_pipeline.config import Settings
from trends_pipeline.db import bulk_upsert, get_client, get_db
from trends_pipeline.models import PublishedPoint
from trends_pipeline.views import ViewResult

log = logging.getLogger(__name__)

COLLECTION = "monthly_metrics"
KEY_FIELDS = ["view", "metric", "month"]


def view_documents(view: ViewResult, published_ts: datetime | None = None) -> list[dict[str, Any]]:
    """Return validated documents for every (metric, month) point of a view."""
    ts = published_ts or datetime.now(timezone.utc)
    docs: list[dict[str, Any]] = []
    for metric, series in view.frame.columns.items():
        for key, value in series:
            point = PublishedPoint(
                view=view.name,
                metric=metric,
                month=str(key),
                value=value,
                published_ts=ts,
            )
            docs.append(point.model_dump(mode="python"))
    return docs


def publish_view(view: ViewResult, collection: Collection[dict[str, Any]]) -> int:
    """Upsert a view's points into `collection`.

    Returns:
        Number of documents written.
    """
    docs = view_documents(view)
    if not docs:
        log.warning("No points to publish for view %s", view.name)
        return 0
    attempted, failed = bulk_upsert(collection, docs, KEY_FIELDS)
    log.info(
        "Published view %s: %d points (%d failed)", view.name, attempted - failed, failed
    )
    return attempted - failed


def publish_to_mongo(view: ViewResult, settings: Settings, collection_name: str = COLLECTION) -> int:
    """Connect using `settings` and publish `view`.

    Raises:
        RuntimeError: if `MONGO_URI` is not configured.
    """
    if not settings.mongo_uri:
        raise RuntimeError("MONGO_URI is required to publish. Set it in .env.")
    client = get_client(settings.mongo_uri)
    try:
        db = get_db(client, settings.mongo_db)
        return publish_view(view, db[collection_name])
    finally:
        client.close()
