"""MongoDB helpers and bulk upsert utility.

Centralizes creation of Mongo clients and the batched upsert used when
publishing aligned series.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

import certifi
from pymongo import MongoClient, UpdateOne
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

log = logging.getLogger(__name__)


def get_client(uri: str, tls: bool | None = None) -> MongoClient:
    """Return a configured PyMongo MongoClient for the provided URI.

    Args:
        uri: MongoDB connection URI.
        tls: Force TLS on or off; by default it is enabled for
            ``mongodb+srv://`` (hosted) URIs only.

    Returns:
        Configured MongoClient instance.
    """
    if tls is None:
        tls = uri.startswith("mongodb+srv://")
    options: dict[str, Any] = {
        "serverSelectionTimeoutMS": 30000,
        "socketTimeoutMS": 30000,
        "connectTimeoutMS": 30000,
    }
    if tls:
        options.update(tls=True, tlsCAFile=certifi.where())
    return MongoClient(uri, **options)


def get_db(
    client: MongoClient[dict[str, Any]],
    db_name: str,
) -> Database[dict[str, Any]]:
    """Return the named Database instance from a MongoClient."""
    return client[db_name]


def bulk_upsert(
    collection: Collection[dict[str, Any]],
    docs: Iterable[dict[str, Any]],
    key_fields: list[str],
    batch_size: int = 1000,
) -> tuple[int, int]:
    """Bulk upsert documents keyed on the values of `key_fields`.

    A batch that fails is logged and counted; later batches are still
    written.

    Args:
        collection: Target PyMongo collection.
        docs: Iterable of document dictionaries to upsert.
        key_fields: Document keys forming the upsert selector.
        batch_size: Number of ops per bulk_write call.

    Returns:
        Tuple ``(attempted, failed)`` counting documents.
    """
    ops: list[UpdateOne] = []
    attempted = 0
    failed = 0

    def _flush() -> None:
        nonlocal failed
        try:
            collection.bulk_write(ops, ordered=False)
        except PyMongoError as e:
            log.warning("bulk_upsert batch of %d failed: %s", len(ops), e)
            failed += len(ops)
        ops.clear()

    for d in docs:
        if any(k not in d for k in key_fields):
            log.debug("Skipping document without key fields %s", key_fields)
            continue

        ops.append(
            UpdateOne(
                {k: d[k] for k in key_fields},
                {"$set": d},
                upsert=True,
            )
        )
        attempted += 1

        if len(ops) >= batch_size:
            _flush()

    if ops:
        _flush()

    return attempted, failed
