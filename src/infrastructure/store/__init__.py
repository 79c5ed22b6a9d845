# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store infrastructure for SchoolLink.

Backends:
- InMemoryDocumentStore: in-process store for development and tests
- FirestoreDocumentStore: Google Cloud Firestore

Use get_document_store() to obtain the configured singleton.
"""

import logging

from src.core.config import get_settings
from src.core.config.settings import Settings
from src.infrastructure.store.base import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    FilterOp,
    OrderBy,
    QueryFilter,
    SnapshotHandler,
    StoreError,
    collection_path,
    document_path,
    where,
)
from src.infrastructure.store.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)

_store: DocumentStore | None = None


def create_document_store(settings: Settings) -> DocumentStore:
    """Build the backend selected by ``settings.store.backend``."""
    if settings.store.backend == "firestore":
        # Imported lazily so the memory backend works without Google libs configured
        from src.infrastructure.store.firestore import FirestoreDocumentStore

        logger.info(
            "Using Firestore store (project=%s, database=%s)",
            settings.store.project_id,
            settings.store.database,
        )
        return FirestoreDocumentStore(settings.store)

    logger.info("Using in-memory document store")
    return InMemoryDocumentStore()


def get_document_store() -> DocumentStore:
    """Get the singleton document store for the current settings."""
    global _store
    if _store is None:
        _store = create_document_store(get_settings())
    return _store


async def reset_document_store() -> None:
    """Close and drop the singleton store.

    Useful for testing to ensure clean state between tests.
    """
    global _store
    if _store is not None:
        await _store.close()
    _store = None


__all__ = [
    "DocumentStore",
    "DocumentSnapshot",
    "DocumentNotFoundError",
    "FilterOp",
    "InMemoryDocumentStore",
    "OrderBy",
    "QueryFilter",
    "SERVER_TIMESTAMP",
    "SnapshotHandler",
    "StoreError",
    "collection_path",
    "create_document_store",
    "document_path",
    "get_document_store",
    "reset_document_store",
    "where",
]
