# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-process document store.

Keeps every document in a dict keyed by path and fans change
notifications out through the EventBus. Used for local development
and by the test suite; it honours the same ordering, filtering and
not-found rules as the Firestore backend.
"""

import asyncio
import copy
from typing import Any, Sequence
from uuid import uuid4

from src.infrastructure.events import EventBus, EventData, EventTypes, Unsubscribe
from src.infrastructure.store.base import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    OrderBy,
    QueryFilter,
    SnapshotHandler,
    split_path,
)
from src.utils.datetime import utc_now


def _resolve_sentinels(data: dict[str, Any]) -> dict[str, Any]:
    stamp = utc_now()
    resolved: dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = stamp
        elif isinstance(value, dict):
            resolved[key] = _resolve_sentinels(value)
        else:
            resolved[key] = copy.deepcopy(value)
    return resolved


def _order(snapshots: list[DocumentSnapshot], order_by: OrderBy) -> list[DocumentSnapshot]:
    # Documents missing the sort field go last in either direction
    present = [s for s in snapshots if s.data.get(order_by.field) is not None]
    missing = [s for s in snapshots if s.data.get(order_by.field) is None]
    try:
        present.sort(key=lambda s: s.data[order_by.field], reverse=order_by.descending)
    except TypeError:
        present.sort(key=lambda s: str(s.data[order_by.field]), reverse=order_by.descending)
    return present + missing


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore backed by a dictionary.

    Attributes:
        _documents: Mapping of document path to field data, in insertion
            order (the store's natural order).
        _event_bus: Bus used to notify collection watchers.
        _write_lock: Serializes read-modify-write operations.
    """

    def __init__(self, event_bus: EventBus | None = None) -> None:
        """Initialize an empty store.

        Args:
            event_bus: Bus for change notifications. A private bus is
                created when omitted so stores never share watchers.
        """
        super().__init__()
        self._documents: dict[str, dict[str, Any]] = {}
        self._event_bus = event_bus or EventBus()
        self._write_lock = asyncio.Lock()

    # =========================================================================
    # Reads
    # =========================================================================

    def _snapshot(self, path: str) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=path.rsplit("/", 1)[-1],
            path=path,
            data=copy.deepcopy(self._documents[path]),
        )

    def _collection(self, path: str) -> list[DocumentSnapshot]:
        segments = split_path(path)
        if len(segments) % 2 != 1:
            raise ValueError(f"Not a collection path: {path}")
        prefix = "/".join(segments) + "/"
        return [
            self._snapshot(doc_path)
            for doc_path in self._documents
            if doc_path.startswith(prefix) and "/" not in doc_path[len(prefix):]
        ]

    async def get_document(self, path: str) -> DocumentSnapshot | None:
        path = "/".join(split_path(path))
        if path not in self._documents:
            return None
        return self._snapshot(path)

    async def query(
        self,
        path: str,
        filters: Sequence[QueryFilter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        results = [
            snapshot
            for snapshot in self._collection(path)
            if all(clause.matches(snapshot.data) for clause in filters)
        ]
        if order_by is not None:
            results = _order(results, order_by)
        if limit is not None:
            results = results[:limit]
        return results

    # =========================================================================
    # Writes
    # =========================================================================

    async def _notify(self, doc_path: str, event_type: str) -> None:
        await self._event_bus.publish(
            event_type,
            {"collection": doc_path.rsplit("/", 1)[0], "document": doc_path},
            source="memory_store",
        )

    def _document_path(self, path: str) -> str:
        segments = split_path(path)
        if len(segments) % 2 != 0:
            raise ValueError(f"Not a document path: {path}")
        return "/".join(segments)

    async def set_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        path = self._document_path(path)
        async with self._write_lock:
            resolved = _resolve_sentinels(data)
            if merge and path in self._documents:
                self._documents[path].update(resolved)
            else:
                self._documents[path] = resolved
        await self._notify(path, EventTypes.Store.DOCUMENT_WRITTEN)

    async def update_document(self, path: str, data: dict[str, Any]) -> None:
        path = self._document_path(path)
        async with self._write_lock:
            if path not in self._documents:
                raise DocumentNotFoundError(path)
            self._documents[path].update(_resolve_sentinels(data))
        await self._notify(path, EventTypes.Store.DOCUMENT_WRITTEN)

    async def add_document(self, path: str, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex
        await self.set_document(f"{path}/{doc_id}", data)
        return doc_id

    async def delete_document(self, path: str) -> None:
        """Remove a document. Missing documents are ignored."""
        path = self._document_path(path)
        async with self._write_lock:
            if self._documents.pop(path, None) is None:
                return
        await self._notify(path, EventTypes.Store.DOCUMENT_DELETED)

    async def toggle_map_entry(self, path: str, field_name: str, key: str) -> bool | None:
        path = self._document_path(path)
        async with self._write_lock:
            document = self._documents.get(path)
            if document is None:
                return None
            entries = dict(document.get(field_name) or {})
            if entries.get(key):
                del entries[key]
                present = False
            else:
                entries[key] = True
                present = True
            document[field_name] = entries
        await self._notify(path, EventTypes.Store.DOCUMENT_WRITTEN)
        return present

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(
        self,
        path: str,
        handler: SnapshotHandler,
        order_by: OrderBy | None = None,
    ) -> Unsubscribe:
        watched = "/".join(split_path(path))
        active = True

        async def deliver() -> None:
            if not active:
                return
            await handler(await self.query(watched, order_by=order_by))

        async def on_change(event: EventData) -> None:
            if event.payload.get("collection") == watched:
                await deliver()

        unsubscribers = [
            self._event_bus.subscribe(EventTypes.Store.DOCUMENT_WRITTEN, on_change),
            self._event_bus.subscribe(EventTypes.Store.DOCUMENT_DELETED, on_change),
        ]

        def unsubscribe() -> None:
            nonlocal active
            active = False
            for release in unsubscribers:
                release()

        await deliver()
        self.logger.debug("Watching collection %s", watched)
        return unsubscribe

    async def close(self) -> None:
        self._event_bus.clear()
