# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Google Cloud Firestore document store.

Reads and writes go through the async client. Collection watches use the
synchronous client's ``on_snapshot`` listeners, whose callbacks run on SDK
threads; snapshots are handed back to the owning event loop before the
handler runs.

Configuration (via environment variables):
- STORE_PROJECT_ID: Google Cloud project ID
- STORE_DATABASE: Firestore database name
- STORE_CREDENTIALS_PATH: Optional path to a service account JSON file
"""

import asyncio
import inspect
from typing import Any, Sequence

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from src.core.config.settings import StoreSettings
from src.infrastructure.events import Unsubscribe
from src.infrastructure.store.base import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    OrderBy,
    QueryFilter,
    SnapshotHandler,
    StoreError,
)


def _to_firestore(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, dict):
        return {key: _to_firestore(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_firestore(item) for item in value]
    return value


def _from_firestore(snapshot: Any) -> DocumentSnapshot:
    return DocumentSnapshot(
        id=snapshot.id,
        path=snapshot.reference.path,
        data=snapshot.to_dict() or {},
    )


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore over google-cloud-firestore.

    Every google-api-core error is wrapped in StoreError so callers never
    depend on the client library's exception types.

    Attributes:
        _client: Async client for reads and writes.
        _watch_client: Sync client, created on first subscription.
    """

    def __init__(
        self,
        settings: StoreSettings,
        client: firestore.AsyncClient | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            settings: Store settings (project, database, credentials).
            client: Pre-built async client, mainly for tests.
        """
        super().__init__()
        self._settings = settings
        self._credentials = self._load_credentials()
        self._client = client or firestore.AsyncClient(
            project=settings.project_id,
            database=settings.database,
            credentials=self._credentials,
        )
        self._watch_client: firestore.Client | None = None

    def _load_credentials(self) -> Any:
        if not self._settings.credentials_path:
            # Application default credentials
            return None
        from google.oauth2 import service_account

        return service_account.Credentials.from_service_account_file(
            self._settings.credentials_path,
        )

    def _get_watch_client(self) -> firestore.Client:
        if self._watch_client is None:
            self._watch_client = firestore.Client(
                project=self._settings.project_id,
                database=self._settings.database,
                credentials=self._credentials,
            )
        return self._watch_client

    @staticmethod
    def _apply(query: Any, filters: Sequence[QueryFilter], order_by: OrderBy | None, limit: int | None) -> Any:
        for clause in filters:
            query = query.where(filter=FieldFilter(clause.field, clause.op.value, clause.value))
        if order_by is not None:
            direction = firestore.Query.DESCENDING if order_by.descending else firestore.Query.ASCENDING
            query = query.order_by(order_by.field, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return query

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_document(self, path: str) -> DocumentSnapshot | None:
        try:
            snapshot = await self._client.document(path).get()
        except GoogleAPICallError as e:
            raise StoreError(f"Failed to read {path}: {e}", original_error=e) from e
        if not snapshot.exists:
            return None
        return _from_firestore(snapshot)

    async def query(
        self,
        path: str,
        filters: Sequence[QueryFilter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        if limit is not None and limit <= 0:
            return []
        query = self._apply(self._client.collection(path), filters, order_by, limit)
        try:
            return [_from_firestore(snapshot) async for snapshot in query.stream()]
        except GoogleAPICallError as e:
            raise StoreError(f"Failed to query {path}: {e}", original_error=e) from e

    # =========================================================================
    # Writes
    # =========================================================================

    async def set_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        try:
            await self._client.document(path).set(_to_firestore(data), merge=merge)
        except GoogleAPICallError as e:
            raise StoreError(f"Failed to write {path}: {e}", original_error=e) from e

    async def update_document(self, path: str, data: dict[str, Any]) -> None:
        try:
            await self._client.document(path).update(_to_firestore(data))
        except NotFound as e:
            raise DocumentNotFoundError(path) from e
        except GoogleAPICallError as e:
            raise StoreError(f"Failed to update {path}: {e}", original_error=e) from e

    async def add_document(self, path: str, data: dict[str, Any]) -> str:
        try:
            _, reference = await self._client.collection(path).add(_to_firestore(data))
        except GoogleAPICallError as e:
            raise StoreError(f"Failed to add to {path}: {e}", original_error=e) from e
        return reference.id

    async def toggle_map_entry(self, path: str, field_name: str, key: str) -> bool | None:
        reference = self._client.document(path)

        @firestore.async_transactional
        async def toggle(transaction: firestore.AsyncTransaction) -> bool | None:
            snapshot = await reference.get(transaction=transaction)
            if not snapshot.exists:
                return None
            entries = dict((snapshot.to_dict() or {}).get(field_name) or {})
            if entries.get(key):
                del entries[key]
                present = False
            else:
                entries[key] = True
                present = True
            transaction.update(reference, {field_name: entries})
            return present

        try:
            return await toggle(self._client.transaction())
        except GoogleAPICallError as e:
            raise StoreError(f"Failed to toggle {field_name} on {path}: {e}", original_error=e) from e

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(
        self,
        path: str,
        handler: SnapshotHandler,
        order_by: OrderBy | None = None,
    ) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        query = self._apply(self._get_watch_client().collection(path), (), order_by, None)

        def on_snapshot(documents: list[Any], changes: Any, read_time: Any) -> None:
            snapshots = [_from_firestore(document) for document in documents]
            future = asyncio.run_coroutine_threadsafe(handler(snapshots), loop)
            future.add_done_callback(self._log_handler_failure)

        try:
            watch = query.on_snapshot(on_snapshot)
        except GoogleAPICallError as e:
            raise StoreError(f"Failed to watch {path}: {e}", original_error=e) from e

        self.logger.debug("Watching collection %s", path)
        return watch.unsubscribe

    def _log_handler_failure(self, future: Any) -> None:
        if not future.cancelled() and future.exception() is not None:
            self.logger.error(
                "Snapshot handler failed: %s",
                future.exception(),
                exc_info=future.exception(),
            )

    async def close(self) -> None:
        closing = self._client.close()
        if inspect.isawaitable(closing):
            await closing
        if self._watch_client is not None:
            self._watch_client.close()
