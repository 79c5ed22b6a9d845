# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for document store backends.

This module defines the abstract interface and shared types for the
remote document store the data layer reads from and writes to. Paths
are slash-separated and alternate collection and document ids, e.g.
``classes/5A/students/stu-1``.

Backend implementations must be async, translate their own client
errors into StoreError, and resolve SERVER_TIMESTAMP on write.
"""

import logging
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from src.infrastructure.events import Unsubscribe


class StoreError(Exception):
    """Exception raised when a store operation fails."""

    def __init__(
        self,
        message: str,
        code: str = "store_error",
        original_error: Exception | None = None,
    ):
        self.message = message
        self.code = code
        self.original_error = original_error
        super().__init__(self.message)


class DocumentNotFoundError(StoreError):
    """Raised when an update targets a document that does not exist."""

    def __init__(self, path: str):
        super().__init__(
            message=f"Document not found: {path}",
            code="not_found",
        )
        self.path = path


class _ServerTimestamp:
    """Sentinel replaced by the backend's clock when a document is written."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class FilterOp(str, Enum):
    """Comparison operators supported by query()."""

    EQ = "=="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    IN = "in"
    ARRAY_CONTAINS = "array-contains"


_COMPARATORS: dict[FilterOp, Callable[[Any, Any], bool]] = {
    FilterOp.EQ: operator.eq,
    FilterOp.NE: operator.ne,
    FilterOp.LT: operator.lt,
    FilterOp.LTE: operator.le,
    FilterOp.GT: operator.gt,
    FilterOp.GTE: operator.ge,
    FilterOp.IN: lambda value, options: value in options,
    FilterOp.ARRAY_CONTAINS: lambda value, item: isinstance(value, list) and item in value,
}


@dataclass(frozen=True)
class QueryFilter:
    """A single ``field op value`` clause.

    Attributes:
        field: Top-level document field name.
        op: Comparison operator.
        value: Right-hand operand.
    """

    field: str
    op: FilterOp
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        """Evaluate this clause against a document's data.

        Documents missing the field never match, as in Firestore.
        """
        if self.field not in data:
            return False
        try:
            return _COMPARATORS[self.op](data[self.field], self.value)
        except TypeError:
            return False


def where(field_name: str, op: str | FilterOp, value: Any) -> QueryFilter:
    """Build a QueryFilter, e.g. ``where("className", "==", "5A")``."""
    return QueryFilter(field=field_name, op=FilterOp(op), value=value)


@dataclass(frozen=True)
class OrderBy:
    """Sort clause for query() and subscribe().

    Attributes:
        field: Field to sort on.
        descending: Sort direction.
    """

    field: str
    descending: bool = False


@dataclass(frozen=True)
class DocumentSnapshot:
    """Point-in-time copy of a stored document.

    Attributes:
        id: Document id (last path segment).
        path: Full document path.
        data: Field values. Never shared with the backend.
    """

    id: str
    path: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def parent_id(self) -> str | None:
        """Id of the document owning this document's collection, if any."""
        segments = self.path.split("/")
        return segments[-3] if len(segments) >= 4 else None

    def get(self, key: str, default: Any = None) -> Any:
        """Shortcut for ``snapshot.data.get(key, default)``."""
        return self.data.get(key, default)


# Called with the complete, ordered contents of a collection on every change
SnapshotHandler = Callable[[list[DocumentSnapshot]], Awaitable[None]]


def split_path(path: str) -> list[str]:
    """Split a store path into non-empty segments."""
    segments = [segment for segment in path.strip("/").split("/") if segment]
    if not segments:
        raise ValueError("Empty store path")
    return segments


def collection_path(*segments: str) -> str:
    """Join segments into a collection path (odd number of segments)."""
    path = "/".join(segments)
    if len(split_path(path)) % 2 != 1:
        raise ValueError(f"Not a collection path: {path}")
    return path


def document_path(*segments: str) -> str:
    """Join segments into a document path (even number of segments)."""
    path = "/".join(segments)
    if len(split_path(path)) % 2 != 0:
        raise ValueError(f"Not a document path: {path}")
    return path


class DocumentStore(ABC):
    """Abstract base class for document store backends.

    Every read returns detached DocumentSnapshot copies. Subscriptions
    deliver the full collection contents (not incremental changes) on
    the initial load and on every later change, in the requested order.
    """

    def __init__(self) -> None:
        """Initialize the store."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def get_document(self, path: str) -> DocumentSnapshot | None:
        """Read one document.

        Args:
            path: Document path.

        Returns:
            The snapshot, or None if the document does not exist.
        """
        ...

    async def list_collection(self, path: str) -> list[DocumentSnapshot]:
        """Read every document of a collection in the backend's natural order."""
        return await self.query(path)

    @abstractmethod
    async def query(
        self,
        path: str,
        filters: Sequence[QueryFilter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        """Run a filtered, ordered and limited collection query.

        Args:
            path: Collection path.
            filters: Clauses combined with AND.
            order_by: Optional sort clause.
            limit: Optional maximum number of results. Zero matches nothing.

        Returns:
            Matching snapshots.
        """
        ...

    @abstractmethod
    async def set_document(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or overwrite a document (or merge into it)."""
        ...

    @abstractmethod
    async def update_document(self, path: str, data: dict[str, Any]) -> None:
        """Update fields of an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        ...

    @abstractmethod
    async def add_document(self, path: str, data: dict[str, Any]) -> str:
        """Append a document with a generated id to a collection.

        Returns:
            The new document id.
        """
        ...

    @abstractmethod
    async def toggle_map_entry(self, path: str, field_name: str, key: str) -> bool | None:
        """Atomically flip ``key`` in the map stored at ``field_name``.

        Present keys are removed; absent keys are set to True.

        Returns:
            True if the key is now present, False if it was removed, or
            None if the document does not exist.
        """
        ...

    @abstractmethod
    async def subscribe(
        self,
        path: str,
        handler: SnapshotHandler,
        order_by: OrderBy | None = None,
    ) -> Unsubscribe:
        """Watch a collection.

        The handler receives the initial contents and then the complete
        contents after every change.

        Returns:
            Callable that stops delivery and releases the subscription.
        """
        ...

    async def subscribe_subcollection(
        self,
        parent_path: str,
        child: str,
        handler: SnapshotHandler,
        order_by: OrderBy | None = None,
    ) -> Unsubscribe:
        """Watch the ``child`` collection under document ``parent_path``."""
        return await self.subscribe(
            document_path(parent_path) + "/" + child,
            handler,
            order_by=order_by,
        )

    async def close(self) -> None:
        """Release backend resources."""
