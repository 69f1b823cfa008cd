"""
Document Store Protocol Definitions: Storage Abstraction Layer

Provides structural subtyping protocols (PEP 544) for pluggable
document-store backends holding named collections of documents:
- DocumentStoreProtocol: get / query / put / update / delete / count
- WriteBatch: all-or-nothing group of set and delete operations

Design Principles:
    - Zero-exception control flow via Result[T, TeamLogError]
    - Async-first; every call is a suspension point
    - Stored field values keep their type: a structured datetime, a string
      and a number are different things and are never coerced

Query Semantics:
    - Results come back in insertion order unless ``order_by`` is given
    - Filters compare only values of the same type family; a filter on a
      field that is absent, or holds another type, does not match

Author: Team Log Engineering
License: MIT
"""

from __future__ import annotations

import operator
from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from teamlog.core.errors import TeamLogError
from teamlog.core.types import Result


# =============================================================================
# DOCUMENTS
# =============================================================================
@dataclass(frozen=True, slots=True)
class StoredDocument:
    """A document as read from a collection."""

    id: str
    data: dict[str, Any]


# =============================================================================
# QUERY SHAPES
# =============================================================================
_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _type_rank(value: Any) -> int:
    """Type family ordering used when sorting mixed values."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    return 5


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True, slots=True)
class FieldFilter:
    """Single-field predicate: ``field op value``."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op!r}")

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        stored = data[self.field]
        if _type_rank(stored) != _type_rank(self.value):
            return self.op == "!="
        try:
            return _OPERATORS[self.op](_normalize(stored), _normalize(self.value))
        except TypeError:
            return False


@dataclass(frozen=True, slots=True)
class OrderBy:
    """Sort on one field; documents lacking the field are excluded."""

    field: str
    descending: bool = False


def apply_query(
    documents: Sequence[StoredDocument],
    filters: Sequence[FieldFilter] = (),
    order_by: Optional[OrderBy] = None,
    limit: Optional[int] = None,
) -> list[StoredDocument]:
    """
    Evaluate filters, ordering and limit over documents held client-side.

    Shared by backends that cannot push the query down to the server.
    """
    selected = [d for d in documents if all(f.matches(d.data) for f in filters)]
    if order_by is not None:
        selected = [d for d in selected if order_by.field in d.data]
        selected.sort(
            key=lambda d: _sort_key(d.data[order_by.field]),
            reverse=order_by.descending,
        )
    if limit is not None:
        selected = selected[:max(limit, 0)]
    return selected


def _sort_key(value: Any) -> tuple[int, Any]:
    rank = _type_rank(value)
    if rank in (0, 5):
        return (rank, 0)
    return (rank, _normalize(value))


# =============================================================================
# WRITE BATCH
# =============================================================================
@runtime_checkable
class WriteBatch(Protocol):
    """
    All-or-nothing group of writes.

    Either every operation commits or none does. A batch holding more
    operations than the store's ``max_batch_operations`` is rejected with
    MalformedInput and writes nothing.
    """

    @abstractmethod
    def set(self, collection: str, document_id: str, fields: dict[str, Any]) -> None:
        """Queue a full overwrite of a document."""
        ...

    @abstractmethod
    def delete(self, collection: str, document_id: str) -> None:
        """Queue a delete; deleting an absent document is a no-op."""
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    async def commit(self) -> Result[int, TeamLogError]:
        """Apply queued operations; returns the operation count."""
        ...


# =============================================================================
# DOCUMENT STORE PROTOCOL
# =============================================================================
@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """
    Async document store over named collections.

    Example:
        store = InMemoryDocumentStore()
        await store.put("team-messages", "abc", {"from": "agentX", "msg": "hi"})
        result = await store.get("team-messages", "abc")
    """

    max_batch_operations: int

    @abstractmethod
    def new_id(self) -> str:
        """Generate a fresh opaque document id."""
        ...

    @abstractmethod
    async def get(
        self,
        collection: str,
        document_id: str,
    ) -> Result[Optional[StoredDocument], TeamLogError]:
        """
        Retrieve one document.

        Returns:
            Ok(document), Ok(None) if absent, Err on store failure
        """
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> Result[list[StoredDocument], TeamLogError]:
        """Read documents matching every filter."""
        ...

    @abstractmethod
    async def put(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        merge: bool = False,
    ) -> Result[None, TeamLogError]:
        """
        Create or overwrite a document.

        With ``merge=True`` the given fields are merged into an existing
        document (creating it if absent).
        """
        ...

    @abstractmethod
    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> Result[None, TeamLogError]:
        """
        Merge fields into an existing document.

        Never creates: an absent document yields Err(NotFound).
        """
        ...

    @abstractmethod
    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> Result[bool, TeamLogError]:
        """Delete a document; Ok(False) if it was already absent."""
        ...

    @abstractmethod
    async def count(self, collection: str) -> Result[int, TeamLogError]:
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        ...
