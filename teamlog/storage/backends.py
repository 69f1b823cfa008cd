"""
In-Memory Document Store: Development and Testing Backend

Provides a protocol-complete in-memory implementation of
DocumentStoreProtocol:
- Collections as insertion-ordered dicts of documents
- All-or-nothing write batches with an operation limit
- Deep copies on every read and write, so callers never share state
  with the store
- Fault injection for exercising retry and partial-failure paths

Thread Safety:
    All operations are serialized by an asyncio.Lock.

Performance Characteristics:
    - get / put / update / delete: O(1) average case
    - query: O(n) over the collection
    - batch commit: O(k) over queued operations

Author: Team Log Engineering
License: MIT
"""

from __future__ import annotations

import asyncio
import copy
import secrets
import string
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from teamlog.core import constants as C
from teamlog.core.errors import MalformedInput, NotFound, StoreUnavailable, TeamLogError
from teamlog.core.types import Err, Ok, Result
from teamlog.storage.protocols import (
    FieldFilter,
    OrderBy,
    StoredDocument,
    apply_query,
)


# =============================================================================
# CONSTANTS
# =============================================================================
ID_ALPHABET: str = string.ascii_letters + string.digits
ID_LENGTH: int = 20


def generate_document_id() -> str:
    """Random 20-character alphanumeric id, the shape of an auto-assigned key."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


# =============================================================================
# BATCH OPERATION
# =============================================================================
@dataclass(frozen=True, slots=True)
class BatchOperation:
    """Queued write inside a batch."""

    kind: str  # "set" or "delete"
    collection: str
    document_id: str
    fields: Optional[dict[str, Any]] = None


class InMemoryWriteBatch:
    """Write batch applied under the store lock in a single step."""

    __slots__ = ("_store", "_operations", "_committed")

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self._operations: list[BatchOperation] = []
        self._committed = False

    def set(self, collection: str, document_id: str, fields: dict[str, Any]) -> None:
        self._operations.append(BatchOperation(
            kind="set",
            collection=collection,
            document_id=document_id,
            fields=copy.deepcopy(fields),
        ))

    def delete(self, collection: str, document_id: str) -> None:
        self._operations.append(BatchOperation(
            kind="delete",
            collection=collection,
            document_id=document_id,
        ))

    def __len__(self) -> int:
        return len(self._operations)

    async def commit(self) -> Result[int, TeamLogError]:
        if self._committed:
            return Err(MalformedInput.invalid_value("batch", "committed", "batch already committed"))
        result = await self._store._apply_batch(self._operations)
        if result.is_ok():
            self._committed = True
        return result


# =============================================================================
# IN-MEMORY DOCUMENT STORE
# =============================================================================
class InMemoryDocumentStore:
    """
    In-memory document store with batch atomicity.

    Example:
        store = InMemoryDocumentStore()
        await store.put("team-messages", "m1", {"from": "a", "msg": "hi"})

        batch = store.batch()
        batch.set("team-messages-archive", "m1", {...})
        batch.delete("team-messages", "m1")
        await batch.commit()

    Fault Injection:
        ``inject_failure("commit", times=1)`` makes the next commit return
        Err(StoreUnavailable) without applying anything. Operation names
        are get, query, put, update, delete, count and commit.
    """

    __slots__ = ("_collections", "_lock", "_faults", "max_batch_operations")

    def __init__(self, max_batch_operations: int = C.MAX_BATCH_OPERATIONS) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        self._faults: dict[str, int] = {}
        self.max_batch_operations = max_batch_operations

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    async def connect(self) -> Result[None, TeamLogError]:
        return Ok(None)

    async def close(self) -> None:
        return None

    # -------------------------------------------------------------------------
    # FAULT INJECTION
    # -------------------------------------------------------------------------

    def inject_failure(self, operation: str, times: int = 1) -> None:
        """Fail the next ``times`` calls of ``operation``."""
        self._faults[operation] = self._faults.get(operation, 0) + times

    def _take_fault(self, operation: str, collection: str) -> Optional[StoreUnavailable]:
        remaining = self._faults.get(operation, 0)
        if remaining <= 0:
            return None
        self._faults[operation] = remaining - 1
        return StoreUnavailable.operation_failed(
            operation, collection, cause=ConnectionError("injected fault"),
        )

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def new_id(self) -> str:
        return generate_document_id()

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def get(
        self,
        collection: str,
        document_id: str,
    ) -> Result[Optional[StoredDocument], TeamLogError]:
        async with self._lock:
            fault = self._take_fault("get", collection)
            if fault is not None:
                return Err(fault)
            data = self._collection(collection).get(document_id)
            if data is None:
                return Ok(None)
            return Ok(StoredDocument(id=document_id, data=copy.deepcopy(data)))

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> Result[list[StoredDocument], TeamLogError]:
        async with self._lock:
            fault = self._take_fault("query", collection)
            if fault is not None:
                return Err(fault)
            documents = [
                StoredDocument(id=doc_id, data=copy.deepcopy(data))
                for doc_id, data in self._collection(collection).items()
            ]
        return Ok(apply_query(documents, filters, order_by, limit))

    async def put(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        merge: bool = False,
    ) -> Result[None, TeamLogError]:
        async with self._lock:
            fault = self._take_fault("put", collection)
            if fault is not None:
                return Err(fault)
            docs = self._collection(collection)
            if merge and document_id in docs:
                docs[document_id].update(copy.deepcopy(fields))
            else:
                docs[document_id] = copy.deepcopy(fields)
            return Ok(None)

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> Result[None, TeamLogError]:
        async with self._lock:
            fault = self._take_fault("update", collection)
            if fault is not None:
                return Err(fault)
            docs = self._collection(collection)
            if document_id not in docs:
                return Err(NotFound.document(collection, document_id))
            docs[document_id].update(copy.deepcopy(fields))
            return Ok(None)

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> Result[bool, TeamLogError]:
        async with self._lock:
            fault = self._take_fault("delete", collection)
            if fault is not None:
                return Err(fault)
            return Ok(self._collection(collection).pop(document_id, None) is not None)

    async def count(self, collection: str) -> Result[int, TeamLogError]:
        async with self._lock:
            fault = self._take_fault("count", collection)
            if fault is not None:
                return Err(fault)
            return Ok(len(self._collection(collection)))

    # -------------------------------------------------------------------------
    # BATCH
    # -------------------------------------------------------------------------

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    async def _apply_batch(
        self,
        operations: Sequence[BatchOperation],
    ) -> Result[int, TeamLogError]:
        if len(operations) > self.max_batch_operations:
            return Err(MalformedInput.batch_too_large(len(operations), self.max_batch_operations))

        async with self._lock:
            first = operations[0].collection if operations else ""
            fault = self._take_fault("commit", first)
            if fault is not None:
                return Err(fault)
            for op in operations:
                docs = self._collection(op.collection)
                if op.kind == "set":
                    docs[op.document_id] = copy.deepcopy(op.fields or {})
                else:
                    docs.pop(op.document_id, None)
            return Ok(len(operations))
