"""
Redis Document Store: Production Backend
=========================================

Implements DocumentStoreProtocol on Redis / Valkey using redis-py's
asyncio client.

Key Layout:
-----------
- ``{prefix}:{collection}:docs``  Hash, document id -> encoded payload
- ``{prefix}:{collection}:order`` Sorted set, document id -> insertion seq
- ``{prefix}:seq``                Counter feeding insertion sequences

The sorted set gives queries a stable insertion order, which callers rely
on to break timestamp ties.

Payload Encoding:
-----------------
One flag byte followed by a JSON body. Datetimes are tagged
(``{"$ts": "<iso>"}``) so a structured timestamp survives the round trip
as a datetime rather than degrading to a string. Bodies at or above the
compression threshold are LZ4-framed.

    0x00 | json-bytes
    0x01 | lz4.frame(json-bytes)

Atomicity:
----------
- Batches run as a single MULTI/EXEC transaction
- ``update`` and ``put(merge=True)`` WATCH the collection hash and retry
  on conflict

Author: Team Log Engineering
License: MIT
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

import lz4.frame
import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from teamlog.core import constants as C
from teamlog.core.config import StoreConfig
from teamlog.core.errors import (
    MalformedInput,
    NotFound,
    StoreUnavailable,
    TeamLogError,
)
from teamlog.core.types import Err, Ok, Result
from teamlog.observability.logging import StructuredLogger
from teamlog.storage.backends import BatchOperation, generate_document_id
from teamlog.storage.protocols import (
    FieldFilter,
    OrderBy,
    StoredDocument,
    apply_query,
)

logger = StructuredLogger("teamlog.storage.redis")


# =============================================================================
# CONSTANTS
# =============================================================================

FLAG_RAW: int = 0x00
FLAG_LZ4: int = 0x01

DATETIME_TAG: str = "$ts"

# Maximum ids per HMGET round-trip
HMGET_CHUNK: int = 500

# Optimistic update attempts before giving up on a contended collection
MAX_WATCH_RETRIES: int = 5


# =============================================================================
# PAYLOAD CODEC
# =============================================================================

def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return {DATETIME_TAG: value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json_object_hook(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and DATETIME_TAG in obj and isinstance(obj[DATETIME_TAG], str):
        return datetime.fromisoformat(obj[DATETIME_TAG])
    return obj


def encode_document(
    fields: dict[str, Any],
    compression_threshold: int = C.COMPRESSION_THRESHOLD_BYTES,
) -> bytes:
    """Encode document fields to the flagged payload format."""
    body = json.dumps(fields, default=_json_default, separators=(",", ":")).encode("utf-8")
    if len(body) >= compression_threshold:
        return bytes([FLAG_LZ4]) + lz4.frame.compress(body)
    return bytes([FLAG_RAW]) + body


def decode_document(payload: bytes) -> dict[str, Any]:
    """
    Decode a flagged payload.

    Raises:
        ValueError: Unknown flag byte or undecodable body
    """
    if not payload:
        raise ValueError("Empty payload")
    flag, body = payload[0], payload[1:]
    if flag == FLAG_LZ4:
        body = lz4.frame.decompress(body)
    elif flag != FLAG_RAW:
        raise ValueError(f"Unknown payload flag: {flag:#x}")
    return json.loads(body.decode("utf-8"), object_hook=_json_object_hook)


# =============================================================================
# METRICS
# =============================================================================

@dataclass(slots=True)
class RedisMetrics:
    """Operation counters and latency sums (nanoseconds)."""

    read_count: int = 0
    write_count: int = 0
    batch_count: int = 0
    watch_conflicts: int = 0
    errors: int = 0
    read_latency_sum_ns: int = 0
    write_latency_sum_ns: int = 0

    def record_read(self, latency_ns: int) -> None:
        self.read_count += 1
        self.read_latency_sum_ns += latency_ns

    def record_write(self, latency_ns: int) -> None:
        self.write_count += 1
        self.write_latency_sum_ns += latency_ns

    def avg_read_latency_ms(self) -> float:
        if self.read_count == 0:
            return 0.0
        return (self.read_latency_sum_ns / self.read_count) / 1_000_000

    def avg_write_latency_ms(self) -> float:
        if self.write_count == 0:
            return 0.0
        return (self.write_latency_sum_ns / self.write_count) / 1_000_000

    def to_dict(self) -> dict[str, Any]:
        """Counters and average latencies, as reported by /health."""
        return {
            "read_count": self.read_count,
            "write_count": self.write_count,
            "batch_count": self.batch_count,
            "watch_conflicts": self.watch_conflicts,
            "errors": self.errors,
            "avg_read_latency_ms": round(self.avg_read_latency_ms(), 3),
            "avg_write_latency_ms": round(self.avg_write_latency_ms(), 3),
        }


# =============================================================================
# WRITE BATCH
# =============================================================================

class RedisWriteBatch:
    """Write batch committed as one MULTI/EXEC transaction."""

    __slots__ = ("_store", "_operations")

    def __init__(self, store: RedisDocumentStore) -> None:
        self._store = store
        self._operations: list[BatchOperation] = []

    def set(self, collection: str, document_id: str, fields: dict[str, Any]) -> None:
        self._operations.append(BatchOperation("set", collection, document_id, dict(fields)))

    def delete(self, collection: str, document_id: str) -> None:
        self._operations.append(BatchOperation("delete", collection, document_id))

    def __len__(self) -> int:
        return len(self._operations)

    async def commit(self) -> Result[int, TeamLogError]:
        return await self._store._apply_batch(self._operations)


# =============================================================================
# REDIS DOCUMENT STORE
# =============================================================================

class RedisDocumentStore:
    """
    Redis-backed DocumentStoreProtocol implementation.

    Example:
        >>> store = RedisDocumentStore(StoreConfig(backend="redis", redis_url="redis://localhost"))
        >>> await store.connect()
        >>> await store.put("team-messages", "m1", {"from": "agentX", "msg": "hi"})
        >>> await store.close()

    A pre-built client can be injected (``client=``) instead of connecting
    from the configured URL; the client must not decode responses.
    """

    __slots__ = (
        "_config",
        "_client",
        "_owns_client",
        "_metrics",
        "max_batch_operations",
    )

    def __init__(
        self,
        config: StoreConfig,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._metrics = RedisMetrics()
        self.max_batch_operations = config.max_batch_operations

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    async def connect(self) -> Result[None, TeamLogError]:
        """Create the client (unless injected) and verify connectivity."""
        url = self._config.redis_url or "redis://localhost:6379/0"
        try:
            if self._client is None:
                self._client = aioredis.from_url(url, decode_responses=False)
            await self._client.ping()
        except (RedisError, OSError) as e:
            self._metrics.errors += 1
            return Err(StoreUnavailable.connection_failed(url, cause=e))
        logger.info("Connected to document store", backend="redis")
        return Ok(None)

    async def close(self) -> None:
        """Close the client if this store created it. Safe to call twice."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def metrics(self) -> RedisMetrics:
        return self._metrics

    def _require_client(self) -> aioredis.Redis:
        if self._client is None:
            raise RedisError("Not connected")
        return self._client

    # -------------------------------------------------------------------------
    # KEYS
    # -------------------------------------------------------------------------

    def _docs_key(self, collection: str) -> str:
        return f"{self._config.key_prefix}:{collection}:docs"

    def _order_key(self, collection: str) -> str:
        return f"{self._config.key_prefix}:{collection}:order"

    def _seq_key(self) -> str:
        return f"{self._config.key_prefix}:seq"

    def _encode(self, fields: dict[str, Any]) -> bytes:
        return encode_document(fields, self._config.compression_threshold_bytes)

    def _fail(self, operation: str, collection: str, error: Exception) -> Err[StoreUnavailable]:
        self._metrics.errors += 1
        logger.error(
            "Redis operation failed",
            operation=operation,
            collection=collection,
            error=str(error),
        )
        return Err(StoreUnavailable.operation_failed(operation, collection, cause=error))

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def new_id(self) -> str:
        return generate_document_id()

    async def get(
        self,
        collection: str,
        document_id: str,
    ) -> Result[Optional[StoredDocument], TeamLogError]:
        start_ns = time.perf_counter_ns()
        try:
            raw = await self._require_client().hget(self._docs_key(collection), document_id)
        except RedisError as e:
            return self._fail("get", collection, e)
        self._metrics.record_read(time.perf_counter_ns() - start_ns)
        if raw is None:
            return Ok(None)
        try:
            return Ok(StoredDocument(id=document_id, data=decode_document(raw)))
        except ValueError as e:
            return self._fail("decode", collection, e)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> Result[list[StoredDocument], TeamLogError]:
        start_ns = time.perf_counter_ns()
        client_side_limit = limit
        try:
            client = self._require_client()
            # Without filters or ordering the limit can be pushed into ZRANGE.
            stop = -1
            if not filters and order_by is None and limit is not None:
                if limit <= 0:
                    return Ok([])
                stop = limit - 1
                client_side_limit = None
            ids = await client.zrange(self._order_key(collection), 0, stop)
            documents: list[StoredDocument] = []
            for i in range(0, len(ids), HMGET_CHUNK):
                chunk = ids[i:i + HMGET_CHUNK]
                payloads = await client.hmget(self._docs_key(collection), chunk)
                for raw_id, raw in zip(chunk, payloads):
                    if raw is None:
                        continue
                    doc_id = raw_id.decode("utf-8") if isinstance(raw_id, bytes) else raw_id
                    try:
                        data = decode_document(raw)
                    except ValueError as e:
                        logger.warning(
                            "Skipping undecodable document",
                            collection=collection,
                            document_id=doc_id,
                            error=str(e),
                        )
                        continue
                    documents.append(StoredDocument(id=doc_id, data=data))
        except RedisError as e:
            return self._fail("query", collection, e)
        self._metrics.record_read(time.perf_counter_ns() - start_ns)
        return Ok(apply_query(documents, filters, order_by, client_side_limit))

    async def put(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        merge: bool = False,
    ) -> Result[None, TeamLogError]:
        if merge:
            return await self._merge_fields(collection, document_id, fields, create=True)

        start_ns = time.perf_counter_ns()
        try:
            client = self._require_client()
            seq = await client.incr(self._seq_key())
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(self._docs_key(collection), document_id, self._encode(fields))
                pipe.zadd(self._order_key(collection), {document_id: seq}, nx=True)
                await pipe.execute()
        except RedisError as e:
            return self._fail("put", collection, e)
        self._metrics.record_write(time.perf_counter_ns() - start_ns)
        return Ok(None)

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> Result[None, TeamLogError]:
        return await self._merge_fields(collection, document_id, fields, create=False)

    async def _merge_fields(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        create: bool,
    ) -> Result[None, TeamLogError]:
        """Read-merge-write guarded by WATCH on the collection hash."""
        docs_key = self._docs_key(collection)
        start_ns = time.perf_counter_ns()
        try:
            client = self._require_client()
            seq = await client.incr(self._seq_key()) if create else None
            for _ in range(MAX_WATCH_RETRIES):
                async with client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(docs_key)
                        raw = await pipe.hget(docs_key, document_id)
                        if raw is None and not create:
                            await pipe.unwatch()
                            return Err(NotFound.document(collection, document_id))
                        current = decode_document(raw) if raw is not None else {}
                        current.update(fields)
                        pipe.multi()
                        pipe.hset(docs_key, document_id, self._encode(current))
                        if seq is not None:
                            pipe.zadd(self._order_key(collection), {document_id: seq}, nx=True)
                        await pipe.execute()
                        self._metrics.record_write(time.perf_counter_ns() - start_ns)
                        return Ok(None)
                    except WatchError:
                        self._metrics.watch_conflicts += 1
                        continue
        except ValueError as e:
            return self._fail("decode", collection, e)
        except RedisError as e:
            return self._fail("update", collection, e)
        return self._fail(
            "update",
            collection,
            RedisError(f"Gave up after {MAX_WATCH_RETRIES} conflicting writes"),
        )

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> Result[bool, TeamLogError]:
        start_ns = time.perf_counter_ns()
        try:
            async with self._require_client().pipeline(transaction=True) as pipe:
                pipe.hdel(self._docs_key(collection), document_id)
                pipe.zrem(self._order_key(collection), document_id)
                removed, _ = await pipe.execute()
        except RedisError as e:
            return self._fail("delete", collection, e)
        self._metrics.record_write(time.perf_counter_ns() - start_ns)
        return Ok(bool(removed))

    async def count(self, collection: str) -> Result[int, TeamLogError]:
        try:
            return Ok(int(await self._require_client().hlen(self._docs_key(collection))))
        except RedisError as e:
            return self._fail("count", collection, e)

    # -------------------------------------------------------------------------
    # BATCH
    # -------------------------------------------------------------------------

    def batch(self) -> RedisWriteBatch:
        return RedisWriteBatch(self)

    async def _apply_batch(
        self,
        operations: Sequence[BatchOperation],
    ) -> Result[int, TeamLogError]:
        if len(operations) > self.max_batch_operations:
            return Err(MalformedInput.batch_too_large(len(operations), self.max_batch_operations))
        if not operations:
            return Ok(0)

        start_ns = time.perf_counter_ns()
        try:
            client = self._require_client()
            sets = sum(1 for op in operations if op.kind == "set")
            next_seq = await client.incrby(self._seq_key(), sets) - sets + 1 if sets else 0
            async with client.pipeline(transaction=True) as pipe:
                for op in operations:
                    if op.kind == "set":
                        pipe.hset(
                            self._docs_key(op.collection),
                            op.document_id,
                            self._encode(op.fields or {}),
                        )
                        pipe.zadd(
                            self._order_key(op.collection),
                            {op.document_id: next_seq},
                            nx=True,
                        )
                        next_seq += 1
                    else:
                        pipe.hdel(self._docs_key(op.collection), op.document_id)
                        pipe.zrem(self._order_key(op.collection), op.document_id)
                await pipe.execute()
        except RedisError as e:
            self._metrics.errors += 1
            logger.error("Batch commit failed", operations=len(operations), error=str(e))
            return Err(StoreUnavailable.batch_failed(len(operations), cause=e))
        self._metrics.batch_count += 1
        self._metrics.record_write(time.perf_counter_ns() - start_ns)
        return Ok(len(operations))
