"""
Storage module: document store protocol and backends.

Backends:
- InMemoryDocumentStore: development, tests, single-process deployments
- RedisDocumentStore: shared production store (redis.asyncio + lz4)
"""

from __future__ import annotations

from teamlog.core.config import StoreConfig
from teamlog.core.errors import ConfigurationError, TeamLogError
from teamlog.core.types import Err, Ok, Result
from teamlog.storage.backends import InMemoryDocumentStore, generate_document_id
from teamlog.storage.protocols import (
    DocumentStoreProtocol,
    FieldFilter,
    OrderBy,
    StoredDocument,
    WriteBatch,
    apply_query,
)
from teamlog.storage.redis_store import RedisDocumentStore


def create_document_store(
    config: StoreConfig,
) -> Result[InMemoryDocumentStore | RedisDocumentStore, TeamLogError]:
    """Build the backend named by ``config.backend``. The caller connects it."""
    if config.backend == "memory":
        return Ok(InMemoryDocumentStore(max_batch_operations=config.max_batch_operations))
    if config.backend == "redis":
        if not config.redis_url:
            return Err(ConfigurationError.missing("TEAMLOG_REDIS_URL"))
        return Ok(RedisDocumentStore(config))
    return Err(ConfigurationError.invalid(
        "TEAMLOG_STORE_BACKEND", f"unknown backend '{config.backend}'",
    ))


__all__ = [
    "DocumentStoreProtocol",
    "WriteBatch",
    "StoredDocument",
    "FieldFilter",
    "OrderBy",
    "apply_query",
    "InMemoryDocumentStore",
    "RedisDocumentStore",
    "generate_document_id",
    "create_document_store",
]
