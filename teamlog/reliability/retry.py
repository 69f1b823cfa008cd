"""
Retry Policy: Exponential Backoff with Jitter

Implements the retry strategy for document store calls:
- Exponential backoff: 100ms x 2^n, capped
- Full jitter: random(0, backoff) to prevent thundering herd
- Max retries: 3 for idempotent calls, 0 for non-idempotent ones
- Every attempt bounded by a request timeout

Store calls already return Result, so retries are driven by the error's
``retryable`` flag rather than by exception type.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from teamlog.core import constants as C
from teamlog.core.config import ReliabilityConfig
from teamlog.core.errors import StoreUnavailable, TeamLogError
from teamlog.core.types import Err, Result
from teamlog.observability.logging import StructuredLogger
from teamlog.storage.protocols import (
    DocumentStoreProtocol,
    FieldFilter,
    OrderBy,
    StoredDocument,
    WriteBatch,
)

logger = StructuredLogger("teamlog.reliability.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration."""

    max_retries: int = C.RETRY_MAX_ATTEMPTS
    base_delay_ms: int = C.RETRY_BASE_MS
    max_delay_ms: int = C.RETRY_MAX_DELAY_MS
    exponential_base: float = 2.0
    jitter: bool = True
    request_timeout_s: float = C.STORE_REQUEST_TIMEOUT_MS / 1000

    @classmethod
    def default(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def no_retry(cls, request_timeout_s: float = C.STORE_REQUEST_TIMEOUT_MS / 1000) -> RetryPolicy:
        """No retries (for non-idempotent operations); the timeout still applies."""
        return cls(max_retries=0, request_timeout_s=request_timeout_s)

    @classmethod
    def from_config(cls, config: ReliabilityConfig) -> RetryPolicy:
        return cls(
            max_retries=config.retry_max_attempts,
            base_delay_ms=config.retry_base_ms,
            max_delay_ms=config.retry_max_delay_ms,
            request_timeout_s=config.request_timeout_ms / 1000,
        )


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float,
    jitter: bool,
) -> float:
    """
    Calculate backoff delay in milliseconds.

    Full jitter: random(0, min(cap, base * 2^attempt))
    """
    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))
    if jitter:
        delay = random.uniform(0, delay)
    return delay


async def retry_result(
    operation: str,
    func: Callable[[], Awaitable[Result[T, TeamLogError]]],
    policy: Optional[RetryPolicy] = None,
) -> Result[T, TeamLogError]:
    """
    Await a Result-returning call with timeout, retry and backoff.

    Args:
        operation: Name used in errors and logs
        func: Zero-argument factory producing a fresh awaitable per attempt
        policy: Retry configuration (default if None)

    Returns:
        The first Ok, the first non-retryable Err, or
        Err(StoreUnavailable) once attempts are exhausted
    """
    if policy is None:
        policy = RetryPolicy.default()

    last_error: Optional[TeamLogError] = None
    attempts = policy.max_retries + 1

    for attempt in range(attempts):
        try:
            result = await asyncio.wait_for(func(), timeout=policy.request_timeout_s)
        except asyncio.TimeoutError as e:
            last_error = StoreUnavailable.timeout(
                operation, int(policy.request_timeout_s * 1000), cause=e,
            )
        else:
            if result.is_ok():
                return result
            last_error = result.error
            if not last_error.retryable:
                return result

        logger.debug(
            "Store call failed",
            operation=operation,
            attempt=attempt + 1,
            error=str(last_error),
        )

        if attempt < policy.max_retries:
            delay = calculate_backoff(
                attempt=attempt,
                base_delay_ms=policy.base_delay_ms,
                max_delay_ms=policy.max_delay_ms,
                exponential_base=policy.exponential_base,
                jitter=policy.jitter,
            )
            await asyncio.sleep(delay / 1000)

    if attempts == 1 and last_error is not None:
        return Err(last_error)
    return Err(StoreUnavailable.retry_exhausted(
        operation,
        attempts,
        str(last_error) if last_error else "Unknown error",
    ))


# =============================================================================
# RESILIENT STORE WRAPPER
# =============================================================================

class _ResilientWriteBatch:
    """Batch whose commit is retried; re-applying the same sets and deletes is harmless."""

    __slots__ = ("_inner", "_policy")

    def __init__(self, inner: WriteBatch, policy: RetryPolicy) -> None:
        self._inner = inner
        self._policy = policy

    def set(self, collection: str, document_id: str, fields: dict[str, Any]) -> None:
        self._inner.set(collection, document_id, fields)

    def delete(self, collection: str, document_id: str) -> None:
        self._inner.delete(collection, document_id)

    def __len__(self) -> int:
        return len(self._inner)

    async def commit(self) -> Result[int, TeamLogError]:
        return await retry_result("commit", self._inner.commit, self._policy)


class ResilientDocumentStore:
    """
    Wraps a document store with timeouts and retries.

    Idempotent calls (get, query, put, delete, count, batch commit) use the
    configured policy. ``update`` appends text during coalescing, so a
    retry after an unobserved success would append twice: it runs once,
    bounded by the request timeout only.
    """

    __slots__ = ("_inner", "_policy", "_update_policy", "max_batch_operations")

    def __init__(
        self,
        inner: DocumentStoreProtocol,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._inner = inner
        self._policy = policy or RetryPolicy.default()
        self._update_policy = RetryPolicy.no_retry(self._policy.request_timeout_s)
        self.max_batch_operations = inner.max_batch_operations

    @property
    def inner(self) -> DocumentStoreProtocol:
        return self._inner

    @property
    def metrics(self) -> Any:
        """The wrapped backend's counters, or None when it keeps none."""
        return getattr(self._inner, "metrics", None)

    async def connect(self) -> Result[None, TeamLogError]:
        return await self._inner.connect()  # type: ignore[attr-defined]

    async def close(self) -> None:
        await self._inner.close()  # type: ignore[attr-defined]

    def new_id(self) -> str:
        return self._inner.new_id()

    async def get(
        self,
        collection: str,
        document_id: str,
    ) -> Result[Optional[StoredDocument], TeamLogError]:
        return await retry_result(
            "get", lambda: self._inner.get(collection, document_id), self._policy,
        )

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> Result[list[StoredDocument], TeamLogError]:
        return await retry_result(
            "query",
            lambda: self._inner.query(collection, filters, order_by, limit),
            self._policy,
        )

    async def put(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        merge: bool = False,
    ) -> Result[None, TeamLogError]:
        return await retry_result(
            "put",
            lambda: self._inner.put(collection, document_id, fields, merge),
            self._policy,
        )

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> Result[None, TeamLogError]:
        return await retry_result(
            "update",
            lambda: self._inner.update(collection, document_id, fields),
            self._update_policy,
        )

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> Result[bool, TeamLogError]:
        return await retry_result(
            "delete", lambda: self._inner.delete(collection, document_id), self._policy,
        )

    async def count(self, collection: str) -> Result[int, TeamLogError]:
        return await retry_result(
            "count", lambda: self._inner.count(collection), self._policy,
        )

    def batch(self) -> _ResilientWriteBatch:
        return _ResilientWriteBatch(self._inner.batch(), self._policy)
