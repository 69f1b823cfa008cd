"""
Error Hierarchy for the Team Message Log

Design Principles:
- Store-facing operations return Err(TeamLogError) instead of raising
- Extraction and coalescing never fail; they degrade to Unknown / no-merge
- Every error carries a stable kind, a code and a retryable flag

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Timestamp for correlation with logs

Usage:
    result = await live_log.append("agentX", "team", "hello", "message")
    match result:
        case Ok(outcome):
            ...
        case Err(MalformedInput() as error):
            return Response.json(error.to_dict(), status=400)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import uuid4

from teamlog.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Configuration errors
    - 2xxx: Store errors
    - 3xxx: Input errors
    - 4xxx: Lookup errors
    - 5xxx: Compaction errors
    """

    # Configuration errors (1xxx)
    CONFIG_MISSING = 1001
    CONFIG_INVALID = 1002

    # Store errors (2xxx)
    STORE_CONNECTION_FAILED = 2001
    STORE_TIMEOUT = 2002
    STORE_RETRY_EXHAUSTED = 2003
    STORE_BATCH_FAILED = 2004
    STORE_OPERATION_FAILED = 2005

    # Input errors (3xxx)
    INPUT_MISSING_FIELD = 3001
    INPUT_INVALID_VALUE = 3002
    INPUT_BATCH_TOO_LARGE = 3003
    INPUT_DUPLICATE_ID = 3004

    # Lookup errors (4xxx)
    NOT_FOUND = 4001

    # Compaction errors (5xxx)
    COMPACTION_PARTIAL = 5001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class TeamLogError(Exception):
    """
    Base class for all team log errors.

    Subclasses set ``kind`` (stable name surfaced to callers) and
    ``retryable`` (whether re-invoking the same operation may succeed).
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[str] = "internal_error"
    retryable: ClassVar[bool] = False

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error for logging and API responses.

        The cause is reported by message only.
        """
        data: dict[str, Any] = {
            "kind": self.kind,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "error_id": self.error_id,
            "retryable": self.retryable,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(TeamLogError):
    """Missing or invalid configuration. Fatal at startup."""

    kind: ClassVar[str] = "configuration_error"

    @classmethod
    def missing(cls, variable: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIG_MISSING,
            message=f"Required setting {variable} is not set",
            context={"variable": variable},
        )

    @classmethod
    def invalid(
        cls,
        variable: str,
        reason: str,
        cause: Optional[Exception] = None,
    ) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIG_INVALID,
            message=f"Invalid setting {variable}: {reason}",
            cause=cause,
            context={"variable": variable, "reason": reason},
        )


# =============================================================================
# STORE ERRORS
# =============================================================================
@dataclass
class StoreUnavailable(TeamLogError):
    """
    Transient document store failure.

    Retryable with backoff; surfaced as service-unavailable once
    retries are exhausted.
    """

    kind: ClassVar[str] = "store_unavailable"
    retryable: ClassVar[bool] = True

    @classmethod
    def connection_failed(
        cls,
        target: str,
        cause: Optional[Exception] = None,
    ) -> StoreUnavailable:
        return cls(
            code=ErrorCode.STORE_CONNECTION_FAILED,
            message=f"Failed to reach document store at {target}",
            cause=cause,
            context={"target": target},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        timeout_ms: int,
        cause: Optional[Exception] = None,
    ) -> StoreUnavailable:
        return cls(
            code=ErrorCode.STORE_TIMEOUT,
            message=f"Operation '{operation}' timed out after {timeout_ms}ms",
            cause=cause,
            context={"operation": operation, "timeout_ms": timeout_ms},
        )

    @classmethod
    def operation_failed(
        cls,
        operation: str,
        collection: str,
        cause: Optional[Exception] = None,
    ) -> StoreUnavailable:
        return cls(
            code=ErrorCode.STORE_OPERATION_FAILED,
            message=f"Operation '{operation}' failed on collection '{collection}'",
            cause=cause,
            context={"operation": operation, "collection": collection},
        )

    @classmethod
    def batch_failed(
        cls,
        operations: int,
        cause: Optional[Exception] = None,
    ) -> StoreUnavailable:
        return cls(
            code=ErrorCode.STORE_BATCH_FAILED,
            message=f"Batch of {operations} operations failed to commit",
            cause=cause,
            context={"operations": operations},
        )

    @classmethod
    def retry_exhausted(
        cls,
        operation: str,
        attempts: int,
        last_error: str,
    ) -> StoreUnavailable:
        return cls(
            code=ErrorCode.STORE_RETRY_EXHAUSTED,
            message=f"Operation '{operation}' failed after {attempts} attempts: {last_error}",
            context={"operation": operation, "attempts": attempts, "last_error": last_error},
        )


# =============================================================================
# INPUT ERRORS
# =============================================================================
@dataclass
class MalformedInput(TeamLogError):
    """Caller input rejected immediately. Never retried."""

    kind: ClassVar[str] = "malformed_input"

    @classmethod
    def missing_field(cls, field_name: str) -> MalformedInput:
        return cls(
            code=ErrorCode.INPUT_MISSING_FIELD,
            message=f"Field '{field_name}' is required",
            context={"field": field_name},
        )

    @classmethod
    def invalid_value(
        cls,
        field_name: str,
        value: Any,
        reason: str,
    ) -> MalformedInput:
        return cls(
            code=ErrorCode.INPUT_INVALID_VALUE,
            message=f"Invalid value for '{field_name}': {reason}",
            context={"field": field_name, "value": str(value)[:100], "reason": reason},
        )

    @classmethod
    def batch_too_large(cls, operations: int, limit: int) -> MalformedInput:
        return cls(
            code=ErrorCode.INPUT_BATCH_TOO_LARGE,
            message=f"Batch has {operations} operations, limit is {limit}",
            context={"operations": operations, "limit": limit},
        )

    @classmethod
    def duplicate_id(cls, collection: str, document_id: str) -> MalformedInput:
        return cls(
            code=ErrorCode.INPUT_DUPLICATE_ID,
            message=f"Document '{document_id}' already exists in '{collection}'",
            context={"collection": collection, "document_id": document_id},
        )


# =============================================================================
# LOOKUP ERRORS
# =============================================================================
@dataclass
class NotFound(TeamLogError):
    """Referenced document is absent. Reported, not fatal."""

    kind: ClassVar[str] = "not_found"

    @classmethod
    def document(cls, collection: str, document_id: str) -> NotFound:
        return cls(
            code=ErrorCode.NOT_FOUND,
            message=f"Document '{document_id}' not found in '{collection}'",
            context={"collection": collection, "document_id": document_id},
        )


# =============================================================================
# COMPACTION ERRORS
# =============================================================================
@dataclass
class PartialCompaction(TeamLogError):
    """
    A compaction batch failed to commit partway through a run.

    Earlier batches are committed; the run is safe to re-invoke since the
    next run recomputes the oldest set from what is still live.
    """

    kind: ClassVar[str] = "partial_compaction"
    retryable: ClassVar[bool] = True

    @classmethod
    def batch_failed(
        cls,
        relocated: int,
        selected: int,
        cause: Optional[Exception] = None,
    ) -> PartialCompaction:
        return cls(
            code=ErrorCode.COMPACTION_PARTIAL,
            message=f"Compaction stopped after relocating {relocated} of {selected} messages",
            cause=cause,
            context={"relocated": relocated, "selected": selected},
        )

    @property
    def relocated(self) -> int:
        return int(self.context.get("relocated", 0))
