"""
Core Type Definitions for the Team Message Log

Implements Result/Either monads for zero-exception control flow and the
authoritative point-in-time type used for every ordering decision.

Design Principles:
- Never use null for absence (use Optional or Result)
- Store-facing operations return Result, pure functions never fail
- Unknown time is the epoch origin, never "now"
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Literal,
    TypeVar,
    Union,
)

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# RESULT: STORE CALLS RETURN VALUES, NOT EXCEPTIONS
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """A successful outcome carrying ``value``."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        return Ok(fn(self.value))


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    A failed outcome carrying a typed ``error``.

    Services pass an Err straight back to their caller (``return result``)
    so the original error, with its code and context, reaches the surface.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """Raises RuntimeError: reaching here means an unchecked Err."""
        raise RuntimeError(f"unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        return self


Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP: AUTHORITATIVE POINT IN TIME
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Point in time with nanosecond precision.

    Stores nanoseconds since Unix epoch. ``Timestamp.UNKNOWN`` (the epoch
    origin) is the terminal fallback of timestamp extraction; it compares
    as the oldest possible value so it sorts first ascending and last
    descending.
    """

    nanos: int

    NANOS_PER_SECOND: ClassVar[int] = 1_000_000_000
    NANOS_PER_MILLI: ClassVar[int] = 1_000_000
    NANOS_PER_MICRO: ClassVar[int] = 1_000
    UNKNOWN: ClassVar[Timestamp]

    @classmethod
    def now(cls) -> Timestamp:
        """Capture current wall-clock time."""
        return cls(nanos=time.time_ns())

    @classmethod
    def from_seconds(cls, seconds: float) -> Timestamp:
        """Convert floating-point seconds to Timestamp."""
        return cls(nanos=int(seconds * cls.NANOS_PER_SECOND))

    @classmethod
    def from_millis(cls, millis: float) -> Timestamp:
        """Convert milliseconds since epoch to Timestamp."""
        if float(millis).is_integer():
            return cls(nanos=int(millis) * cls.NANOS_PER_MILLI)
        return cls(nanos=int(millis * cls.NANOS_PER_MILLI))

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        """
        Convert a datetime to Timestamp.

        Naive datetimes are taken to be UTC.
        """
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - _EPOCH
        micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
        return cls(nanos=micros * cls.NANOS_PER_MICRO)

    @property
    def seconds(self) -> float:
        return self.nanos / self.NANOS_PER_SECOND

    @property
    def millis(self) -> int:
        return self.nanos // self.NANOS_PER_MILLI

    @property
    def is_known(self) -> bool:
        """False for the UNKNOWN sentinel (and anything at or before it)."""
        return self.nanos > 0

    def to_datetime(self) -> datetime:
        """Convert to an aware UTC datetime (microsecond precision)."""
        return _EPOCH + timedelta(microseconds=self.nanos // self.NANOS_PER_MICRO)

    def isoformat(self) -> str:
        """ISO-8601 UTC string with millisecond precision and a Z suffix."""
        return self.to_datetime().isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def plus_seconds(self, seconds: float) -> Timestamp:
        return Timestamp(nanos=self.nanos + int(seconds * self.NANOS_PER_SECOND))

    def __sub__(self, other: Timestamp) -> int:
        """Subtract timestamps, returning difference in nanos."""
        return self.nanos - other.nanos

    def __repr__(self) -> str:
        if not self.is_known:
            return "Timestamp(UNKNOWN)"
        return f"Timestamp({self.isoformat()})"


Timestamp.UNKNOWN = Timestamp(nanos=0)


# Injectable wall clock for services; tests pin it.
Clock = Callable[[], Timestamp]
