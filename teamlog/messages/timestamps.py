"""
Timestamp Extraction: One Authoritative Point in Time per Record

Resolution order:
    1. Structured datetime: returned as stored (trusted, never clamped)
    2. String: repair ``THH-MM-SS`` to ``THH:MM:SS``, parse as ISO-8601;
       anything more than the skew tolerance ahead of now is clamped to
       now, since some writers label local time as UTC
    3. Number: epoch milliseconds, never clamped; values outside the
       datetime range (e.g. epoch nanoseconds) fall through
    4. Identifier prefix ``YYYY-MM-DDT<digits and hyphens>Z``, repaired
       the same way (ids embed their creation time)
    5. Timestamp.UNKNOWN

Extraction never raises. Strings without an offset are read as UTC.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from teamlog.core import constants as C
from teamlog.core.types import Timestamp
from teamlog.messages.model import (
    FIELD_TIMESTAMP,
    Absent,
    Message,
    EncodedString,
    EpochMillis,
    RawTimestamp,
    StructuredTime,
    classify_timestamp,
)
from teamlog.observability.logging import StructuredLogger
from teamlog.storage.protocols import StoredDocument

logger = StructuredLogger("teamlog.messages.timestamps")

_HYPHENATED_TIME = re.compile(r"T(\d{2})-(\d{2})-(\d{2})")
_ID_TIME_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2}T[\d-]+Z)")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MIN_EPOCH_MILLIS = (datetime.min.replace(tzinfo=timezone.utc) - _EPOCH) // timedelta(milliseconds=1)
_MAX_EPOCH_MILLIS = (datetime.max.replace(tzinfo=timezone.utc) - _EPOCH) // timedelta(milliseconds=1)


def repair_separators(value: str) -> str:
    """``2026-02-09T01-10-00Z`` -> ``2026-02-09T01:10:00Z`` (first occurrence only)."""
    return _HYPHENATED_TIME.sub(r"T\1:\2:\3", value, count=1)


def parse_iso(value: str) -> Optional[Timestamp]:
    """Parse an ISO-8601 string after separator repair; None if unparseable."""
    try:
        parsed = datetime.fromisoformat(repair_separators(value.strip()))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return Timestamp.from_datetime(parsed)


def timestamp_from_id(document_id: str) -> Optional[Timestamp]:
    match = _ID_TIME_PREFIX.match(document_id)
    if match is None:
        return None
    return parse_iso(match.group(1))


def resolve_timestamp(
    raw: RawTimestamp,
    document_id: str,
    now: Optional[Timestamp] = None,
    future_skew_seconds: float = C.FUTURE_SKEW_TOLERANCE_S,
) -> Timestamp:
    """Total function over the raw timestamp variant."""
    match raw:
        case StructuredTime(value=value):
            return Timestamp.from_datetime(value)
        case EncodedString(value=value):
            parsed = parse_iso(value)
            if parsed is not None:
                current = now if now is not None else Timestamp.now()
                if parsed > current.plus_seconds(future_skew_seconds):
                    return current
                return parsed
            logger.debug(
                "Unparseable timestamp string",
                document_id=document_id,
                raw_ts=value[:64],
            )
        case EpochMillis(value=value):
            if _MIN_EPOCH_MILLIS <= value <= _MAX_EPOCH_MILLIS:
                return Timestamp.from_millis(value)
            logger.debug(
                "Epoch millis out of range",
                document_id=document_id,
                raw_ts=value,
            )
        case Absent():
            pass

    from_id = timestamp_from_id(document_id)
    if from_id is not None:
        return from_id
    return Timestamp.UNKNOWN


def extract_timestamp(
    record: Mapping[str, Any],
    document_id: str,
    now: Optional[Timestamp] = None,
    future_skew_seconds: float = C.FUTURE_SKEW_TOLERANCE_S,
) -> Timestamp:
    """
    Authoritative timestamp of a stored record.

    Example:
        >>> extract_timestamp({"ts": "2026-02-09T01-10-00Z"}, "abc")
        Timestamp(2026-02-09T01:10:00.000Z)
    """
    return resolve_timestamp(
        classify_timestamp(record.get(FIELD_TIMESTAMP)),
        document_id,
        now=now,
        future_skew_seconds=future_skew_seconds,
    )


def message_from_document(
    document: StoredDocument,
    archived: bool = False,
    now: Optional[Timestamp] = None,
    future_skew_seconds: float = C.FUTURE_SKEW_TOLERANCE_S,
) -> Message:
    """Reader view of a stored document with its authoritative timestamp."""
    timestamp = extract_timestamp(
        document.data, document.id, now=now, future_skew_seconds=future_skew_seconds,
    )
    return Message.from_document(document.id, document.data, timestamp, archived=archived)
