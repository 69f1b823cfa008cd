"""
Message Model: Stored Records and Their Timestamp Variants

A stored message's ``ts`` field arrives in whichever encoding its writer
used: a structured datetime (API writes), an ISO-like string sometimes with
hyphenated time separators (agent daemons), epoch milliseconds, or nothing
at all. The raw field is classified into a tagged variant here; the
authoritative point in time is always derived by
``teamlog.messages.timestamps``, never read raw.

Persisted Field Names:
    from, to, msg, type, ts; archive records add archivedAt
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Final, Optional, Union

from teamlog.core import constants as C
from teamlog.core.types import Timestamp


# =============================================================================
# FIELD NAMES
# =============================================================================
FIELD_SENDER: Final[str] = "from"
FIELD_RECIPIENT: Final[str] = "to"
FIELD_TEXT: Final[str] = "msg"
FIELD_KIND: Final[str] = "type"
FIELD_TIMESTAMP: Final[str] = "ts"
FIELD_ARCHIVED_AT: Final[str] = "archivedAt"

CORE_FIELDS: Final[frozenset[str]] = frozenset({
    FIELD_SENDER,
    FIELD_RECIPIENT,
    FIELD_TEXT,
    FIELD_KIND,
    FIELD_TIMESTAMP,
    FIELD_ARCHIVED_AT,
})


# =============================================================================
# MESSAGE KINDS
# =============================================================================
class MessageKind(str, Enum):
    """Known message categories. Stored kinds outside this set are kept as-is."""
    MESSAGE = "message"
    TASK_ADDED = "task_added"
    TASK = "task"
    SOLVING_MODE = "solving_mode"
    BASH_REQUEST = "bash_request"
    THOUGHT = "thought"


# Kinds carrying structured side effects; never coalesced
NON_MERGEABLE_KINDS: Final[frozenset[str]] = frozenset({
    MessageKind.TASK_ADDED.value,
    MessageKind.TASK.value,
    MessageKind.SOLVING_MODE.value,
    MessageKind.BASH_REQUEST.value,
})


def is_mergeable_kind(kind: str) -> bool:
    return kind not in NON_MERGEABLE_KINDS


# =============================================================================
# RAW TIMESTAMP VARIANT
# =============================================================================
@dataclass(frozen=True, slots=True)
class StructuredTime:
    """Native datetime written by a trusted writer."""
    value: datetime


@dataclass(frozen=True, slots=True)
class EncodedString:
    """ISO-like string, possibly with hyphenated time separators."""
    value: str


@dataclass(frozen=True, slots=True)
class EpochMillis:
    """Milliseconds since the Unix epoch."""
    value: float


@dataclass(frozen=True, slots=True)
class Absent:
    """No usable timestamp field."""


RawTimestamp = Union[StructuredTime, EncodedString, EpochMillis, Absent]

ABSENT: Final[Absent] = Absent()


def classify_timestamp(value: Any) -> RawTimestamp:
    """Tag a stored ``ts`` value. Unsupported types are Absent."""
    if isinstance(value, datetime):
        return StructuredTime(value)
    if isinstance(value, str):
        return EncodedString(value)
    # bool is an int subclass but never a timestamp
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if math.isfinite(value):
            return EpochMillis(float(value))
    return ABSENT


# =============================================================================
# MESSAGE
# =============================================================================
@dataclass(frozen=True, slots=True)
class Message:
    """
    A message as seen by readers.

    ``timestamp`` is authoritative (``Timestamp.UNKNOWN`` when nothing
    usable was stored). ``extra`` holds stored fields beyond the core
    ones (e.g. ``thoughtType``, ``tags``) verbatim.
    """

    id: str
    sender: str
    recipient: str
    text: str
    kind: str
    timestamp: Timestamp
    archived: bool = False
    archived_at: Optional[Timestamp] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_mergeable(self) -> bool:
        return is_mergeable_kind(self.kind)

    @classmethod
    def from_document(
        cls,
        document_id: str,
        data: dict[str, Any],
        timestamp: Timestamp,
        archived: bool = False,
    ) -> Message:
        """
        Build a reader view of a stored record.

        Missing or empty core fields fall back to unknown sender, broadcast
        recipient, empty text and the ordinary message kind.
        """
        archived_at: Optional[Timestamp] = None
        raw_archived_at = data.get(FIELD_ARCHIVED_AT)
        if isinstance(raw_archived_at, datetime):
            archived_at = Timestamp.from_datetime(raw_archived_at)

        return cls(
            id=document_id,
            sender=_text_or(data.get(FIELD_SENDER), C.UNKNOWN_SENDER),
            recipient=_text_or(data.get(FIELD_RECIPIENT), C.BROADCAST_RECIPIENT),
            text=_text_or(data.get(FIELD_TEXT), ""),
            kind=_text_or(data.get(FIELD_KIND), MessageKind.MESSAGE.value),
            timestamp=timestamp,
            archived=archived,
            archived_at=archived_at,
            extra={k: v for k, v in data.items() if k not in CORE_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view; an Unknown timestamp is reported as None."""
        result: dict[str, Any] = {
            key: _jsonable(value) for key, value in self.extra.items()
        }
        result.update({
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "msg": self.text,
            "type": self.kind,
            "ts": self.timestamp.isoformat() if self.timestamp.is_known else None,
            "archived": self.archived,
        })
        if self.archived_at is not None:
            result["archivedAt"] = self.archived_at.isoformat()
        return result


def _text_or(value: Any, default: str) -> str:
    if value is None or value == "":
        return default
    return value if isinstance(value, str) else str(value)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return Timestamp.from_datetime(value).isoformat()
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value
