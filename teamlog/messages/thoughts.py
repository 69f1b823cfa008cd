"""
Thought Stream: Typed Notes from the Assistant Author

Thoughts are ordinary live-log records of kind ``thought`` written by a
single configured author. They carry a ``thoughtType`` label and a list of
``tags``, are inserted directly (never coalesced) and are compacted and
archived like any other message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final, Optional, Sequence

from teamlog.core.config import MessageLogConfig
from teamlog.core.errors import MalformedInput, TeamLogError
from teamlog.core.types import Clock, Err, Ok, Result, Timestamp
from teamlog.messages.model import (
    FIELD_KIND,
    FIELD_RECIPIENT,
    FIELD_SENDER,
    FIELD_TEXT,
    FIELD_TIMESTAMP,
    Message,
    MessageKind,
)
from teamlog.messages.live import LiveLogStore
from teamlog.observability.logging import StructuredLogger
from teamlog.storage.protocols import DocumentStoreProtocol, FieldFilter

logger = StructuredLogger("teamlog.messages.thoughts")

FIELD_THOUGHT_TYPE: Final[str] = "thoughtType"
FIELD_TAGS: Final[str] = "tags"

DEFAULT_THOUGHT_LIMIT: Final[int] = 50


class ThoughtType(str, Enum):
    THOUGHT = "THOUGHT"
    INSIGHT = "INSIGHT"
    FOCUS = "FOCUS"
    QUESTION = "QUESTION"
    IDEA = "IDEA"
    CONCERN = "CONCERN"
    PROGRESS = "PROGRESS"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional[ThoughtType]:
        """Case-insensitive lookup; None for unknown labels."""
        if not value:
            return None
        return cls.__members__.get(value.strip().upper())


@dataclass(frozen=True, slots=True)
class Thought:
    id: str
    text: str
    thought_type: str
    tags: list[str]
    timestamp: Timestamp

    @classmethod
    def from_message(cls, message: Message) -> Thought:
        tags = message.extra.get(FIELD_TAGS) or []
        return cls(
            id=message.id,
            text=message.text,
            thought_type=_thought_type_of(message.extra),
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
            timestamp=message.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "msg": self.text,
            "type": self.thought_type,
            "ts": self.timestamp.isoformat() if self.timestamp.is_known else None,
            "tags": list(self.tags),
        }


@dataclass(frozen=True, slots=True)
class ThoughtListing:
    """Newest thoughts plus counts over every live thought by the author."""

    thoughts: list[Thought]
    total: int
    by_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "thoughts": [t.to_dict() for t in self.thoughts],
            "stats": {"total": self.total, "byType": dict(self.by_type)},
        }


def _thought_type_of(data: dict[str, Any]) -> str:
    value = data.get(FIELD_THOUGHT_TYPE)
    return value if isinstance(value, str) and value else ThoughtType.THOUGHT.value


class ThoughtStream:
    """Posts and lists the configured author's thoughts in the live log."""

    __slots__ = ("_store", "_live", "_config", "_clock")

    def __init__(
        self,
        store: DocumentStoreProtocol,
        config: Optional[MessageLogConfig] = None,
        clock: Clock = Timestamp.now,
    ) -> None:
        self._store = store
        self._config = config or MessageLogConfig()
        self._clock = clock
        self._live = LiveLogStore(store, self._config, clock)

    @property
    def author(self) -> str:
        return self._config.thought_author

    async def post_thought(
        self,
        text: Optional[str],
        thought_type: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Result[Thought, TeamLogError]:
        """
        Insert a thought. Unrecognised types are recorded as THOUGHT.
        """
        if not isinstance(text, str) or not text.strip():
            return Err(MalformedInput.missing_field(FIELD_TEXT))
        resolved = ThoughtType.parse(thought_type) or ThoughtType.THOUGHT
        tag_list = [str(t) for t in tags] if tags else []

        now = self._clock()
        document_id = self._store.new_id()
        result = await self._store.put(self._config.live_collection, document_id, {
            FIELD_SENDER: self.author,
            FIELD_RECIPIENT: self._config.default_recipient,
            FIELD_TEXT: text,
            FIELD_KIND: MessageKind.THOUGHT.value,
            FIELD_THOUGHT_TYPE: resolved.value,
            FIELD_TAGS: tag_list,
            FIELD_TIMESTAMP: now.to_datetime(),
        })
        if result.is_err():
            return result
        logger.debug("Posted thought", thought_id=document_id, thought_type=resolved.value)
        return Ok(Thought(
            id=document_id,
            text=text,
            thought_type=resolved.value,
            tags=tag_list,
            timestamp=now,
        ))

    async def list_thoughts(
        self,
        limit: int = DEFAULT_THOUGHT_LIMIT,
        thought_type: Optional[str] = None,
    ) -> Result[ThoughtListing, TeamLogError]:
        """
        Newest thoughts first, optionally restricted to one type.

        An unrecognised ``thought_type`` filter is ignored.
        """
        if limit < 1:
            return Err(MalformedInput.invalid_value("limit", limit, "must be >= 1"))
        result = await self._live.list_messages(
            filters=[FieldFilter(FIELD_SENDER, "==", self.author)],
        )
        if result.is_err():
            return result

        thoughts = [Thought.from_message(m) for m in result.value]
        by_type: dict[str, int] = {}
        for thought in thoughts:
            by_type[thought.thought_type] = by_type.get(thought.thought_type, 0) + 1

        wanted = ThoughtType.parse(thought_type)
        selected = sorted(thoughts, key=lambda t: t.timestamp)[::-1]
        if wanted is not None:
            selected = [t for t in selected if t.thought_type == wanted.value]

        return Ok(ThoughtListing(
            thoughts=selected[:limit],
            total=len(thoughts),
            by_type=by_type,
        ))
