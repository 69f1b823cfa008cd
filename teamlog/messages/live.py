"""
Live Log Store: The Bounded Collection of Current Messages

Write Path:
    append() looks up the most recent live message by authoritative
    timestamp and either coalesces into it (one update) or inserts a new
    message (one create); never both. The lookup scans the whole live set
    because stored timestamps mix encodings and no native ordering of the
    ``ts`` field is trustworthy across them. Compaction keeps that set
    small.

    The read-then-write lookup is not serialized across writers. Two
    concurrent appends may both extend the same entry or both insert;
    fetch_recent() re-coalesces on read so displays stay tidy.

Read Path:
    fetch_recent() orders the live set by authoritative timestamp
    (stable, so ties keep insertion order), coalesces the newest slice
    and returns the newest entries. Read-time merges are not written back.

Deletes:
    By id, by id list, by sender, and by age. Multi-document deletes go
    through write batches sized to the store's operation limit.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from teamlog.core import constants as C
from teamlog.core.config import MessageLogConfig
from teamlog.core.errors import MalformedInput, NotFound, TeamLogError
from teamlog.core.types import Clock, Err, Ok, Result, Timestamp
from teamlog.messages.coalescer import can_merge, coalesce, merge_text
from teamlog.messages.model import (
    FIELD_KIND,
    FIELD_RECIPIENT,
    FIELD_SENDER,
    FIELD_TEXT,
    FIELD_TIMESTAMP,
    Message,
    MessageKind,
)
from teamlog.messages.timestamps import message_from_document
from teamlog.observability.logging import StructuredLogger
from teamlog.storage.protocols import DocumentStoreProtocol, FieldFilter

logger = StructuredLogger("teamlog.messages.live")


def _finite(value: float) -> bool:
    """Ints are always finite; floats may be NaN or infinite (JSON allows both)."""
    return not isinstance(value, float) or math.isfinite(value)


@dataclass(frozen=True, slots=True)
class AppendResult:
    """Outcome of an append: the id written and whether it was a coalesce."""

    id: str
    merged: bool

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "merged": self.merged}


class LiveLogStore:
    """
    Owner of the live message collection.

    Example:
        live = LiveLogStore(store, MessageLogConfig())
        result = await live.append("agentX", "team", "hello")
        if result.is_ok():
            print(result.value.id, result.value.merged)
    """

    __slots__ = ("_store", "_config", "_clock")

    def __init__(
        self,
        store: DocumentStoreProtocol,
        config: Optional[MessageLogConfig] = None,
        clock: Clock = Timestamp.now,
    ) -> None:
        self._store = store
        self._config = config or MessageLogConfig()
        self._clock = clock

    @property
    def collection(self) -> str:
        return self._config.live_collection

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    def _to_message(self, document: Any, now: Timestamp) -> Message:
        return message_from_document(
            document,
            archived=False,
            now=now,
            future_skew_seconds=self._config.future_skew_seconds,
        )

    async def list_messages(
        self,
        filters: Sequence[FieldFilter] = (),
        limit: Optional[int] = None,
    ) -> Result[list[Message], TeamLogError]:
        """Live messages in stored order (not sorted)."""
        result = await self._store.query(self.collection, filters=filters, limit=limit)
        if result.is_err():
            return result
        now = self._clock()
        return Ok([self._to_message(doc, now) for doc in result.value])

    async def latest(self) -> Result[Optional[Message], TeamLogError]:
        """Most recent live message by authoritative timestamp; later insertion wins ties."""
        result = await self.list_messages()
        if result.is_err():
            return result
        latest: Optional[Message] = None
        for message in result.value:
            if latest is None or message.timestamp >= latest.timestamp:
                latest = message
        return Ok(latest)

    async def fetch_recent(
        self,
        limit: Optional[int] = None,
        window_seconds: Optional[float] = None,
    ) -> Result[list[Message], TeamLogError]:
        """
        Newest coalesced messages in chronological order.

        The whole live set is read and ordered by authoritative timestamp,
        then the newest ``recent_scan_limit`` are coalesced. Messages with
        an Unknown timestamp are kept and sort as oldest.
        """
        limit = self._config.recent_limit if limit is None else limit
        if limit < 1:
            return Err(MalformedInput.invalid_value("limit", limit, "must be >= 1"))
        window = self._config.merge_window_seconds if window_seconds is None else window_seconds
        if not _finite(window) or window < 0:
            return Err(MalformedInput.invalid_value("window_seconds", window, "must be a finite number >= 0"))

        result = await self.list_messages()
        if result.is_err():
            return result

        ordered = sorted(result.value, key=lambda m: m.timestamp)
        scanned = ordered[-self._config.recent_scan_limit:]
        candidates = scanned[-self._config.recent_merge_scan:]
        return Ok(coalesce(candidates, window)[-limit:])

    # -------------------------------------------------------------------------
    # WRITE PATH
    # -------------------------------------------------------------------------

    async def append(
        self,
        sender: Optional[str],
        recipient: Optional[str],
        text: Optional[str],
        kind: Optional[str] = None,
        message_id: Optional[str] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> Result[AppendResult, TeamLogError]:
        """
        Append a message, coalescing into the latest one when eligible.

        Args:
            sender: Writer identity (configured default sender if empty)
            recipient: Destination (broadcast recipient if empty)
            text: Body; required
            kind: Message kind (ordinary message if empty)
            message_id: Caller-chosen id for an insert; must not exist
            extra: Additional stored fields, written on insert only

        Returns:
            Ok(AppendResult) or Err(MalformedInput | StoreUnavailable)
        """
        if text is None or not isinstance(text, str) or not text.strip():
            return Err(MalformedInput.missing_field(FIELD_TEXT))
        sender = sender or self._config.default_sender
        recipient = recipient or self._config.default_recipient
        kind = kind or MessageKind.MESSAGE.value

        if message_id is not None:
            existing = await self._store.get(self.collection, message_id)
            if existing.is_err():
                return existing
            if existing.value is not None:
                return Err(MalformedInput.duplicate_id(self.collection, message_id))

        latest = await self.latest()
        if latest.is_err():
            return latest

        now = self._clock()
        previous = latest.value
        if previous is not None and can_merge(
            previous, sender, kind, now, self._config.merge_window_seconds,
        ):
            updated = await self._store.update(self.collection, previous.id, {
                FIELD_TEXT: merge_text(previous.text, text),
                FIELD_TIMESTAMP: now.to_datetime(),
            })
            if updated.is_ok():
                logger.debug("Coalesced message", message_id=previous.id, sender=sender)
                return Ok(AppendResult(id=previous.id, merged=True))
            if not isinstance(updated.error, NotFound):
                return updated
            # Relocated or deleted since the lookup
            logger.debug("Coalesce target vanished, inserting", message_id=previous.id)

        document_id = message_id or self._store.new_id()
        fields = dict(extra or {})
        fields.update({
            FIELD_SENDER: sender,
            FIELD_RECIPIENT: recipient,
            FIELD_TEXT: text,
            FIELD_KIND: kind,
            FIELD_TIMESTAMP: now.to_datetime(),
        })
        inserted = await self._store.put(self.collection, document_id, fields)
        if inserted.is_err():
            return inserted
        logger.debug("Inserted message", message_id=document_id, sender=sender, kind=kind)
        return Ok(AppendResult(id=document_id, merged=False))

    # -------------------------------------------------------------------------
    # DELETES
    # -------------------------------------------------------------------------

    async def delete_one(self, message_id: str) -> Result[None, TeamLogError]:
        if not message_id:
            return Err(MalformedInput.missing_field("id"))
        result = await self._store.delete(self.collection, message_id)
        if result.is_err():
            return result
        if not result.value:
            return Err(NotFound.document(self.collection, message_id))
        logger.info("Deleted message", message_id=message_id)
        return Ok(None)

    async def delete_many(self, message_ids: Iterable[Any]) -> Result[int, TeamLogError]:
        """Delete the given ids; returns how many of them existed."""
        wanted = list(dict.fromkeys(str(i) for i in message_ids if i is not None and i != ""))
        if not wanted:
            return Err(MalformedInput.missing_field("ids"))

        live = await self._store.query(self.collection)
        if live.is_err():
            return live
        present = {doc.id for doc in live.value}
        return await self._delete_ids([i for i in wanted if i in present], reason="ids")

    async def delete_by_sender(self, sender: str) -> Result[int, TeamLogError]:
        """Delete every live message whose sender equals ``sender``."""
        if not sender:
            return Err(MalformedInput.missing_field(FIELD_SENDER))
        matched = await self._store.query(
            self.collection, filters=[FieldFilter(FIELD_SENDER, "==", sender)],
        )
        if matched.is_err():
            return matched
        return await self._delete_ids([doc.id for doc in matched.value], reason="sender")

    async def delete_older_than(self, days: float) -> Result[int, TeamLogError]:
        """
        Delete live messages older than ``days``.

        Messages whose timestamp is Unknown are kept: their age cannot be
        established.
        """
        if isinstance(days, bool) or not isinstance(days, (int, float)):
            return Err(MalformedInput.invalid_value("days", days, "must be a positive number"))
        if not _finite(days) or days <= 0:
            return Err(MalformedInput.invalid_value("days", days, "must be a positive number"))
        now = self._clock()
        max_age_seconds = days * C.DAY_S
        if max_age_seconds >= now.seconds:
            # Cutoff at or before the epoch: no known timestamp is older
            return Ok(0)
        result = await self.list_messages()
        if result.is_err():
            return result
        cutoff = now.plus_seconds(-max_age_seconds)
        stale = [
            m.id for m in result.value
            if m.timestamp.is_known and m.timestamp < cutoff
        ]
        return await self._delete_ids(stale, reason="age")

    async def _delete_ids(self, ids: Sequence[str], reason: str) -> Result[int, TeamLogError]:
        chunk_size = self._store.max_batch_operations
        deleted = 0
        for start in range(0, len(ids), chunk_size):
            chunk = ids[start:start + chunk_size]
            batch = self._store.batch()
            for message_id in chunk:
                batch.delete(self.collection, message_id)
            committed = await batch.commit()
            if committed.is_err():
                logger.error(
                    "Bulk delete failed",
                    reason=reason,
                    deleted=deleted,
                    remaining=len(ids) - deleted,
                    error=str(committed.error),
                )
                return committed
            deleted += len(chunk)
        if deleted:
            logger.info("Deleted messages", reason=reason, count=deleted)
        return Ok(deleted)
