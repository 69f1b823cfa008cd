"""
Archive Store and Paginator

The archive is unbounded and append-mostly: the compactor writes into it,
readers page through it. Pages are cut from the newest end:

    page 0 = newest page_size messages
    page 1 = the page_size before those
    ...

and each page is returned in chronological order. Messages with an
Unknown timestamp sort as oldest, so they land on the final page.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from teamlog.core import constants as C
from teamlog.core.config import MessageLogConfig
from teamlog.core.errors import MalformedInput, TeamLogError
from teamlog.core.types import Clock, Err, Ok, Result, Timestamp
from teamlog.messages.model import Message
from teamlog.messages.timestamps import message_from_document
from teamlog.storage.protocols import DocumentStoreProtocol


@dataclass(frozen=True, slots=True)
class ArchivePage:
    """One page of archived messages, oldest first."""

    items: list[Message]
    total: int
    has_more: bool
    page: int
    page_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.items],
            "page": self.page,
            "limit": self.page_size,
            "total": self.total,
            "hasMore": self.has_more,
        }


class ArchiveStore:
    """Read access to the archive collection."""

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
        return self._config.archive_collection

    async def list_messages(self) -> Result[list[Message], TeamLogError]:
        result = await self._store.query(self.collection)
        if result.is_err():
            return result
        now = self._clock()
        return Ok([
            message_from_document(
                doc,
                archived=True,
                now=now,
                future_skew_seconds=self._config.future_skew_seconds,
            )
            for doc in result.value
        ])

    async def count(self) -> Result[int, TeamLogError]:
        return await self._store.count(self.collection)


class Paginator:
    """Serves bounded, ordered slices of the archive."""

    __slots__ = ("_archive", "_default_page_size", "_max_page_size")

    def __init__(
        self,
        archive: ArchiveStore,
        default_page_size: int = C.DEFAULT_PAGE_SIZE,
        max_page_size: int = C.MAX_PAGE_SIZE,
    ) -> None:
        self._archive = archive
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    @classmethod
    def from_config(cls, archive: ArchiveStore, config: MessageLogConfig) -> Paginator:
        return cls(archive, config.default_page_size, config.max_page_size)

    def clamp_page_size(self, page_size: Optional[int]) -> int:
        """None means the default; anything else is clamped to [1, max]."""
        if page_size is None:
            return self._default_page_size
        return max(1, min(page_size, self._max_page_size))

    async def page(
        self,
        page_index: int = 0,
        page_size: Optional[int] = None,
    ) -> Result[ArchivePage, TeamLogError]:
        """
        Fetch one archive page.

        Returns:
            Ok(ArchivePage); a page past the end is empty with has_more False.
            Err(MalformedInput) for a negative page index.
        """
        if isinstance(page_index, bool) or not isinstance(page_index, int) or page_index < 0:
            return Err(MalformedInput.invalid_value("page", page_index, "must be a non-negative integer"))
        size = self.clamp_page_size(page_size)

        result = await self._archive.list_messages()
        if result.is_err():
            return result

        # Stable ascending sort, then reverse: ties stay in insertion
        # order once each page is flipped back to chronological order.
        newest_first = sorted(result.value, key=lambda m: m.timestamp)[::-1]
        total = len(newest_first)
        offset = page_index * size
        window = newest_first[offset:offset + size]

        return Ok(ArchivePage(
            items=window[::-1],
            total=total,
            has_more=offset + size < total,
            page=page_index,
            page_size=size,
        ))
