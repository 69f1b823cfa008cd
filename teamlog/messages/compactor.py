"""
Compactor: Live Log to Archive Relocation

Keeps the live log soft-bounded by moving its oldest entries into the
archive.

Run:
    1. Snapshot the live collection (relocation only ever touches ids in
       this snapshot, so concurrent appends are never moved or lost)
    2. total <= keep_live: nothing to do
    3. Sort ascending by authoritative timestamp (insertion order on ties)
    4. Select the oldest min(total - keep_live, max_per_run)
    5. Per batch: set archive record (+ archivedAt), delete live record;
       each relocation uses two operation slots, so a 500-operation
       store limit gives 250 relocations per batch

Failure:
    Batches commit all-or-nothing. A failed commit stops the run with
    PartialCompaction carrying the count already relocated. Re-running is
    safe: the next snapshot no longer contains relocated ids.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

from teamlog.core import constants as C
from teamlog.core.config import MessageLogConfig
from teamlog.core.errors import MalformedInput, PartialCompaction, TeamLogError
from teamlog.core.types import Clock, Err, Ok, Result, Timestamp
from teamlog.messages.model import FIELD_ARCHIVED_AT
from teamlog.messages.timestamps import extract_timestamp
from teamlog.observability.logging import StructuredLogger
from teamlog.storage.protocols import DocumentStoreProtocol, StoredDocument

logger = StructuredLogger("teamlog.messages.compactor")


@dataclass(frozen=True, slots=True)
class CompactionReport:
    """Outcome of one compaction run."""

    relocated: int
    remaining_live: int
    batches: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "relocated": self.relocated,
            "remainingLive": self.remaining_live,
            "batches": self.batches,
        }


class Compactor:
    """
    Moves overflow from the live collection into the archive.

    Example:
        compactor = Compactor(store, MessageLogConfig())
        result = await compactor.compact(keep_live=100, max_per_run=200)
        match result:
            case Ok(report):
                print(report.relocated)
            case Err(PartialCompaction() as e):
                print("stopped after", e.relocated)
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
    def relocations_per_batch(self) -> int:
        return max(1, self._store.max_batch_operations // C.OPS_PER_RELOCATION)

    async def compact(
        self,
        keep_live: Optional[int] = None,
        max_per_run: Optional[int] = None,
    ) -> Result[CompactionReport, TeamLogError]:
        keep_live = self._config.keep_live if keep_live is None else keep_live
        max_per_run = self._config.max_per_run if max_per_run is None else max_per_run
        if keep_live < 0:
            return Err(MalformedInput.invalid_value("keep_live", keep_live, "must be >= 0"))
        if max_per_run < 1:
            return Err(MalformedInput.invalid_value("max_per_run", max_per_run, "must be >= 1"))

        start = time.perf_counter()
        live_collection = self._config.live_collection
        snapshot = await self._store.query(live_collection)
        if snapshot.is_err():
            return snapshot

        documents = snapshot.value
        total = len(documents)
        if total <= keep_live:
            logger.debug("Compaction not needed", live=total, keep_live=keep_live)
            return Ok(CompactionReport(relocated=0, remaining_live=total))

        now = self._clock()
        keyed = [
            (extract_timestamp(
                doc.data,
                doc.id,
                now=now,
                future_skew_seconds=self._config.future_skew_seconds,
            ), doc)
            for doc in documents
        ]
        keyed.sort(key=lambda pair: pair[0])
        selected = [doc for _, doc in keyed[:min(total - keep_live, max_per_run)]]

        logger.info(
            "Compaction started",
            live=total,
            selected=len(selected),
            keep_live=keep_live,
        )

        archived_at = now.to_datetime()
        relocated = 0
        batches = 0
        per_batch = self.relocations_per_batch
        for offset in range(0, len(selected), per_batch):
            chunk = selected[offset:offset + per_batch]
            committed = await self._relocate(chunk, archived_at)
            if committed.is_err():
                logger.error(
                    "Compaction batch failed",
                    relocated=relocated,
                    selected=len(selected),
                    error=str(committed.error),
                )
                return Err(PartialCompaction.batch_failed(
                    relocated, len(selected), cause=committed.error,
                ))
            relocated += len(chunk)
            batches += 1
            logger.debug("Compaction batch committed", size=len(chunk), relocated=relocated)

        report = CompactionReport(
            relocated=relocated,
            remaining_live=total - relocated,
            batches=batches,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            "Compaction finished",
            relocated=report.relocated,
            remaining_live=report.remaining_live,
            batches=report.batches,
            duration_ms=round(report.duration_ms, 2),
        )
        return Ok(report)

    async def _relocate(
        self,
        chunk: list[StoredDocument],
        archived_at: Any,
    ) -> Result[int, TeamLogError]:
        batch = self._store.batch()
        for doc in chunk:
            record = dict(doc.data)
            record[FIELD_ARCHIVED_AT] = archived_at
            batch.set(self._config.archive_collection, doc.id, record)
            batch.delete(self._config.live_collection, doc.id)
        return await batch.commit()
