"""
Compactor Tests

Tests for:
- Selection of the oldest overflow by authoritative timestamp
- Per-run cap and batch sizing from the store operation limit
- Archive record fidelity (raw fields plus archivedAt)
- Partial failure reporting and safe re-runs
- Concurrent appends never relocated

Run: python -m pytest teamlog/tests/test_compactor.py -v
"""

from __future__ import annotations

import asyncio

from teamlog.core import constants as C
from teamlog.core.config import MessageLogConfig
from teamlog.core.errors import ErrorCode, MalformedInput, PartialCompaction
from teamlog.core.types import Timestamp
from teamlog.messages.compactor import Compactor
from teamlog.storage.backends import InMemoryDocumentStore
from teamlog.tests.support import FakeClock, assert_err, assert_ok, at, live_ids, seed

LIVE = C.LIVE_COLLECTION
ARCHIVE = C.ARCHIVE_COLLECTION


class FlakyCommitStore(InMemoryDocumentStore):
    """Fails exactly the n-th batch commit."""

    def __init__(self, fail_on: int, max_batch_operations: int = C.MAX_BATCH_OPERATIONS) -> None:
        super().__init__(max_batch_operations=max_batch_operations)
        self.fail_on = fail_on
        self.commits = 0

    async def _apply_batch(self, operations):
        self.commits += 1
        if self.commits == self.fail_on:
            self.inject_failure("commit")
        return await super()._apply_batch(operations)


class LateWriterStore(InMemoryDocumentStore):
    """Inserts an old-looking message right after the first live snapshot is taken."""

    def __init__(self) -> None:
        super().__init__()
        self.fired = False

    async def query(self, collection, filters=(), order_by=None, limit=None):
        result = await super().query(collection, filters, order_by, limit)
        if collection == LIVE and not self.fired:
            self.fired = True
            await self.put(LIVE, "late", {"from": "agentZ", "msg": "late", "ts": at(-99_999)})
        return result


async def seed_numbered(store: InMemoryDocumentStore, count: int) -> None:
    # m000 is the oldest
    for i in range(count):
        await seed(store, f"m{i:03d}", sender=f"s{i % 3}", ts=at(-10_000 + i))


def test_compact_relocates_oldest_overflow(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed_numbered(store, 150)
        compactor = Compactor(store, MessageLogConfig(), clock)

        report = assert_ok(await compactor.compact(keep_live=100, max_per_run=200))
        assert report.relocated == 50
        assert report.remaining_live == 100
        assert report.batches == 1

        archived = {doc.id for doc in assert_ok(await store.query(ARCHIVE))}
        assert archived == {f"m{i:03d}" for i in range(50)}
        assert await live_ids(store) == {f"m{i:03d}" for i in range(50, 150)}

    asyncio.run(scenario())


def test_compact_under_threshold_is_noop(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed_numbered(store, 80)
        compactor = Compactor(store, MessageLogConfig(), clock)

        report = assert_ok(await compactor.compact(keep_live=100, max_per_run=200))
        assert report.relocated == 0
        assert report.remaining_live == 80
        assert assert_ok(await store.count(ARCHIVE)) == 0

    asyncio.run(scenario())


def test_compact_respects_per_run_cap(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed_numbered(store, 150)
        compactor = Compactor(store, MessageLogConfig(), clock)

        report = assert_ok(await compactor.compact(keep_live=10, max_per_run=30))
        assert report.relocated == 30
        assert report.remaining_live == 120
        assert "m029" not in await live_ids(store)
        assert "m030" in await live_ids(store)

    asyncio.run(scenario())


def test_compact_batches_by_operation_limit(clock: FakeClock) -> None:
    async def scenario() -> None:
        store = InMemoryDocumentStore(max_batch_operations=10)
        await seed_numbered(store, 60)
        compactor = Compactor(store, MessageLogConfig(), clock)
        assert compactor.relocations_per_batch == 5

        report = assert_ok(await compactor.compact(keep_live=10, max_per_run=200))
        assert report.relocated == 50
        assert report.batches == 10

    asyncio.run(scenario())


def test_archive_record_keeps_raw_fields(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "old", ts="2026-02-01T08-00-00Z", kind="task", priority=3)
        await seed(store, "new", ts=at(-1))
        compactor = Compactor(store, MessageLogConfig(), clock)

        assert_ok(await compactor.compact(keep_live=1))
        doc = assert_ok(await store.get(ARCHIVE, "old"))
        assert doc.data["ts"] == "2026-02-01T08-00-00Z"
        assert doc.data["type"] == "task"
        assert doc.data["priority"] == 3
        assert doc.data["from"] == "agentX"
        assert doc.data["archivedAt"] == clock.now_datetime

    asyncio.run(scenario())


def test_compact_orders_mixed_encodings(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "structured-new", ts=at(-10))
        await seed(store, "millis-mid", ts=Timestamp.from_datetime(at(-100)).millis)
        await seed(store, "string-old", ts="2026-02-09T11-00-00Z")
        await seed(store, "undated")
        compactor = Compactor(store, MessageLogConfig(), clock)

        assert_ok(await compactor.compact(keep_live=2))
        assert await live_ids(store) == {"structured-new", "millis-mid"}

    asyncio.run(scenario())


def test_compaction_never_loses_or_duplicates(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed_numbered(store, 420)
        compactor = Compactor(store, MessageLogConfig(), clock)

        while assert_ok(await compactor.compact(keep_live=100, max_per_run=200)).relocated:
            pass

        live = await live_ids(store)
        archived = {doc.id for doc in assert_ok(await store.query(ARCHIVE))}
        assert len(live) == 100
        assert not live & archived
        assert live | archived == {f"m{i:03d}" for i in range(420)}

    asyncio.run(scenario())


def test_failed_batch_reports_partial_progress(clock: FakeClock) -> None:
    async def scenario() -> None:
        store = FlakyCommitStore(fail_on=2, max_batch_operations=10)
        await seed_numbered(store, 30)
        compactor = Compactor(store, MessageLogConfig(), clock)

        error = assert_err(await compactor.compact(keep_live=10, max_per_run=200))
        assert isinstance(error, PartialCompaction)
        assert error.code == ErrorCode.COMPACTION_PARTIAL
        assert error.relocated == 5
        assert assert_ok(await store.count(ARCHIVE)) == 5
        assert assert_ok(await store.count(LIVE)) == 25

        report = assert_ok(await compactor.compact(keep_live=10, max_per_run=200))
        assert report.relocated == 15
        assert assert_ok(await store.count(LIVE)) == 10
        assert assert_ok(await store.count(ARCHIVE)) == 20

    asyncio.run(scenario())


def test_concurrent_append_is_not_relocated(clock: FakeClock) -> None:
    async def scenario() -> None:
        store = LateWriterStore()
        await seed_numbered(store, 20)
        compactor = Compactor(store, MessageLogConfig(), clock)

        report = assert_ok(await compactor.compact(keep_live=5))
        assert report.relocated == 15
        assert "late" in await live_ids(store)
        assert assert_ok(await store.get(ARCHIVE, "late")) is None

    asyncio.run(scenario())


def test_invalid_parameters(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        compactor = Compactor(store, MessageLogConfig(), clock)
        assert isinstance(assert_err(await compactor.compact(keep_live=-1)), MalformedInput)
        assert isinstance(assert_err(await compactor.compact(max_per_run=0)), MalformedInput)

    asyncio.run(scenario())
