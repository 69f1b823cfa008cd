"""
Live Log Store Tests

Tests for:
- Write path: insert, coalesce, kind and window rules, vanished target
- Read path: mixed encodings ordering, read-time coalescing, limits
- Deletes: single, many, by sender, by age

Run: python -m pytest teamlog/tests/test_live_log.py -v
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from teamlog.core import constants as C
from teamlog.core.config import MessageLogConfig
from teamlog.core.errors import MalformedInput, NotFound
from teamlog.core.types import Timestamp
from teamlog.messages.live import LiveLogStore
from teamlog.storage.backends import InMemoryDocumentStore
from teamlog.tests.support import (
    FakeClock,
    assert_err,
    assert_ok,
    at,
    live_ids,
    seed,
)

LIVE = C.LIVE_COLLECTION


class VanishingTargetStore(InMemoryDocumentStore):
    """Deletes the update target just before the update, like a concurrent relocation."""

    async def update(self, collection, document_id, fields):
        await self.delete(collection, document_id)
        return await super().update(collection, document_id, fields)


# =============================================================================
# WRITE PATH
# =============================================================================

def test_first_append_inserts(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        live = LiveLogStore(store, MessageLogConfig(), clock)
        outcome = assert_ok(await live.append("agentX", None, "hello"))
        assert outcome.merged is False

        doc = assert_ok(await store.get(LIVE, outcome.id))
        assert doc.data["from"] == "agentX"
        assert doc.data["to"] == "team"
        assert doc.data["msg"] == "hello"
        assert doc.data["type"] == "message"
        assert doc.data["ts"] == clock.now_datetime

    asyncio.run(scenario())


def test_append_within_window_coalesces(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        live = LiveLogStore(store, MessageLogConfig(), clock)
        first = assert_ok(await live.append("agentX", "team", "hello"))
        clock.advance(30)
        second = assert_ok(await live.append("agentX", "team", "world"))

        assert second.merged is True
        assert second.id == first.id
        doc = assert_ok(await store.get(LIVE, first.id))
        assert doc.data["msg"] == "hello\n\nworld"
        assert doc.data["ts"] == clock.now_datetime
        assert assert_ok(await store.count(LIVE)) == 1

    asyncio.run(scenario())


def test_append_inserts_when_rules_fail(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        live = LiveLogStore(store, MessageLogConfig(), clock)
        assert_ok(await live.append("agentX", "team", "one"))

        clock.advance(5)
        other_sender = assert_ok(await live.append("agentY", "team", "two"))
        assert other_sender.merged is False

        clock.advance(61)
        late = assert_ok(await live.append("agentY", "team", "three"))
        assert late.merged is False

        clock.advance(1)
        structured = assert_ok(await live.append("agentY", "team", "ls", kind="bash_request"))
        assert structured.merged is False

        clock.advance(1)
        after_structured = assert_ok(await live.append("agentY", "team", "four"))
        assert after_structured.merged is False

        assert assert_ok(await store.count(LIVE)) == 5

    asyncio.run(scenario())


def test_append_requires_text_and_defaults_sender(
    store: InMemoryDocumentStore, clock: FakeClock,
) -> None:
    async def scenario() -> None:
        live = LiveLogStore(store, MessageLogConfig(), clock)
        error = assert_err(await live.append("agentX", "team", ""))
        assert isinstance(error, MalformedInput)
        assert isinstance(assert_err(await live.append("agentX", "team", None)), MalformedInput)

        outcome = assert_ok(await live.append(None, None, "hi"))
        doc = assert_ok(await store.get(LIVE, outcome.id))
        assert doc.data["from"] == C.DEFAULT_SENDER

    asyncio.run(scenario())


def test_caller_supplied_id(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        live = LiveLogStore(store, MessageLogConfig(), clock)
        outcome = assert_ok(await live.append("agentX", "team", "hi", message_id="2026-02-09T12-00-00Z_x"))
        assert outcome.id == "2026-02-09T12-00-00Z_x"

        clock.advance(120)
        error = assert_err(await live.append("agentY", "team", "again", message_id=outcome.id))
        assert isinstance(error, MalformedInput)

    asyncio.run(scenario())


def test_vanished_merge_target_falls_back_to_insert(clock: FakeClock) -> None:
    async def scenario() -> None:
        store = VanishingTargetStore()
        live = LiveLogStore(store, MessageLogConfig(), clock)
        first = assert_ok(await live.append("agentX", "team", "hello"))
        clock.advance(10)
        second = assert_ok(await live.append("agentX", "team", "world"))

        assert second.merged is False
        assert second.id != first.id
        assert await live_ids(store) == {second.id}
        doc = assert_ok(await store.get(LIVE, second.id))
        assert doc.data["msg"] == "world"

    asyncio.run(scenario())


def test_merge_target_is_latest_by_authoritative_time(
    store: InMemoryDocumentStore, clock: FakeClock,
) -> None:
    async def scenario() -> None:
        # Inserted later but older: the string-encoded message is newest
        await seed(store, "newest", sender="agentX", ts=clock.now_datetime.strftime("%Y-%m-%dT%H-%M-%SZ"))
        await seed(store, "older", sender="agentY", ts=clock.now_datetime - timedelta(seconds=20))
        clock.advance(10)

        live = LiveLogStore(store, MessageLogConfig(), clock)
        outcome = assert_ok(await live.append("agentX", "team", "more"))
        assert outcome.merged is True
        assert outcome.id == "newest"

    asyncio.run(scenario())


# =============================================================================
# READ PATH
# =============================================================================

def test_fetch_recent_orders_mixed_encodings(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "c", sender="s3", ts=at(-10))
        await seed(store, "a", sender="s1", ts="2026-02-09T11-00-00Z")
        await seed(store, "unknown", sender="s0")
        await seed(store, "b", sender="s2", ts=Timestamp.from_datetime(at(-1800)).millis)

        live = LiveLogStore(store, MessageLogConfig(), clock)
        messages = assert_ok(await live.fetch_recent())
        assert [m.id for m in messages] == ["unknown", "a", "b", "c"]
        assert messages[0].to_dict()["ts"] is None
        assert messages[1].to_dict()["ts"] == "2026-02-09T11:00:00.000Z"

    asyncio.run(scenario())


def test_fetch_recent_coalesces_on_read(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "1", sender="agentX", ts=at(-100), text="hello")
        await seed(store, "2", sender="agentX", ts=at(-90), text="world")
        await seed(store, "3", sender="agentY", ts=at(-80), text="other")

        live = LiveLogStore(store, MessageLogConfig(), clock)
        messages = assert_ok(await live.fetch_recent())
        assert [m.id for m in messages] == ["1", "3"]
        assert messages[0].text == "hello\n\nworld"
        assert messages[0].timestamp == Timestamp.from_datetime(at(-90))

        # Read-time merges are not written back
        assert assert_ok(await store.count(LIVE)) == 3

    asyncio.run(scenario())


def test_fetch_recent_returns_newest_limit(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        for i in range(120):
            await seed(store, f"m{i:03d}", sender=f"s{i % 2}", ts=at(-1000 + i * 5))

        live = LiveLogStore(store, MessageLogConfig(), clock)
        messages = assert_ok(await live.fetch_recent())
        assert len(messages) == 100
        assert messages[-1].id == "m119"
        assert messages[0].id == "m020"

        few = assert_ok(await live.fetch_recent(limit=3))
        assert [m.id for m in few] == ["m117", "m118", "m119"]

        assert isinstance(assert_err(await live.fetch_recent(limit=0)), MalformedInput)

    asyncio.run(scenario())


def test_fetch_recent_sees_newest_beyond_scan_limit(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        # Inserted first but newest by timestamp
        await seed(store, "late-writer", sender="s9", ts=at(-1))
        for i in range(250):
            await seed(store, f"m{i:03d}", sender=f"s{i % 2}", ts=at(-2000 + i))

        live = LiveLogStore(store, MessageLogConfig(), clock)
        few = assert_ok(await live.fetch_recent(limit=5))
        assert [m.id for m in few] == ["m246", "m247", "m248", "m249", "late-writer"]

        scanned = assert_ok(await live.fetch_recent(limit=1000))
        assert len(scanned) == MessageLogConfig().recent_scan_limit
        assert scanned[0].id == "m051"

    asyncio.run(scenario())


def test_fetch_recent_rejects_non_finite_window(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "a", ts=at(-5))
        live = LiveLogStore(store, MessageLogConfig(), clock)
        for window in (float("nan"), float("inf"), -1):
            assert isinstance(
                assert_err(await live.fetch_recent(window_seconds=window)), MalformedInput,
            )
        assert [m.id for m in assert_ok(await live.fetch_recent(window_seconds=1e300))] == ["a"]

    asyncio.run(scenario())


def test_fetch_recent_survives_out_of_range_number(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "good", sender="s1", ts=at(-5))
        await seed(store, "nanos", sender="s2", ts=1_770_000_000_000_000_000)

        live = LiveLogStore(store, MessageLogConfig(), clock)
        messages = assert_ok(await live.fetch_recent())
        assert [m.id for m in messages] == ["nanos", "good"]
        assert [m.to_dict()["ts"] for m in messages] == [None, "2026-02-09T11:59:55.000Z"]

    asyncio.run(scenario())


def test_fetch_recent_defaults_missing_fields(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        assert_ok(await store.put(LIVE, "bare", {"ts": at(-5)}))
        live = LiveLogStore(store, MessageLogConfig(), clock)
        (message,) = assert_ok(await live.fetch_recent())
        assert message.sender == "unknown"
        assert message.recipient == "team"
        assert message.text == ""
        assert message.kind == "message"

    asyncio.run(scenario())


# =============================================================================
# DELETES
# =============================================================================

def test_delete_one(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "keep", ts=at(-1))
        await seed(store, "drop", ts=at(-2))
        live = LiveLogStore(store, MessageLogConfig(), clock)

        assert_ok(await live.delete_one("drop"))
        assert await live_ids(store) == {"keep"}
        assert isinstance(assert_err(await live.delete_one("drop")), NotFound)

    asyncio.run(scenario())


def test_delete_many_counts_existing_distinct_ids(clock: FakeClock) -> None:
    async def scenario() -> None:
        store = InMemoryDocumentStore(max_batch_operations=10)
        for i in range(25):
            await seed(store, f"m{i}", ts=at(-i))
        live = LiveLogStore(store, MessageLogConfig(), clock)

        ids = [f"m{i}" for i in range(23)] + ["m0", "missing"]
        deleted = assert_ok(await live.delete_many(ids))
        assert deleted == 23
        assert await live_ids(store) == {"m23", "m24"}

        assert isinstance(assert_err(await live.delete_many([])), MalformedInput)

    asyncio.run(scenario())


def test_delete_by_sender_removes_exactly_that_sender(clock: FakeClock) -> None:
    async def scenario() -> None:
        store = InMemoryDocumentStore(max_batch_operations=10)
        for i in range(30):
            await seed(store, f"x{i}", sender="agentX", ts=at(-i))
        for i in range(20):
            await seed(store, f"o{i}", sender="agentY" if i % 2 else "agentXY", ts=at(-i))
        live = LiveLogStore(store, MessageLogConfig(), clock)

        deleted = assert_ok(await live.delete_by_sender("agentX"))
        assert deleted == 30
        assert await live_ids(store) == {f"o{i}" for i in range(20)}

        assert assert_ok(await live.delete_by_sender("nobody")) == 0

    asyncio.run(scenario())


def test_delete_older_than_keeps_unknown(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "ancient", ts=at(-10 * 86_400))
        await seed(store, "recent", ts=at(-1 * 86_400))
        await seed(store, "undated")
        live = LiveLogStore(store, MessageLogConfig(), clock)

        assert assert_ok(await live.delete_older_than(7)) == 1
        assert await live_ids(store) == {"recent", "undated"}

        assert isinstance(assert_err(await live.delete_older_than(0)), MalformedInput)
        assert isinstance(assert_err(await live.delete_older_than("7")), MalformedInput)

    asyncio.run(scenario())


def test_delete_older_than_rejects_non_finite_days(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    async def scenario() -> None:
        await seed(store, "ancient", ts=at(-10 * 86_400))
        live = LiveLogStore(store, MessageLogConfig(), clock)

        for days in (float("nan"), float("inf"), float("-inf")):
            assert isinstance(assert_err(await live.delete_older_than(days)), MalformedInput)
        assert await live_ids(store) == {"ancient"}

        # Older than the epoch itself: nothing known qualifies
        assert assert_ok(await live.delete_older_than(1e300)) == 0
        assert assert_ok(await live.delete_older_than(10 ** 400)) == 0
        assert await live_ids(store) == {"ancient"}

    asyncio.run(scenario())
