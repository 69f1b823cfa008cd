"""
Shared test utilities: result assertions, a controllable clock and
document seeding helpers.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from teamlog.core import constants as C
from teamlog.core.errors import TeamLogError
from teamlog.core.types import Result, Timestamp

BASE_TIME = datetime(2026, 2, 9, 12, 0, 0, tzinfo=timezone.utc)


def assert_ok(result: Result[Any, TeamLogError], message: str = "Expected Ok result") -> Any:
    """Assert that result is Ok and return its value."""
    if result.is_err():
        raise AssertionError(f"{message}: {result.error}")
    return result.unwrap()


def assert_err(result: Result[Any, TeamLogError], message: str = "Expected Err result") -> TeamLogError:
    """Assert that result is Err and return its error."""
    if result.is_ok():
        raise AssertionError(f"{message}: Got Ok({result.unwrap()!r})")
    return result.error


class FakeClock:
    """Clock frozen at a settable instant."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self._now = Timestamp.from_datetime(start)

    def __call__(self) -> Timestamp:
        return self._now

    def advance(self, seconds: float) -> Timestamp:
        self._now = self._now.plus_seconds(seconds)
        return self._now

    @property
    def now_datetime(self) -> datetime:
        return self._now.to_datetime()


def at(seconds: float) -> datetime:
    """BASE_TIME offset by ``seconds``."""
    return BASE_TIME + timedelta(seconds=seconds)


async def seed(
    store: Any,
    document_id: str,
    sender: str = "agentX",
    ts: Any = None,
    text: str = "text",
    kind: Optional[str] = "message",
    collection: str = C.LIVE_COLLECTION,
    **extra: Any,
) -> None:
    """Write a raw message document, ``ts`` stored exactly as given."""
    fields: dict[str, Any] = {"from": sender, "to": "team", "msg": text, **extra}
    if kind is not None:
        fields["type"] = kind
    if ts is not None:
        fields["ts"] = ts
    result = await store.put(collection, document_id, fields)
    assert_ok(result, f"seeding {document_id}")


async def live_ids(store: Any, collection: str = C.LIVE_COLLECTION) -> set[str]:
    docs = assert_ok(await store.query(collection))
    return {doc.id for doc in docs}
