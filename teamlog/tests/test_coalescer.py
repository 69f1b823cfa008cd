"""
Merge-Window Coalescer Tests

Run: python -m pytest teamlog/tests/test_coalescer.py -v
"""

from __future__ import annotations

from teamlog.core.types import Timestamp
from teamlog.messages.coalescer import can_merge, coalesce, within_window
from teamlog.messages.model import Message
from teamlog.tests.support import BASE_TIME

BASE = Timestamp.from_datetime(BASE_TIME)


def make(
    message_id: str,
    sender: str,
    seconds: float,
    text: str,
    kind: str = "message",
    known: bool = True,
) -> Message:
    return Message(
        id=message_id,
        sender=sender,
        recipient="team",
        text=text,
        kind=kind,
        timestamp=BASE.plus_seconds(seconds) if known else Timestamp.UNKNOWN,
    )


def test_distinct_senders_is_noop() -> None:
    messages = [make("1", "a", 0, "x"), make("2", "b", 1, "y"), make("3", "c", 2, "z")]
    assert coalesce(messages, 60) == messages


def test_same_sender_within_window_merges() -> None:
    merged = coalesce([make("1", "A", 0, "hello"), make("2", "A", 30, "world")], 60)
    assert len(merged) == 1
    assert merged[0].id == "1"
    assert merged[0].text == "hello\n\nworld"
    assert merged[0].timestamp == BASE.plus_seconds(30)


def test_non_mergeable_kind_splits() -> None:
    merged = coalesce(
        [make("1", "A", 0, "hello"), make("2", "A", 30, "world", kind="task_added")],
        60,
    )
    assert [m.id for m in merged] == ["1", "2"]


def test_non_mergeable_accumulator_splits() -> None:
    merged = coalesce(
        [make("1", "A", 0, "run it", kind="bash_request"), make("2", "A", 5, "thanks")],
        60,
    )
    assert len(merged) == 2


def test_window_is_strict() -> None:
    merged = coalesce([make("1", "A", 0, "a"), make("2", "A", 60, "b")], 60)
    assert len(merged) == 2


def test_window_is_measured_from_bumped_timestamp() -> None:
    merged = coalesce(
        [make("1", "A", 0, "a"), make("2", "A", 50, "b"), make("3", "A", 100, "c")],
        60,
    )
    assert len(merged) == 1
    assert merged[0].text == "a\n\nb\n\nc"
    assert merged[0].timestamp == BASE.plus_seconds(100)


def test_unknown_timestamps_never_merge() -> None:
    merged = coalesce(
        [make("1", "A", 0, "a", known=False), make("2", "A", 0, "b", known=False)],
        60,
    )
    assert len(merged) == 2
    merged = coalesce([make("1", "A", 0, "a", known=False), make("2", "A", 10, "b")], 60)
    assert len(merged) == 2


def test_interleaved_sender_breaks_run() -> None:
    merged = coalesce(
        [make("1", "A", 0, "a"), make("2", "B", 5, "b"), make("3", "A", 10, "c")],
        60,
    )
    assert [m.id for m in merged] == ["1", "2", "3"]


def test_coalesce_is_idempotent() -> None:
    messages = [
        make("1", "A", 0, "a"),
        make("2", "A", 59, "b"),
        make("3", "A", 130, "c"),
        make("4", "B", 131, "d", kind="task"),
        make("5", "B", 132, "e"),
        make("6", "B", 133, "f"),
        make("7", "A", 140, "g", known=False),
        make("8", "A", 150, "h"),
    ]
    once = coalesce(messages, 60)
    assert coalesce(once, 60) == once


def test_inputs_are_not_mutated() -> None:
    first = make("1", "A", 0, "hello")
    coalesce([first, make("2", "A", 1, "world")], 60)
    assert first.text == "hello"
    assert first.timestamp == BASE


def test_can_merge_and_window_helpers() -> None:
    previous = make("1", "A", 0, "hello")
    assert can_merge(previous, "A", "message", BASE.plus_seconds(59), 60)
    assert not can_merge(previous, "B", "message", BASE.plus_seconds(1), 60)
    assert not can_merge(previous, "A", "solving_mode", BASE.plus_seconds(1), 60)
    assert not within_window(Timestamp.UNKNOWN, BASE, 60)
