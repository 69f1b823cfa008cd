"""
Merge-Window Coalescer

Folds bursts of same-sender messages into one logical entry. A message
joins the open accumulator when:
- the sender matches
- both authoritative timestamps are known
- it arrived less than ``window`` seconds after the accumulator's
  (bumped) timestamp
- neither kind is in NON_MERGEABLE_KINDS

Merged text is joined with a blank line; the merged timestamp is the
latest constituent's.

Idempotence:
    Two adjacent outputs A, B were split because B's first constituent b0
    failed the test against A. B's timestamp only moves forward from b0,
    and B keeps b0's sender, kind and knownness, so B fails the same test
    on a second pass. Re-running is a no-op.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from teamlog.core import constants as C
from teamlog.core.types import Timestamp
from teamlog.messages.model import Message, is_mergeable_kind


def within_window(earlier: Timestamp, later: Timestamp, window_seconds: float) -> bool:
    """Both known and ``later - earlier`` strictly below the window."""
    if not (earlier.is_known and later.is_known):
        return False
    return (later - earlier) < window_seconds * Timestamp.NANOS_PER_SECOND


def can_merge(
    previous: Message,
    sender: str,
    kind: str,
    timestamp: Timestamp,
    window_seconds: float = C.MERGE_WINDOW_S,
) -> bool:
    """Whether a message (sender, kind, timestamp) may be folded into ``previous``."""
    return (
        previous.sender == sender
        and within_window(previous.timestamp, timestamp, window_seconds)
        and is_mergeable_kind(kind)
        and previous.is_mergeable
    )


def merge_text(existing: str, addition: str) -> str:
    return existing + C.MERGE_SEPARATOR + addition


def coalesce(
    messages: Iterable[Message],
    window_seconds: float = C.MERGE_WINDOW_S,
) -> list[Message]:
    """
    Coalesce a chronologically ordered sequence.

    Inputs are never mutated; merged entries are new Message values
    keeping the first constituent's id.
    """
    result: list[Message] = []
    open_entry: Optional[Message] = None

    for message in messages:
        if open_entry is not None and can_merge(
            open_entry, message.sender, message.kind, message.timestamp, window_seconds,
        ):
            open_entry = replace(
                open_entry,
                text=merge_text(open_entry.text, message.text),
                timestamp=message.timestamp,
            )
            continue
        if open_entry is not None:
            result.append(open_entry)
        open_entry = message

    if open_entry is not None:
        result.append(open_entry)
    return result
