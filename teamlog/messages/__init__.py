"""
Messages module: the live log, its archive, and the logic between them.

Components:
- timestamps: authoritative point in time from heterogeneous encodings
- coalescer: merge-window folding of same-sender bursts
- live: bounded live log (append, recent, deletes)
- archive: archive reads and pagination
- compactor: relocation of the oldest live messages into the archive
- thoughts: typed notes by the assistant author
- scheduler: periodic compaction
"""

from teamlog.messages.archive import ArchivePage, ArchiveStore, Paginator
from teamlog.messages.coalescer import can_merge, coalesce
from teamlog.messages.compactor import CompactionReport, Compactor
from teamlog.messages.live import AppendResult, LiveLogStore
from teamlog.messages.model import (
    NON_MERGEABLE_KINDS,
    Absent,
    EncodedString,
    EpochMillis,
    Message,
    MessageKind,
    RawTimestamp,
    StructuredTime,
    classify_timestamp,
)
from teamlog.messages.scheduler import CompactionScheduler
from teamlog.messages.thoughts import Thought, ThoughtListing, ThoughtStream, ThoughtType
from teamlog.messages.timestamps import extract_timestamp, resolve_timestamp

__all__ = [
    "ArchivePage",
    "ArchiveStore",
    "Paginator",
    "can_merge",
    "coalesce",
    "CompactionReport",
    "Compactor",
    "AppendResult",
    "LiveLogStore",
    "NON_MERGEABLE_KINDS",
    "Absent",
    "EncodedString",
    "EpochMillis",
    "Message",
    "MessageKind",
    "RawTimestamp",
    "StructuredTime",
    "classify_timestamp",
    "CompactionScheduler",
    "Thought",
    "ThoughtListing",
    "ThoughtStream",
    "ThoughtType",
    "extract_timestamp",
    "resolve_timestamp",
]
