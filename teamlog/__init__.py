"""
Team Message Log

A bounded, chronologically consistent log of short messages from many
writers (people and agents) whose clocks and timestamp encodings cannot
be trusted:
- Timestamp extraction: one authoritative point in time from structured,
  string, numeric or id-embedded encodings
- Coalescing: same-sender bursts within a merge window become one entry
- Compaction: the oldest live messages move to an archive, keeping the
  live log near a fixed size without loss or duplication
- Pagination: newest-first pages over the archive

Storage is a pluggable document store (in-memory or Redis).

Author: Team Log Engineering
License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from teamlog.core.types import Result, Ok, Err, Timestamp
from teamlog.core.errors import (
    TeamLogError,
    ConfigurationError,
    StoreUnavailable,
    MalformedInput,
    NotFound,
    PartialCompaction,
)
from teamlog.core.config import TeamLogConfig

from teamlog.storage import (
    DocumentStoreProtocol,
    InMemoryDocumentStore,
    RedisDocumentStore,
    create_document_store,
)

from teamlog.messages import (
    Message,
    MessageKind,
    extract_timestamp,
    coalesce,
    LiveLogStore,
    ArchiveStore,
    Paginator,
    Compactor,
    CompactionScheduler,
    ThoughtStream,
)

from teamlog.api import TeamLogServices, build_router

__all__ = [
    "__version__",
    # Core
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "TeamLogError",
    "ConfigurationError",
    "StoreUnavailable",
    "MalformedInput",
    "NotFound",
    "PartialCompaction",
    "TeamLogConfig",
    # Storage
    "DocumentStoreProtocol",
    "InMemoryDocumentStore",
    "RedisDocumentStore",
    "create_document_store",
    # Messages
    "Message",
    "MessageKind",
    "extract_timestamp",
    "coalesce",
    "LiveLogStore",
    "ArchiveStore",
    "Paginator",
    "Compactor",
    "CompactionScheduler",
    "ThoughtStream",
    # Wiring
    "TeamLogServices",
    "build_router",
]
