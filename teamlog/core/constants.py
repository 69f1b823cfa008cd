"""
System-Wide Constants for the Team Message Log

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024

SECOND_MS: Final[int] = 1000
MINUTE_S: Final[int] = 60
DAY_S: Final[int] = 86_400

# =============================================================================
# COLLECTIONS
# =============================================================================
LIVE_COLLECTION: Final[str] = "team-messages"
ARCHIVE_COLLECTION: Final[str] = "team-messages-archive"

# =============================================================================
# MESSAGE DEFAULTS
# =============================================================================
DEFAULT_SENDER: Final[str] = "operator"
UNKNOWN_SENDER: Final[str] = "unknown"
BROADCAST_RECIPIENT: Final[str] = "team"
THOUGHT_AUTHOR: Final[str] = "cortana"

# =============================================================================
# TIMESTAMP EXTRACTION
# =============================================================================
FUTURE_SKEW_TOLERANCE_S: Final[int] = 5 * MINUTE_S

# =============================================================================
# COALESCING
# =============================================================================
MERGE_WINDOW_S: Final[int] = 60
MERGE_SEPARATOR: Final[str] = "\n\n"

# =============================================================================
# LIVE LOG READS
# =============================================================================
RECENT_SCAN_LIMIT: Final[int] = 200
RECENT_MERGE_SCAN: Final[int] = 300
RECENT_RESULT_LIMIT: Final[int] = 100

# =============================================================================
# COMPACTION
# =============================================================================
KEEP_LIVE: Final[int] = 100
MAX_RELOCATIONS_PER_RUN: Final[int] = 200
MAX_BATCH_OPERATIONS: Final[int] = 500
OPS_PER_RELOCATION: Final[int] = 2
COMPACTION_INTERVAL_S: Final[int] = 15 * MINUTE_S

# =============================================================================
# PAGINATION
# =============================================================================
DEFAULT_PAGE_SIZE: Final[int] = 50
MAX_PAGE_SIZE: Final[int] = 200

# =============================================================================
# RELIABILITY
# =============================================================================
RETRY_BASE_MS: Final[int] = 100
RETRY_MAX_DELAY_MS: Final[int] = 5 * SECOND_MS
RETRY_MAX_ATTEMPTS: Final[int] = 3
STORE_REQUEST_TIMEOUT_MS: Final[int] = 10 * SECOND_MS

# =============================================================================
# STORAGE ENCODING
# =============================================================================
COMPRESSION_THRESHOLD_BYTES: Final[int] = 1 * KB
REDIS_KEY_PREFIX: Final[str] = "teamlog"
