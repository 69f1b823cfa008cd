"""
Reliability module: timeouts, retry with backoff, resilient store wrapper.
"""

from teamlog.reliability.retry import (
    ResilientDocumentStore,
    RetryPolicy,
    calculate_backoff,
    retry_result,
)

__all__ = [
    "ResilientDocumentStore",
    "RetryPolicy",
    "calculate_backoff",
    "retry_result",
]
