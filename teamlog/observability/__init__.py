"""
Observability module: structured logging.
"""

from teamlog.observability.logging import (
    JsonFormatter,
    KeyValueFormatter,
    LogLevel,
    StructuredLogger,
    bound_fields,
    current_context,
    setup_logging,
)

__all__ = [
    "JsonFormatter",
    "KeyValueFormatter",
    "LogLevel",
    "StructuredLogger",
    "bound_fields",
    "current_context",
    "setup_logging",
]
