"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the team log:
- Result/Either monads for zero-exception control flow
- Authoritative Timestamp with an explicit UNKNOWN sentinel
- Typed error taxonomy surfaced to callers
- Configuration management with validation
"""

from teamlog.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    Clock,
)
from teamlog.core.errors import (
    ErrorCode,
    TeamLogError,
    ConfigurationError,
    StoreUnavailable,
    MalformedInput,
    NotFound,
    PartialCompaction,
)
from teamlog.core.config import TeamLogConfig

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "Clock",
    "ErrorCode",
    "TeamLogError",
    "ConfigurationError",
    "StoreUnavailable",
    "MalformedInput",
    "NotFound",
    "PartialCompaction",
    "TeamLogConfig",
]
