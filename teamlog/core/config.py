"""
Configuration Management for the Team Message Log

Provides validated configuration with sensible defaults.
Supports environment variable overrides (TEAMLOG_ prefix).

Design:
- Immutable after validation
- Fail-fast on missing credentials or invalid values
- Type-safe with dataclasses
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from teamlog.core import constants as C
from teamlog.core.errors import ConfigurationError
from teamlog.core.types import Err, Ok, Result

V = TypeVar("V")

ENV_PREFIX = "TEAMLOG_"


@dataclass(frozen=True)
class StoreConfig:
    """Document store backend configuration."""

    backend: str = "memory"  # "memory" or "redis"
    redis_url: Optional[str] = None
    key_prefix: str = C.REDIS_KEY_PREFIX
    compression_threshold_bytes: int = C.COMPRESSION_THRESHOLD_BYTES
    max_batch_operations: int = C.MAX_BATCH_OPERATIONS


@dataclass(frozen=True)
class MessageLogConfig:
    """Live log, archive and coalescing behaviour."""

    live_collection: str = C.LIVE_COLLECTION
    archive_collection: str = C.ARCHIVE_COLLECTION
    merge_window_seconds: float = C.MERGE_WINDOW_S
    keep_live: int = C.KEEP_LIVE
    max_per_run: int = C.MAX_RELOCATIONS_PER_RUN
    recent_scan_limit: int = C.RECENT_SCAN_LIMIT
    recent_merge_scan: int = C.RECENT_MERGE_SCAN
    recent_limit: int = C.RECENT_RESULT_LIMIT
    default_sender: str = C.DEFAULT_SENDER
    default_recipient: str = C.BROADCAST_RECIPIENT
    default_page_size: int = C.DEFAULT_PAGE_SIZE
    max_page_size: int = C.MAX_PAGE_SIZE
    future_skew_seconds: float = C.FUTURE_SKEW_TOLERANCE_S
    thought_author: str = C.THOUGHT_AUTHOR


@dataclass(frozen=True)
class ReliabilityConfig:
    """Retry and timeout policy for store calls."""

    retry_max_attempts: int = C.RETRY_MAX_ATTEMPTS
    retry_base_ms: int = C.RETRY_BASE_MS
    retry_max_delay_ms: int = C.RETRY_MAX_DELAY_MS
    request_timeout_ms: int = C.STORE_REQUEST_TIMEOUT_MS


@dataclass(frozen=True)
class CompactionScheduleConfig:
    """Background compaction cadence."""

    enabled: bool = False
    interval_seconds: float = C.COMPACTION_INTERVAL_S


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class TeamLogConfig:
    """Root configuration for the team log."""

    store: StoreConfig = field(default_factory=StoreConfig)
    messages: MessageLogConfig = field(default_factory=MessageLogConfig)
    reliability: ReliabilityConfig = field(default_factory=ReliabilityConfig)
    compaction: CompactionScheduleConfig = field(default_factory=CompactionScheduleConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(
        cls,
        environ: Optional[dict[str, str]] = None,
    ) -> Result[TeamLogConfig, ConfigurationError]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with TEAMLOG_.
        Example: TEAMLOG_STORE_BACKEND=redis, TEAMLOG_REDIS_URL=redis://...,
        TEAMLOG_KEEP_LIVE=100, TEAMLOG_MERGE_WINDOW_SECONDS=60
        """
        env = os.environ if environ is None else environ

        def _get(name: str, default: str) -> str:
            return env.get(ENV_PREFIX + name, default)

        def _parse(name: str, default: V, parse: Callable[[str], V]) -> V:
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw == "":
                return default
            try:
                return parse(raw)
            except ValueError as e:
                raise _InvalidSetting(ENV_PREFIX + name, str(e)) from e

        try:
            backend = _get("STORE_BACKEND", "memory").lower()
            if backend not in ("memory", "redis"):
                return Err(ConfigurationError.invalid(
                    ENV_PREFIX + "STORE_BACKEND",
                    f"unknown backend '{backend}'",
                ))

            redis_url = _get("REDIS_URL", "") or None
            if backend == "redis" and redis_url is None:
                return Err(ConfigurationError.missing(ENV_PREFIX + "REDIS_URL"))

            store = StoreConfig(
                backend=backend,
                redis_url=redis_url,
                key_prefix=_get("REDIS_KEY_PREFIX", C.REDIS_KEY_PREFIX),
                compression_threshold_bytes=_parse(
                    "COMPRESSION_THRESHOLD_BYTES", C.COMPRESSION_THRESHOLD_BYTES, int,
                ),
            )

            messages = MessageLogConfig(
                live_collection=_get("LIVE_COLLECTION", C.LIVE_COLLECTION),
                archive_collection=_get("ARCHIVE_COLLECTION", C.ARCHIVE_COLLECTION),
                merge_window_seconds=_parse("MERGE_WINDOW_SECONDS", float(C.MERGE_WINDOW_S), float),
                keep_live=_parse("KEEP_LIVE", C.KEEP_LIVE, int),
                max_per_run=_parse("MAX_PER_RUN", C.MAX_RELOCATIONS_PER_RUN, int),
                default_sender=_get("DEFAULT_SENDER", C.DEFAULT_SENDER),
                default_recipient=_get("DEFAULT_RECIPIENT", C.BROADCAST_RECIPIENT),
                max_page_size=_parse("MAX_PAGE_SIZE", C.MAX_PAGE_SIZE, int),
                thought_author=_get("THOUGHT_AUTHOR", C.THOUGHT_AUTHOR),
            )

            reliability = ReliabilityConfig(
                retry_max_attempts=_parse("RETRY_MAX_ATTEMPTS", C.RETRY_MAX_ATTEMPTS, int),
                request_timeout_ms=_parse("REQUEST_TIMEOUT_MS", C.STORE_REQUEST_TIMEOUT_MS, int),
            )

            compaction = CompactionScheduleConfig(
                enabled=_parse("COMPACTION_ENABLED", False, _parse_bool),
                interval_seconds=_parse(
                    "COMPACTION_INTERVAL_SECONDS", float(C.COMPACTION_INTERVAL_S), float,
                ),
            )

            observability = ObservabilityConfig(
                log_level=_get("LOG_LEVEL", "INFO").upper(),
                log_json=_parse("LOG_JSON", True, _parse_bool),
            )
        except _InvalidSetting as e:
            return Err(ConfigurationError.invalid(e.variable, e.reason, cause=e.__cause__))

        return Ok(cls(
            store=store,
            messages=messages,
            reliability=reliability,
            compaction=compaction,
            observability=observability,
        ))

    def validate(self) -> Result[None, ConfigurationError]:
        """Validate configuration invariants."""
        m = self.messages
        if m.keep_live < 1:
            return Err(ConfigurationError.invalid("keep_live", "must be >= 1"))
        if m.max_per_run < 1:
            return Err(ConfigurationError.invalid("max_per_run", "must be >= 1"))
        if not math.isfinite(m.merge_window_seconds) or m.merge_window_seconds <= 0:
            return Err(ConfigurationError.invalid("merge_window_seconds", "must be > 0"))
        if m.default_page_size <= 0 or m.max_page_size <= 0:
            return Err(ConfigurationError.invalid("page_size", "must be > 0"))
        if m.default_page_size > m.max_page_size:
            return Err(ConfigurationError.invalid(
                "default_page_size", "cannot exceed max_page_size",
            ))
        if self.store.max_batch_operations < C.OPS_PER_RELOCATION:
            return Err(ConfigurationError.invalid(
                "max_batch_operations", f"must be >= {C.OPS_PER_RELOCATION}",
            ))
        if not math.isfinite(self.compaction.interval_seconds) or self.compaction.interval_seconds <= 0:
            return Err(ConfigurationError.invalid("compaction_interval_seconds", "must be finite and > 0"))
        return Ok(None)


class _InvalidSetting(ValueError):
    def __init__(self, variable: str, reason: str) -> None:
        super().__init__(f"{variable}: {reason}")
        self.variable = variable
        self.reason = reason


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ValueError(f"expected a boolean, got '{raw}'")
