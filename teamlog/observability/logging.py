"""
Structured Logging for the Team Log

Every service logs through ``StructuredLogger``, passing facts as keyword
fields (``relocated=42``, ``collection="team-messages"``) rather than
formatting them into the message. Two renderings:

- JSON, one object per line, for aggregation
- key=value text, for the CLI and local runs

Fields bound with ``StructuredLogger.context(...)`` (request id, compaction
run) ride along on every line logged inside the block, including lines from
nested service calls.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, Mapping, Optional, TextIO

SERVICE_NAME = "teamlog"


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def parse(cls, name: str) -> LogLevel:
        """Resolve a level name, falling back to INFO."""
        return cls.__members__.get(name.strip().upper(), cls.INFO)


_bound_fields: ContextVar[Mapping[str, Any]] = ContextVar("teamlog_log_fields", default={})

# Present on every stdlib LogRecord; anything else arrived as a keyword field
_STDLIB_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime"}


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Bound context fields overlaid with the record's own keyword fields."""
    fields = dict(_bound_fields.get())
    fields.update(
        (key, value) for key, value in vars(record).items() if key not in _STDLIB_ATTRS
    )
    return fields


def _iso(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record:

        {"@timestamp": ..., "level": ..., "logger": ..., "message": ...,
         "service": "teamlog", <bound fields>, <keyword fields>}
    """

    def __init__(self, service: str = SERVICE_NAME) -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "@timestamp": _iso(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
        }
        payload.update(record_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class KeyValueFormatter(logging.Formatter):
    """``2026-02-09T12:00:00.000Z INFO  teamlog.messages.compactor Compaction finished relocated=42``"""

    def format(self, record: logging.LogRecord) -> str:
        head = f"{_iso(record.created)} {record.levelname:<5} {record.name} {record.getMessage()}"
        fields = record_fields(record)
        if fields:
            head += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        if record.exc_info:
            head += "\n" + self.formatException(record.exc_info)
        return head


class StructuredLogger:
    """
    Thin wrapper over a stdlib logger that takes keyword fields.

    Usage:
        logger = StructuredLogger("teamlog.messages.compactor")
        logger.info("Compaction finished", relocated=42, remaining_live=100)

        with StructuredLogger.context(request_id="abc"):
            ...

    Field names must not collide with logging.LogRecord attributes
    (``msg``, ``name``, ``args`` ...); the stdlib rejects those.
    """

    __slots__ = ("_logger", "_fields")

    def __init__(self, name: str, **fields: Any) -> None:
        self._logger = logging.getLogger(name)
        self._fields = fields

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.ERROR, message, fields)

    def critical(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.CRITICAL, message, fields)

    def _emit(self, level: LogLevel, message: str, fields: dict[str, Any]) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, message, extra={**self._fields, **fields})

    def with_extra(self, **fields: Any) -> StructuredLogger:
        """Same logger, with ``fields`` added to every line."""
        return StructuredLogger(self._logger.name, **{**self._fields, **fields})

    @staticmethod
    def context(**fields: Any):
        """Bind ``fields`` to every line logged inside the block."""
        return bound_fields(**fields)


@contextmanager
def bound_fields(**fields: Any) -> Iterator[None]:
    token = _bound_fields.set({**_bound_fields.get(), **fields})
    try:
        yield
    finally:
        _bound_fields.reset(token)


def current_context() -> dict[str, Any]:
    """Fields bound by the innermost active context."""
    return dict(_bound_fields.get())


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route every logger through one stderr handler (or ``stream``).

    Args:
        level: Minimum level for the root logger
        json_output: JSON lines when True, key=value text otherwise
        stream: Output stream (default: stderr)
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else KeyValueFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Redis client chatter
    for noisy in ("redis", "asyncio"):
        logging.getLogger(noisy).setLevel(max(level, LogLevel.WARNING))
