"""
API Handlers: Request Processing Logic

Implements:
- MessagesHandler: recent messages, append, deletes
- ArchiveHandler: archive pages, compaction trigger
- ThoughtsHandler: thought listing and posting
- HealthHandler: store reachability

Service errors are returned as structured bodies with the status their
kind maps to (see ``router.status_for``).
"""

from __future__ import annotations

import json
import math
from typing import Any, Optional

from teamlog.api.router import Request, Response
from teamlog.core.errors import MalformedInput, TeamLogError
from teamlog.core.types import Err, Ok, Result
from teamlog.messages.archive import Paginator
from teamlog.messages.compactor import Compactor
from teamlog.messages.live import LiveLogStore
from teamlog.messages.thoughts import DEFAULT_THOUGHT_LIMIT, ThoughtStream
from teamlog.storage.protocols import DocumentStoreProtocol


# =============================================================================
# REQUEST PARSING
# =============================================================================

def read_object(request: Request) -> Result[dict[str, Any], TeamLogError]:
    """JSON object body; an empty body is an empty object."""
    try:
        data = request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return Err(MalformedInput.invalid_value("body", request.body[:100], f"invalid JSON: {e}"))
    if data is None:
        return Ok({})
    if not isinstance(data, dict):
        return Err(MalformedInput.invalid_value("body", data, "expected a JSON object"))
    return Ok(data)


def query_int(request: Request, key: str) -> Result[Optional[int], TeamLogError]:
    raw = request.query(key)
    if raw is None or raw == "":
        return Ok(None)
    try:
        return Ok(int(raw))
    except ValueError:
        return Err(MalformedInput.invalid_value(key, raw, "expected an integer"))


def query_float(request: Request, key: str) -> Result[Optional[float], TeamLogError]:
    raw = request.query(key)
    if raw is None or raw == "":
        return Ok(None)
    try:
        value = float(raw)
    except ValueError:
        return Err(MalformedInput.invalid_value(key, raw, "expected a number"))
    if not math.isfinite(value):
        return Err(MalformedInput.invalid_value(key, raw, "expected a finite number"))
    return Ok(value)


def body_int(data: dict[str, Any], key: str) -> Result[Optional[int], TeamLogError]:
    value = data.get(key)
    if value is None:
        return Ok(None)
    if isinstance(value, bool) or not isinstance(value, int):
        return Err(MalformedInput.invalid_value(key, value, "expected an integer"))
    return Ok(value)


# =============================================================================
# MESSAGES
# =============================================================================

class MessagesHandler:
    """
    Live log endpoints.

    Endpoints:
    - GET /api/messages?limit=&window=: newest coalesced messages
    - POST /api/messages: append (coalescing when eligible)
    - DELETE /api/messages: by ``ids``, ``from``, ``olderThanDays`` or ``id``
    """

    __slots__ = ("_live",)

    def __init__(self, live: LiveLogStore) -> None:
        self._live = live

    async def recent(self, request: Request) -> Response:
        limit = query_int(request, "limit")
        if limit.is_err():
            return Response.from_error(limit.error)
        window = query_float(request, "window")
        if window.is_err():
            return Response.from_error(window.error)

        result = await self._live.fetch_recent(limit=limit.value, window_seconds=window.value)
        if result.is_err():
            return Response.from_error(result.error)
        return Response.json({"messages": [m.to_dict() for m in result.value]})

    async def append(self, request: Request) -> Response:
        """
        Request:
            {"from": "agentX", "to": "team", "msg": "text", "type": "message", "id": "optional"}
        """
        body = read_object(request)
        if body.is_err():
            return Response.from_error(body.error)
        data = body.value

        message_id = data.get("id")
        if message_id is not None and not isinstance(message_id, str):
            return Response.from_error(MalformedInput.invalid_value("id", message_id, "expected a string"))

        result = await self._live.append(
            sender=_optional_str(data.get("from")),
            recipient=_optional_str(data.get("to")),
            text=data.get("msg"),
            kind=_optional_str(data.get("type")),
            message_id=message_id or None,
        )
        if result.is_err():
            return Response.from_error(result.error)
        return Response.json({"success": True, **result.value.to_dict()})

    async def delete(self, request: Request) -> Response:
        body = read_object(request)
        if body.is_err():
            return Response.from_error(body.error)
        data = body.value

        ids = data.get("ids")
        sender = data.get("from")
        older_than = data.get("olderThanDays")
        message_id = data.get("id")

        if isinstance(ids, list) and ids:
            result = await self._live.delete_many(ids)
        elif sender:
            result = await self._live.delete_by_sender(str(sender))
        elif older_than is not None:
            result = await self._live.delete_older_than(older_than)
        elif message_id:
            single = await self._live.delete_one(str(message_id))
            result = single.map(lambda _: 1)
        else:
            return Response.from_error(MalformedInput.missing_field("id"))

        if result.is_err():
            return Response.from_error(result.error)
        return Response.json({"success": True, "deleted": result.value})


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


# =============================================================================
# ARCHIVE
# =============================================================================

class ArchiveHandler:
    """
    Archive endpoints.

    Endpoints:
    - GET /api/archive?page=&limit=: one page, chronological within the page
    - POST /api/archive: run compaction (optional keepLive, maxPerRun)
    """

    __slots__ = ("_paginator", "_compactor")

    def __init__(self, paginator: Paginator, compactor: Compactor) -> None:
        self._paginator = paginator
        self._compactor = compactor

    async def page(self, request: Request) -> Response:
        page = query_int(request, "page")
        if page.is_err():
            return Response.from_error(page.error)
        limit = query_int(request, "limit")
        if limit.is_err():
            return Response.from_error(limit.error)

        result = await self._paginator.page(page.value or 0, limit.value)
        if result.is_err():
            return Response.from_error(result.error)
        return Response.json(result.value.to_dict())

    async def compact(self, request: Request) -> Response:
        body = read_object(request)
        if body.is_err():
            return Response.from_error(body.error)
        keep_live = body_int(body.value, "keepLive")
        if keep_live.is_err():
            return Response.from_error(keep_live.error)
        max_per_run = body_int(body.value, "maxPerRun")
        if max_per_run.is_err():
            return Response.from_error(max_per_run.error)

        result = await self._compactor.compact(keep_live.value, max_per_run.value)
        if result.is_err():
            return Response.from_error(result.error)
        report = result.value
        return Response.json({
            "success": True,
            "archived": report.relocated,
            "remaining": report.remaining_live,
            **report.to_dict(),
        })


# =============================================================================
# THOUGHTS
# =============================================================================

class ThoughtsHandler:
    """
    Thought stream endpoints.

    Endpoints:
    - GET /api/thoughts?limit=&type=: newest thoughts plus stats
    - POST /api/thoughts: {"msg": "...", "type": "INSIGHT", "tags": [...]}
    """

    __slots__ = ("_thoughts",)

    def __init__(self, thoughts: ThoughtStream) -> None:
        self._thoughts = thoughts

    async def list_thoughts(self, request: Request) -> Response:
        limit = query_int(request, "limit")
        if limit.is_err():
            return Response.from_error(limit.error)
        result = await self._thoughts.list_thoughts(
            limit=limit.value or DEFAULT_THOUGHT_LIMIT,
            thought_type=request.query("type"),
        )
        if result.is_err():
            return Response.from_error(result.error)
        return Response.json(result.value.to_dict())

    async def post(self, request: Request) -> Response:
        body = read_object(request)
        if body.is_err():
            return Response.from_error(body.error)
        data = body.value
        tags = data.get("tags")
        if tags is not None and not isinstance(tags, list):
            return Response.from_error(MalformedInput.invalid_value("tags", tags, "expected a list"))

        result = await self._thoughts.post_thought(
            data.get("msg"),
            thought_type=_optional_str(data.get("type")),
            tags=tags,
        )
        if result.is_err():
            return Response.from_error(result.error)
        thought = result.value
        return Response.json({"success": True, "id": thought.id, "type": thought.thought_type})


# =============================================================================
# HEALTH
# =============================================================================

class HealthHandler:
    """
    GET /health: 200 when the live collection can be counted, 503 otherwise.

    Backend counters (Redis) are included under ``store`` when available.
    """

    __slots__ = ("_store", "_collection")

    def __init__(self, store: DocumentStoreProtocol, collection: str) -> None:
        self._store = store
        self._collection = collection

    async def health(self, request: Request) -> Response:
        result = await self._store.count(self._collection)
        if result.is_err():
            return Response.json(
                {"status": "unavailable", "error": result.error.to_dict()["message"]},
                status=503,
            )
        body: dict[str, Any] = {"status": "ok", "live": result.value}
        metrics = getattr(self._store, "metrics", None)
        if metrics is not None:
            body["store"] = metrics.to_dict()
        return Response.json(body)
