"""
Request Router

A server adapter (ASGI app, serverless function, test harness) builds a
``Request`` and awaits ``TeamLogRouter.dispatch``; the router picks the
handler by exact path and method, runs the middleware chain around it
and turns service errors into JSON bodies with a matching status.

    GET  /api/messages   -> 200 | 400 | 503
    POST /api/messages   -> 200 | 400 | 503
    PUT  /api/messages   -> 405 (allow: DELETE, GET, POST)
    GET  /api/nothing    -> 404
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlsplit

from teamlog.core.errors import (
    ConfigurationError,
    MalformedInput,
    NotFound,
    PartialCompaction,
    StoreUnavailable,
    TeamLogError,
)
from teamlog.observability.logging import StructuredLogger

logger = StructuredLogger("teamlog.api.router")

JSON_CONTENT_TYPE = "application/json"


@dataclass
class Request:
    method: str
    path: str
    query_params: dict[str, list[str]] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def from_raw(
        cls,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        body: bytes = b"",
    ) -> Request:
        """Split ``url`` into path and query; header names are lower-cased."""
        parts = urlsplit(url)
        return cls(
            method=method.upper(),
            path=parts.path.rstrip("/") or "/",
            query_params=parse_qs(parts.query, keep_blank_values=True),
            headers={name.lower(): value for name, value in (headers or {}).items()},
            body=body,
        )

    def json(self) -> Any:
        """
        Decoded JSON body; None when the body is empty.

        Raises:
            json.JSONDecodeError / UnicodeDecodeError on a malformed body
        """
        return json.loads(self.body) if self.body else None

    def query(self, key: str, default: Optional[str] = None) -> Optional[str]:
        values = self.query_params.get(key)
        return values[0] if values else default

    def header(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(key.lower(), default)


# First match wins, so subclasses must precede their bases.
ERROR_STATUS: tuple[tuple[type[TeamLogError], int], ...] = (
    (MalformedInput, 400),
    (NotFound, 404),
    (PartialCompaction, 500),
    (StoreUnavailable, 503),
    (ConfigurationError, 500),
)


def status_for(error: TeamLogError) -> int:
    return next((status for kind, status in ERROR_STATUS if isinstance(error, kind)), 500)


@dataclass
class Response:
    status: int = 200
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def json(cls, data: Any, status: int = 200) -> Response:
        return cls(
            status=status,
            body=json.dumps(data, default=str).encode("utf-8"),
            headers={"content-type": JSON_CONTENT_TYPE},
        )

    @classmethod
    def problem(cls, kind: str, message: str, status: int) -> Response:
        """Error body for failures that never reached a service."""
        return cls.json({"error": {"kind": kind, "message": message}}, status=status)

    @classmethod
    def from_error(cls, error: TeamLogError) -> Response:
        """``{"error": {...}}`` with the status the error kind maps to; causes stay in the logs."""
        details = error.to_dict()
        details.pop("cause", None)
        body: dict[str, Any] = {"error": details}
        if isinstance(error, PartialCompaction):
            body["relocated"] = error.relocated
        return cls.json(body, status=status_for(error))

    def json_body(self) -> Any:
        return json.loads(self.body) if self.body else None


Handler = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[Request, Handler], Awaitable[Response]]


class TeamLogRouter:
    """
    Exact-path router with a middleware chain.

    Usage:
        router = TeamLogRouter()
        router.add("GET", "/api/messages", messages.recent)
        router.use(RequestLoggingMiddleware())
        response = await router.dispatch(Request.from_raw("GET", "/api/messages?limit=20"))
    """

    __slots__ = ("_table", "_middleware")

    def __init__(self) -> None:
        self._table: dict[str, dict[str, Handler]] = {}
        self._middleware: list[Middleware] = []

    def add(self, method: str, path: str, handler: Handler) -> None:
        methods = self._table.setdefault(path.rstrip("/") or "/", {})
        if method.upper() in methods:
            raise ValueError(f"Route already registered: {method.upper()} {path}")
        methods[method.upper()] = handler

    def use(self, middleware: Middleware) -> None:
        """Append ``middleware``; the first one added is outermost."""
        self._middleware.append(middleware)

    @property
    def routes(self) -> list[tuple[str, str]]:
        return sorted((method, path) for path, methods in self._table.items() for method in methods)

    async def dispatch(self, request: Request) -> Response:
        methods = self._table.get(request.path)
        if methods is None:
            return Response.problem("not_found", f"No route for {request.path}", 404)
        handler = methods.get(request.method)
        if handler is None:
            response = Response.problem(
                "method_not_allowed", f"{request.method} not allowed on {request.path}", 405,
            )
            response.headers["allow"] = ", ".join(sorted(methods))
            return response

        for middleware in reversed(self._middleware):
            handler = partial(middleware, handler=handler)

        try:
            return await handler(request)
        except Exception as e:
            # Service failures arrive as Err results; this is a bug path.
            logger.error(
                "Unhandled error in handler",
                method=request.method,
                path=request.path,
                error=repr(e),
            )
            return Response.problem("internal_error", "Internal error", 500)
