"""
API Middleware: Cross-Cutting Concerns

Provides:
- RequestLoggingMiddleware: request id, method, path, status and latency
"""

from __future__ import annotations

import time
import uuid

from teamlog.api.router import Handler, Request, Response
from teamlog.observability.logging import StructuredLogger

REQUEST_ID_HEADER = "x-request-id"


class RequestLoggingMiddleware:
    """
    Logs one line per request and binds ``request_id`` into the logging
    context for everything the handler logs.

    The request id is taken from the X-Request-ID header when present and
    echoed on the response.
    """

    __slots__ = ("_logger", "_skip_paths")

    def __init__(
        self,
        logger: StructuredLogger | None = None,
        skip_paths: tuple[str, ...] = ("/health",),
    ) -> None:
        self._logger = logger or StructuredLogger("teamlog.api.requests")
        self._skip_paths = skip_paths

    async def __call__(self, request: Request, handler: Handler) -> Response:
        request_id = request.header(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start_time = time.perf_counter()
        status = 500

        with StructuredLogger.context(request_id=request_id):
            try:
                response = await handler(request)
                status = response.status
                response.headers[REQUEST_ID_HEADER] = request_id
                return response
            finally:
                if request.path not in self._skip_paths or status >= 400:
                    latency_ms = (time.perf_counter() - start_time) * 1000
                    log = self._logger.warning if status >= 500 else self._logger.info
                    log(
                        "Request handled",
                        method=request.method,
                        path=request.path,
                        status=status,
                        latency_ms=round(latency_ms, 2),
                    )
