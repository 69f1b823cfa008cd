"""
API module: request surface for the team log.
"""

from teamlog.api.app import TeamLogServices, build_router
from teamlog.api.handlers import ArchiveHandler, HealthHandler, MessagesHandler, ThoughtsHandler
from teamlog.api.middleware import RequestLoggingMiddleware
from teamlog.api.router import Request, Response, TeamLogRouter, status_for

__all__ = [
    "TeamLogServices",
    "build_router",
    "ArchiveHandler",
    "HealthHandler",
    "MessagesHandler",
    "ThoughtsHandler",
    "RequestLoggingMiddleware",
    "Request",
    "Response",
    "TeamLogRouter",
    "status_for",
]
