"""
Application Wiring

Constructs the store handle once, builds every service around it and
exposes them together with a router. The handle is passed explicitly into
each component; nothing is cached globally.

Usage:
    services = (await TeamLogServices.create(config)).unwrap()
    router = build_router(services)
    response = await router.dispatch(Request.from_raw("GET", "/api/messages"))
    await services.close()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from teamlog.api.handlers import ArchiveHandler, HealthHandler, MessagesHandler, ThoughtsHandler
from teamlog.api.middleware import RequestLoggingMiddleware
from teamlog.api.router import TeamLogRouter
from teamlog.core.config import TeamLogConfig
from teamlog.core.errors import TeamLogError
from teamlog.core.types import Clock, Ok, Result, Timestamp
from teamlog.messages.archive import ArchiveStore, Paginator
from teamlog.messages.compactor import Compactor
from teamlog.messages.live import LiveLogStore
from teamlog.messages.scheduler import CompactionScheduler
from teamlog.messages.thoughts import ThoughtStream
from teamlog.observability.logging import StructuredLogger
from teamlog.reliability.retry import ResilientDocumentStore, RetryPolicy
from teamlog.storage import create_document_store
from teamlog.storage.protocols import DocumentStoreProtocol

logger = StructuredLogger("teamlog.api.app")


@dataclass
class TeamLogServices:
    """Every service of the team log, sharing one store handle."""

    config: TeamLogConfig
    store: ResilientDocumentStore
    live: LiveLogStore
    archive: ArchiveStore
    paginator: Paginator
    compactor: Compactor
    thoughts: ThoughtStream
    scheduler: CompactionScheduler

    @classmethod
    def build(
        cls,
        config: TeamLogConfig,
        store: DocumentStoreProtocol,
        clock: Clock = Timestamp.now,
    ) -> TeamLogServices:
        """Wire services around an already-constructed store."""
        resilient = ResilientDocumentStore(store, RetryPolicy.from_config(config.reliability))
        messages = config.messages
        archive = ArchiveStore(resilient, messages, clock)
        compactor = Compactor(resilient, messages, clock)
        return cls(
            config=config,
            store=resilient,
            live=LiveLogStore(resilient, messages, clock),
            archive=archive,
            paginator=Paginator.from_config(archive, messages),
            compactor=compactor,
            thoughts=ThoughtStream(resilient, messages, clock),
            scheduler=CompactionScheduler(compactor, config.compaction),
        )

    @classmethod
    async def create(
        cls,
        config: TeamLogConfig,
        clock: Clock = Timestamp.now,
        start_background: bool = True,
    ) -> Result[TeamLogServices, TeamLogError]:
        """
        Validate config, construct and connect the configured store.

        With ``start_background`` the compaction scheduler is started when
        ``config.compaction.enabled`` is set; one-shot callers pass False.
        """
        validation = config.validate()
        if validation.is_err():
            return validation
        store = create_document_store(config.store)
        if store.is_err():
            return store
        connected = await store.value.connect()
        if connected.is_err():
            return connected
        services = cls.build(config, store.value, clock)
        if start_background:
            services.start_background()
        return Ok(services)

    def start_background(self) -> bool:
        """Start scheduled compaction if enabled; returns whether it is running."""
        if not self.config.compaction.enabled:
            logger.debug("Scheduled compaction disabled")
            return False
        self.scheduler.start()
        return True

    async def close(self) -> None:
        if self.scheduler.is_running:
            await self.scheduler.stop()
        await self.store.close()


def build_router(
    services: TeamLogServices,
    middleware: Optional[RequestLoggingMiddleware] = None,
) -> TeamLogRouter:
    """Router exposing the messages, archive, thoughts and health endpoints."""
    router = TeamLogRouter()
    router.use(middleware or RequestLoggingMiddleware())

    messages = MessagesHandler(services.live)
    archive = ArchiveHandler(services.paginator, services.compactor)
    thoughts = ThoughtsHandler(services.thoughts)
    health = HealthHandler(services.store, services.config.messages.live_collection)

    router.add("GET", "/api/messages", messages.recent)
    router.add("POST", "/api/messages", messages.append)
    router.add("DELETE", "/api/messages", messages.delete)
    router.add("GET", "/api/archive", archive.page)
    router.add("POST", "/api/archive", archive.compact)
    router.add("GET", "/api/thoughts", thoughts.list_thoughts)
    router.add("POST", "/api/thoughts", thoughts.post)
    router.add("GET", "/health", health.health)
    return router
