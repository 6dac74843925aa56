"""
Wiring of stores and components for one process.

``build_container`` picks the backend from STORE_BACKEND; the FastAPI
lifespan and the worker jobs both go through it so they share one graph
of components.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from app.config import settings
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis

from ..domain.models import Attendee
from ..pipeline.aggregation import GraphAggregator, HotspotService
from ..pipeline.dedup import ScanDeduplicator
from ..pipeline.scoring import MatchEngine
from ..repository.base import GraphStore, IdentityStore, MeetingStore, ScanLedger
from ..repository.memory import (
    InMemoryGraphStore,
    InMemoryIdentityStore,
    InMemoryMeetingStore,
    InMemoryScanLedger,
)
from ..scheduling import MeetingScheduler
from .matchmaking_service import MatchmakingService

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class MatchmakingContainer:
    identity: IdentityStore
    ledger: ScanLedger
    graph: GraphStore
    meetings: MeetingStore
    service: MatchmakingService


def assemble(
    identity: IdentityStore,
    ledger: ScanLedger,
    graph: GraphStore,
    meetings: MeetingStore,
    clock: Clock = _utcnow,
    id_factory: Callable[[], str] | None = None,
) -> MatchmakingContainer:
    scheduler_kwargs = {"id_factory": id_factory} if id_factory else {}
    service = MatchmakingService(
        identity=identity,
        deduplicator=ScanDeduplicator(ledger),
        aggregator=GraphAggregator(graph),
        engine=MatchEngine(identity, graph),
        scheduler=MeetingScheduler(meetings, identity, clock=clock, **scheduler_kwargs),
        hotspots=HotspotService(graph, clock=clock),
        clock=clock,
    )
    return MatchmakingContainer(
        identity=identity, ledger=ledger, graph=graph, meetings=meetings, service=service
    )


def build_memory_container(
    attendees: Iterable[Attendee] = (),
    clock: Clock = _utcnow,
    id_factory: Callable[[], str] | None = None,
) -> MatchmakingContainer:
    return assemble(
        identity=InMemoryIdentityStore(attendees),
        ledger=InMemoryScanLedger(clock),
        graph=InMemoryGraphStore(),
        meetings=InMemoryMeetingStore(),
        clock=clock,
        id_factory=id_factory,
    )


def build_postgres_container() -> MatchmakingContainer:
    """Postgres stores; dedup claims go to Redis when REDIS_URL is set."""
    from ..repository.postgres import (
        PostgresGraphStore,
        PostgresIdentityStore,
        PostgresMeetingStore,
    )
    from ..repository.redis_ledger import RedisScanLedger

    if fast_redis.configured:
        ledger: ScanLedger = RedisScanLedger(fast_redis)
    else:
        logger.warning("REDIS_URL not set, scan dedup is local to this process")
        ledger = InMemoryScanLedger()

    return assemble(
        identity=PostgresIdentityStore(),
        ledger=ledger,
        graph=PostgresGraphStore(),
        meetings=PostgresMeetingStore(),
    )


def build_container() -> MatchmakingContainer:
    backend = settings.STORE_BACKEND
    logger.info("Building matchmaking container", backend=backend)
    if settings.uses_postgres():
        return build_postgres_container()
    return build_memory_container()


@asynccontextmanager
async def backend_resources() -> AsyncIterator[list[str]]:
    """
    Open the connection pools the configured backend needs, close them on exit.

    Memory backend: nothing to open. Postgres backend: database pool plus
    schema, then Redis when REDIS_URL is set. Yields the started services.
    """
    started: list[str] = []
    if settings.uses_postgres():
        from ..repository.schema import ensure_schema

        try:
            logger.info("Initializing database pool")
            await db_pool.initialize()
            started.append("database_pool")
            await ensure_schema()

            if fast_redis.configured:
                logger.info("Initializing Redis connection")
                await fast_redis.initialize()
                started.append("redis")

            logger.info("All services initialized successfully", services=started)
        except Exception as e:
            logger.error("Failed to initialize services", error=str(e), completed_tasks=started)
            await _close_backends(started)
            raise

    try:
        yield started
    finally:
        await _close_backends(started)


async def _close_backends(started: list[str]) -> None:
    shutdown_errors = []

    # Reverse start order
    if "redis" in started:
        try:
            logger.info("Closing Redis connection")
            await fast_redis.close()
        except Exception as e:
            logger.error("Error closing Redis", error=str(e))
            shutdown_errors.append(f"Redis: {e}")

    if "database_pool" in started:
        try:
            logger.info("Closing database pool")
            await db_pool.close()
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))
            shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    started.clear()
