import itertools
from datetime import UTC, datetime, timedelta

import pytest
import redis.asyncio as redis
from fastapi.testclient import TestClient

from app.features.matchmaking.domain import Attendee, ScanEvent
from app.features.matchmaking.services import build_memory_container

T0 = datetime(2025, 9, 15, 8, 0, tzinfo=UTC)


class FrozenClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeRedis:
    """Stands in for FastRedisClient: SET NX semantics without expiry."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool:
        if self.fail:
            raise redis.ConnectionError("connection refused")
        if key in self.store:
            return False
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def delete(self, key: str) -> bool:
        if self.fail:
            raise redis.ConnectionError("connection refused")
        self.ttls.pop(key, None)
        return self.store.pop(key, None) is not None


def _attendee(actor_id: str, goals=(), interests=(), **kwargs) -> Attendee:
    return Attendee(
        actor_id=actor_id, goals=frozenset(goals), interests=frozenset(interests), **kwargs
    )


def _scan(scan_id: str, scanner: str, target: str, occurred_at: datetime = T0, location=None):
    return ScanEvent(
        scan_id=scan_id,
        scanner_actor_id=scanner,
        target_actor_id=target,
        occurred_at=occurred_at,
        location=location,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def attendees():
    return [
        _attendee("alice", goals={"hiring", "fundraising"}, interests={"ai", "climate"}, name="Alice"),
        _attendee("bob", goals={"hiring"}, interests={"ai"}, name="Bob"),
        _attendee("carol", goals={"partnerships"}, interests={"climate"}, name="Carol"),
        _attendee("dave", goals={"sales"}, interests={"retail"}),
        _attendee("erin", goals={"hiring"}, matchmaking_consent=False),
    ]


@pytest.fixture
def container(attendees, clock):
    counter = itertools.count(1)
    return build_memory_container(
        attendees=attendees, clock=clock, id_factory=lambda: f"m-{next(counter)}"
    )


@pytest.fixture
def service(container):
    return container.service


@pytest.fixture
def client(container):
    from app.main import create_app

    app = create_app(container)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_attendee():
    return _attendee


@pytest.fixture
def make_scan():
    return _scan
