import pytest

from app.features.matchmaking.domain import InvalidInputError, UnavailableError
from app.features.matchmaking.services.retry import with_retry


@pytest.mark.asyncio
async def test_recoverable_errors_are_retried():
    calls = {"n": 0}

    @with_retry(max_retries=3, base_delay=0)
    async def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise UnavailableError("storage down")
        return "ok"

    assert await flaky() == "ok"
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    calls = {"n": 0}

    @with_retry(max_retries=2, base_delay=0)
    async def always_down():
        calls["n"] += 1
        raise UnavailableError("storage down")

    with pytest.raises(UnavailableError):
        await always_down()
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_non_recoverable_errors_are_not_retried():
    calls = {"n": 0}

    @with_retry(max_retries=3, base_delay=0)
    async def bad_input():
        calls["n"] += 1
        raise InvalidInputError("nope")

    with pytest.raises(InvalidInputError):
        await bad_input()
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_backoff_is_exponential(monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("app.features.matchmaking.services.retry.asyncio.sleep", fake_sleep)

    @with_retry(max_retries=3, base_delay=0.1)
    async def always_down():
        raise UnavailableError("storage down")

    with pytest.raises(UnavailableError):
        await always_down()
    assert delays == pytest.approx([0.1, 0.2, 0.4])
