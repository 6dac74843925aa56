import pytest

from app.features.matchmaking.domain import UnavailableError
from app.features.matchmaking.repository.redis_ledger import KEY_PREFIX, RedisScanLedger


@pytest.mark.asyncio
async def test_claim_sets_key_with_ttl(fake_redis):
    ledger = RedisScanLedger(fake_redis)

    assert await ledger.claim("s-1", 3600) is True
    assert fake_redis.ttls[f"{KEY_PREFIX}s-1"] == 3600


@pytest.mark.asyncio
async def test_second_claim_is_refused(fake_redis):
    ledger = RedisScanLedger(fake_redis)
    await ledger.claim("s-1", 3600)

    assert await ledger.claim("s-1", 3600) is False


@pytest.mark.asyncio
async def test_release_allows_reclaim(fake_redis):
    ledger = RedisScanLedger(fake_redis)
    await ledger.claim("s-1", 3600)

    await ledger.release("s-1")

    assert await ledger.claim("s-1", 3600) is True


@pytest.mark.asyncio
async def test_connection_errors_surface_as_unavailable(fake_redis):
    ledger = RedisScanLedger(fake_redis)
    fake_redis.fail = True

    with pytest.raises(UnavailableError) as exc_info:
        await ledger.claim("s-1", 3600)

    assert exc_info.value.recoverable is True


@pytest.mark.asyncio
async def test_purge_is_left_to_redis_expiry(fake_redis):
    assert await RedisScanLedger(fake_redis).purge_expired() == 0
