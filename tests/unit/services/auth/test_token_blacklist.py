from datetime import timedelta

import pytest

from src.redis.backend import CacheBackendUnavailableError
from src.services.auth import TokenBlacklist
from src.services.auth.blacklist import REVOKED_VALUE, blacklist_key


@pytest.mark.asyncio
async def test_revoke_stores_entry_until_token_expiry(token_blacklist, token_service, cache_backend):
    token = token_service.create_access_token(42, "client")

    assert await token_blacklist.revoke(token) is True

    assert cache_backend.peek(blacklist_key(token)) == REVOKED_VALUE
    ttl = await cache_backend.ttl(blacklist_key(token))
    assert 6 * 60 < ttl <= 7 * 60
    assert await token_blacklist.is_revoked(token)


@pytest.mark.asyncio
async def test_entry_disappears_with_token_lifetime(token_blacklist, token_service, clock):
    token = token_service.create_access_token(42)
    await token_blacklist.revoke(token)

    clock.advance(7 * 60 + 1)

    assert not await token_blacklist.is_revoked(token)


@pytest.mark.asyncio
async def test_expired_token_needs_no_entry(token_blacklist, token_service, cache_backend):
    token = token_service.create_access_token(42, expires_in=timedelta(seconds=-1))

    assert await token_blacklist.revoke(token) is False
    assert cache_backend.peek(blacklist_key(token)) is None


@pytest.mark.asyncio
async def test_unreadable_token_held_for_default_lifetime(token_blacklist, cache_backend):
    assert await token_blacklist.revoke("opaque-token") is True

    assert await cache_backend.ttl(blacklist_key("opaque-token")) == 7 * 60


@pytest.mark.asyncio
async def test_revocations_are_counted(token_blacklist, token_service, metrics):
    await token_blacklist.revoke(token_service.create_access_token(1))
    await token_blacklist.revoke(token_service.create_access_token(2))

    assert metrics.registry.get_sample_value(
        "delivery_token_blacklist_revocations_total"
    ) == 2


@pytest.mark.asyncio
async def test_lookup_failure_reads_as_not_revoked(token_blacklist, token_service, cache_backend):
    token = token_service.create_access_token(42)
    await token_blacklist.revoke(token)
    cache_backend.fail_on.add("get")

    assert not await token_blacklist.is_revoked(token)


@pytest.mark.asyncio
async def test_no_backend(token_service):
    blacklist = TokenBlacklist(None, token_service)

    assert not await blacklist.is_revoked("anything")
    with pytest.raises(CacheBackendUnavailableError):
        await blacklist.revoke(token_service.create_access_token(1))
