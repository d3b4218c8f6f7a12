"""Tests for the fixed-window rate limiter."""

import pytest

from src.api.core.models.rate_limit import (
    RateLimitConfig,
    RateLimitState,
    block_key,
    counter_key,
)
from src.core.context import RequestIdentity
from src.redis.backend import CacheBackendUnavailableError
from src.services.rate_limit.limiter import RateLimiter
from src.services.rate_limit.policy import RateLimitPolicy

ANON = RequestIdentity(client_ip="10.0.0.1")
CLIENT_USER = RequestIdentity(client_ip="10.0.0.2", user_id=42, role="client")


def _sample(metrics, name: str, **labels) -> float:
    return metrics.registry.get_sample_value(f"delivery_{name}", labels) or 0.0


@pytest.mark.asyncio
async def test_anonymous_client_gets_full_budget_then_blocked(rate_limiter, cache_backend):
    """15 anonymous requests pass, the 16th is rejected and plants a block."""
    remaining = []
    for _ in range(15):
        decision = await rate_limiter.check(ANON)
        assert decision.state == RateLimitState.ALLOWED
        remaining.append(decision.remaining)

    assert remaining == list(range(14, -1, -1))

    rejected = await rate_limiter.check(ANON)
    assert rejected.state == RateLimitState.REJECTED
    assert rejected.headers == {
        "X-RateLimit-Limit": "15",
        "X-RateLimit-Remaining": "0",
        "Retry-After": "60",
    }
    assert cache_backend.peek(block_key("10.0.0.1")).startswith(
        "blocked:count=16:limit=15:time="
    )
    assert await cache_backend.ttl(block_key("10.0.0.1")) == 60


@pytest.mark.asyncio
async def test_blocked_client_rejected_without_counting(rate_limiter, cache_backend):
    for _ in range(16):
        await rate_limiter.check(ANON)

    decision = await rate_limiter.check(ANON)

    assert decision.state == RateLimitState.BLOCKED
    assert decision.headers == {"Retry-After": "60"}
    assert cache_backend.peek(counter_key("unauth", "10.0.0.1")) == "16"


@pytest.mark.asyncio
async def test_block_and_window_expire(rate_limiter, clock):
    for _ in range(17):
        await rate_limiter.check(ANON)

    clock.advance(61)
    decision = await rate_limiter.check(ANON)

    assert decision.state == RateLimitState.ALLOWED
    assert decision.remaining == 14


@pytest.mark.asyncio
async def test_authenticated_user_rejected_but_never_blocked(rate_limiter, cache_backend):
    """User 42 with role client gets 30 requests, then 429s without a block record."""
    for i in range(30):
        decision = await rate_limiter.check(CLIENT_USER)
        assert decision.is_allowed
        assert decision.limit == 30
        assert decision.remaining == 29 - i

    for _ in range(3):
        decision = await rate_limiter.check(CLIENT_USER)
        assert decision.state == RateLimitState.REJECTED
        assert decision.retry_after == 60

    assert cache_backend.peek(block_key("10.0.0.2")) is None
    assert cache_backend.peek(counter_key("auth:client", 42)) == "33"


@pytest.mark.asyncio
async def test_block_applies_to_every_caller_from_that_ip(rate_limiter):
    for _ in range(16):
        await rate_limiter.check(ANON)

    user_on_blocked_ip = RequestIdentity(client_ip="10.0.0.1", user_id=7, role="client")
    decision = await rate_limiter.check(user_on_blocked_ip)

    assert decision.state == RateLimitState.BLOCKED


@pytest.mark.asyncio
async def test_courier_role_uses_its_own_limit(rate_limiter):
    courier = RequestIdentity(client_ip="10.0.0.3", user_id=9, role="courier")

    decision = await rate_limiter.check(courier)

    assert decision.scope == "auth:courier"
    assert decision.limit == 137
    assert decision.remaining == 136


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["dispatcher", None])
async def test_unknown_or_missing_role_falls_back_to_client(rate_limiter, cache_backend, role):
    identity = RequestIdentity(client_ip="10.0.0.4", user_id=5, role=role)

    decision = await rate_limiter.check(identity)

    assert decision.scope == "auth:client"
    assert decision.limit == 30
    assert cache_backend.peek(counter_key("auth:client", 5)) == "1"


@pytest.mark.asyncio
async def test_missing_client_entry_falls_back_to_unauthenticated_limit(cache_backend):
    policy = RateLimitPolicy(
        cache_backend,
        RateLimitConfig(authenticated_limits={"courier": 5}, unauthenticated_limit=3),
    )
    limiter = RateLimiter(cache_backend, policy)

    decision = await limiter.check(RequestIdentity(client_ip="1.1.1.1", user_id=8))

    assert decision.limit == 3


@pytest.mark.asyncio
async def test_no_backend_allows_everything_without_headers(rate_limit_policy, metrics):
    limiter = RateLimiter(None, rate_limit_policy, metrics=metrics)

    for _ in range(50):
        decision = await limiter.check(ANON)
        assert decision.is_allowed
        assert decision.headers == {}

    assert _sample(metrics, "rate_limit_fail_open_total", reason="backend_missing") == 50


@pytest.mark.asyncio
async def test_read_failure_fails_open(rate_limiter, cache_backend, metrics):
    cache_backend.fail_on.add("get")

    decision = await rate_limiter.check(ANON)

    assert decision.is_allowed
    assert decision.limit is None
    assert _sample(metrics, "rate_limit_fail_open_total", reason="block_check_error") == 1
    assert _sample(metrics, "rate_limit_fail_open_total", reason="counter_error") == 1


@pytest.mark.asyncio
async def test_write_failure_fails_open(rate_limiter, cache_backend):
    cache_backend.fail_on.add("set")

    decision = await rate_limiter.check(CLIENT_USER)

    assert decision.is_allowed
    assert decision.headers == {}


@pytest.mark.asyncio
async def test_existing_block_rejects_even_when_counter_writes_fail(
    rate_limiter, cache_backend
):
    await cache_backend.set(block_key("10.0.0.1"), "blocked:manual", 60)
    cache_backend.fail_on.add("set")

    decision = await rate_limiter.check(ANON)

    assert decision.state == RateLimitState.BLOCKED


@pytest.mark.asyncio
async def test_block_write_failure_still_rejects(rate_limiter, cache_backend):
    for _ in range(15):
        await rate_limiter.check(ANON)

    # Counter write succeeds, only the block write is refused
    original_set = cache_backend.set

    async def refuse_block(key, value, ttl=None):
        if key.startswith("rate_limit:block:"):
            raise CacheBackendUnavailableError("block write refused")
        await original_set(key, value, ttl)

    cache_backend.set = refuse_block
    decision = await rate_limiter.check(ANON)

    assert decision.state == RateLimitState.REJECTED
    assert cache_backend.peek(block_key("10.0.0.1")) is None


@pytest.mark.asyncio
async def test_window_is_not_extended_by_later_requests(rate_limiter, cache_backend, clock):
    await rate_limiter.check(CLIENT_USER)
    clock.advance(30)
    await rate_limiter.check(CLIENT_USER)
    clock.advance(20)
    await rate_limiter.check(CLIENT_USER)

    key = counter_key("auth:client", 42)
    assert cache_backend.peek(key) == "3"
    assert await cache_backend.ttl(key) == pytest.approx(10)

    clock.advance(10)
    decision = await rate_limiter.check(CLIENT_USER)
    assert decision.remaining == 29


@pytest.mark.asyncio
async def test_counter_without_expiry_gets_full_window(rate_limiter, cache_backend):
    key = counter_key("unauth", "10.0.0.1")
    await cache_backend.set(key, "4", None)

    decision = await rate_limiter.check(ANON)

    assert decision.remaining == 10
    assert await cache_backend.ttl(key) == 60


@pytest.mark.asyncio
async def test_unparseable_counter_restarts_window(rate_limiter, cache_backend):
    key = counter_key("unauth", "10.0.0.1")
    await cache_backend.set(key, "not-a-number", 5)

    decision = await rate_limiter.check(ANON)

    assert decision.remaining == 14
    assert cache_backend.peek(key) == "1"
    assert await cache_backend.ttl(key) == 60


@pytest.mark.asyncio
async def test_zero_limit_rejects_first_request(cache_backend):
    policy = RateLimitPolicy(cache_backend, RateLimitConfig(unauthenticated_limit=0))
    limiter = RateLimiter(cache_backend, policy)

    decision = await limiter.check(ANON)

    assert decision.state == RateLimitState.REJECTED
    assert cache_backend.peek(block_key("10.0.0.1")) is not None


@pytest.mark.asyncio
async def test_zero_block_duration_plants_no_block(cache_backend):
    policy = RateLimitPolicy(
        cache_backend,
        RateLimitConfig(unauthenticated_limit=1, block_duration_minutes=0),
    )
    limiter = RateLimiter(cache_backend, policy)

    await limiter.check(ANON)
    decision = await limiter.check(ANON)

    assert decision.state == RateLimitState.REJECTED
    assert cache_backend.peek(block_key("10.0.0.1")) is None
    assert (await limiter.check(ANON)).state == RateLimitState.REJECTED


@pytest.mark.asyncio
async def test_policy_change_applies_to_next_request(rate_limiter, rate_limit_policy):
    await rate_limiter.check(CLIENT_USER)

    await rate_limit_policy.update(
        RateLimitConfig(authenticated_limits={"client": 100})
    )
    decision = await rate_limiter.check(CLIENT_USER)

    assert decision.limit == 100
    assert decision.remaining == 98


@pytest.mark.asyncio
async def test_decisions_are_counted(rate_limiter, metrics):
    for _ in range(17):
        await rate_limiter.check(ANON)

    assert _sample(metrics, "rate_limit_decisions_total", outcome="allowed", scope="unauth") == 15
    assert _sample(metrics, "rate_limit_decisions_total", outcome="rejected", scope="unauth") == 1
    assert _sample(metrics, "rate_limit_decisions_total", outcome="blocked", scope="block") == 1
    assert _sample(metrics, "rate_limit_blocks_total") == 1
