import asyncio

from keeperjira.storage import InMemoryStore
from keeperjira.webhook import SlidingWindowRateLimiter, source_identifier
from keeperjira.webhook.rate_limiter import rate_limit_key

START = 1_700_000_000.0
HOUR_MS = 3_600_000


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_fiftieth_request_allowed_fifty_first_rejected():
    clock = FakeClock(START)
    limiter = SlidingWindowRateLimiter(InMemoryStore(), limit=50, clock=clock)

    async def run():
        decisions = []
        for _ in range(51):
            decisions.append(await limiter.check("10.0.0.1"))
            clock.now += 1
        return decisions

    decisions = asyncio.run(run())

    assert all(d.allowed for d in decisions[:50])
    assert decisions[49].remaining == 0
    assert decisions[50].allowed is False
    assert decisions[50].reset_at_ms == int(START * 1000) + HOUR_MS


def test_window_rolls_over_after_an_hour():
    clock = FakeClock(START)
    limiter = SlidingWindowRateLimiter(InMemoryStore(), limit=2, clock=clock)

    async def run():
        await limiter.check("src")
        await limiter.check("src")
        blocked = await limiter.check("src")
        clock.now = START + 3601
        allowed = await limiter.check("src")
        return blocked, allowed

    blocked, allowed = asyncio.run(run())

    assert blocked.allowed is False
    assert allowed.allowed is True
    assert allowed.remaining == 1
    assert allowed.reset_at_ms == int((START + 3601) * 1000) + HOUR_MS


def test_sources_are_limited_independently():
    store = InMemoryStore()
    limiter = SlidingWindowRateLimiter(store, limit=1, clock=FakeClock(START))

    async def run():
        return [await limiter.check(src) for src in ("a", "b", "a")]

    first_a, first_b, second_a = asyncio.run(run())

    assert first_a.allowed and first_b.allowed
    assert second_a.allowed is False
    assert sorted(store.keys()) == [rate_limit_key("a"), rate_limit_key("b")]


def test_source_identifier():
    assert source_identifier({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}) == "203.0.113.7"
    assert source_identifier({"x-forwarded-for": " 198.51.100.2 "}) == "198.51.100.2"
    assert source_identifier({}) == "default"
    assert source_identifier({"X-Forwarded-For": ""}) == "default"


def test_rate_limit_key_is_sanitized():
    assert rate_limit_key("2001:db8::1") == "webhook-ratelimit-2001-db8--1"


class NetworkLikeStore(InMemoryStore):
    """Suspends before every operation the way a remote store does."""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)

    async def set(self, key, value, ttl_seconds=None):
        await asyncio.sleep(0)
        await super().set(key, value, ttl_seconds)

    async def update(self, key, updater, ttl_seconds=None):
        await asyncio.sleep(0)
        return await super().update(key, updater, ttl_seconds)


def test_concurrent_burst_cannot_exceed_limit():
    limiter = SlidingWindowRateLimiter(NetworkLikeStore(), limit=5, clock=FakeClock(START))

    async def run():
        return await asyncio.gather(*(limiter.check("203.0.113.9") for _ in range(20)))

    decisions = asyncio.run(run())

    assert sum(d.allowed for d in decisions) == 5
    assert sorted(d.remaining for d in decisions if d.allowed) == [0, 1, 2, 3, 4]
