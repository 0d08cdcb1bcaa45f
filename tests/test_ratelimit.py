"""Tests for the sliding-window rate limiters."""

import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from slidefox.ratelimit import (
    MemoryRateLimiter,
    RateLimitResult,
    RedisRateLimiter,
    client_identifier,
    create_rate_limiter,
)


def mock_redis(*execute_results):
    """Redis client whose pipelines return the given results in order."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(side_effect=list(execute_results))
    pipeline = MagicMock()
    pipeline.__aenter__ = AsyncMock(return_value=pipe)
    pipeline.__aexit__ = AsyncMock(return_value=False)
    client = MagicMock()
    client.pipeline.return_value = pipeline
    client.zrem = AsyncMock()
    return client, pipe


class TestClientIdentifier:
    """Tests for client_identifier."""

    def test_first_forwarded_address(self):
        assert client_identifier("203.0.113.7, 10.0.0.1") == "203.0.113.7"

    def test_missing_header(self):
        assert client_identifier(None) == "anonymous"
        assert client_identifier(" , ") == "anonymous"


class TestRateLimitResult:
    """Tests for RateLimitResult headers."""

    def test_allowed_headers(self):
        result = RateLimitResult(success=True, limit=20, remaining=19, reset=1_700_000_000_000)

        assert result.headers() == {
            "X-RateLimit-Limit": "20",
            "X-RateLimit-Remaining": "19",
            "X-RateLimit-Reset": "1700000000000",
        }

    def test_blocked_headers_include_retry_after(self):
        reset = int(time.time() * 1000) + 90_500
        result = RateLimitResult(success=False, limit=20, remaining=0, reset=reset)

        headers = result.headers()

        assert headers["X-RateLimit-Remaining"] == "0"
        assert 90 <= int(headers["Retry-After"]) <= 91

    def test_retry_after_is_at_least_one_second(self):
        result = RateLimitResult(success=False, limit=1, remaining=0, reset=0)

        assert result.retry_after == 1


class TestMemoryRateLimiter:
    """Tests for MemoryRateLimiter."""

    @pytest.mark.asyncio
    async def test_blocks_after_limit(self):
        limiter = MemoryRateLimiter(limit=2, window_seconds=60)

        first = await limiter.limit_request("1.2.3.4")
        second = await limiter.limit_request("1.2.3.4")
        third = await limiter.limit_request("1.2.3.4")

        assert (first.success, first.remaining) == (True, 1)
        assert (second.success, second.remaining) == (True, 0)
        assert third.success is False
        assert third.reset == first.reset

    @pytest.mark.asyncio
    async def test_identifiers_are_independent(self):
        limiter = MemoryRateLimiter(limit=1, window_seconds=60)

        assert (await limiter.limit_request("a")).success
        assert (await limiter.limit_request("b")).success
        assert not (await limiter.limit_request("a")).success

    @pytest.mark.asyncio
    async def test_window_slides(self, monkeypatch):
        limiter = MemoryRateLimiter(limit=1, window_seconds=60)
        now = 1_000_000.0
        monkeypatch.setattr("slidefox.ratelimit.time.time", lambda: now)

        assert (await limiter.limit_request("a")).success
        assert not (await limiter.limit_request("a")).success

        now += 61
        assert (await limiter.limit_request("a")).success

    @pytest.mark.asyncio
    async def test_idle_clients_are_forgotten(self, monkeypatch):
        limiter = MemoryRateLimiter(limit=5, window_seconds=60)
        now = 1_000_000.0
        monkeypatch.setattr("slidefox.ratelimit.time.time", lambda: now)

        for address in ("a", "b", "c"):
            await limiter.limit_request(address)
        assert len(limiter) == 3

        now += 61
        await limiter.limit_request("d")

        assert len(limiter) == 1

    @pytest.mark.asyncio
    async def test_active_clients_survive_sweep(self, monkeypatch):
        limiter = MemoryRateLimiter(limit=2, window_seconds=60)
        now = 1_000_000.0
        monkeypatch.setattr("slidefox.ratelimit.time.time", lambda: now)

        await limiter.limit_request("a")
        now += 30
        await limiter.limit_request("b")
        now += 40
        await limiter.limit_request("c")

        assert len(limiter) == 2
        assert (await limiter.limit_request("b")).remaining == 0


class TestRedisRateLimiter:
    """Tests for RedisRateLimiter."""

    @pytest.mark.asyncio
    async def test_admits_under_limit(self):
        now_ms = int(time.time() * 1000)
        client, pipe = mock_redis([0, 1, 4, [("earlier", float(now_ms - 1000))], True])
        limiter = RedisRateLimiter(client, limit=5, window_seconds=60, prefix="test")

        result = await limiter.limit_request("1.2.3.4")

        assert result.success is True
        assert result.remaining == 1
        assert result.reset == now_ms - 1000 + 60_000
        assert pipe.zadd.call_args.args[0] == "test:1.2.3.4"
        pipe.pexpire.assert_called_once_with("test:1.2.3.4", 60_000)
        client.zrem.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trim_add_and_count_in_one_transaction(self):
        client, pipe = mock_redis([0, 1, 1, [("now", 1.0)], True])
        limiter = RedisRateLimiter(client, limit=5, window_seconds=60)

        await limiter.limit_request("1.2.3.4")

        client.pipeline.assert_called_once_with(transaction=True)
        commands = [name for name, _, _ in pipe.method_calls if name != "execute"]
        assert commands == ["zremrangebyscore", "zadd", "zcard", "zrange", "pexpire"]

    @pytest.mark.asyncio
    async def test_over_limit_removes_own_entry(self):
        client, pipe = mock_redis([0, 1, 6, [("earlier", 1000.0)], True])
        limiter = RedisRateLimiter(client, limit=5, window_seconds=60)

        result = await limiter.limit_request("1.2.3.4")

        assert result.success is False
        assert result.remaining == 0
        assert result.reset == 61_000
        member = next(iter(pipe.zadd.call_args.args[1]))
        client.zrem.assert_awaited_once_with("slidefox:1.2.3.4", member)

    @pytest.mark.asyncio
    async def test_last_place_in_window_is_admitted(self):
        client, _ = mock_redis([0, 1, 5, [("earlier", 1000.0)], True])
        limiter = RedisRateLimiter(client, limit=5, window_seconds=60)

        result = await limiter.limit_request("1.2.3.4")

        assert result.success is True
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_fails_open_when_redis_is_down(self):
        client, _ = mock_redis(RedisConnectionError("connection refused"))
        limiter = RedisRateLimiter(client, limit=5, window_seconds=60)

        result = await limiter.limit_request("1.2.3.4")

        assert result.success is True
        assert result.remaining == 5


class TestCreateRateLimiter:
    """Tests for create_rate_limiter."""

    def test_memory_without_url(self):
        assert isinstance(create_rate_limiter(None, limit=3), MemoryRateLimiter)

    def test_redis_with_url(self):
        limiter = create_rate_limiter("redis://localhost:6379/0", limit=3, window_seconds=10)

        assert isinstance(limiter, RedisRateLimiter)
        assert limiter.limit == 3
        assert limiter.window_ms == 10_000
