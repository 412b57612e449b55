"""Pytest configuration and shared fixtures for healthtrack tests.

TESTING STRATEGY:
=================

Unit tests never talk to a real Redis server. ``FakeRedis`` below implements
the subset of the ``redis.asyncio`` client API the cache backend uses, backed
by a dict and a controllable clock, so TTL expiry is simulated by advancing
``FakeClock`` instead of sleeping.

Failure injection replaces single client methods with ``AsyncMock`` objects
raising redis exceptions:

```python
async def test_get_fails_open(backend, fake_redis):
    fake_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
    assert await backend.get("k") is None
```

Test Organization:
-------------------
tests/
├── unit/            # Fast, isolated tests (auto-marked ``unit``)
└── conftest.py      # This file - markers, fake Redis, shared fixtures
"""

import re
from collections.abc import AsyncGenerator, AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from healthtrack.cache.backend import CacheBackend
from healthtrack.config.settings import Settings

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers.

    - @pytest.mark.unit: Fast, isolated unit tests
    - @pytest.mark.integration: Tests requiring a real Redis server
    - @pytest.mark.slow: Tests that take > 1 second
    """
    config.addinivalue_line("markers", "unit: Fast unit tests with mocked dependencies")
    config.addinivalue_line("markers", "integration: Integration tests with real dependencies")
    config.addinivalue_line("markers", "slow: Tests that take more than 1 second")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath)

        if "unit" in test_path.parts:
            item.add_marker(pytest.mark.unit)
        elif "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# FAKE REDIS
# =============================================================================


class FakeClock:
    """Monotonic test clock in seconds."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds


def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a Redis MATCH pattern (``*``, ``?``, backslash escapes)."""
    parts = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(parts) + "$", re.DOTALL)


class FakePipeline:
    """Buffered SETEX pipeline, applied on ``execute()``."""

    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._commands: list[tuple[str, int, str]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._commands.clear()

    def setex(self, key: str, ttl: int, value: str) -> "FakePipeline":
        self._commands.append((key, ttl, value))
        return self

    async def execute(self) -> list[bool]:
        results = [await self._redis.setex(key, ttl, value) for key, ttl, value in self._commands]
        self._commands.clear()
        return results


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` with decode_responses=True."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.store: dict[str, tuple[str, float | None]] = {}
        self.closed = False

    def _live(self, key: str) -> str | None:
        item = self.store.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self.clock.now:
            del self.store[key]
            return None
        return value

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        if int(ttl) <= 0:
            raise ValueError("invalid expire time in 'setex' command")
        self.store[key] = (str(value), self.clock.now + ttl)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self.store[key]
                removed += 1
        return removed

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if self._live(key) is not None)

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [self._live(key) for key in keys]

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def scan_iter(self, match: str | None = None, count: int | None = None) -> AsyncIterator[str]:
        regex = glob_to_regex(match or "*")
        for key in list(self.store):
            if self._live(key) is not None and regex.match(key):
                yield key

    async def ttl(self, key: str) -> int:
        if self._live(key) is None:
            return -2
        expires_at = self.store[key][1]
        if expires_at is None:
            return -1
        return int(expires_at - self.clock.now)

    async def expire(self, key: str, ttl: int) -> bool:
        value = self._live(key)
        if value is None:
            return False
        self.store[key] = (value, self.clock.now + ttl)
        return True

    async def set(self, key: str, value: str) -> bool:
        self.store[key] = (str(value), None)
        return True

    async def flushdb(self) -> bool:
        self.store.clear()
        return True

    async def info(self, section: str | None = None) -> dict[str, Any]:
        return {
            "used_memory_human": "1.00M",
            "used_memory_peak_human": "2.00M",
            "maxmemory_human": "0B",
            "maxmemory_policy": "noeviction",
        }

    async def aclose(self) -> None:
        self.closed = True


# =============================================================================
# SHARED FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def test_settings() -> Settings:
    """Cache-enabled settings with tiny reconnect delays, isolated from .env files."""
    return Settings(
        _env_file=None,
        redis_disabled=False,
        redis_url="redis://test:6379/0",
        redis_reconnect_base_delay=0.001,
        redis_reconnect_max_delay=0.01,
        redis_reconnect_max_attempts=3,
    )


@pytest.fixture
def disabled_settings() -> Settings:
    return Settings(_env_file=None, redis_disabled=True, redis_url=None)


@pytest.fixture
async def backend(test_settings: Settings, fake_redis: FakeRedis) -> AsyncGenerator[CacheBackend, None]:
    """Connected backend over the fake client."""
    backend = CacheBackend(test_settings, client=fake_redis)
    assert await backend.connect()
    yield backend
    await backend.disconnect()


@pytest.fixture
async def disconnected_backend(
    disabled_settings: Settings, fake_redis: FakeRedis
) -> AsyncGenerator[CacheBackend, None]:
    """Backend with caching disabled; every operation must fail open."""
    backend = CacheBackend(disabled_settings, client=fake_redis)
    assert not await backend.connect()
    yield backend
    await backend.disconnect()
