"""Cache analytics and maintenance operations for the admin dashboard.

Counts cached entries per component, clears entries by type, inspects single
keys and runs a small write/read/delete probe against ``perf:test``. Every
operation reports a disabled status instead of failing when Redis is down.
"""

import logging
import time
from typing import Any

from .backend import CacheBackend
from .keys import (
    PERF_PROBE_KEY,
    PROFILE_PREFIX,
    RECOMMENDATION_PREFIX,
    SESSION_PREFIX,
    profile_key,
    session_key,
)

logger = logging.getLogger(__name__)

CLEARABLE_PATTERNS = {
    "sessions": f"{SESSION_PREFIX}:*",
    "health": f"{PROFILE_PREFIX}:*",
    "calories": f"{RECOMMENDATION_PREFIX}:*",
}

_DISABLED = {"status": "disabled", "message": "Redis is not connected"}


class CacheAnalytics:
    """Read-mostly view over the cache for monitoring and manual cleanup."""

    def __init__(self, backend: CacheBackend):
        self.backend = backend

    async def summary(self) -> dict[str, int] | None:
        """Entry counts per component, None when the cache is unavailable."""
        if not self.backend.connected:
            return None

        sessions = await self.backend.keys(CLEARABLE_PATTERNS["sessions"])
        profiles = await self.backend.keys(CLEARABLE_PATTERNS["health"])
        calories = await self.backend.keys(CLEARABLE_PATTERNS["calories"])
        return {
            "activeSessions": len(sessions),
            "cachedHealthProfiles": len(profiles),
            "calorieCalculations": len(calories),
            "totalKeys": len(sessions) + len(profiles) + len(calories),
        }

    async def samples(self, limit: int = 5) -> dict[str, list[str]]:
        """A few example keys per component."""
        return {
            "sessions": (await self.backend.keys(CLEARABLE_PATTERNS["sessions"]))[:limit],
            "healthData": (await self.backend.keys(CLEARABLE_PATTERNS["health"]))[:limit],
            "calorieCache": (await self.backend.keys(CLEARABLE_PATTERNS["calories"]))[:limit],
        }

    async def report(self) -> dict[str, Any]:
        """Dashboard payload: counts, samples and memory statistics."""
        if not self.backend.connected:
            return {**_DISABLED, "analytics": None}

        return {
            "status": "connected",
            "analytics": await self.summary(),
            "samples": await self.samples(),
            "memory": await self.backend.stats(),
        }

    async def clear(self, kind: str, identity: str | None = None) -> dict[str, Any]:
        """Clear cached entries of one type.

        Args:
            kind: ``sessions``, ``health``, ``calories`` or ``user``
            identity: Required for ``user``; clears that user's session and profile

        Raises:
            ValueError: If kind is unknown or ``user`` is requested without identity
        """
        if kind == "user":
            if not identity:
                raise ValueError("identity is required to clear a user's cache")
        elif kind not in CLEARABLE_PATTERNS:
            raise ValueError(f"Invalid cache type '{kind}'")

        if not self.backend.connected:
            return dict(_DISABLED)

        if kind == "user":
            await self.backend.delete(session_key(identity), profile_key(identity))
            return {"message": f"All cache cleared for user {identity}", "cleared": True}

        pattern = CLEARABLE_PATTERNS[kind]
        keys = await self.backend.keys(pattern)
        if keys:
            await self.backend.delete(*keys)
        logger.info(f"Cleared {len(keys)} cache key(s) matching {pattern}")
        return {"message": f"Cleared {kind} cache", "keysCleared": len(keys), "pattern": pattern}

    async def inspect(self, key: str) -> dict[str, Any]:
        """Decoded value, remaining TTL and stored size of a single key."""
        if not self.backend.connected:
            return dict(_DISABLED)

        raw = await self.backend.get_text(key)
        if raw is None:
            return {"key": key, "message": "Key not found or expired"}

        data = self.backend.decode(key, raw)
        ttl = await self.backend.ttl(key)
        if ttl is not None and ttl > 0:
            ttl_text = f"{ttl} seconds"
        elif ttl == -1:
            ttl_text = "No expiration"
        else:
            ttl_text = "Key expired/not found"

        return {
            "key": key,
            "data": data if data is not None else raw,
            "ttl": ttl_text,
            "size": f"{len(raw.encode('utf-8'))} bytes",
        }

    async def performance_probe(self, identity: str | None = None) -> dict[str, Any]:
        """Time a SET and GET of a ~2KB payload on ``perf:test`` and clean up."""
        if not self.backend.connected:
            return {**_DISABLED, "message": "Redis is not connected - cannot run performance test"}

        payload = {
            "userId": identity,
            "timestamp": time.time(),
            "testPayload": "Performance test data " * 100,
        }

        start = time.perf_counter()
        await self.backend.set(PERF_PROBE_KEY, payload, self.backend.settings.ttl_perf_probe)
        set_ms = (time.perf_counter() - start) * 1000

        start = time.perf_counter()
        retrieved = await self.backend.get(PERF_PROBE_KEY)
        get_ms = (time.perf_counter() - start) * 1000

        await self.backend.delete(PERF_PROBE_KEY)

        return {
            "setOperation": f"{set_ms:.1f}ms",
            "getOperation": f"{get_ms:.1f}ms",
            "dataSize": f"{len(self.backend.encode(payload).encode('utf-8'))} bytes",
            "dataIntegrity": "PASS" if retrieved == payload else "FAIL",
        }
