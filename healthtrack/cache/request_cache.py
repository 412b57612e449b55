"""Request-level cache wrappers for API handlers.

Handlers are wrapped by plain function composition. A wrapper is an async
callable ``(request, call_next)`` that awaits the downstream handler, inspects
the produced :class:`HandlerResult`, and performs its cache side effect as a
separate step afterwards:

- :class:`ResponseCache` serves hits directly and writes successful results
  back with a TTL on misses.
- :class:`InvalidateAfterWrite` runs the invalidator only once a mutating
  handler has returned a 2xx result, never before the write.

Cache Key Format:
- `cache:{identity}:{path}` - Cached handler body (default key builder)

Both wrappers fail open: if the cache is unavailable the handler runs as if
the wrapper were not there.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from .backend import CacheBackend
from .invalidator import (
    HEALTH_DISEASES,
    HEALTH_MEDICATIONS,
    HEALTH_METRICS,
    CacheInvalidator,
)
from .keys import request_key

logger = logging.getLogger(__name__)


class CacheRequest(BaseModel):
    """What the wrappers need to know about an inbound request."""

    identity: str | None = Field(default=None, description="Authenticated user, if any")
    path: str = Field(..., description="Request path including any path parameters")
    query: dict[str, str] = Field(default_factory=dict)


class HandlerResult(BaseModel):
    """Outcome of a downstream handler."""

    status_code: int = 200
    body: Any = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


Handler = Callable[[CacheRequest], Awaitable[HandlerResult]]
KeyBuilder = Callable[[CacheRequest], str]


# ---------------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------------


def path_key() -> KeyBuilder:
    """Default key: ``cache:{identity|anonymous}:{path}``."""
    return lambda request: request_key(request.identity, request.path)


def health_key(kind: str) -> KeyBuilder:
    """Key for a health endpoint regardless of query string."""
    return lambda request: request_key(request.identity, f"/api/health/{kind}")


def meal_key(timeframe: str) -> KeyBuilder:
    """Key for a meal listing, including the requested day (default today)."""

    def build(request: CacheRequest) -> str:
        day = request.query.get("date") or date.today().isoformat()
        return request_key(request.identity, f"/api/meals/{timeframe}/{day}")

    return build


# ---------------------------------------------------------------------------
# Wrappers
# ---------------------------------------------------------------------------


class ResponseCache:
    """Cache successful handler results for a fixed TTL.

    Args:
        backend: Shared cache backend
        ttl: Seconds to keep a cached result (1 hour by default)
        key_builder: Maps a request to its cache key; ``path_key()`` by default
    """

    def __init__(
        self,
        backend: CacheBackend,
        ttl: int | None = None,
        key_builder: KeyBuilder | None = None,
    ):
        self.backend = backend
        self.ttl = ttl or backend.settings.ttl_request_cache
        self.key_builder = key_builder or path_key()

    async def __call__(self, request: CacheRequest, call_next: Handler) -> HandlerResult:
        if not self.backend.connected:
            return await call_next(request)

        key = self.key_builder(request)
        cached = await self.backend.get(key)
        if cached is not None:
            logger.debug(f"Cache HIT: {key}")
            return HandlerResult(status_code=200, body=cached, from_cache=True)

        logger.debug(f"Cache MISS: {key}")
        result = await call_next(request)

        if result.ok and result.body is not None:
            await self.backend.set(key, result.body, self.ttl)
        return result


class InvalidateAfterWrite:
    """Invalidate domain keys after a successful mutating handler.

    Args:
        invalidator: Cache invalidator
        domains: Domain tags to invalidate, e.g. ("meals", "daily", "weekly")
    """

    def __init__(self, invalidator: CacheInvalidator, domains: Iterable[str]):
        self.invalidator = invalidator
        self.domains = tuple(domains)

    async def __call__(self, request: CacheRequest, call_next: Handler) -> HandlerResult:
        result = await call_next(request)

        if result.ok and request.identity:
            await self.invalidator.invalidate(request.identity, self.domains)
        return result


def compose(handler: Handler, *wrappers: Callable[[CacheRequest, Handler], Awaitable[HandlerResult]]) -> Handler:
    """Apply wrappers around a handler; the first wrapper runs outermost."""
    for wrapper in reversed(wrappers):
        handler = _bind(wrapper, handler)
    return handler


def _bind(wrapper, call_next: Handler) -> Handler:
    async def bound(request: CacheRequest) -> HandlerResult:
        return await wrapper(request, call_next)

    return bound


# ---------------------------------------------------------------------------
# Cache warming
# ---------------------------------------------------------------------------


async def warm_cache(backend: CacheBackend, identity: str, snapshot: dict[str, Any]) -> bool:
    """Preload a user's frequently read health endpoints after login.

    Args:
        backend: Shared cache backend
        identity: User identifier
        snapshot: Dict with ``healthMetrics``, ``diseases`` and ``medications``

    Returns:
        True if every entry was written. Never raises; a malformed snapshot
        only warms what it can.
    """
    if not backend.connected:
        return False
    if not isinstance(snapshot, Mapping):
        logger.warning(f"Cache warming skipped for user {identity}: snapshot is not a mapping")
        return False

    ttl = backend.settings.ttl_request_cache
    medications = snapshot.get("medications") or []
    if not isinstance(medications, Iterable) or isinstance(medications, (str, bytes, Mapping)):
        medications = []
    active = [m for m in medications if isinstance(m, Mapping) and m.get("active")]
    results = await asyncio.gather(
        backend.set(request_key(identity, HEALTH_METRICS), snapshot.get("healthMetrics"), ttl),
        backend.set(request_key(identity, HEALTH_DISEASES), snapshot.get("diseases") or [], ttl),
        backend.set(request_key(identity, HEALTH_MEDICATIONS), active, ttl),
    )
    if all(results):
        logger.debug(f"Cache warmed for user {identity}")
    return all(results)
