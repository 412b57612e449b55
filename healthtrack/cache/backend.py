"""Async Redis cache backend with fail-open semantics.

This module is the only place that talks to Redis. Every public operation is
non-fatal: when Redis is disabled, unreachable, slow or returns something that
does not parse, the operation logs and returns its "empty" value (``None``,
``False``, ``[]``, ``0``) so the caller falls through to the source of truth.

Connection lifecycle:
- ``connect()`` pings the server and fires ``_on_ready`` or ``_on_error``.
- ``_on_error`` clears the ``connected`` flag and schedules a background
  reconnect loop with capped exponential backoff; success fires ``_on_ready``.
- ``disconnect()`` stops reconnecting, closes the client and fires ``_on_end``.

The ``connected`` flag is the only shared mutable state. It is written only by
the lifecycle callbacks and read by every operation before doing I/O. All
callers run on one event loop, so no lock is needed.

Values are JSON encoded on write and decoded on read. Raw strings (session
tokens) go through ``get_text``/``set_text`` unchanged.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from healthtrack.config.settings import Settings
from healthtrack.config.settings import settings as default_settings

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600

# Errors that mean the server is gone, as opposed to a bad command
CONNECTIVITY_ERRORS: tuple[type[BaseException], ...] = (
    RedisConnectionError,
    RedisTimeoutError,
    ConnectionError,
    TimeoutError,
    OSError,
)
CACHE_ERRORS: tuple[type[BaseException], ...] = (RedisError, *CONNECTIVITY_ERRORS)


class CacheBackend:
    """Thin fail-open client over a single Redis node.

    Construct one instance at process start and pass it to every component
    that needs the cache.

    Args:
        settings: Application settings; the module default when omitted.
        client: Pre-built ``redis.asyncio`` compatible client. Built from
            ``settings.redis_url`` on ``connect()`` when omitted.
    """

    def __init__(self, settings: Settings | None = None, client: Any | None = None):
        self.settings = settings or default_settings
        self._client = client
        self._connected = False
        self._closing = False
        self._reconnect_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        """True while the backend believes Redis is reachable."""
        return self._connected

    @property
    def client(self) -> Any | None:
        return self._client

    def _build_client(self) -> Any:
        return redis.from_url(
            self.settings.redis_url,
            decode_responses=True,
            socket_timeout=self.settings.redis_socket_timeout,
            socket_connect_timeout=self.settings.redis_socket_timeout,
            max_connections=self.settings.redis_max_connections,
        )

    async def connect(self) -> bool:
        """Open the connection if the cache is enabled.

        Returns:
            True if Redis answered a ping, False otherwise (never raises).
        """
        if not self.settings.cache_enabled:
            logger.info("Redis caching is optional and not configured; running without cache")
            self._connected = False
            return False

        self._closing = False
        try:
            if self._client is None:
                self._client = self._build_client()
            await self._client.ping()
        except (*CACHE_ERRORS, ValueError) as e:
            logger.warning("Redis connection failed; app will continue without caching")
            self._on_error(e)
            return False

        self._on_ready()
        return True

    async def disconnect(self) -> None:
        """Stop reconnecting and close the client gracefully."""
        self._closing = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        if self._client is not None:
            try:
                await self._client.aclose()
            except CACHE_ERRORS as e:
                logger.error(f"Redis disconnect error: {e}")
        self._on_end()

    def _on_ready(self) -> None:
        if not self._connected:
            logger.info("Redis client ready")
        self._connected = True

    def _on_error(self, error: BaseException) -> None:
        if self._connected:
            logger.error(f"Redis connection error: {error}")
        self._connected = False
        self._schedule_reconnect()

    def _on_end(self) -> None:
        if self._connected:
            logger.info("Redis connection closed")
        self._connected = False

    def _schedule_reconnect(self) -> None:
        if self._closing or self._client is None:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reconnect_task = loop.create_task(self._reconnect())

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt ``attempt`` (0-based), capped."""
        base = self.settings.redis_reconnect_base_delay
        return min(base * (2**attempt), self.settings.redis_reconnect_max_delay)

    async def _reconnect(self) -> None:
        max_attempts = self.settings.redis_reconnect_max_attempts
        attempt = 0
        while not self._closing:
            await asyncio.sleep(self.backoff_delay(attempt))
            attempt += 1
            try:
                await self._client.ping()
            except CACHE_ERRORS as e:
                logger.debug(f"Redis reconnect attempt {attempt} failed: {e}")
                if max_attempts and attempt >= max_attempts:
                    logger.warning(
                        f"Giving up on Redis after {attempt} reconnect attempts; "
                        "cache stays disabled until the next connect()"
                    )
                    return
                continue

            logger.info(f"Redis reconnected after {attempt} attempt(s)")
            self._on_ready()
            return

    def _fail(self, operation: str, key: str, error: BaseException) -> None:
        """Absorb a cache fault: log it and drop the connection on I/O errors."""
        logger.warning(f"Redis {operation} error for {key}: {error}")
        if isinstance(error, CONNECTIVITY_ERRORS):
            self._on_error(error)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def encode(value: Any) -> str:
        """JSON text for a value; unknown types are stringified."""
        return json.dumps(value, default=str)

    @staticmethod
    def decode(key: str, raw: str | bytes) -> Any | None:
        """Parse stored JSON text; None (logged) when it does not parse."""
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            logger.error(f"JSON deserialization error for {key}: {e}")
            return None

    @staticmethod
    def dump_model(key: str, model: BaseModel) -> dict[str, Any] | None:
        """JSON-ready dict of a model with camelCase keys, None (logged) on failure.

        Values pydantic has no serializer for (e.g. a document-store ObjectId)
        are stringified, the same way ``encode`` handles them.
        """
        try:
            return model.model_dump(mode="json", by_alias=True, fallback=str)
        except (PydanticSerializationError, TypeError, ValueError) as e:
            logger.error(f"Serialization error for {key}: {e}")
            return None

    # ------------------------------------------------------------------
    # Key/value operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Get and deserialize a JSON value; None on miss or any fault."""
        if not self._connected:
            return None

        try:
            raw = await self._client.get(key)
        except CACHE_ERRORS as e:
            self._fail("GET", key, e)
            return None

        if raw is None:
            return None
        return self.decode(key, raw)

    async def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool:
        """Serialize and store a value with a TTL in seconds.

        Returns:
            True if stored, False otherwise
        """
        if not self._connected:
            return False

        try:
            payload = self.encode(value)
        except (TypeError, ValueError) as e:
            logger.error(f"JSON serialization error for {key}: {e}")
            return False

        try:
            await self._client.setex(key, ttl, payload)
        except CACHE_ERRORS as e:
            self._fail("SET", key, e)
            return False

        logger.debug(f"Cached {key} with TTL {ttl}s")
        return True

    async def get_text(self, key: str) -> str | None:
        """Get a raw string value without JSON decoding."""
        if not self._connected:
            return None

        try:
            value = await self._client.get(key)
        except CACHE_ERRORS as e:
            self._fail("GET", key, e)
            return None

        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        return value

    async def set_text(self, key: str, value: str, ttl: int = DEFAULT_TTL) -> bool:
        """Store a raw string value with a TTL in seconds."""
        if not self._connected:
            return False

        try:
            await self._client.setex(key, ttl, value)
        except CACHE_ERRORS as e:
            self._fail("SET", key, e)
            return False

        logger.debug(f"Cached string {key} with TTL {ttl}s")
        return True

    async def delete(self, *keys: str) -> bool:
        """Delete one or more keys. True if the command ran, even for absent keys."""
        if not self._connected or not keys:
            return False

        try:
            await self._client.delete(*keys)
        except CACHE_ERRORS as e:
            self._fail("DEL", ",".join(keys), e)
            return False

        logger.debug(f"Deleted cache key(s) {', '.join(keys)}")
        return True

    async def exists(self, key: str) -> bool:
        if not self._connected:
            return False

        try:
            return await self._client.exists(key) > 0
        except CACHE_ERRORS as e:
            self._fail("EXISTS", key, e)
            return False

    async def mget(self, keys: list[str]) -> list[Any]:
        """Get several JSON values at once.

        Returns:
            One entry per key (None for missing or unparseable values), or an
            empty list when disconnected or on error.
        """
        if not self._connected or not keys:
            return []

        try:
            results = await self._client.mget(keys)
        except CACHE_ERRORS as e:
            self._fail("MGET", ",".join(keys), e)
            return []

        return [
            self.decode(key, raw) if raw is not None else None
            for key, raw in zip(keys, results)
        ]

    async def mset(self, mapping: Mapping[str, Any], ttl: int = DEFAULT_TTL) -> bool:
        """Store several values with the same TTL in one pipelined transaction."""
        if not self._connected:
            return False
        if not mapping:
            return True

        try:
            encoded = {key: self.encode(value) for key, value in mapping.items()}
        except (TypeError, ValueError) as e:
            logger.error(f"JSON serialization error for MSET: {e}")
            return False

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                for key, payload in encoded.items():
                    pipe.setex(key, ttl, payload)
                await pipe.execute()
        except CACHE_ERRORS as e:
            self._fail("MSET", ",".join(encoded), e)
            return False

        logger.debug(f"Cached {len(encoded)} keys with TTL {ttl}s")
        return True

    async def keys(self, pattern: str) -> list[str]:
        """List keys matching a glob pattern using incremental SCAN."""
        if not self._connected:
            return []

        try:
            return [key async for key in self._client.scan_iter(match=pattern, count=500)]
        except CACHE_ERRORS as e:
            self._fail("SCAN", pattern, e)
            return []

    async def ttl(self, key: str) -> int | None:
        """Remaining TTL in seconds (-1 no expiry, -2 missing), None when unavailable."""
        if not self._connected:
            return None

        try:
            return await self._client.ttl(key)
        except CACHE_ERRORS as e:
            self._fail("TTL", key, e)
            return None

    async def expire(self, key: str, ttl: int) -> bool:
        """Re-arm the TTL of an existing key. False if the key does not exist."""
        if not self._connected:
            return False

        try:
            return bool(await self._client.expire(key, ttl))
        except CACHE_ERRORS as e:
            self._fail("EXPIRE", key, e)
            return False

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        if not self._connected:
            return False

        try:
            return bool(await self._client.ping())
        except CACHE_ERRORS as e:
            self._fail("PING", "-", e)
            return False

    async def flush_all(self) -> bool:
        """Clear the whole cache database (use with caution)."""
        if not self._connected:
            return False

        try:
            await self._client.flushdb()
        except CACHE_ERRORS as e:
            self._fail("FLUSHDB", "*", e)
            return False

        logger.warning("Cleared all Redis cache entries")
        return True

    async def stats(self) -> dict[str, Any] | None:
        """Memory statistics for monitoring, None when unavailable."""
        if not self._connected:
            return None

        try:
            info = await self._client.info("memory")
        except CACHE_ERRORS as e:
            self._fail("INFO", "memory", e)
            return None

        return {
            "connected": self._connected,
            "used_memory": info.get("used_memory_human"),
            "peak_memory": info.get("used_memory_peak_human"),
            "max_memory": info.get("maxmemory_human"),
            "eviction_policy": info.get("maxmemory_policy"),
        }

    def get_status(self) -> dict[str, Any]:
        """Cache status for health endpoints (no I/O)."""
        return {
            "enabled": self.settings.cache_enabled,
            "connected": self._connected,
            "reconnecting": self._reconnect_task is not None and not self._reconnect_task.done(),
            "redis_url": self.settings.redis_url_masked,
        }
