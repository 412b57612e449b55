"""Per-user health snapshot cache.

Cache Key Format:
- `healthData:{identity}` - Stores {identity, payload, cachedAt, expiresAt}

The payload is the computed health snapshot (metrics plus derived fields such
as BMI) and is opaque to this module. Entries are created lazily on first miss
and removed by the invalidator whenever the underlying health record changes.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from healthtrack.config.settings import Settings

from .backend import CacheBackend
from .keys import profile_key

logger = logging.getLogger(__name__)


class CachedProfile(BaseModel):
    """Stored form of a health snapshot."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    identity: str
    payload: Any = None
    cached_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime


class ProfileCache:
    """TTL cache of health snapshots keyed by user identity.

    Args:
        backend: Shared cache backend
        settings: Settings supplying the default TTL (30 minutes)
    """

    def __init__(self, backend: CacheBackend, settings: Settings | None = None):
        self.backend = backend
        self.ttl = (settings or backend.settings).ttl_profile

    async def put(self, identity: str, payload: Any, ttl: int | None = None) -> bool:
        """Cache a snapshot for the identity.

        Returns:
            True if stored, False if the cache is unavailable or the value
            cannot be serialized
        """
        ttl = ttl or self.ttl
        now = datetime.now(timezone.utc)
        entry = CachedProfile(
            identity=identity,
            payload=payload,
            cached_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        key = profile_key(identity)
        document = self.backend.dump_model(key, entry)
        if document is None:
            return False

        stored = await self.backend.set(key, document, ttl)
        if stored:
            logger.debug(f"Health data cached for user {identity} (TTL: {ttl}s)")
        return stored

    async def entry(self, identity: str) -> CachedProfile | None:
        """Full cached entry including timestamps, or None on miss."""
        raw = await self.backend.get(profile_key(identity))
        if raw is None:
            logger.debug(f"Health data cache MISS for user {identity}")
            return None

        try:
            entry = CachedProfile.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Malformed health data cache entry for user {identity}: {e}")
            return None

        logger.debug(f"Health data cache HIT for user {identity}")
        return entry

    async def get(self, identity: str) -> Any | None:
        """Cached snapshot payload, or None on miss/unavailable."""
        entry = await self.entry(identity)
        return entry.payload if entry is not None else None

    async def remove(self, identity: str) -> bool:
        return await self.backend.delete(profile_key(identity))
