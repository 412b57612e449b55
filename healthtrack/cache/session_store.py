"""Redis-backed session store: one active auth token per user.

Cache Key Format:
- `session:{identity}` - Stores the raw auth token string

A new login overwrites the previous token (single session per user, not
multi-device). Logout deletes the key explicitly; otherwise it expires via TTL.
When the cache is unavailable every read is a miss and callers fall back to
verifying the token itself.
"""

import hmac
import logging
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field

from healthtrack.config.settings import Settings

from .backend import CacheBackend
from .keys import session_key

logger = logging.getLogger(__name__)


class SessionEntry(BaseModel):
    """A user's currently valid token and when it stops being valid."""

    identity: str = Field(..., description="User identifier, also the key namespace")
    token: str = Field(..., description="Opaque auth token")
    expires_at: datetime | None = Field(
        default=None, description="Expiry derived from the remaining TTL, None if unknown"
    )


class SessionStore:
    """Maps a user identity to its current auth token with an expiry.

    Args:
        backend: Shared cache backend
        settings: Settings supplying the default session TTL (7 days)
    """

    def __init__(self, backend: CacheBackend, settings: Settings | None = None):
        self.backend = backend
        self.ttl = (settings or backend.settings).ttl_session

    async def put(self, identity: str, token: str, ttl: int | None = None) -> bool:
        """Store the session token, replacing any previous one for the identity.

        Returns:
            True if stored, False if the cache is unavailable
        """
        ttl = ttl or self.ttl
        stored = await self.backend.set_text(session_key(identity), token, ttl)
        if stored:
            logger.info(f"Session stored for user {identity} (TTL: {ttl}s)")
        return stored

    async def get(self, identity: str) -> str | None:
        """Current token for the identity, or None on miss/unavailable."""
        return await self.backend.get_text(session_key(identity))

    async def entry(self, identity: str) -> SessionEntry | None:
        """Token plus computed expiry, or None on miss/unavailable."""
        token = await self.get(identity)
        if token is None:
            return None

        remaining = await self.backend.ttl(session_key(identity))
        expires_at = None
        if remaining is not None and remaining >= 0:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=remaining)
        return SessionEntry(identity=identity, token=token, expires_at=expires_at)

    async def matches(self, identity: str, token: str) -> bool:
        """Constant-time check that ``token`` is the identity's current token.

        False on a cache miss; callers decide whether a miss is acceptable.
        """
        current = await self.get(identity)
        if current is None:
            return False
        return hmac.compare_digest(current.encode("utf-8"), token.encode("utf-8"))

    async def refresh(self, identity: str, ttl: int | None = None) -> bool:
        """Re-arm the session TTL without changing the token."""
        refreshed = await self.backend.expire(session_key(identity), ttl or self.ttl)
        if refreshed:
            logger.debug(f"Refreshed session TTL for user {identity}")
        return refreshed

    async def remove(self, identity: str) -> bool:
        """Delete the session at logout."""
        removed = await self.backend.delete(session_key(identity))
        if removed:
            logger.info(f"Session deleted for user {identity}")
        return removed
