"""Composition root coordinating all cache components.

A CacheManager is constructed once at process start from a Settings object.
It owns the single CacheBackend and hands it to every component, so there is
exactly one Redis connection pool per process without a module-level
singleton.
"""

import logging
from typing import Any

from healthtrack.config.settings import Settings
from healthtrack.config.settings import settings as default_settings

from .analytics import CacheAnalytics
from .backend import CacheBackend
from .invalidator import CacheInvalidator
from .profile_cache import ProfileCache
from .result_memoizer import ResultMemoizer
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class CacheManager:
    """Owns the cache backend and the components built around it.

    Attributes:
        backend: Shared fail-open Redis backend
        session_store: Session token store
        profile_cache: Health snapshot cache
        result_memoizer: Bucketed recommendation cache
        invalidator: Post-write cache invalidation
        analytics: Monitoring and maintenance operations
    """

    def __init__(self, settings: Settings | None = None, client: Any | None = None):
        self.settings = settings or default_settings
        self.backend = CacheBackend(self.settings, client=client)

        self.session_store = SessionStore(self.backend, self.settings)
        self.profile_cache = ProfileCache(self.backend, self.settings)
        self.result_memoizer = ResultMemoizer(self.backend, self.settings)
        self.invalidator = CacheInvalidator(self.backend)
        self.analytics = CacheAnalytics(self.backend)

    def is_available(self) -> bool:
        return self.backend.connected

    async def start(self) -> bool:
        """Connect the backend. Never raises; False means running uncached."""
        available = await self.backend.connect()
        logger.info(f"CacheManager started (Redis {'enabled' if available else 'disabled'})")
        return available

    async def stop(self) -> None:
        await self.backend.disconnect()
        logger.info("CacheManager stopped")

    async def health_check(self) -> bool:
        return await self.backend.ping()

    def get_status(self) -> dict[str, Any]:
        """Get cache status for monitoring.

        Returns:
            Dict with cache status information
        """
        return {
            "available": self.is_available(),
            **self.backend.get_status(),
        }

    async def __aenter__(self) -> "CacheManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
