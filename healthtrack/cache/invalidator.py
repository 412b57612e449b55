"""Cache invalidation after mutating operations.

Each domain tag maps to the key shapes derived from that kind of data. Two
mechanisms are combined per domain:

1. A fixed list of known keys (profile entry, request-cache entries for the
   known endpoints of the domain).
2. A prefix SCAN of the identity's request-cache keys under the domain's API
   path, which also catches keys the fixed list cannot name (date- or
   query-suffixed paths such as ``/api/meals/daily/2024-05-01``).

Invalidation must only run after the authoritative write succeeded; see
:class:`healthtrack.cache.request_cache.InvalidateAfterWrite`. It is
best-effort: every key is deleted independently, so a failure on one key does
not stop the others, and nothing is raised to the request.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from .backend import CacheBackend
from .keys import profile_key, request_key, request_prefix, session_key

logger = logging.getLogger(__name__)

HEALTH_METRICS = "/api/health/metrics"
HEALTH_DISEASES = "/api/health/diseases"
HEALTH_MEDICATIONS = "/api/health/medications"
HEALTH_SUMMARY = "/api/health/summary"
MEALS_DAILY = "/api/meals/daily"
MEALS_WEEKLY = "/api/meals/weekly"
AI_RECOMMENDATIONS = "/api/ai/recommendations"


@dataclass(frozen=True)
class InvalidationRule:
    """Keys owned by one domain tag."""

    paths: tuple[str, ...] = ()
    scan_prefixes: tuple[str, ...] = ()
    profile: bool = False
    session: bool = False

    def known_keys(self, identity: str) -> list[str]:
        keys = []
        if self.session:
            keys.append(session_key(identity))
        if self.profile:
            keys.append(profile_key(identity))
        keys.extend(request_key(identity, path) for path in self.paths)
        return keys


DOMAIN_RULES: dict[str, InvalidationRule] = {
    "health": InvalidationRule(
        paths=(HEALTH_METRICS, HEALTH_DISEASES, HEALTH_MEDICATIONS, HEALTH_SUMMARY),
        scan_prefixes=("/api/health/",),
        profile=True,
    ),
    "summary": InvalidationRule(paths=(HEALTH_SUMMARY,)),
    "meals": InvalidationRule(
        paths=(MEALS_DAILY, MEALS_WEEKLY),
        scan_prefixes=("/api/meals/",),
    ),
    "daily": InvalidationRule(paths=(MEALS_DAILY,), scan_prefixes=(MEALS_DAILY,)),
    "weekly": InvalidationRule(paths=(MEALS_WEEKLY,), scan_prefixes=(MEALS_WEEKLY,)),
    "ai": InvalidationRule(paths=(AI_RECOMMENDATIONS,), scan_prefixes=("/api/ai/",)),
    "session": InvalidationRule(session=True),
}


class CacheInvalidator:
    """Removes a user's stale cache entries after a successful write.

    Args:
        backend: Shared cache backend
        rules: Domain tag to rule mapping; defaults to ``DOMAIN_RULES``
    """

    def __init__(self, backend: CacheBackend, rules: dict[str, InvalidationRule] | None = None):
        self.backend = backend
        self.rules = rules if rules is not None else DOMAIN_RULES

    async def _collect(self, identity: str, domains: Iterable[str]) -> list[str]:
        targets: dict[str, None] = {}
        for tag in domains:
            rule = self.rules.get(tag)
            if rule is None:
                logger.warning(f"Unknown cache invalidation domain '{tag}' ignored")
                continue
            for key in rule.known_keys(identity):
                targets[key] = None
            for prefix in rule.scan_prefixes:
                for key in await self.backend.keys(request_prefix(identity, prefix)):
                    targets[key] = None
        return list(targets)

    async def _delete_each(self, keys: list[str]) -> int:
        deleted = 0
        for key in keys:
            if await self.backend.delete(key):
                deleted += 1
            else:
                logger.warning(f"Cache invalidation failed for {key}")
        return deleted

    async def invalidate(self, identity: str, domains: Iterable[str]) -> int:
        """Delete the identity's keys for every domain tag.

        Args:
            identity: User whose entries are stale
            domains: Domain tags such as {"health", "summary"}

        Returns:
            Number of keys whose deletion succeeded (0 when the cache is down)
        """
        if not identity or not self.backend.connected:
            return 0

        keys = await self._collect(identity, domains)
        deleted = await self._delete_each(keys)
        logger.debug(f"Invalidated {deleted}/{len(keys)} cache key(s) for user {identity}")
        return deleted

    async def invalidate_user(self, identity: str) -> int:
        """Logout cleanup: session, profile and every request-cache key of the user."""
        if not identity or not self.backend.connected:
            return 0

        keys = [session_key(identity), profile_key(identity)]
        keys.extend(await self.backend.keys(request_prefix(identity)))
        deleted = await self._delete_each(keys)
        logger.info(f"Cleaned up sessions and cache for user {identity}")
        return deleted
