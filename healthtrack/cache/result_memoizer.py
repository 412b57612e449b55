"""Profile-keyed memoization of calorie recommendations.

Cache Key Format:
- `calorie:{bmiBucket}:{conditions}` - Stores {bmiRange, conditions, result,
  cachedAt, hitCount}

Recommendations depend on the health profile, not on who asked, so the key is
a bucketed fingerprint: BMI rounded down to a multiple of 2.5 plus the sorted
set of active conditions. Distinct users with similar profiles share one entry.

``hitCount`` is maintained with a read-then-write in ``put``. Concurrent
writers for the same key can lose increments; the count is a statistic only
and the stored result is unaffected (last writer wins, and all writers for a
key computed the same recommendation).
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from healthtrack.config.settings import Settings

from .backend import CacheBackend
from .keys import bmi_bucket, normalize_conditions, recommendation_key

logger = logging.getLogger(__name__)

Conditions = Iterable[str] | str | None


class RecommendationSource(str, Enum):
    """Where a recommendation came from; decides how long it is kept."""

    RULE_BASED = "rule_based"
    MODEL = "model"


class MemoizedResult(BaseModel):
    """Stored form of a memoized recommendation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bmi_range: float
    conditions: str
    result: Any = None
    cached_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    hit_count: int = Field(default=1, ge=0)


class ResultMemoizer:
    """Caches computed recommendations keyed by (BMI bucket, condition set).

    Args:
        backend: Shared cache backend
        settings: Settings supplying TTLs per recommendation source
    """

    def __init__(self, backend: CacheBackend, settings: Settings | None = None):
        self.backend = backend
        self.settings = settings or backend.settings

    def ttl_for(self, source: RecommendationSource) -> int:
        if source == RecommendationSource.MODEL:
            return self.settings.ttl_recommendation_model
        return self.settings.ttl_recommendation_rule_based

    async def _load(self, key: str) -> MemoizedResult | None:
        raw = await self.backend.get(key)
        if raw is None:
            return None

        try:
            return MemoizedResult.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Malformed recommendation cache entry {key}: {e}")
            return None

    async def entry(self, bmi: float, conditions: Conditions) -> MemoizedResult | None:
        """Stored entry with bookkeeping fields, or None on miss."""
        return await self._load(recommendation_key(bmi, conditions))

    async def get(self, bmi: float, conditions: Conditions) -> Any | None:
        """Cached recommendation for a similar profile, or None on miss."""
        key = recommendation_key(bmi, conditions)
        entry = await self._load(key)
        if entry is None:
            logger.debug(f"Recommendation cache MISS ({key})")
            return None

        logger.debug(f"Recommendation cache HIT ({key}, hits: {entry.hit_count})")
        return entry.result

    async def put(
        self,
        bmi: float,
        conditions: Conditions,
        value: Any,
        ttl: int | None = None,
        source: RecommendationSource = RecommendationSource.RULE_BASED,
    ) -> bool:
        """Store a recommendation, carrying over and incrementing the hit count.

        Args:
            bmi: Body mass index of the requesting profile
            conditions: Active condition names
            value: Recommendation to cache
            ttl: Explicit TTL; defaults to the TTL for ``source``
            source: Rule-based (2h) or model-derived (3h)

        Returns:
            True if stored, False if the cache is unavailable or the value
            cannot be serialized
        """
        conditions = normalize_conditions(conditions)
        key = recommendation_key(bmi, conditions)
        ttl = ttl or self.ttl_for(source)

        existing = await self._load(key)
        hit_count = existing.hit_count + 1 if existing is not None else 1

        entry = MemoizedResult(
            bmi_range=bmi_bucket(bmi),
            conditions=conditions,
            result=value,
            hit_count=hit_count,
        )
        document = self.backend.dump_model(key, entry)
        if document is None:
            return False

        stored = await self.backend.set(key, document, ttl)
        if stored:
            logger.debug(f"Recommendation cached ({key}, hits: {hit_count}, TTL: {ttl}s)")
        return stored
