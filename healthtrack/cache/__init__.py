"""Redis result cache for the health-tracking backend.

Core Components:
- backend: Fail-open async Redis client with reconnect backoff
- keys: Key naming scheme shared with existing deployments
- session_store: One active auth token per user
- profile_cache: Per-user health snapshot cache
- result_memoizer: Recommendations keyed by BMI bucket and condition set
- invalidator: Post-write invalidation by domain tag
- request_cache: Composable handler wrappers (cache on read, invalidate on write)
- analytics: Counts, inspection, cleanup and a latency probe
- cache_manager: Composition root

Design Principles:
- Graceful degradation: the system works without Redis, only slower
- Automatic fallback: on miss or Redis error, callers go to the source of truth
- TTL-based expiry on every entry

Example:
    >>> from healthtrack.cache import CacheManager
    >>> async with CacheManager() as cache:
    ...     await cache.profile_cache.put("u1", {"bmi": 24.9})
"""

from .analytics import CacheAnalytics
from .backend import CacheBackend
from .cache_manager import CacheManager
from .invalidator import CacheInvalidator
from .profile_cache import CachedProfile, ProfileCache
from .request_cache import (
    CacheRequest,
    HandlerResult,
    InvalidateAfterWrite,
    ResponseCache,
    compose,
    warm_cache,
)
from .result_memoizer import MemoizedResult, RecommendationSource, ResultMemoizer
from .session_store import SessionEntry, SessionStore

__all__ = [
    "CacheAnalytics",
    "CacheBackend",
    "CacheManager",
    "CacheInvalidator",
    "CachedProfile",
    "CacheRequest",
    "HandlerResult",
    "InvalidateAfterWrite",
    "MemoizedResult",
    "ProfileCache",
    "RecommendationSource",
    "ResponseCache",
    "ResultMemoizer",
    "SessionEntry",
    "SessionStore",
    "compose",
    "warm_cache",
]
