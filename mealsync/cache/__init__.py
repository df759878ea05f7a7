"""
MealSync remote cache tier

- keys: hierarchical key construction
- remote_client: degradable key-value primitives (Upstash REST, native Redis)
- cache_service: envelopes, tags, cache-aside, stale-while-revalidate
- rate_limit: sliding-window rate limiting
"""

from mealsync.cache.cache_service import CachedEnvelope, CacheService, WarmUpEntry
from mealsync.cache.keys import CacheNamespace, KeyBuilder
from mealsync.cache.rate_limit import RateLimiter, RateLimitResult
from mealsync.cache.redis_client import RedisCommandClient, RedisConfig
from mealsync.cache.remote_client import NullCacheClient, Pipeline, RemoteCacheClient
from mealsync.cache.upstash_client import UpstashRestClient

__all__ = [
    "CachedEnvelope",
    "CacheNamespace",
    "CacheService",
    "KeyBuilder",
    "NullCacheClient",
    "Pipeline",
    "RateLimiter",
    "RateLimitResult",
    "RedisCommandClient",
    "RedisConfig",
    "RemoteCacheClient",
    "UpstashRestClient",
    "WarmUpEntry",
]
