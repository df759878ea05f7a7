"""
Cache Service for MealSync
Envelope-based caching on top of the remote cache client

Features:
- TTL envelopes with creation and expiry timestamps
- Tag-based group invalidation
- Cache-aside (get_or_set) with non-blocking writes
- Stale-while-revalidate with a grace window
- Hit/miss statistics

Envelope expiry and backend expiry differ on purpose: the backend keeps an
entry for ttl + stale_grace so that a grace-window read can still find the
expired envelope and serve it while a refresh runs.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from loguru import logger

from mealsync.cache.keys import KeyBuilder
from mealsync.cache.remote_client import RemoteCacheClient
from mealsync.config import CacheSettings
from mealsync.utils import BackgroundTasks, Clock, now_ms

Fetcher = Callable[[], Awaitable[Any]]


@dataclass
class CachedEnvelope:
    """Wrapper around a cached value. Timestamps are epoch milliseconds."""
    data: Any
    cached_at: int
    expires_at: int
    tags: List[str] = field(default_factory=list)
    stale_until: Optional[int] = None

    def __post_init__(self):
        if self.expires_at <= self.cached_at:
            raise ValueError("expires_at must be later than cached_at")

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def is_within_grace(self, now: int, stale_grace_ms: int) -> bool:
        return now <= self.expires_at + stale_grace_ms

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "data": self.data,
            "cachedAt": self.cached_at,
            "expiresAt": self.expires_at,
            "tags": list(self.tags),
        }
        if self.stale_until is not None:
            payload["staleUntil"] = self.stale_until
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedEnvelope":
        if not isinstance(data, dict) or "data" not in data:
            raise ValueError("not a cache envelope")
        stale_until = data.get("staleUntil")
        return cls(
            data=data["data"],
            cached_at=int(data["cachedAt"]),
            expires_at=int(data["expiresAt"]),
            tags=list(data.get("tags") or []),
            stale_until=int(stale_until) if stale_until is not None else None,
        )


@dataclass
class WarmUpEntry:
    """A key to pre-populate, with the fetcher that produces its value."""
    key: str
    fetcher: Fetcher
    ttl: Optional[int] = None
    tags: Optional[List[str]] = None


class CacheService:
    """
    Envelope cache over a remote key-value store.

    When caching is disabled, or the remote client has no backend, every
    read is a miss and every write a no-op; the read-through helpers fall
    through to their fetchers.
    """

    def __init__(
        self,
        client: RemoteCacheClient,
        keys: KeyBuilder,
        settings: Optional[CacheSettings] = None,
        clock: Clock = now_ms,
    ):
        self.client = client
        self.keys = keys
        self.settings = settings or CacheSettings()
        self._clock = clock
        self._background = BackgroundTasks("cache")
        self._revalidating: Set[str] = set()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "stale_hits": 0,
            "sets": 0,
            "deletes": 0,
            "revalidations": 0,
            "invalidations": 0,
            "errors": 0,
        }

    @property
    def is_enabled(self) -> bool:
        return self.settings.enabled and self.client.is_configured

    # ============ Envelope I/O ============

    async def _read_envelope(self, key: str) -> Optional[CachedEnvelope]:
        raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            return CachedEnvelope.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            self._stats["errors"] += 1
            logger.warning(f"Malformed cache envelope at {key}: {e}, deleting")
            await self.client.delete(key)
            return None

    async def get(self, key: str) -> Optional[Any]:
        """Return fresh cached data, or None on miss or expiry."""
        if not self.is_enabled:
            self._stats["misses"] += 1
            return None

        envelope = await self._read_envelope(key)
        if envelope is None:
            self._stats["misses"] += 1
            logger.debug(f"Cache miss: {key}")
            return None

        now = self._clock()
        if envelope.is_expired(now):
            self._stats["misses"] += 1
            if envelope.stale_until is None or now > envelope.stale_until:
                await self.client.delete(key)
            logger.debug(f"Cache expired: {key}")
            return None

        self._stats["hits"] += 1
        logger.debug(f"Cache hit: {key}")
        return envelope.data

    async def set(
        self,
        key: str,
        data: Any,
        ttl: Optional[int] = None,
        tags: Optional[List[str]] = None,
        stale_grace: int = 0,
    ) -> bool:
        """Store data under key for ttl seconds, registering it under each tag."""
        ttl = self.settings.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"TTL must be positive, got {ttl}")
        if not self.is_enabled:
            return False

        tags = list(tags or [])
        now = self._clock()
        envelope = CachedEnvelope(
            data=data,
            cached_at=now,
            expires_at=now + ttl * 1000,
            tags=tags,
            stale_until=now + (ttl + stale_grace) * 1000 if stale_grace > 0 else None,
        )

        backend_ttl = ttl + max(stale_grace, 0)
        ok = await self.client.set(key, envelope.to_dict(), ex=backend_ttl)
        if not ok:
            self._stats["errors"] += 1
            return False
        self._stats["sets"] += 1

        if tags and self.settings.tag_invalidation:
            pipe = self.client.pipeline()
            for tag in tags:
                tag_key = self.keys.tag(tag)
                pipe.lrem(tag_key, 0, key)
                pipe.lpush(tag_key, key)
                pipe.expire(tag_key, backend_ttl * 2)
            if await pipe.exec() is None:
                self._stats["errors"] += 1
                logger.warning(f"Failed to register tags {tags} for {key}")

        return True

    async def delete(self, key: str) -> bool:
        if not self.is_enabled:
            return False
        removed = await self.client.delete(key)
        self._stats["deletes"] += 1
        return removed > 0

    async def delete_many(self, keys: List[str]) -> int:
        if not self.is_enabled or not keys:
            return 0
        removed = await self.client.delete(*keys)
        self._stats["deletes"] += len(keys)
        return removed

    async def invalidate_by_tag(self, tag: str) -> int:
        """Delete every entry registered under tag, then the tag list itself."""
        if not self.is_enabled or not self.settings.tag_invalidation:
            return 0

        tag_key = self.keys.tag(tag)
        members = await self.client.lrange(tag_key, 0, -1)
        removed = 0
        if members:
            removed = await self.client.delete(*sorted(set(members)))
        await self.client.delete(tag_key)
        self._stats["invalidations"] += 1
        logger.debug(f"Invalidated tag {tag}: {removed} entries")
        return removed

    # ============ Read-through ============

    async def get_or_set(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: Optional[int] = None,
        tags: Optional[List[str]] = None,
    ) -> Any:
        """
        Cache-aside read.

        On miss the fetcher runs and its result is returned immediately; the
        cache write is scheduled in the background. None results are not
        cached. Fetcher errors propagate.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        data = await fetcher()
        if data is not None and self.is_enabled:
            self._background.spawn(self.set(key, data, ttl=ttl, tags=tags), label=f"set {key}")
        return data

    async def get_stale_while_revalidate(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: Optional[int] = None,
        tags: Optional[List[str]] = None,
        stale_grace: Optional[int] = None,
    ) -> Any:
        """
        Serve fresh data directly, serve expired data within the grace window
        while refreshing in the background, otherwise fetch synchronously.
        """
        if not self.is_enabled:
            return await fetcher()

        grace = self.settings.stale_grace.default if stale_grace is None else stale_grace
        envelope = await self._read_envelope(key)
        now = self._clock()

        if envelope is not None and not envelope.is_expired(now):
            self._stats["hits"] += 1
            logger.debug(f"Cache hit: {key}")
            return envelope.data

        if envelope is not None and envelope.is_within_grace(now, grace * 1000):
            self._stats["stale_hits"] += 1
            logger.debug(f"Serving stale {key}, revalidating")
            self._schedule_revalidation(key, fetcher, ttl, tags, grace)
            return envelope.data

        self._stats["misses"] += 1
        data = await fetcher()
        if data is not None:
            self._background.spawn(
                self.set(key, data, ttl=ttl, tags=tags, stale_grace=grace), label=f"set {key}"
            )
        return data

    def _schedule_revalidation(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: Optional[int],
        tags: Optional[List[str]],
        grace: int,
    ) -> None:
        if key in self._revalidating:
            return
        self._revalidating.add(key)

        async def _revalidate() -> None:
            try:
                data = await fetcher()
                if data is not None:
                    await self.set(key, data, ttl=ttl, tags=tags, stale_grace=grace)
                self._stats["revalidations"] += 1
            finally:
                self._revalidating.discard(key)

        self._background.spawn(_revalidate(), label=f"revalidate {key}")

    # ============ Maintenance ============

    async def warm_up(self, entries: List[WarmUpEntry]) -> int:
        """Pre-populate entries. Returns how many were stored."""
        if not self.is_enabled or not entries:
            return 0

        async def _warm(entry: WarmUpEntry) -> bool:
            data = await entry.fetcher()
            if data is None:
                return False
            return await self.set(entry.key, data, ttl=entry.ttl, tags=entry.tags)

        results = await asyncio.gather(*(_warm(e) for e in entries), return_exceptions=True)
        stored = 0
        for entry, result in zip(entries, results):
            if isinstance(result, Exception):
                logger.warning(f"Cache warm-up failed for {entry.key}: {result}")
            elif result:
                stored += 1
        logger.info(f"Cache warm-up stored {stored}/{len(entries)} entries")
        return stored

    async def clear_all(self) -> int:
        """Delete every cache entry under this application's prefix."""
        if not self.is_enabled:
            return 0
        found = await self.client.scan_iter(self.keys.cache_pattern())
        removed = 0
        for i in range(0, len(found), 100):
            removed += await self.client.delete(*found[i:i + 100])
        logger.info(f"Cleared {removed} cache entries")
        return removed

    async def join_background(self) -> None:
        await self._background.join()

    async def close(self) -> None:
        await self._background.join()

    def get_stats(self) -> Dict[str, Any]:
        lookups = self._stats["hits"] + self._stats["misses"] + self._stats["stale_hits"]
        return {
            **self._stats,
            "hit_rate": (self._stats["hits"] + self._stats["stale_hits"]) / lookups if lookups else 0.0,
            "enabled": self.is_enabled,
            "pending_background": self._background.pending,
        }

    def reset_stats(self) -> None:
        for name in self._stats:
            self._stats[name] = 0
