"""
Application context for MealSync

Every collaborator is constructed once here and injected into the
components that use it; nothing in the package keeps module-level state.

Usage:
```python
ctx = build_context(load_config())
await ctx.start()
meals = await ctx.meals.get_meals_for_date("user-1", "2026-10-17")
await ctx.close()
```
"""

import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

from loguru import logger

from mealsync.cache.cache_service import CacheService
from mealsync.cache.keys import KeyBuilder
from mealsync.cache.rate_limit import RateLimiter
from mealsync.cache.redis_client import RedisCommandClient, RedisConfig
from mealsync.cache.remote_client import NullCacheClient, RemoteCacheClient
from mealsync.cache.upstash_client import UpstashRestClient
from mealsync.config import Config, RemoteCacheConfig
from mealsync.database.connection import DatabaseManager
from mealsync.database.source_store import SourceStore, SqlSourceStore
from mealsync.errors import ConfigurationError
from mealsync.local.local_store import LocalStore
from mealsync.local.network import NetworkMonitor, Probe, http_probe
from mealsync.local.storage import FileStorageBackend, MemoryStorageBackend, StorageBackend
from mealsync.services.meals_service import DailyMealsService
from mealsync.services.profile_service import ProfileService
from mealsync.utils import BackgroundTasks, Clock, now_ms


def configure_logging(level: str = "INFO") -> None:
    """Install a single stderr sink at the given level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def create_remote_client(settings: RemoteCacheConfig) -> RemoteCacheClient:
    """Pick the remote cache binding named by ``settings.provider``."""
    provider = (settings.provider or "none").lower()
    if provider == "upstash":
        return UpstashRestClient(settings.rest_url, settings.rest_token, command_timeout=settings.command_timeout)
    if provider == "redis":
        config = RedisConfig(
            host=settings.host,
            port=settings.port,
            password=settings.password,
            db=settings.db,
            max_connections=settings.max_connections,
        )
        return RedisCommandClient(config, command_timeout=settings.command_timeout)
    if provider == "none":
        return NullCacheClient(command_timeout=settings.command_timeout)
    raise ConfigurationError(f"Unknown remote cache provider: {settings.provider}")


@dataclass
class MealSyncContext:
    """Owns every tier and service for one process."""
    config: Config
    keys: KeyBuilder
    remote: RemoteCacheClient
    cache: CacheService
    rate_limiter: RateLimiter
    network: NetworkMonitor
    local: LocalStore
    source: SourceStore
    meals: DailyMealsService
    profiles: ProfileService
    db_manager: Optional[DatabaseManager] = None
    _background: BackgroundTasks = field(default_factory=lambda: BackgroundTasks("context"))
    _unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> None:
        """Connect the remote cache and replay offline mutations on reconnect."""
        await self.remote.connect()
        if self.config.policy.require_remote_cache and not self.remote.is_configured:
            raise ConfigurationError("A remote cache is required but none is configured")
        if self._unsubscribe is None:
            self._unsubscribe = self.network.subscribe(self._on_connectivity_change)
        logger.info(f"MealSync started (remote cache: {self.remote.backend_name})")

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self._background.spawn(self.meals.sync_offline_mutations(), label="sync on reconnect")

    async def join_background(self) -> None:
        """Wait for reconnect syncs and service background work."""
        await self.network.join()
        await self._background.join()
        await self.meals.join_background()

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self._background.join()
        await self.network.close()
        await self.meals.close()
        await self.cache.close()
        await self.remote.close()
        if self.db_manager is not None:
            self.db_manager.dispose()
        logger.info("MealSync closed")


def build_context(
    config: Optional[Config] = None,
    remote: Optional[RemoteCacheClient] = None,
    source: Optional[SourceStore] = None,
    storage: Optional[StorageBackend] = None,
    probe: Optional[Probe] = None,
    clock: Clock = now_ms,
    setup_logging: bool = True,
) -> MealSyncContext:
    """Wire the full component graph. Any collaborator may be injected."""
    config = config or Config()
    if setup_logging:
        configure_logging(config.system.log_level)

    keys = KeyBuilder(config.remote_cache.key_prefix)
    remote = remote or create_remote_client(config.remote_cache)

    db_manager = None
    if source is None:
        db_manager = DatabaseManager(config.database.url, echo=config.database.echo)
        source = SqlSourceStore(db_manager)

    if storage is None:
        if config.local_store.path:
            storage = FileStorageBackend(config.local_store.path)
        else:
            storage = MemoryStorageBackend()

    if probe is None and config.local_store.probe_url:
        probe = http_probe(config.local_store.probe_url)

    network = NetworkMonitor(probe=probe, policy=config.policy)
    local = LocalStore(storage, network, config.local_store, config.policy, clock=clock)
    cache = CacheService(remote, keys, config.cache, clock=clock)
    rate_limiter = RateLimiter(remote, keys, config.rate_limit, config.policy, clock=clock)
    meals = DailyMealsService(cache, local, source, keys, config.cache, clock=clock)
    profiles = ProfileService(cache, local, source, keys, rate_limiter, config.cache)

    return MealSyncContext(
        config=config,
        keys=keys,
        remote=remote,
        cache=cache,
        rate_limiter=rate_limiter,
        network=network,
        local=local,
        source=source,
        meals=meals,
        profiles=profiles,
        db_manager=db_manager,
    )
