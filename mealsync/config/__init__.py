"""MealSync configuration."""

from mealsync.config.config_loader import (
    CacheSettings,
    Config,
    ConfigLoader,
    DatabaseConfig,
    DegradationPolicy,
    LocalStoreSettings,
    RateLimitRule,
    RateLimitSettings,
    RemoteCacheConfig,
    SystemConfig,
    load_config,
)

__all__ = [
    "CacheSettings",
    "Config",
    "ConfigLoader",
    "DatabaseConfig",
    "DegradationPolicy",
    "LocalStoreSettings",
    "RateLimitRule",
    "RateLimitSettings",
    "RemoteCacheConfig",
    "SystemConfig",
    "load_config",
]
