"""
Configuration Loader for MealSync
Loads and manages configuration from YAML files
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field
from loguru import logger


class SystemConfig(BaseModel):
    """System-level configuration."""
    name: str = "mealsync"
    log_level: str = "INFO"


class DatabaseConfig(BaseModel):
    """Source-of-truth database configuration."""
    url: str = "sqlite:///./data/mealsync.db"
    echo: bool = False


class RemoteCacheConfig(BaseModel):
    """
    Remote key-value cache configuration.

    provider:
    - upstash: HTTP command-array protocol (REST)
    - redis: native Redis protocol
    - none: no remote cache, every operation degrades to its default
    """
    provider: str = "upstash"
    rest_url: str = ""
    rest_token: str = ""
    host: str = "localhost"
    port: int = 6379
    password: str = ""
    db: int = 0
    max_connections: int = 20
    command_timeout: float = 3.0  # seconds
    key_prefix: str = "mealsync"


class NamespaceTTLConfig(BaseModel):
    """Per-namespace TTLs in seconds."""
    profile: int = 7200
    meals: int = 1800
    nutrition: int = 7200
    gemini: int = 86400
    storage: int = 7200


class StaleGraceConfig(BaseModel):
    """Stale-while-revalidate grace periods in seconds."""
    default: int = 600
    profile: int = 1800
    meals: int = 300


class CacheSettings(BaseModel):
    """Remote cache behaviour."""
    enabled: bool = True
    tag_invalidation: bool = True
    default_ttl: int = 1800
    ttl: NamespaceTTLConfig = Field(default_factory=NamespaceTTLConfig)
    stale_grace: StaleGraceConfig = Field(default_factory=StaleGraceConfig)

    def ttl_for(self, namespace: str) -> int:
        return getattr(self.ttl, namespace, self.default_ttl)

    def grace_for(self, namespace: str) -> int:
        return getattr(self.stale_grace, namespace, self.stale_grace.default)


class RateLimitRule(BaseModel):
    """A single sliding-window limit."""
    requests: int = 100
    window: int = 60  # seconds


def _default_endpoint_limits() -> Dict[str, RateLimitRule]:
    return {
        "gemini": RateLimitRule(requests=10, window=60),
        "profile": RateLimitRule(requests=20, window=60),
        "meals": RateLimitRule(requests=50, window=60),
        "read": RateLimitRule(requests=100, window=60),
        "write": RateLimitRule(requests=30, window=60),
    }


class RateLimitSettings(BaseModel):
    """Rate limiter configuration."""
    enabled: bool = False
    default: RateLimitRule = Field(default_factory=RateLimitRule)
    endpoints: Dict[str, RateLimitRule] = Field(default_factory=_default_endpoint_limits)

    def rule_for(self, endpoint: Optional[str]) -> RateLimitRule:
        if endpoint and endpoint in self.endpoints:
            return self.endpoints[endpoint]
        return self.default


class LocalTTLConfig(BaseModel):
    """Local persistent store TTLs in seconds."""
    meals: int = 24 * 60 * 60
    profile: int = 7 * 24 * 60 * 60
    settings: int = 30 * 24 * 60 * 60
    default: int = 24 * 60 * 60


class LocalStoreSettings(BaseModel):
    """Local persistent store configuration."""
    path: str = ""  # empty means in-memory
    prefix: str = "@mealsync:"
    version: str = "v1"
    ttl: LocalTTLConfig = Field(default_factory=LocalTTLConfig)
    max_age: int = 7 * 24 * 60 * 60
    probe_url: str = ""


class DegradationPolicy(BaseModel):
    """
    Failure-tolerance decisions consulted by every tier.

    - rate_limit_fail_open: admit requests when the limiter backend fails
    - assume_online_on_probe_failure: a failing connectivity probe reports online
    - serve_stale_local_data: local entries older than their TTL are still served
    - require_remote_cache: refuse to start without a configured remote cache
    """
    rate_limit_fail_open: bool = True
    assume_online_on_probe_failure: bool = True
    serve_stale_local_data: bool = True
    require_remote_cache: bool = False


class Config(BaseModel):
    """Root configuration model."""
    system: SystemConfig = Field(default_factory=SystemConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    remote_cache: RemoteCacheConfig = Field(default_factory=RemoteCacheConfig)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    local_store: LocalStoreSettings = Field(default_factory=LocalStoreSettings)
    policy: DegradationPolicy = Field(default_factory=DegradationPolicy)


class ConfigLoader:
    """Configuration loader and manager."""

    def __init__(self, config_path: Optional[str] = None):
        self._config_path = config_path or self._find_config_path()
        self._config: Optional[Config] = None
        self._load_config()

    def _find_config_path(self) -> Optional[str]:
        """Find configuration file path."""
        possible_paths = [
            os.environ.get("MEALSYNC_CONFIG_PATH", ""),
            "./config/config.yaml",
            "./config.yaml",
            str(Path(__file__).parent.parent.parent / "config" / "config.yaml"),
        ]

        for path in possible_paths:
            if path and os.path.exists(path):
                return path

        return None

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        raw_config: Dict[str, Any] = {}
        if self._config_path:
            try:
                with open(self._config_path, 'r', encoding='utf-8') as f:
                    raw_config = yaml.safe_load(f) or {}
                logger.info(f"Configuration loaded from {self._config_path}")
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config: {e}, using defaults")
                raw_config = {}
        else:
            logger.warning("Configuration file not found, using defaults")

        self._apply_env_overrides(raw_config)

        try:
            self._config = Config(**raw_config)
        except ValueError as e:
            logger.warning(f"Invalid config values: {e}, using defaults")
            self._config = Config()
            self._apply_env_overrides_to_model(self._config)

    @staticmethod
    def _env_overrides() -> Dict[str, Dict[str, str]]:
        overrides: Dict[str, Dict[str, str]] = {}
        env_map = {
            "UPSTASH_REDIS_REST_URL": ("remote_cache", "rest_url"),
            "UPSTASH_REDIS_REST_TOKEN": ("remote_cache", "rest_token"),
            "MEALSYNC_REDIS_PASSWORD": ("remote_cache", "password"),
            "MEALSYNC_DATABASE_URL": ("database", "url"),
        }
        for env_name, (section, key) in env_map.items():
            value = os.environ.get(env_name)
            if value:
                overrides.setdefault(section, {})[key] = value
        return overrides

    def _apply_env_overrides(self, raw_config: Dict[str, Any]) -> None:
        for section, values in self._env_overrides().items():
            current = raw_config.get(section) or {}
            current.update(values)
            raw_config[section] = current

    def _apply_env_overrides_to_model(self, config: Config) -> None:
        for section, values in self._env_overrides().items():
            target = getattr(config, section)
            for key, value in values.items():
                setattr(target, key, value)

    @property
    def config(self) -> Config:
        """Get configuration."""
        return self._config

    @property
    def config_path(self) -> Optional[str]:
        return self._config_path

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated key."""
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                if hasattr(value, k):
                    value = getattr(value, k)
                elif isinstance(value, dict):
                    value = value[k]
                else:
                    return default
            return value
        except (KeyError, AttributeError):
            return default

    def reload(self) -> None:
        """Reload configuration."""
        self._load_config()


def load_config(config_path: Optional[str] = None) -> Config:
    """Load a configuration instance. No process-wide state is kept."""
    return ConfigLoader(config_path).config
