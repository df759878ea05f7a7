"""
Unit tests for configuration loading and the error taxonomy.
"""

import pytest

from mealsync.config import Config, ConfigLoader, load_config
from mealsync.errors import (
    ConfigurationError,
    CorruptLocalDataError,
    ErrorKind,
    MealSyncError,
    RateLimitError,
    SourceWriteError,
    TierUnavailableError,
)
from mealsync.cache.rate_limit import RateLimitResult


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "MEALSYNC_CONFIG_PATH",
        "UPSTASH_REDIS_REST_URL",
        "UPSTASH_REDIS_REST_TOKEN",
        "MEALSYNC_REDIS_PASSWORD",
        "MEALSYNC_DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)


class TestConfigLoader:
    """Tests for YAML loading."""

    def test_defaults(self):
        config = Config()
        assert config.remote_cache.provider == "upstash"
        assert config.cache.ttl_for("meals") == 1800
        assert config.cache.ttl_for("unknown") == config.cache.default_ttl
        assert config.cache.grace_for("profile") == 1800
        assert config.cache.grace_for("gemini") == 600
        assert config.rate_limit.enabled is False
        assert config.rate_limit.rule_for("gemini").requests == 10
        assert config.rate_limit.rule_for(None).requests == 100

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "remote_cache:\n"
            "  provider: redis\n"
            "  port: 6380\n"
            "cache:\n"
            "  ttl:\n"
            "    meals: 60\n"
            "policy:\n"
            "  rate_limit_fail_open: false\n"
        )
        loader = ConfigLoader(str(path))

        assert loader.config_path == str(path)
        assert loader.config.remote_cache.provider == "redis"
        assert loader.config.remote_cache.port == 6380
        assert loader.config.cache.ttl.meals == 60
        assert loader.config.cache.ttl.profile == 7200
        assert loader.config.policy.rate_limit_fail_open is False
        assert loader.get("remote_cache.port") == 6380
        assert loader.get("remote_cache.missing", "fallback") == "fallback"
        assert loader.get("rate_limit.endpoints.write").requests == 30

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("remote_cache:\n  rest_url: ''\n")
        monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://eu1.upstash.io")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "secret")
        monkeypatch.setenv("MEALSYNC_DATABASE_URL", "sqlite:///:memory:")

        config = load_config(str(path))

        assert config.remote_cache.rest_url == "https://eu1.upstash.io"
        assert config.remote_cache.rest_token == "secret"
        assert config.database.url == "sqlite:///:memory:"

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("system:\n  log_level: DEBUG\n")
        monkeypatch.setenv("MEALSYNC_CONFIG_PATH", str(path))

        assert ConfigLoader().config.system.log_level == "DEBUG"

    def test_invalid_values_fall_back_to_defaults(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("remote_cache:\n  port: not-a-port\n")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "kept")

        config = load_config(str(path))

        assert config.remote_cache.port == 6379
        assert config.remote_cache.rest_token == "kept"

    def test_broken_yaml_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("cache: [unclosed\n")
        assert load_config(str(path)).cache.enabled is True

    def test_reload(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("system:\n  name: first\n")
        loader = ConfigLoader(str(path))

        path.write_text("system:\n  name: second\n")
        loader.reload()

        assert loader.config.system.name == "second"


class TestErrors:
    """Tests for the typed error hierarchy."""

    def test_kinds(self):
        assert TierUnavailableError("remote").kind == ErrorKind.TIER_UNAVAILABLE
        assert SourceWriteError("upsert").kind == ErrorKind.SOURCE_WRITE_FAILED
        assert CorruptLocalDataError("@mealsync:x").kind == ErrorKind.CORRUPT_LOCAL_DATA
        assert ConfigurationError("bad").kind is None

    def test_all_share_base(self):
        for error in (TierUnavailableError("source"), SourceWriteError("x"), ConfigurationError("y")):
            assert isinstance(error, MealSyncError)

    def test_rate_limit_error_carries_retry_after(self):
        error = RateLimitError(RateLimitResult(success=False, limit=10, remaining=0, reset=0, retry_after=42))
        assert error.kind == ErrorKind.RATE_LIMITED
        assert error.retry_after == 42
        assert "42" in str(error)

    def test_cause_is_kept(self):
        cause = OSError("disk full")
        error = SourceWriteError("upsert_daily_meals", cause=cause)
        assert error.cause is cause
        assert error.operation == "upsert_daily_meals"
