"""
Key Builder for MealSync
Hierarchical key construction for the remote cache

Layout: {app}:{category}:{parts...}
- c: cache entries, first part is always the namespace
- r: rate-limit windows
- s: sessions
- l: locks
- t: tag membership lists

Empty parts are dropped, so optional segments never produce "::".
"""

from enum import Enum
from typing import Any, Optional


class CacheNamespace(str, Enum):
    """Cache namespaces. Each carries its own TTL."""
    PROFILE = "profile"
    MEALS = "meals"
    NUTRITION = "nutrition"
    GEMINI = "gemini"
    STORAGE = "storage"


class KeyCategory(str, Enum):
    CACHE = "c"
    RATE_LIMIT = "r"
    SESSION = "s"
    LOCK = "l"
    TAG = "t"


class KeyBuilder:
    """Deterministic, pure key construction."""

    SEPARATOR = ":"

    def __init__(self, app_prefix: str = "mealsync"):
        self.app_prefix = app_prefix

    def build(self, *parts: Any) -> str:
        return self.SEPARATOR.join(str(p) for p in parts if p is not None and str(p) != "")

    def _category(self, category: KeyCategory, *parts: Any) -> str:
        return self.build(self.app_prefix, category.value, *parts)

    # ============ Categories ============

    def cache(self, namespace: Any, *parts: Any) -> str:
        if isinstance(namespace, CacheNamespace):
            namespace = namespace.value
        return self._category(KeyCategory.CACHE, namespace, *parts)

    def rate_limit(self, identifier: str, endpoint: Optional[str] = None) -> str:
        return self._category(KeyCategory.RATE_LIMIT, identifier, endpoint or "global")

    def session(self, user_id: str) -> str:
        return self._category(KeyCategory.SESSION, user_id)

    def lock(self, resource: str) -> str:
        return self._category(KeyCategory.LOCK, resource)

    def tag(self, tag_name: str) -> str:
        return self._category(KeyCategory.TAG, tag_name)

    def cache_pattern(self, namespace: Optional[str] = None) -> str:
        """Glob pattern matching every cache key, or one namespace."""
        return self.build(self.app_prefix, KeyCategory.CACHE.value, namespace, "*")

    # ============ Cache keys ============

    def user_profile(self, user_id: str) -> str:
        return self.cache(CacheNamespace.PROFILE, user_id)

    def meals_for_date(self, user_id: str, date: str) -> str:
        return self.cache(CacheNamespace.MEALS, user_id, date)

    def meals_for_range(self, user_id: str, start_date: str, end_date: str) -> str:
        return self.cache(CacheNamespace.MEALS, user_id, "range", start_date, end_date)

    def dates_with_meals(self, user_id: str, month: str) -> str:
        return self.cache(CacheNamespace.MEALS, user_id, "dates", month)

    def daily_nutrition(self, user_id: str, date: str) -> str:
        return self.cache(CacheNamespace.NUTRITION, user_id, date)

    def nutrition_summary(self, user_id: str, period: str) -> str:
        return self.cache(CacheNamespace.NUTRITION, user_id, "summary", period)

    def gemini_meal_plan(self, user_id: str, prompt_hash: str) -> str:
        return self.cache(CacheNamespace.GEMINI, user_id, prompt_hash)

    def storage_url(self, path: str) -> str:
        return self.cache(CacheNamespace.STORAGE, path)

    # ============ Tag names ============

    @staticmethod
    def user_tag(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def user_meals_tag(user_id: str) -> str:
        return f"meals:{user_id}"

    @staticmethod
    def user_meal_ranges_tag(user_id: str) -> str:
        return f"meal_ranges:{user_id}"

    @staticmethod
    def user_profile_tag(user_id: str) -> str:
        return f"profile:{user_id}"

    @staticmethod
    def user_nutrition_tag(user_id: str) -> str:
        return f"nutrition:{user_id}"

    @staticmethod
    def date_tag(date: str) -> str:
        return f"date:{date}"
