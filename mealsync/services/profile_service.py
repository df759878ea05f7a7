"""
Profile Service for MealSync

Reads go through stale-while-revalidate in the remote cache with the
local store as offline fallback. Writes are rate limited, go straight to
the source store and then refresh both cache tiers.
"""

from typing import Any, Dict, Optional

from loguru import logger

from mealsync.cache.cache_service import CacheService
from mealsync.cache.keys import KeyBuilder
from mealsync.cache.rate_limit import RateLimiter
from mealsync.config import CacheSettings
from mealsync.database.source_store import SourceStore
from mealsync.errors import SourceWriteError, TierUnavailableError
from mealsync.local.local_store import LocalStore
from mealsync.models import PROFILE_UPDATE_FIELDS, UserProfile

ACTIVITY_MULTIPLIERS = {
    "sedentary": 1.2,
    "light": 1.375,
    "moderate": 1.55,
    "active": 1.725,
    "very_active": 1.9,
}

GOAL_CALORIE_ADJUSTMENTS = {
    "weight_loss": -500,
    "weight_gain": 500,
    "muscle_build": 500,
}


def calculate_daily_calories(
    gender: Optional[str],
    age: Optional[int],
    height_cm: Optional[float],
    weight_kg: Optional[float],
    activity_level: Optional[str] = None,
    goal: Optional[str] = None,
) -> Optional[int]:
    """Mifflin-St Jeor BMR scaled by activity and shifted by goal."""
    if not (age and height_cm and weight_kg):
        return None

    bmr = 10 * weight_kg + 6.25 * height_cm - 5 * age
    bmr += 5 if gender == "male" else -161

    tdee = bmr * ACTIVITY_MULTIPLIERS.get(activity_level or "", 1.55)
    return round(tdee + GOAL_CALORIE_ADJUSTMENTS.get(goal or "", 0))


def calculate_daily_protein(
    weight_kg: Optional[float],
    goal: Optional[str] = None,
    activity_level: Optional[str] = None,
) -> Optional[int]:
    """Grams per day: 1.6 g/kg baseline, more for gain, training or a deficit."""
    if not weight_kg:
        return None

    grams_per_kg = 1.6
    if goal in ("weight_gain", "muscle_build") or activity_level in ("active", "very_active"):
        grams_per_kg = 2.0
    elif goal == "weight_loss":
        grams_per_kg = 1.8
    return round(weight_kg * grams_per_kg)


class ProfileService:
    """Tiered profile reads and rate-limited profile writes."""

    NAMESPACE = "profile"

    def __init__(
        self,
        cache: CacheService,
        local_store: LocalStore,
        source: SourceStore,
        keys: KeyBuilder,
        rate_limiter: RateLimiter,
        settings: Optional[CacheSettings] = None,
    ):
        self.cache = cache
        self.local = local_store
        self.source = source
        self.keys = keys
        self.rate_limiter = rate_limiter
        self.settings = settings or cache.settings

    def _tags(self, user_id: str):
        return [self.keys.user_profile_tag(user_id), self.keys.user_tag(user_id)]

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        if not self.local.get_online_status():
            return await self.local.get_profile_local(user_id)

        limit = await self.rate_limiter.read(user_id)
        if not limit.success:
            logger.warning(f"Profile read rate limit exceeded for {user_id}")

        async def _fetch() -> Optional[Dict[str, Any]]:
            profile = await self.source.get_profile(user_id)
            return profile.to_dict() if profile else None

        try:
            data = await self.cache.get_stale_while_revalidate(
                self.keys.user_profile(user_id),
                _fetch,
                ttl=self.settings.ttl_for(self.NAMESPACE),
                tags=self._tags(user_id),
                stale_grace=self.settings.grace_for(self.NAMESPACE),
            )
        except TierUnavailableError:
            local = await self.local.get_profile_local(user_id)
            if local is None:
                raise
            logger.warning(f"Source unavailable, serving local profile for {user_id}")
            return local

        if data is None:
            return None

        profile = UserProfile.from_dict(data)
        await self.local.set_profile_local(profile)
        return profile

    async def _store(self, profile: UserProfile) -> None:
        await self.cache.set(
            self.keys.user_profile(profile.id),
            profile.to_dict(),
            ttl=self.settings.ttl_for(self.NAMESPACE),
            tags=self._tags(profile.id),
            stale_grace=self.settings.grace_for(self.NAMESPACE),
        )
        await self.local.set_profile_local(profile)

    @staticmethod
    def _filter_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(updates) - set(PROFILE_UPDATE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")
        return dict(updates)

    async def create_profile(self, user_id: str, data: Optional[Dict[str, Any]] = None) -> UserProfile:
        await self.rate_limiter.enforce("write", user_id)

        fields = self._filter_updates(data or {})
        profile = await self.source.create_profile(UserProfile.from_dict({"id": user_id, **fields}))
        await self._store(profile)
        logger.info(f"Created profile for {user_id}")
        return profile

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> UserProfile:
        await self.rate_limiter.enforce("write", user_id)

        profile = await self.source.update_profile(user_id, self._filter_updates(updates))
        if profile is None:
            raise SourceWriteError("update_profile", f"Profile {user_id} does not exist")
        await self._store(profile)
        return profile

    async def complete_onboarding(self, user_id: str, data: Dict[str, Any]) -> UserProfile:
        """Store onboarding answers, derive nutrition targets and mark onboarding done."""
        await self.rate_limiter.enforce("write", user_id)

        updates = self._filter_updates(data)
        if updates.get("daily_calories_target") is None:
            calories = calculate_daily_calories(
                updates.get("gender"),
                updates.get("age"),
                updates.get("height_cm"),
                updates.get("weight_kg"),
                updates.get("activity_level"),
                updates.get("goal"),
            )
            if calories is not None:
                updates["daily_calories_target"] = calories
        if updates.get("daily_protein_target") is None:
            protein = calculate_daily_protein(
                updates.get("weight_kg"), updates.get("goal"), updates.get("activity_level")
            )
            if protein is not None:
                updates["daily_protein_target"] = protein
        updates["onboarding_completed"] = True

        profile = await self.source.update_profile(user_id, updates)
        if profile is None:
            profile = await self.source.create_profile(UserProfile.from_dict({"id": user_id, **updates}))

        await self.cache.invalidate_by_tag(self.keys.user_profile_tag(user_id))
        await self.local.set_profile_local(profile)
        logger.info(f"Onboarding completed for {user_id}")
        return profile

    async def is_onboarding_completed(self, user_id: str) -> bool:
        profile = await self.get_profile(user_id)
        return bool(profile and profile.onboarding_completed)

    async def get_or_create_profile(self, user_id: str) -> UserProfile:
        profile = await self.get_profile(user_id)
        if profile is not None:
            return profile
        return await self.create_profile(user_id)

    async def refresh_cache(self, user_id: str) -> Optional[UserProfile]:
        await self.cache.delete(self.keys.user_profile(user_id))
        return await self.get_profile(user_id)

    @staticmethod
    def calculate_daily_calories(profile: UserProfile) -> Optional[int]:
        return calculate_daily_calories(
            profile.gender, profile.age, profile.height_cm, profile.weight_kg, profile.activity_level, profile.goal
        )

    @staticmethod
    def calculate_daily_protein(profile: UserProfile) -> Optional[int]:
        return calculate_daily_protein(profile.weight_kg, profile.goal, profile.activity_level)
