"""
Unit tests for ProfileService and the nutrition target formulas.
"""

import pytest

from mealsync.errors import RateLimitError, SourceWriteError
from mealsync.models import UserProfile
from mealsync.services.profile_service import calculate_daily_calories, calculate_daily_protein

from fixtures.sample_meals import USER_ID, build_tiers


@pytest.fixture
def tiers():
    return build_tiers()


class TestNutritionTargets:
    """Tests for calorie and protein targets."""

    def test_calories_female_weight_loss(self):
        # BMR 1320.25, moderate 1.55, deficit 500
        assert calculate_daily_calories("female", 30, 165, 60, "moderate", "weight_loss") == 1546

    def test_calories_male_sedentary_maintain(self):
        assert calculate_daily_calories("male", 30, 180, 80, "sedentary", "maintain") == 2136

    def test_calories_need_body_metrics(self):
        assert calculate_daily_calories("male", None, 180, 80) is None

    def test_unknown_activity_uses_moderate(self):
        assert calculate_daily_calories("male", 30, 180, 80, "unknown") == round(1780 * 1.55)

    def test_protein(self):
        assert calculate_daily_protein(80) == 128
        assert calculate_daily_protein(60, "weight_loss") == 108
        assert calculate_daily_protein(70, "muscle_build") == 140
        assert calculate_daily_protein(70, "maintain", "very_active") == 140
        assert calculate_daily_protein(None) is None


class TestReads:
    """Tests for the profile read path."""

    @pytest.mark.asyncio
    async def test_missing_profile(self, tiers):
        assert await tiers.profiles.get_profile(USER_ID) is None

    @pytest.mark.asyncio
    async def test_read_through_then_cache_hit(self, tiers):
        tiers.source.profiles[USER_ID] = UserProfile(id=USER_ID, name="Ana")

        first = await tiers.profiles.get_profile(USER_ID)
        await tiers.cache.join_background()
        second = await tiers.profiles.get_profile(USER_ID)

        assert first.name == second.name == "Ana"
        assert tiers.source.call_names().count("get_profile") == 1
        assert (await tiers.local.get_profile_local(USER_ID)).name == "Ana"

    @pytest.mark.asyncio
    async def test_offline_reads_local(self, tiers):
        await tiers.local.set_profile_local(UserProfile(id=USER_ID, name="Local"))
        tiers.network.set_status(False)

        assert (await tiers.profiles.get_profile(USER_ID)).name == "Local"
        assert tiers.source.calls == []

    @pytest.mark.asyncio
    async def test_source_outage_falls_back_to_local(self, tiers):
        await tiers.local.set_profile_local(UserProfile(id=USER_ID, name="Local"))
        tiers.source.fail_reads = True

        assert (await tiers.profiles.get_profile(USER_ID)).name == "Local"

    @pytest.mark.asyncio
    async def test_refresh_cache(self, tiers):
        await tiers.profiles.create_profile(USER_ID, {"name": "Ana"})
        tiers.source.profiles[USER_ID].name = "Bea"

        assert (await tiers.profiles.refresh_cache(USER_ID)).name == "Bea"


class TestWrites:
    """Tests for profile writes."""

    @pytest.mark.asyncio
    async def test_create_populates_tiers(self, tiers):
        profile = await tiers.profiles.create_profile(USER_ID, {"name": "Ana", "allergies": ["nuts"]})

        assert profile.allergies == ["nuts"]
        assert await tiers.cache.get(tiers.keys.user_profile(USER_ID)) is not None
        assert (await tiers.local.get_profile_local(USER_ID)).name == "Ana"

    @pytest.mark.asyncio
    async def test_update_refreshes_cache(self, tiers):
        await tiers.profiles.create_profile(USER_ID, {"name": "Ana"})
        await tiers.profiles.update_profile(USER_ID, {"weight_kg": 58})

        assert (await tiers.profiles.get_profile(USER_ID)).weight_kg == 58
        assert "get_profile" not in tiers.source.call_names()

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, tiers):
        await tiers.profiles.create_profile(USER_ID)
        with pytest.raises(ValueError):
            await tiers.profiles.update_profile(USER_ID, {"onboarding_completed": True})

    @pytest.mark.asyncio
    async def test_update_missing_profile(self, tiers):
        with pytest.raises(SourceWriteError):
            await tiers.profiles.update_profile(USER_ID, {"name": "x"})

    @pytest.mark.asyncio
    async def test_get_or_create(self, tiers):
        created = await tiers.profiles.get_or_create_profile(USER_ID)
        assert created.id == USER_ID
        assert tiers.source.call_names().count("create_profile") == 1

    @pytest.mark.asyncio
    async def test_complete_onboarding_derives_targets(self, tiers):
        await tiers.profiles.create_profile(USER_ID, {"name": "Ana"})
        assert await tiers.profiles.is_onboarding_completed(USER_ID) is False

        profile = await tiers.profiles.complete_onboarding(
            USER_ID,
            {
                "gender": "female",
                "age": 30,
                "height_cm": 165,
                "weight_kg": 60,
                "activity_level": "moderate",
                "goal": "weight_loss",
            },
        )

        assert profile.daily_calories_target == 1546
        assert profile.daily_protein_target == 108
        assert profile.onboarding_completed is True
        assert await tiers.cache.get(tiers.keys.user_profile(USER_ID)) is None
        assert await tiers.profiles.is_onboarding_completed(USER_ID) is True

    @pytest.mark.asyncio
    async def test_complete_onboarding_creates_missing_profile(self, tiers):
        profile = await tiers.profiles.complete_onboarding(USER_ID, {"daily_calories_target": 2000})

        assert profile.daily_calories_target == 2000
        assert tiers.source.profiles[USER_ID].onboarding_completed is True


class TestRateLimitedWrites:
    """Writes go through the write rate limit."""

    @pytest.mark.asyncio
    async def test_write_limit_enforced(self):
        tiers = build_tiers(rate_limit_enabled=True)
        tiers.source.profiles[USER_ID] = UserProfile(id=USER_ID)

        for i in range(30):
            await tiers.profiles.update_profile(USER_ID, {"age": 20 + i})

        with pytest.raises(RateLimitError) as exc_info:
            await tiers.profiles.update_profile(USER_ID, {"age": 99})
        assert exc_info.value.retry_after > 0
        assert tiers.source.profiles[USER_ID].age == 49

    @pytest.mark.asyncio
    async def test_read_limit_only_warns(self):
        tiers = build_tiers(rate_limit_enabled=True)
        tiers.source.profiles[USER_ID] = UserProfile(id=USER_ID, name="Ana")

        for _ in range(101):
            profile = await tiers.profiles.get_profile(USER_ID)
        assert profile.name == "Ana"

    @pytest.mark.asyncio
    async def test_offline_read_skips_rate_limiter(self):
        tiers = build_tiers(rate_limit_enabled=True)
        await tiers.local.set_profile_local(UserProfile(id=USER_ID, name="Local"))
        tiers.network.set_status(False)
        tiers.remote.commands.clear()

        assert (await tiers.profiles.get_profile(USER_ID)).name == "Local"
        assert tiers.remote.command_names() == []
