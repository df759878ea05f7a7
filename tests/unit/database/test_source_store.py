"""
Unit tests for SqlSourceStore.

Tests the async facade over the repositories and its error mapping.
"""

import pytest
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from mealsync.database.connection import DatabaseManager
from mealsync.database.source_store import SqlSourceStore
from mealsync.errors import ErrorKind, SourceWriteError, TierUnavailableError
from mealsync.models import UserProfile

from fixtures.sample_meals import make_meal, sample_day


@pytest.fixture
def store():
    manager = DatabaseManager("sqlite:///:memory:")
    yield SqlSourceStore(manager)
    manager.dispose()


class TestDailyMeals:
    """Tests for per-day meal rows."""

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, store):
        meals = sample_day()
        saved = await store.upsert_daily_meals("u1", "2026-10-17", meals)
        assert saved.id is not None

        loaded = await store.get_daily_meals("u1", "2026-10-17")
        assert [m.id for m in loaded.meals] == [m.id for m in meals]
        assert loaded.meals[1].name == "Chicken salad"
        assert await store.get_daily_meals("u1", "2026-10-18") is None

    @pytest.mark.asyncio
    async def test_upsert_overwrites_full_list(self, store):
        await store.upsert_daily_meals("u1", "2026-10-17", sample_day())
        await store.upsert_daily_meals("u1", "2026-10-17", [make_meal("Toast", 150)])

        loaded = await store.get_daily_meals("u1", "2026-10-17")
        assert [m.name for m in loaded.meals] == ["Toast"]

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.upsert_daily_meals("u1", "2026-10-17", [make_meal()])
        assert await store.delete_daily_meals("u1", "2026-10-17") is True
        assert await store.get_daily_meals("u1", "2026-10-17") is None

    @pytest.mark.asyncio
    async def test_range_queries_and_locking(self, store):
        await store.upsert_daily_meals("u1", "2026-10-15", [make_meal()])
        await store.upsert_daily_meals("u1", "2026-10-16", [])
        await store.upsert_daily_meals("u1", "2026-10-17", [make_meal()])

        rows = await store.list_daily_meals("u1", "2026-10-15", "2026-10-16")
        assert [r.meal_date for r in rows] == ["2026-10-15", "2026-10-16"]
        assert await store.list_dates_with_meals("u1", "2026-10-01", "2026-10-31") == ["2026-10-15", "2026-10-17"]

        assert await store.lock_past_dates("u1", "2026-10-17") == 2
        assert (await store.get_daily_meals("u1", "2026-10-15")).is_locked is True


class TestProfiles:
    """Tests for profile rows."""

    @pytest.mark.asyncio
    async def test_create_get_update(self, store):
        await store.create_profile(UserProfile(id="u1", name="Ana", allergies=["nuts"]))

        updated = await store.update_profile("u1", {"goal": "lose_weight", "weight_kg": 70})
        assert updated.goal == "lose_weight"
        assert updated.allergies == ["nuts"]
        assert (await store.get_profile("u1")).weight_kg == 70
        assert await store.update_profile("nobody", {"name": "x"}) is None

    @pytest.mark.asyncio
    async def test_unknown_field_is_write_error(self, store):
        await store.create_profile(UserProfile(id="u1"))
        with pytest.raises(SourceWriteError) as exc_info:
            await store.update_profile("u1", {"shoe_size": 42})
        assert exc_info.value.kind == ErrorKind.SOURCE_WRITE_FAILED


class TestErrorMapping:
    """Database failures surface as typed tier errors."""

    @pytest.mark.asyncio
    async def test_read_failure_is_tier_unavailable(self, store):
        failure = OperationalError("SELECT", {}, Exception("disk I/O error"))
        with patch.object(store, "_get_daily_meals", side_effect=failure):
            with pytest.raises(TierUnavailableError) as exc_info:
                await store.get_daily_meals("u1", "2026-10-17")
        assert exc_info.value.kind == ErrorKind.TIER_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_write_failure_is_source_write_error(self, store):
        failure = OperationalError("INSERT", {}, Exception("database is locked"))
        with patch.object(store, "_upsert_daily_meals", side_effect=failure):
            with pytest.raises(SourceWriteError):
                await store.upsert_daily_meals("u1", "2026-10-17", [make_meal()])
