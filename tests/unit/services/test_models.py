"""
Unit tests for the domain models.
"""

import pytest

from mealsync.models import (
    DailyMeals,
    MealItem,
    MealType,
    NutritionTotals,
    SyncAction,
    SyncQueueItem,
    UserProfile,
    generate_meal_id,
    validate_date,
)


class TestMealItem:
    """Tests for MealItem validation."""

    def test_defaults(self):
        meal = MealItem(name="Oats", meal_type="breakfast")
        assert meal.meal_type == MealType.BREAKFAST
        assert meal.time == "12:00"
        assert meal.id.startswith("meal_")

    def test_negative_macros_rejected(self):
        with pytest.raises(ValueError):
            MealItem(name="Oats", meal_type=MealType.BREAKFAST, protein=-1)

    def test_bad_time_rejected(self):
        with pytest.raises(ValueError):
            MealItem(name="Oats", meal_type=MealType.BREAKFAST, time="25:00")

    def test_unknown_meal_type_rejected(self):
        with pytest.raises(ValueError):
            MealItem(name="Oats", meal_type="brunch")

    def test_from_dict_keeps_identity(self):
        meal = MealItem(name="Oats", meal_type=MealType.BREAKFAST, calories=280)
        restored = MealItem.from_dict(meal.to_dict())
        assert restored == meal


class TestIdentifiers:
    """Tests for id generation and date validation."""

    def test_unique_within_one_millisecond(self):
        assert len({generate_meal_id() for _ in range(1000)}) == 1000

    def test_validate_date(self):
        assert validate_date("2026-10-17") == "2026-10-17"
        for bad in ("2026-13-01", "2026-10-32", "17-10-2026", "", None):
            with pytest.raises(ValueError):
                validate_date(bad)


class TestAggregates:
    """Tests for DailyMeals, NutritionTotals, queue items and profiles."""

    def test_daily_meals_dict(self):
        daily = DailyMeals(
            user_id="u1",
            meal_date="2026-10-17",
            meals=[MealItem(name="Oats", meal_type=MealType.BREAKFAST)],
        )
        data = daily.to_dict()
        assert data["meals"][0]["name"] == "Oats"
        assert DailyMeals.from_dict(data) == daily

    def test_totals_of_empty_day(self):
        assert NutritionTotals.from_meals([]).to_dict() == {"calories": 0, "protein": 0, "carbs": 0, "fat": 0}

    def test_sync_queue_item(self):
        item = SyncQueueItem(action="clear", payload={"user_id": "u1", "date": "2026-10-17"})
        assert item.action == SyncAction.CLEAR
        assert item.meals == []
        assert SyncQueueItem.from_dict(item.to_dict()).id == item.id

    def test_profile_defaults(self):
        profile = UserProfile.from_dict({"id": "u1"})
        assert profile.plan == "free"
        assert profile.allergies == []
        assert profile.onboarding_completed is False
