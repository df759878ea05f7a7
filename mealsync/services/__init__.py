"""MealSync domain services."""

from mealsync.services.locking import KeyedAsyncLock
from mealsync.services.meals_service import DailyMealsService
from mealsync.services.profile_service import (
    ProfileService,
    calculate_daily_calories,
    calculate_daily_protein,
)

__all__ = [
    "DailyMealsService",
    "KeyedAsyncLock",
    "ProfileService",
    "calculate_daily_calories",
    "calculate_daily_protein",
]
