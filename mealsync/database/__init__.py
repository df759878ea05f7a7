"""MealSync source-of-truth store."""

from mealsync.database.connection import DatabaseManager
from mealsync.database.models import Base, DailyMealsRecord, ProfileRecord
from mealsync.database.repository import DailyMealsRepository, ProfileRepository
from mealsync.database.source_store import SourceStore, SqlSourceStore

__all__ = [
    "Base",
    "DailyMealsRecord",
    "DailyMealsRepository",
    "DatabaseManager",
    "ProfileRecord",
    "ProfileRepository",
    "SourceStore",
    "SqlSourceStore",
]
