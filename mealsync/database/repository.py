"""
Repository Pattern Implementation for MealSync
Provides CRUD operations for the source-of-truth tables
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session as SQLSession
from loguru import logger

from mealsync.database.models import DailyMealsRecord, ProfileRecord


class BaseRepository:
    """Base repository with common CRUD operations."""

    def __init__(self, db: SQLSession):
        self.db = db

    @staticmethod
    def generate_id(prefix: str = "") -> str:
        """Generate a unique ID."""
        return f"{prefix}{uuid.uuid4().hex[:16]}"


class DailyMealsRepository(BaseRepository):
    """Repository for per-day meal rows, keyed by (user_id, meal_date)."""

    def get(self, user_id: str, meal_date: str) -> Optional[DailyMealsRecord]:
        """Get the row for one user and date."""
        return (
            self.db.query(DailyMealsRecord)
            .filter(DailyMealsRecord.user_id == user_id, DailyMealsRecord.meal_date == meal_date)
            .first()
        )

    def upsert(
        self,
        user_id: str,
        meal_date: str,
        meals: List[Dict[str, Any]],
    ) -> DailyMealsRecord:
        """Overwrite the meal list if a row exists, else insert one."""
        record = self.get(user_id, meal_date)
        if record is not None:
            record.meals = meals
            record.updated_at = datetime.utcnow()
            self.db.flush()
            logger.debug(f"Updated daily meals {user_id}/{meal_date}: {len(meals)} items")
            return record

        record = DailyMealsRecord(
            id=self.generate_id("dm_"),
            user_id=user_id,
            meal_date=meal_date,
            is_locked=False,
        )
        record.meals = meals
        self.db.add(record)
        self.db.flush()
        logger.debug(f"Created daily meals {user_id}/{meal_date}: {len(meals)} items")
        return record

    def delete(self, user_id: str, meal_date: str) -> bool:
        """Delete the row entirely."""
        record = self.get(user_id, meal_date)
        if record is None:
            return False
        self.db.delete(record)
        self.db.flush()
        logger.debug(f"Deleted daily meals {user_id}/{meal_date}")
        return True

    def list_range(self, user_id: str, start_date: str, end_date: str) -> List[DailyMealsRecord]:
        """Rows between two dates, inclusive, oldest first."""
        return (
            self.db.query(DailyMealsRecord)
            .filter(
                DailyMealsRecord.user_id == user_id,
                DailyMealsRecord.meal_date >= start_date,
                DailyMealsRecord.meal_date <= end_date,
            )
            .order_by(DailyMealsRecord.meal_date)
            .all()
        )

    def list_dates(self, user_id: str, start_date: str, end_date: str) -> List[str]:
        """Dates in range that hold at least one meal."""
        return [r.meal_date for r in self.list_range(user_id, start_date, end_date) if r.meals]

    def lock_before(self, user_id: str, meal_date: str) -> int:
        """Mark every row strictly before meal_date as locked."""
        count = (
            self.db.query(DailyMealsRecord)
            .filter(
                DailyMealsRecord.user_id == user_id,
                DailyMealsRecord.meal_date < meal_date,
                DailyMealsRecord.is_locked == False,  # noqa: E712
            )
            .update({DailyMealsRecord.is_locked: True}, synchronize_session=False)
        )
        self.db.flush()
        return count


class ProfileRepository(BaseRepository):
    """Repository for user profiles."""

    LIST_FIELDS = ("allergies", "disliked_foods")

    def get(self, user_id: str) -> Optional[ProfileRecord]:
        """Get profile by user ID."""
        return self.db.query(ProfileRecord).filter(ProfileRecord.id == user_id).first()

    def create(self, user_id: str, **fields) -> ProfileRecord:
        """Create a new profile."""
        record = ProfileRecord(id=user_id)
        self._apply(record, fields)
        self.db.add(record)
        self.db.flush()
        logger.debug(f"Created profile: {user_id}")
        return record

    def update(self, user_id: str, **fields) -> Optional[ProfileRecord]:
        """Update profile fields. Returns None if the profile does not exist."""
        record = self.get(user_id)
        if record is None:
            return None
        self._apply(record, fields)
        record.updated_at = datetime.utcnow()
        self.db.flush()
        logger.debug(f"Updated profile {user_id}: {sorted(fields)}")
        return record

    def _apply(self, record: ProfileRecord, fields: Dict[str, Any]) -> None:
        for name, value in fields.items():
            if name in ("id", "created_at", "updated_at"):
                continue
            if not hasattr(record, name):
                raise ValueError(f"Unknown profile field: {name}")
            setattr(record, name, value)
