"""
Async source-of-truth facade.

The services only need "upsert by key / select by key / delete by key /
range select". ``SqlSourceStore`` satisfies that contract over the
SQLAlchemy repositories, running blocking session work in the default
executor. Read failures surface as TierUnavailableError("source"),
write failures as SourceWriteError.
"""

import asyncio
import functools
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from loguru import logger

from mealsync.database.connection import DatabaseManager
from mealsync.database.repository import DailyMealsRepository, ProfileRepository
from mealsync.errors import SourceWriteError, TierUnavailableError
from mealsync.models import DailyMeals, MealItem, UserProfile, meals_to_dicts


class SourceStore(Protocol):
    async def get_daily_meals(self, user_id: str, meal_date: str) -> Optional[DailyMeals]: ...

    async def upsert_daily_meals(self, user_id: str, meal_date: str, meals: List[MealItem]) -> DailyMeals: ...

    async def delete_daily_meals(self, user_id: str, meal_date: str) -> bool: ...

    async def list_daily_meals(self, user_id: str, start_date: str, end_date: str) -> List[DailyMeals]: ...

    async def list_dates_with_meals(self, user_id: str, start_date: str, end_date: str) -> List[str]: ...

    async def lock_past_dates(self, user_id: str, before_date: str) -> int: ...

    async def get_profile(self, user_id: str) -> Optional[UserProfile]: ...

    async def create_profile(self, profile: UserProfile) -> UserProfile: ...

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> Optional[UserProfile]: ...


class SqlSourceStore:
    """SourceStore over a SQLAlchemy DatabaseManager."""

    SOURCE_TIER = "source"

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self._lock = threading.Lock()

    def _locked(self, func: Callable, *args) -> Any:
        with self._lock:
            return func(*args)

    async def _run(self, func: Callable, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self._locked, func, *args))

    async def _read(self, func: Callable, *args) -> Any:
        try:
            return await self._run(func, *args)
        except SQLAlchemyError as e:
            logger.warning(f"Source read failed: {e}")
            raise TierUnavailableError(self.SOURCE_TIER, cause=e) from e

    async def _write(self, operation: str, func: Callable, *args) -> Any:
        try:
            return await self._run(func, *args)
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Source write '{operation}' failed: {e}")
            raise SourceWriteError(operation, cause=e) from e

    # ============ Daily meals ============

    def _get_daily_meals(self, user_id: str, meal_date: str) -> Optional[DailyMeals]:
        with self.db_manager.session_scope() as session:
            record = DailyMealsRepository(session).get(user_id, meal_date)
            return DailyMeals.from_dict(record.to_dict()) if record else None

    def _upsert_daily_meals(self, user_id: str, meal_date: str, meals: List[Dict[str, Any]]) -> DailyMeals:
        with self.db_manager.session_scope() as session:
            record = DailyMealsRepository(session).upsert(user_id, meal_date, meals)
            return DailyMeals.from_dict(record.to_dict())

    def _delete_daily_meals(self, user_id: str, meal_date: str) -> bool:
        with self.db_manager.session_scope() as session:
            return DailyMealsRepository(session).delete(user_id, meal_date)

    def _list_daily_meals(self, user_id: str, start_date: str, end_date: str) -> List[DailyMeals]:
        with self.db_manager.session_scope() as session:
            records = DailyMealsRepository(session).list_range(user_id, start_date, end_date)
            return [DailyMeals.from_dict(r.to_dict()) for r in records]

    def _list_dates(self, user_id: str, start_date: str, end_date: str) -> List[str]:
        with self.db_manager.session_scope() as session:
            return DailyMealsRepository(session).list_dates(user_id, start_date, end_date)

    def _lock_before(self, user_id: str, meal_date: str) -> int:
        with self.db_manager.session_scope() as session:
            return DailyMealsRepository(session).lock_before(user_id, meal_date)

    async def get_daily_meals(self, user_id: str, meal_date: str) -> Optional[DailyMeals]:
        return await self._read(self._get_daily_meals, user_id, meal_date)

    async def upsert_daily_meals(self, user_id: str, meal_date: str, meals: List[MealItem]) -> DailyMeals:
        return await self._write("upsert_daily_meals", self._upsert_daily_meals, user_id, meal_date, meals_to_dicts(meals))

    async def delete_daily_meals(self, user_id: str, meal_date: str) -> bool:
        return await self._write("delete_daily_meals", self._delete_daily_meals, user_id, meal_date)

    async def list_daily_meals(self, user_id: str, start_date: str, end_date: str) -> List[DailyMeals]:
        return await self._read(self._list_daily_meals, user_id, start_date, end_date)

    async def list_dates_with_meals(self, user_id: str, start_date: str, end_date: str) -> List[str]:
        return await self._read(self._list_dates, user_id, start_date, end_date)

    async def lock_past_dates(self, user_id: str, before_date: str) -> int:
        return await self._write("lock_past_dates", self._lock_before, user_id, before_date)

    # ============ Profiles ============

    def _get_profile(self, user_id: str) -> Optional[UserProfile]:
        with self.db_manager.session_scope() as session:
            record = ProfileRepository(session).get(user_id)
            return UserProfile.from_dict(record.to_dict()) if record else None

    def _create_profile(self, profile: UserProfile) -> UserProfile:
        fields = profile.to_dict()
        for name in ("id", "created_at", "updated_at"):
            fields.pop(name, None)
        with self.db_manager.session_scope() as session:
            record = ProfileRepository(session).create(profile.id, **fields)
            return UserProfile.from_dict(record.to_dict())

    def _update_profile(self, user_id: str, updates: Dict[str, Any]) -> Optional[UserProfile]:
        with self.db_manager.session_scope() as session:
            record = ProfileRepository(session).update(user_id, **updates)
            return UserProfile.from_dict(record.to_dict()) if record else None

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return await self._read(self._get_profile, user_id)

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        return await self._write("create_profile", self._create_profile, profile)

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> Optional[UserProfile]:
        return await self._write("update_profile", self._update_profile, user_id, dict(updates))
