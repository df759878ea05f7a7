"""
Daily Meals Service for MealSync
Orchestrates reads and optimistic writes across the three tiers

Tiers:
- Local store: device-local, always written first, the only tier read offline
- Remote cache: shared accelerator, never required for correctness
- Source store: source of truth

Write contract (add/update/remove/clear):
1. compute the full post-mutation list from the caller's current list
2. notify the optimistic callback before any I/O
3. persist the new list locally
4. offline: queue the full list for replay and stop
5. online: write the source store and refresh the remote entry; on failure
   call the error callback with the original list

Steps 3-5 for one (user, date) run under a per-key asyncio lock.
"""

import asyncio
from datetime import date as date_type, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from loguru import logger

from mealsync.cache.cache_service import CacheService
from mealsync.cache.keys import KeyBuilder
from mealsync.config import CacheSettings
from mealsync.database.source_store import SourceStore
from mealsync.errors import MealSyncError, SourceWriteError, TierUnavailableError
from mealsync.local.local_store import LocalStore
from mealsync.models import (
    DEFAULT_MEAL_TIMES,
    DailyMeals,
    MealItem,
    MealType,
    NutritionTotals,
    SyncAction,
    generate_meal_id,
    validate_date,
)
from mealsync.services.locking import KeyedAsyncLock
from mealsync.utils import BackgroundTasks, Clock, now_ms

UpdateCallback = Callable[[List[MealItem]], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception, List[MealItem]], Union[None, Awaitable[None]]]


async def _invoke(callback: Optional[Callable], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if asyncio.iscoroutine(result):
        await result


def _days_between(start_date: str, end_date: str) -> List[str]:
    start = date_type.fromisoformat(start_date)
    end = date_type.fromisoformat(end_date)
    days = []
    current = start
    while current <= end:
        days.append(current.isoformat())
        current += timedelta(days=1)
    return days


class DailyMealsService:
    """Tiered read path and optimistic write path for per-day meal lists."""

    NAMESPACE = "meals"

    def __init__(
        self,
        cache: CacheService,
        local_store: LocalStore,
        source: SourceStore,
        keys: KeyBuilder,
        settings: Optional[CacheSettings] = None,
        clock: Clock = now_ms,
    ):
        self.cache = cache
        self.local = local_store
        self.source = source
        self.keys = keys
        self.settings = settings or cache.settings
        self._clock = clock
        self._locks = KeyedAsyncLock()
        self._sync_lock = asyncio.Lock()
        self._background = BackgroundTasks("meals")

    @property
    def ttl(self) -> int:
        return self.settings.ttl_for(self.NAMESPACE)

    def _tags(self, user_id: str) -> List[str]:
        return [self.keys.user_meals_tag(user_id), self.keys.user_tag(user_id)]

    def _is_online(self) -> bool:
        return self.local.get_online_status()

    # ============ Read path ============

    async def get_meals_for_date(self, user_id: str, date: str) -> Optional[DailyMeals]:
        """
        Offline: local only. Online with local data: return it and refresh
        in the background. Otherwise read through the remote cache.
        """
        validate_date(date)
        local = await self.local.get_meals_local(user_id, date)

        if not self._is_online():
            return local

        if local is not None:
            self._background.spawn(self._refresh_from_source(user_id, date), label=f"refresh {user_id}/{date}")
            return local

        # Remote and source copies are stale until the queue replays
        if await self._has_pending_mutations(user_id, date):
            return None

        async def _fetch() -> Optional[Dict[str, Any]]:
            daily = await self.source.get_daily_meals(user_id, date)
            return daily.to_dict() if daily else None

        data = await self.cache.get_or_set(
            self.keys.meals_for_date(user_id, date), _fetch, ttl=self.ttl, tags=self._tags(user_id)
        )
        if data is None:
            return None

        daily = DailyMeals.from_dict(data)
        await self.local.set_meals_local(daily)
        return daily

    async def _has_pending_mutations(self, user_id: str, date: str) -> bool:
        queue = await self.local.get_sync_queue()
        return any(item.user_id == user_id and item.date == date for item in queue)

    async def _refresh_from_source(self, user_id: str, date: str) -> Optional[DailyMeals]:
        async with self._locks.hold((user_id, date)):
            if await self._has_pending_mutations(user_id, date):
                logger.debug(f"Skipping refresh of {user_id}/{date}: offline mutations pending")
                return None

            daily = await self.source.get_daily_meals(user_id, date)
            if daily is None:
                await self.local.remove_meals_local(user_id, date)
                await self.cache.delete(self.keys.meals_for_date(user_id, date))
                return None

            await self.local.set_meals_local(daily)
            await self.cache.set(
                self.keys.meals_for_date(user_id, date), daily.to_dict(), ttl=self.ttl, tags=self._tags(user_id)
            )
            return daily

    async def get_meals_for_date_range(self, user_id: str, start_date: str, end_date: str) -> List[DailyMeals]:
        """Days in [start_date, end_date] that have a record, oldest first."""
        validate_date(start_date)
        validate_date(end_date)

        if not self._is_online():
            days = []
            for day in _days_between(start_date, end_date):
                local = await self.local.get_meals_local(user_id, day)
                if local is not None:
                    days.append(local)
            return days

        async def _fetch() -> List[Dict[str, Any]]:
            rows = await self.source.list_daily_meals(user_id, start_date, end_date)
            return [row.to_dict() for row in rows]

        data = await self.cache.get_or_set(
            self.keys.meals_for_range(user_id, start_date, end_date),
            _fetch,
            ttl=self.ttl,
            tags=[self.keys.user_meal_ranges_tag(user_id), self.keys.user_tag(user_id)],
        )
        return [DailyMeals.from_dict(d) for d in data or []]

    async def get_dates_with_meals(self, user_id: str, month: str) -> List[str]:
        """Dates in a YYYY-MM month holding at least one meal."""
        local = await self.local.get_dates_with_meals_local(user_id, month)

        if not self._is_online():
            return local or []

        if local is not None:
            self._background.spawn(self._refresh_dates(user_id, month), label=f"refresh dates {user_id}/{month}")
            return local

        async def _fetch() -> List[str]:
            return await self.source.list_dates_with_meals(user_id, f"{month}-01", f"{month}-31")

        dates = await self.cache.get_or_set(
            self.keys.dates_with_meals(user_id, month), _fetch, ttl=self.ttl, tags=self._tags(user_id)
        )
        dates = list(dates or [])
        await self.local.set_dates_with_meals_local(user_id, month, dates)
        return dates

    async def _refresh_dates(self, user_id: str, month: str) -> List[str]:
        dates = await self.source.list_dates_with_meals(user_id, f"{month}-01", f"{month}-31")
        await self.local.set_dates_with_meals_local(user_id, month, dates)
        await self.cache.set(self.keys.dates_with_meals(user_id, month), dates, ttl=self.ttl, tags=self._tags(user_id))
        return dates

    async def is_date_locked(self, user_id: str, date: str) -> bool:
        daily = await self.get_meals_for_date(user_id, date)
        return bool(daily and daily.is_locked)

    # ============ Optimistic write path ============

    async def add_meal_optimistic(
        self,
        user_id: str,
        date: str,
        meal: MealItem,
        current_meals: List[MealItem],
        on_optimistic_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> List[MealItem]:
        new_meals = list(current_meals) + [meal]
        return await self._apply_mutation(
            user_id, date, SyncAction.ADD, list(current_meals), new_meals, on_optimistic_update, on_error
        )

    async def update_meal_optimistic(
        self,
        user_id: str,
        date: str,
        meal_id: str,
        updates: Dict[str, Any],
        current_meals: List[MealItem],
        on_optimistic_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> List[MealItem]:
        if not any(m.id == meal_id for m in current_meals):
            raise ValueError(f"Meal {meal_id} not found for {user_id}/{date}")

        new_meals = [
            MealItem.from_dict({**m.to_dict(), **updates, "id": m.id}) if m.id == meal_id else m
            for m in current_meals
        ]
        return await self._apply_mutation(
            user_id, date, SyncAction.UPDATE, list(current_meals), new_meals, on_optimistic_update, on_error
        )

    async def remove_meal_optimistic(
        self,
        user_id: str,
        date: str,
        meal_id: str,
        current_meals: List[MealItem],
        on_optimistic_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> List[MealItem]:
        new_meals = [m for m in current_meals if m.id != meal_id]
        return await self._apply_mutation(
            user_id, date, SyncAction.DELETE, list(current_meals), new_meals, on_optimistic_update, on_error
        )

    async def clear_meals_optimistic(
        self,
        user_id: str,
        date: str,
        current_meals: List[MealItem],
        on_optimistic_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> List[MealItem]:
        """Remove the whole day: local entry, source row and remote entry."""
        return await self._apply_mutation(
            user_id, date, SyncAction.CLEAR, list(current_meals), [], on_optimistic_update, on_error
        )

    async def _apply_mutation(
        self,
        user_id: str,
        date: str,
        action: SyncAction,
        original: List[MealItem],
        new_meals: List[MealItem],
        on_optimistic_update: Optional[UpdateCallback],
        on_error: Optional[ErrorCallback],
    ) -> List[MealItem]:
        validate_date(date)
        await _invoke(on_optimistic_update, list(new_meals))

        async with self._locks.hold((user_id, date)):
            if action == SyncAction.CLEAR:
                await self.local.remove_meals_local(user_id, date)
            else:
                await self._write_local(user_id, date, new_meals)

            if not self._is_online():
                await self.local.queue_meal_mutation(
                    user_id, date, action, None if action == SyncAction.CLEAR else new_meals
                )
                logger.debug(f"Offline: queued {action.value} for {user_id}/{date}")
                return new_meals

            try:
                await self._write_remote(user_id, date, action, new_meals)
            except Exception as e:
                error = e if isinstance(e, MealSyncError) else SourceWriteError(action.value, str(e), cause=e)
                logger.error(f"Failed to {action.value} meals for {user_id}/{date}: {error}")
                await self._restore_local(user_id, date, original)
                if on_error is None:
                    raise error from e
                await _invoke(on_error, error, list(original))
                return original

        return new_meals

    async def _write_local(self, user_id: str, date: str, meals: List[MealItem]) -> None:
        daily = await self.local.get_meals_local(user_id, date)
        if daily is None:
            daily = DailyMeals(id=f"local_{self._clock()}", user_id=user_id, meal_date=date)
        daily.meals = list(meals)
        await self.local.set_meals_local(daily)

    async def _restore_local(self, user_id: str, date: str, original: List[MealItem]) -> None:
        if original:
            await self._write_local(user_id, date, original)
        else:
            await self.local.remove_meals_local(user_id, date)

    async def _write_remote(self, user_id: str, date: str, action: SyncAction, meals: List[MealItem]) -> None:
        key = self.keys.meals_for_date(user_id, date)
        if action == SyncAction.CLEAR:
            await self.source.delete_daily_meals(user_id, date)
            await self.cache.delete(key)
        else:
            daily = await self.source.upsert_daily_meals(user_id, date, meals)
            await self.cache.set(key, daily.to_dict(), ttl=self.ttl, tags=self._tags(user_id))
        await self._invalidate_aggregates(user_id, date)

    async def _invalidate_aggregates(self, user_id: str, date: str) -> None:
        await self.cache.delete(self.keys.dates_with_meals(user_id, date[:7]))
        await self.cache.invalidate_by_tag(self.keys.user_meal_ranges_tag(user_id))
        await self.local.remove(self.local.meals_month_key(user_id, date[:7]))

    # ============ Offline replay ============

    async def sync_offline_mutations(self) -> int:
        """
        Replay queued mutations in FIFO order. Returns the number replayed.

        An item leaves the queue only after its source write succeeded. After
        a failure, later items for the same (user, date) wait for the next
        pass so per-record order is preserved.
        """
        if not self._is_online():
            return 0

        async with self._sync_lock:
            queue = await self.local.get_sync_queue()
            if not queue:
                return 0

            last_for_record = {(item.user_id, item.date): item.id for item in queue}
            blocked = set()
            synced = 0
            for item in queue:
                record = (item.user_id, item.date)
                if record in blocked:
                    continue
                try:
                    async with self._locks.hold(record):
                        await self._replay(item.user_id, item.date, item.action, item.meals)
                        if item.action == SyncAction.CLEAR and last_for_record[record] == item.id:
                            await self.local.remove_meals_local(item.user_id, item.date)
                except MealSyncError as e:
                    logger.warning(f"Sync of {item.action.value} for {item.user_id}/{item.date} failed: {e}")
                    blocked.add(record)
                    continue

                await self.local.remove_from_sync_queue(item.id)
                synced += 1

            if synced:
                await self.local.set_last_sync()
            logger.info(f"Synced {synced}/{len(queue)} offline mutations")
            return synced

    async def _replay(self, user_id: str, date: str, action: SyncAction, meals: List[MealItem]) -> None:
        if action == SyncAction.CLEAR:
            await self.source.delete_daily_meals(user_id, date)
        else:
            await self.source.upsert_daily_meals(user_id, date, meals)
        await self.cache.delete(self.keys.meals_for_date(user_id, date))
        await self._invalidate_aggregates(user_id, date)

    # ============ Non-optimistic operations ============

    async def save_meals_for_date(self, user_id: str, date: str, meals: List[MealItem]) -> DailyMeals:
        """Write a full meal list. Offline the write is queued."""
        validate_date(date)
        async with self._locks.hold((user_id, date)):
            if not self._is_online():
                await self._write_local(user_id, date, meals)
                await self.local.queue_meal_mutation(user_id, date, SyncAction.UPDATE, meals)
                return await self.local.get_meals_local(user_id, date)

            daily = await self.source.upsert_daily_meals(user_id, date, meals)
            await self.local.set_meals_local(daily)
            await self.cache.set(
                self.keys.meals_for_date(user_id, date), daily.to_dict(), ttl=self.ttl, tags=self._tags(user_id)
            )
            await self._invalidate_aggregates(user_id, date)
            return daily

    async def clear_meals_for_date(self, user_id: str, date: str) -> bool:
        """Delete the whole day without optimistic callbacks."""
        validate_date(date)
        async with self._locks.hold((user_id, date)):
            await self.local.remove_meals_local(user_id, date)
            if not self._is_online():
                await self.local.queue_meal_mutation(user_id, date, SyncAction.CLEAR)
                return True
            deleted = await self.source.delete_daily_meals(user_id, date)
            await self.cache.delete(self.keys.meals_for_date(user_id, date))
            await self._invalidate_aggregates(user_id, date)
            return deleted

    async def lock_past_days(self, user_id: str, today: str) -> int:
        """Lock every record before ``today``. Locked days reject mutations in the caller layer."""
        validate_date(today)
        count = await self.source.lock_past_dates(user_id, today)
        if count:
            await self.cache.invalidate_by_tag(self.keys.user_meals_tag(user_id))
        return count

    async def refresh_cache(self, user_id: str, date: str) -> Optional[DailyMeals]:
        """Drop the remote entry and reload both tiers from the source."""
        await self.cache.delete(self.keys.meals_for_date(user_id, date))
        try:
            return await self._refresh_from_source(user_id, date)
        except TierUnavailableError as e:
            logger.warning(f"Refresh of {user_id}/{date} failed: {e}")
            return None

    # ============ Helpers ============

    @staticmethod
    def calculate_total_nutrition(meals: List[MealItem]) -> NutritionTotals:
        return NutritionTotals.from_meals(meals)

    @staticmethod
    def get_default_meal_time(meal_type: Union[MealType, str]) -> str:
        try:
            return DEFAULT_MEAL_TIMES[MealType(meal_type)]
        except ValueError:
            return "12:00"

    @staticmethod
    def generate_meal_id() -> str:
        return generate_meal_id()

    async def join_background(self) -> None:
        """Wait for background refreshes here and in the cache service."""
        await self._background.join()
        await self.cache.join_background()

    async def close(self) -> None:
        await self.join_background()

