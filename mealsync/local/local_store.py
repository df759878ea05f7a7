"""
Local Persistent Store for MealSync
Device-local envelopes, offline sync queue and connectivity status

Envelope: {"data": ..., "timestamp": epoch_ms, "version": "v1"}
- version mismatch: entry deleted, read returns None
- corrupt JSON: entry deleted, read returns None
- older than its TTL: still returned (offline availability), logged as stale
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from loguru import logger

from mealsync.config import DegradationPolicy, LocalStoreSettings
from mealsync.errors import CorruptLocalDataError
from mealsync.local.network import NetworkMonitor
from mealsync.local.storage import MemoryStorageBackend, StorageBackend
from mealsync.models import (
    DailyMeals,
    MealItem,
    SyncAction,
    SyncQueueItem,
    UserProfile,
    meals_to_dicts,
)
from mealsync.utils import Clock, now_ms


class LocalStore:
    """Versioned, TTL-aware envelopes over a device storage backend."""

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        network: Optional[NetworkMonitor] = None,
        settings: Optional[LocalStoreSettings] = None,
        policy: Optional[DegradationPolicy] = None,
        clock: Clock = now_ms,
    ):
        self.backend = backend if backend is not None else MemoryStorageBackend()
        self.settings = settings or LocalStoreSettings()
        self.policy = policy or DegradationPolicy()
        self.network = network or NetworkMonitor(policy=self.policy)
        self._clock = clock
        self._queue_lock = asyncio.Lock()

    # ============ Keys ============

    @property
    def prefix(self) -> str:
        return self.settings.prefix

    def meals_key(self, user_id: str, date: str) -> str:
        return f"{self.prefix}meals:{user_id}:{date}"

    def meals_month_key(self, user_id: str, month: str) -> str:
        return f"{self.prefix}meals_month:{user_id}:{month}"

    def profile_key(self, user_id: str) -> str:
        return f"{self.prefix}profile:{user_id}"

    def settings_key(self, user_id: str) -> str:
        return f"{self.prefix}settings:{user_id}"

    @property
    def sync_queue_key(self) -> str:
        return f"{self.prefix}sync:queue"

    @property
    def last_sync_key(self) -> str:
        return f"{self.prefix}sync:last"

    def _is_sync_key(self, key: str) -> bool:
        return key.startswith(f"{self.prefix}sync:")

    # ============ Envelopes ============

    def _decode(self, key: str, raw: str) -> Dict[str, Any]:
        try:
            envelope = json.loads(raw)
        except ValueError as e:
            raise CorruptLocalDataError(key, f"Corrupt local entry {key}: {e}") from e
        if not isinstance(envelope, dict) or "data" not in envelope or "timestamp" not in envelope:
            raise CorruptLocalDataError(key)
        timestamp = envelope["timestamp"]
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise CorruptLocalDataError(key, f"Corrupt local entry {key}: bad timestamp {timestamp!r}")
        return envelope

    async def _read_raw(self, key: str) -> Optional[str]:
        try:
            return await self.backend.get_item(key)
        except OSError as e:
            logger.warning(f"Local storage read failed for {key}: {e}")
            return None

    async def get(self, key: str, ttl: Optional[int] = None) -> Optional[Any]:
        """
        Read the data stored under key.

        Args:
            key: storage key
            ttl: freshness in seconds; older entries are still served unless
                the degradation policy forbids stale local data
        """
        raw = await self._read_raw(key)
        if raw is None:
            return None

        try:
            envelope = self._decode(key, raw)
        except CorruptLocalDataError as e:
            logger.warning(f"{e}, removing")
            await self.remove(key)
            return None

        if envelope.get("version") != self.settings.version:
            logger.info(f"Local entry {key} has version {envelope.get('version')}, removing")
            await self.remove(key)
            return None

        if ttl is not None:
            age = self._clock() - int(envelope["timestamp"])
            if age > ttl * 1000:
                if not self.policy.serve_stale_local_data:
                    await self.remove(key)
                    return None
                logger.debug(f"Serving stale local entry {key} (age {age // 1000}s)")

        return envelope["data"]

    async def set(self, key: str, data: Any) -> bool:
        envelope = {
            "data": data,
            "timestamp": self._clock(),
            "version": self.settings.version,
        }
        try:
            await self.backend.set_item(key, json.dumps(envelope, ensure_ascii=False, default=str))
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Local storage write failed for {key}: {e}")
            return False

    async def remove(self, key: str) -> bool:
        try:
            await self.backend.remove_item(key)
            return True
        except OSError as e:
            logger.error(f"Local storage remove failed for {key}: {e}")
            return False

    async def _own_keys(self) -> List[str]:
        try:
            keys = await self.backend.get_all_keys()
        except OSError as e:
            logger.warning(f"Local storage key listing failed: {e}")
            return []
        return [k for k in keys if k.startswith(self.prefix)]

    async def clear_user_data(self, user_id: str) -> int:
        """Remove every entry and queued mutation belonging to user_id."""
        doomed = []
        for key in await self._own_keys():
            if self._is_sync_key(key):
                continue
            segments = key[len(self.prefix):].split(":")
            if len(segments) > 1 and segments[1] == user_id:
                doomed.append(key)
        if doomed:
            await self.backend.multi_remove(doomed)

        async with self._queue_lock:
            queue = await self._load_queue()
            kept = [item for item in queue if item.user_id != user_id]
            if len(kept) != len(queue):
                await self._save_queue(kept)

        logger.info(f"Cleared {len(doomed)} local entries for user {user_id}")
        return len(doomed)

    # ============ Connectivity ============

    def get_online_status(self) -> bool:
        return self.network.is_online

    async def check_online(self) -> bool:
        return await self.network.check_online()

    # ============ Sync queue ============

    async def _load_queue(self) -> List[SyncQueueItem]:
        data = await self.get(self.sync_queue_key)
        if not data:
            return []
        if not isinstance(data, list):
            logger.warning(f"Sync queue holds {type(data).__name__}, not a list, removing")
            await self.remove(self.sync_queue_key)
            return []
        items = []
        for entry in data:
            try:
                items.append(SyncQueueItem.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed sync queue item: {e}")
        return items

    async def _save_queue(self, items: List[SyncQueueItem]) -> bool:
        if not items:
            return await self.remove(self.sync_queue_key)
        return await self.set(self.sync_queue_key, [i.to_dict() for i in items])

    async def add_to_sync_queue(self, action: SyncAction, payload: Dict[str, Any]) -> SyncQueueItem:
        item = SyncQueueItem(action=action, payload=payload, timestamp=self._clock())
        async with self._queue_lock:
            queue = await self._load_queue()
            queue.append(item)
            await self._save_queue(queue)
        logger.debug(f"Queued {item.action.value} for {item.user_id}/{item.date}")
        return item

    async def get_sync_queue(self) -> List[SyncQueueItem]:
        async with self._queue_lock:
            return await self._load_queue()

    async def remove_from_sync_queue(self, item_id: str) -> bool:
        async with self._queue_lock:
            queue = await self._load_queue()
            kept = [item for item in queue if item.id != item_id]
            if len(kept) == len(queue):
                return False
            await self._save_queue(kept)
            return True

    async def clear_sync_queue(self) -> bool:
        async with self._queue_lock:
            return await self.remove(self.sync_queue_key)

    async def queue_meal_mutation(
        self,
        user_id: str,
        date: str,
        action: SyncAction,
        meals: Optional[List[MealItem]] = None,
    ) -> SyncQueueItem:
        payload: Dict[str, Any] = {"user_id": user_id, "date": date}
        if meals is not None:
            payload["meals"] = meals_to_dicts(meals)
        return await self.add_to_sync_queue(action, payload)

    async def get_last_sync(self) -> Optional[int]:
        return await self.get(self.last_sync_key)

    async def set_last_sync(self, timestamp: Optional[int] = None) -> bool:
        return await self.set(self.last_sync_key, timestamp if timestamp is not None else self._clock())

    # ============ Domain helpers ============

    async def get_meals_local(self, user_id: str, date: str) -> Optional[DailyMeals]:
        data = await self.get(self.meals_key(user_id, date), ttl=self.settings.ttl.meals)
        if data is None:
            return None
        try:
            return DailyMeals.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unreadable local meals for {user_id}/{date}: {e}, removing")
            await self.remove(self.meals_key(user_id, date))
            return None

    async def set_meals_local(self, daily: DailyMeals) -> bool:
        return await self.set(self.meals_key(daily.user_id, daily.meal_date), daily.to_dict())

    async def remove_meals_local(self, user_id: str, date: str) -> bool:
        return await self.remove(self.meals_key(user_id, date))

    async def get_dates_with_meals_local(self, user_id: str, month: str) -> Optional[List[str]]:
        return await self.get(self.meals_month_key(user_id, month), ttl=self.settings.ttl.meals)

    async def set_dates_with_meals_local(self, user_id: str, month: str, dates: List[str]) -> bool:
        return await self.set(self.meals_month_key(user_id, month), sorted(set(dates)))

    async def get_profile_local(self, user_id: str) -> Optional[UserProfile]:
        data = await self.get(self.profile_key(user_id), ttl=self.settings.ttl.profile)
        if data is None:
            return None
        try:
            return UserProfile.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unreadable local profile for {user_id}: {e}, removing")
            await self.remove(self.profile_key(user_id))
            return None

    async def set_profile_local(self, profile: UserProfile) -> bool:
        return await self.set(self.profile_key(profile.id), profile.to_dict())

    # ============ Maintenance ============

    async def get_storage_size(self) -> Dict[str, Any]:
        keys = await self._own_keys()
        total = 0
        for key in keys:
            raw = await self._read_raw(key)
            if raw:
                total += len(raw.encode("utf-8")) + len(key.encode("utf-8"))
        return {"keys": len(keys), "size_kb": round(total / 1024, 2)}

    async def cleanup_expired(self) -> int:
        """Remove entries older than the hard ceiling, and corrupt entries."""
        now = self._clock()
        max_age_ms = self.settings.max_age * 1000
        doomed = []
        for key in await self._own_keys():
            if self._is_sync_key(key):
                continue
            raw = await self._read_raw(key)
            if raw is None:
                continue
            try:
                envelope = self._decode(key, raw)
            except CorruptLocalDataError:
                doomed.append(key)
                continue
            if now - int(envelope["timestamp"]) > max_age_ms:
                doomed.append(key)

        if doomed:
            await self.backend.multi_remove(doomed)
            logger.info(f"Local cleanup removed {len(doomed)} entries")
        return len(doomed)
