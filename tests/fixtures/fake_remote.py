"""
In-memory remote cache for tests.

Implements the command vocabulary used by mealsync on top of plain dicts,
with expiry driven by a controllable clock. ``available = False`` makes
every command fail like an unreachable backend.
"""

import asyncio
import fnmatch
from typing import Any, Dict, List, Optional

from mealsync.cache.remote_client import RemoteCacheClient


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def advance_seconds(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class FakeRemoteClient(RemoteCacheClient):
    """Remote cache backed by process memory."""

    def __init__(self, clock: Optional[FakeClock] = None, command_timeout: float = 1.0):
        super().__init__(command_timeout=command_timeout)
        self.clock = clock or FakeClock()
        self.available = True
        self.configured = True
        self.delay: float = 0.0
        self.commands: List[List[Any]] = []
        self._data: Dict[str, Any] = {}
        self._expiry: Dict[str, int] = {}

    @property
    def is_configured(self) -> bool:
        return self.configured

    @property
    def backend_name(self) -> str:
        return "fake"

    # ============ Introspection helpers ============

    def raw(self, key: str) -> Any:
        self._purge(key)
        return self._data.get(key)

    def ttl_ms(self, key: str) -> Optional[int]:
        deadline = self._expiry.get(key)
        return None if deadline is None else deadline - self.clock()

    def command_names(self) -> List[str]:
        return [c[0] for c in self.commands]

    # ============ Command execution ============

    def _purge(self, key: str) -> None:
        deadline = self._expiry.get(key)
        if deadline is not None and self.clock() >= deadline:
            self._data.pop(key, None)
            self._expiry.pop(key, None)

    def _live_keys(self) -> List[str]:
        for key in list(self._data):
            self._purge(key)
        return list(self._data)

    async def _execute(self, command: List[Any]) -> Any:
        self.commands.append(list(command))
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.available:
            raise ConnectionError("fake backend unreachable")
        name = str(command[0]).upper()
        handler = getattr(self, f"_cmd_{name.lower()}")
        args = command[1:]
        if args and isinstance(args[0], str):
            self._purge(args[0])
        return handler(*args)

    async def _execute_pipeline(self, commands: List[List[Any]]) -> List[Any]:
        if not self.available:
            self.commands.extend(list(c) for c in commands)
            raise ConnectionError("fake backend unreachable")
        return [await self._execute(c) for c in commands]

    # strings

    def _cmd_get(self, key):
        return self._data.get(key)

    def _cmd_set(self, key, value, *options):
        options = [str(o).upper() if isinstance(o, str) else o for o in options]
        if "NX" in options and key in self._data:
            return None
        if "XX" in options and key not in self._data:
            return None
        self._data[key] = value
        self._expiry.pop(key, None)
        if "EX" in options:
            self._expiry[key] = self.clock() + int(options[options.index("EX") + 1]) * 1000
        elif "PX" in options:
            self._expiry[key] = self.clock() + int(options[options.index("PX") + 1])
        return "OK"

    def _cmd_del(self, *keys):
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self._data:
                del self._data[key]
                self._expiry.pop(key, None)
                removed += 1
        return removed

    def _cmd_exists(self, *keys):
        return sum(1 for k in keys if k in self._live_keys())

    def _cmd_expire(self, key, seconds):
        if key not in self._data:
            return 0
        self._expiry[key] = self.clock() + int(seconds) * 1000
        return 1

    def _cmd_ttl(self, key):
        if key not in self._data:
            return -2
        deadline = self._expiry.get(key)
        if deadline is None:
            return -1
        return max(0, (deadline - self.clock()) // 1000)

    # hashes

    def _cmd_hset(self, key, *pairs):
        bucket = self._data.setdefault(key, {})
        added = 0
        for field, value in zip(pairs[0::2], pairs[1::2]):
            if field not in bucket:
                added += 1
            bucket[field] = value
        return added

    def _cmd_hget(self, key, field):
        return self._data.get(key, {}).get(field)

    def _cmd_hgetall(self, key):
        flat = []
        for field, value in self._data.get(key, {}).items():
            flat.extend([field, value])
        return flat

    def _cmd_hdel(self, key, *fields):
        bucket = self._data.get(key, {})
        return sum(1 for f in fields if bucket.pop(f, None) is not None)

    # lists

    def _cmd_lpush(self, key, *values):
        items = self._data.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    def _cmd_rpush(self, key, *values):
        items = self._data.setdefault(key, [])
        items.extend(values)
        return len(items)

    def _cmd_lrem(self, key, count, value):
        items = self._data.get(key)
        if not items:
            return 0
        kept = [item for item in items if item != value]
        self._data[key] = kept
        return len(items) - len(kept)

    def _cmd_lrange(self, key, start, stop):
        items = self._data.get(key, [])
        stop = len(items) if int(stop) == -1 else int(stop) + 1
        return items[int(start):stop]

    def _cmd_llen(self, key):
        return len(self._data.get(key, []))

    # sorted sets

    def _cmd_zadd(self, key, *pairs):
        zset = self._data.setdefault(key, {})
        added = 0
        for score, member in zip(pairs[0::2], pairs[1::2]):
            if member not in zset:
                added += 1
            zset[member] = float(score)
        return added

    def _cmd_zremrangebyscore(self, key, min_score, max_score):
        zset = self._data.get(key, {})
        doomed = [m for m, s in zset.items() if float(min_score) <= s <= float(max_score)]
        for member in doomed:
            del zset[member]
        return len(doomed)

    def _cmd_zcard(self, key):
        return len(self._data.get(key, {}))

    def _cmd_zcount(self, key, min_score, max_score):
        return sum(1 for s in self._data.get(key, {}).values() if float(min_score) <= s <= float(max_score))

    def _cmd_zrange(self, key, start, stop, *options):
        ordered = sorted(self._data.get(key, {}).items(), key=lambda kv: kv[1])
        stop = len(ordered) if int(stop) == -1 else int(stop) + 1
        window = ordered[int(start):stop]
        if "WITHSCORES" in options:
            flat = []
            for member, score in window:
                flat.extend([member, str(score)])
            return flat
        return [m for m, _ in window]

    # counters

    def _cmd_incr(self, key):
        return self._cmd_incrby(key, 1)

    def _cmd_incrby(self, key, amount):
        value = int(self._data.get(key, 0)) + int(amount)
        self._data[key] = str(value)
        return value

    # keyspace

    def _cmd_keys(self, pattern):
        return [k for k in self._live_keys() if fnmatch.fnmatchcase(k, pattern)]

    def _cmd_scan(self, cursor, *options):
        pattern = "*"
        if "MATCH" in options:
            pattern = options[list(options).index("MATCH") + 1]
        return ["0", self._cmd_keys(pattern)]

    def _cmd_ping(self):
        return "PONG"
