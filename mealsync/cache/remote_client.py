"""
Remote Cache Client for MealSync
Async key-value primitives over a shared remote cache

Features:
- String, hash, list, sorted-set and counter primitives
- Batched pipelines
- Per-command timeout
- Graceful degradation: no primitive ever raises to its caller

Bindings implement ``_execute`` and ``_execute_pipeline``; everything else
(JSON encoding, timeouts, safe defaults, stats) lives here.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger


def encode_value(value: Any) -> str:
    """Serialize a value for storage. Everything is stored as JSON."""
    return json.dumps(value, ensure_ascii=False, default=str)


def decode_value(raw: Any) -> Any:
    """Parse a stored value, returning the raw string when it is not JSON."""
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _score_pairs(raw: Any) -> List[Tuple[str, float]]:
    """Normalize WITHSCORES replies (flat list or pairs) into (member, score)."""
    if not raw:
        return []
    if isinstance(raw[0], (list, tuple)):
        return [(str(m), float(s)) for m, s in raw]
    return [(str(raw[i]), float(raw[i + 1])) for i in range(0, len(raw) - 1, 2)]


class Pipeline:
    """
    Command batch builder.

    Commands accumulate until ``exec`` sends them in one round trip.
    ``exec`` returns ``[]`` for an empty batch and ``None`` when the backend
    failed, so callers can tell "no results" from "no backend".
    """

    def __init__(self, client: "RemoteCacheClient"):
        self._client = client
        self._commands: List[List[Any]] = []

    def __len__(self) -> int:
        return len(self._commands)

    def _add(self, *command: Any) -> "Pipeline":
        self._commands.append(list(command))
        return self

    def get(self, key: str) -> "Pipeline":
        return self._add("GET", key)

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> "Pipeline":
        command = ["SET", key, encode_value(value)]
        if ex:
            command.extend(["EX", int(ex)])
        return self._add(*command)

    def delete(self, *keys: str) -> "Pipeline":
        return self._add("DEL", *keys)

    def expire(self, key: str, seconds: int) -> "Pipeline":
        return self._add("EXPIRE", key, int(seconds))

    def incr(self, key: str) -> "Pipeline":
        return self._add("INCR", key)

    def lpush(self, key: str, *values: Any) -> "Pipeline":
        return self._add("LPUSH", key, *values)

    def lrem(self, key: str, count: int, value: Any) -> "Pipeline":
        return self._add("LREM", key, int(count), value)

    def zadd(self, key: str, mapping: Dict[str, float]) -> "Pipeline":
        command: List[Any] = ["ZADD", key]
        for member, score in mapping.items():
            command.extend([score, member])
        return self._add(*command)

    def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> "Pipeline":
        return self._add("ZREMRANGEBYSCORE", key, min_score, max_score)

    def zcard(self, key: str) -> "Pipeline":
        return self._add("ZCARD", key)

    def zrange(self, key: str, start: int, stop: int, withscores: bool = False) -> "Pipeline":
        command: List[Any] = ["ZRANGE", key, start, stop]
        if withscores:
            command.append("WITHSCORES")
        return self._add(*command)

    async def exec(self) -> Optional[List[Any]]:
        if not self._commands:
            return []
        commands, self._commands = self._commands, []
        return await self._client._run_pipeline(commands)


class RemoteCacheClient:
    """
    Base remote cache client.

    Subclasses provide the wire protocol. ``is_configured`` reports whether
    a backend is available at all; when it is false every primitive returns
    its safe default without touching the network.
    """

    def __init__(self, command_timeout: float = 3.0):
        self.command_timeout = command_timeout
        self._stats = {
            "operations": 0,
            "errors": 0,
            "timeouts": 0,
            "pipelines": 0,
        }

    @property
    def is_configured(self) -> bool:
        return False

    @property
    def backend_name(self) -> str:
        return "none"

    async def connect(self) -> bool:
        return self.is_configured

    async def close(self) -> None:
        return None

    async def _execute(self, command: List[Any]) -> Any:
        raise NotImplementedError

    async def _execute_pipeline(self, commands: List[List[Any]]) -> List[Any]:
        raise NotImplementedError

    async def _call(
        self,
        command: List[Any],
        default: Any,
        transform: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        if not self.is_configured:
            return default

        self._stats["operations"] += 1
        try:
            result = await asyncio.wait_for(self._execute(command), timeout=self.command_timeout)
            return transform(result) if transform else result
        except asyncio.TimeoutError:
            self._stats["timeouts"] += 1
            self._stats["errors"] += 1
            logger.warning(f"Remote cache {command[0]} timed out after {self.command_timeout}s")
            return default
        except Exception as e:
            self._stats["errors"] += 1
            logger.warning(f"Remote cache {command[0]} error: {e}")
            return default

    async def _run_pipeline(self, commands: List[List[Any]]) -> Optional[List[Any]]:
        if not self.is_configured:
            return None

        self._stats["pipelines"] += 1
        try:
            return await asyncio.wait_for(
                self._execute_pipeline(commands), timeout=self.command_timeout
            )
        except asyncio.TimeoutError:
            self._stats["timeouts"] += 1
            self._stats["errors"] += 1
            logger.warning(f"Remote cache pipeline of {len(commands)} commands timed out")
            return None
        except Exception as e:
            self._stats["errors"] += 1
            logger.warning(f"Remote cache pipeline error: {e}")
            return None

    # ============ Strings ============

    async def get(self, key: str) -> Any:
        return await self._call(["GET", key], None, decode_value)

    async def set(
        self,
        key: str,
        value: Any,
        ex: Optional[int] = None,
        px: Optional[int] = None,
        nx: bool = False,
        xx: bool = False,
    ) -> bool:
        command: List[Any] = ["SET", key, encode_value(value)]
        if ex:
            command.extend(["EX", int(ex)])
        elif px:
            command.extend(["PX", int(px)])
        if nx:
            command.append("NX")
        elif xx:
            command.append("XX")
        return await self._call(command, False, lambda r: r is not None and r is not False)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._call(["DEL", *keys], 0, _to_int)

    async def exists(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._call(["EXISTS", *keys], 0, _to_int)

    async def expire(self, key: str, seconds: int) -> bool:
        return await self._call(["EXPIRE", key, int(seconds)], False, lambda r: _to_int(r) == 1)

    async def ttl(self, key: str) -> int:
        return await self._call(["TTL", key], -2, lambda r: _to_int(r, -2))

    # ============ Hashes ============

    async def hget(self, key: str, field: str) -> Any:
        return await self._call(["HGET", key, field], None, decode_value)

    async def hset(self, key: str, mapping: Dict[str, Any]) -> int:
        if not mapping:
            return 0
        command: List[Any] = ["HSET", key]
        for field, value in mapping.items():
            command.extend([field, encode_value(value)])
        return await self._call(command, 0, _to_int)

    async def hgetall(self, key: str) -> Dict[str, Any]:
        def _transform(raw: Any) -> Dict[str, Any]:
            if not raw:
                return {}
            if isinstance(raw, dict):
                items = raw.items()
            else:
                items = zip(raw[0::2], raw[1::2])
            return {str(k): decode_value(v) for k, v in items}

        return await self._call(["HGETALL", key], {}, _transform)

    async def hdel(self, key: str, *fields: str) -> int:
        if not fields:
            return 0
        return await self._call(["HDEL", key, *fields], 0, _to_int)

    # ============ Lists ============

    async def lpush(self, key: str, *values: Any) -> int:
        if not values:
            return 0
        return await self._call(["LPUSH", key, *values], 0, _to_int)

    async def rpush(self, key: str, *values: Any) -> int:
        if not values:
            return 0
        return await self._call(["RPUSH", key, *values], 0, _to_int)

    async def lrem(self, key: str, count: int, value: Any) -> int:
        return await self._call(["LREM", key, int(count), value], 0, _to_int)

    async def lrange(self, key: str, start: int, stop: int) -> List[str]:
        return await self._call(["LRANGE", key, start, stop], [], lambda r: [str(v) for v in (r or [])])

    async def llen(self, key: str) -> int:
        return await self._call(["LLEN", key], 0, _to_int)

    # ============ Sorted sets ============

    async def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        if not mapping:
            return 0
        command: List[Any] = ["ZADD", key]
        for member, score in mapping.items():
            command.extend([score, member])
        return await self._call(command, 0, _to_int)

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        return await self._call(["ZREMRANGEBYSCORE", key, min_score, max_score], 0, _to_int)

    async def zcard(self, key: str) -> int:
        return await self._call(["ZCARD", key], 0, _to_int)

    async def zcount(self, key: str, min_score: float, max_score: float) -> int:
        return await self._call(["ZCOUNT", key, min_score, max_score], 0, _to_int)

    async def zrange(self, key: str, start: int, stop: int, withscores: bool = False) -> List[Any]:
        if withscores:
            return await self._call(["ZRANGE", key, start, stop, "WITHSCORES"], [], _score_pairs)
        return await self._call(["ZRANGE", key, start, stop], [], lambda r: [str(v) for v in (r or [])])

    # ============ Counters ============

    async def incr(self, key: str) -> int:
        return await self._call(["INCR", key], 0, _to_int)

    async def incrby(self, key: str, amount: int) -> int:
        return await self._call(["INCRBY", key, int(amount)], 0, _to_int)

    # ============ Keyspace ============

    async def keys(self, pattern: str) -> List[str]:
        return await self._call(["KEYS", pattern], [], lambda r: [str(v) for v in (r or [])])

    async def scan(self, cursor: Any = 0, match: Optional[str] = None, count: int = 100) -> Tuple[str, List[str]]:
        command: List[Any] = ["SCAN", cursor]
        if match:
            command.extend(["MATCH", match])
        command.extend(["COUNT", count])

        def _transform(raw: Any) -> Tuple[str, List[str]]:
            next_cursor, found = raw[0], raw[1]
            return str(next_cursor), [str(k) for k in (found or [])]

        return await self._call(command, ("0", []), _transform)

    async def scan_iter(self, match: str, count: int = 100) -> List[str]:
        """Collect every key matching ``match`` by walking the SCAN cursor."""
        found: List[str] = []
        cursor = "0"
        while True:
            cursor, batch = await self.scan(cursor, match=match, count=count)
            found.extend(batch)
            if str(cursor) == "0":
                break
        return found

    # ============ Misc ============

    def pipeline(self) -> Pipeline:
        return Pipeline(self)

    async def ping(self) -> bool:
        return await self._call(["PING"], False, lambda r: str(r).upper() == "PONG" or r is True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "backend": self.backend_name,
            "configured": self.is_configured,
            "command_timeout": self.command_timeout,
        }


class NullCacheClient(RemoteCacheClient):
    """Remote cache placeholder used when no backend is configured."""
