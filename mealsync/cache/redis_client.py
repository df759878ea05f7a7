"""
Native Redis binding for the remote cache client.

Uses a redis.asyncio connection pool. Commands are sent as raw argument
lists through ``execute_command`` so both bindings share one command
vocabulary.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis
from redis.asyncio import ConnectionPool, Redis
from loguru import logger

from mealsync.cache.remote_client import RemoteCacheClient


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    enabled: bool = True
    host: str = "localhost"
    port: int = 6379
    password: str = ""
    db: int = 0
    max_connections: int = 20
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RedisConfig":
        """Create config from dictionary"""
        return cls(
            enabled=data.get('enabled', True),
            host=data.get('host', 'localhost'),
            port=data.get('port', 6379),
            password=data.get('password', ''),
            db=data.get('db', 0),
            max_connections=data.get('max_connections', 20),
            socket_timeout=data.get('socket_timeout', 5.0),
            socket_connect_timeout=data.get('socket_connect_timeout', 5.0),
        )


class RedisCommandClient(RemoteCacheClient):
    """
    Remote cache over the native Redis protocol.

    Usage:
    ```python
    client = RedisCommandClient(RedisConfig(host="localhost"))
    await client.connect()
    await client.set("key", {"data": "value"}, ex=3600)
    data = await client.get("key")
    await client.close()
    ```
    """

    def __init__(
        self,
        config: Optional[RedisConfig] = None,
        command_timeout: float = 3.0,
        redis: Optional[Redis] = None,
    ):
        super().__init__(command_timeout=command_timeout)
        self.config = config or RedisConfig()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = redis

    @property
    def is_configured(self) -> bool:
        return self.config.enabled and self._client is not None

    @property
    def backend_name(self) -> str:
        return "redis"

    async def connect(self) -> bool:
        if not self.config.enabled:
            logger.info("Redis disabled in config")
            return False

        if self._client is None:
            self._pool = ConnectionPool(
                host=self.config.host,
                port=self.config.port,
                password=self.config.password or None,
                db=self.config.db,
                max_connections=self.config.max_connections,
                socket_timeout=self.config.socket_timeout,
                socket_connect_timeout=self.config.socket_connect_timeout,
                decode_responses=True,
            )
            self._client = aioredis.Redis(connection_pool=self._pool)

        ok = await self.ping()
        if ok:
            logger.info(f"Connected to Redis at {self.config.host}:{self.config.port}/{self.config.db}")
        else:
            logger.warning(f"Redis at {self.config.host}:{self.config.port} not reachable, degrading")
        return ok

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        logger.info("Redis connection closed")

    async def _execute(self, command: List[Any]) -> Any:
        return await self._client.execute_command(*command)

    async def _execute_pipeline(self, commands: List[List[Any]]) -> List[Any]:
        pipe = self._client.pipeline(transaction=False)
        for command in commands:
            pipe.execute_command(*command)
        return await pipe.execute()
