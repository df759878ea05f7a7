"""
Upstash REST binding for the remote cache client.

Wire format:
- single command: POST {url} with a JSON array, e.g. ["SET", "k", "v", "EX", 60]
- batch: POST {url}/pipeline with an array of command arrays
- replies: {"result": ...} or {"error": "..."}
"""

from typing import Any, List, Optional

import aiohttp
from loguru import logger

from mealsync.cache.remote_client import RemoteCacheClient


class UpstashCommandError(Exception):
    """The REST endpoint answered with an error payload."""


class UpstashRestClient(RemoteCacheClient):
    """Remote cache over the Upstash HTTP command protocol."""

    def __init__(
        self,
        rest_url: str,
        rest_token: str,
        command_timeout: float = 3.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(command_timeout=command_timeout)
        self.rest_url = (rest_url or "").rstrip("/")
        self.rest_token = rest_token or ""
        self._session = session
        self._owns_session = session is None

    @property
    def is_configured(self) -> bool:
        return bool(self.rest_url and self.rest_token)

    @property
    def backend_name(self) -> str:
        return "upstash"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {
                "Authorization": f"Bearer {self.rest_token}",
                "Content-Type": "application/json",
            }
            timeout = aiohttp.ClientTimeout(total=self.command_timeout)
            self._session = aiohttp.ClientSession(headers=headers, timeout=timeout)
            self._owns_session = True
        return self._session

    async def connect(self) -> bool:
        if not self.is_configured:
            logger.warning("Upstash REST URL or token missing, remote cache disabled")
            return False
        ok = await self.ping()
        if ok:
            logger.info(f"Connected to Upstash REST endpoint: {self.rest_url}")
        else:
            logger.warning(f"Upstash REST endpoint not reachable: {self.rest_url}")
        return ok

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def _unwrap(payload: Any) -> Any:
        if isinstance(payload, dict) and payload.get("error"):
            raise UpstashCommandError(payload["error"])
        if isinstance(payload, dict):
            return payload.get("result")
        return payload

    async def _post(self, url: str, body: Any) -> Any:
        session = self._get_session()
        async with session.post(url, json=body) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def _execute(self, command: List[Any]) -> Any:
        payload = await self._post(self.rest_url, command)
        return self._unwrap(payload)

    async def _execute_pipeline(self, commands: List[List[Any]]) -> List[Any]:
        payload = await self._post(f"{self.rest_url}/pipeline", commands)
        return [self._unwrap(item) for item in payload]
