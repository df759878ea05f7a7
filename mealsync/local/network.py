"""
Network state for the offline/online branch of every read and write path.

``is_online`` is the cheap cached value updated by connectivity events;
``check_online`` forces a fresh probe.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

import aiohttp
from loguru import logger

from mealsync.config import DegradationPolicy
from mealsync.utils import BackgroundTasks

Probe = Callable[[], Awaitable[bool]]
Listener = Callable[[bool], Optional[Awaitable[None]]]


def http_probe(url: str, timeout: float = 3.0) -> Probe:
    """Build a probe that reports online when ``url`` answers a HEAD request."""

    async def _probe() -> bool:
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.head(url) as response:
                return response.status < 500

    return _probe


class NetworkMonitor:
    """Cached connectivity flag with change listeners."""

    def __init__(
        self,
        probe: Optional[Probe] = None,
        policy: Optional[DegradationPolicy] = None,
        initial_online: bool = True,
    ):
        self._probe = probe
        self.policy = policy or DegradationPolicy()
        self._online = initial_online
        self._listeners: List[Listener] = []
        self._background = BackgroundTasks("network")

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a connectivity listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set_status(self, online: bool) -> None:
        """Connectivity-changed event. Listeners fire only on transitions."""
        changed = online != self._online
        self._online = online
        if not changed:
            return

        logger.info(f"Network status changed: {'online' if online else 'offline'}")
        for listener in list(self._listeners):
            result = listener(online)
            if asyncio.iscoroutine(result):
                self._background.spawn(result, label=f"listener {'online' if online else 'offline'}")

    async def check_online(self) -> bool:
        """Force a fresh connectivity probe and update the cached flag."""
        if self._probe is None:
            return self._online
        try:
            online = bool(await self._probe())
        except Exception as e:
            online = self.policy.assume_online_on_probe_failure
            logger.warning(f"Connectivity probe failed: {e}, assuming {'online' if online else 'offline'}")
        self.set_status(online)
        return online

    async def join(self) -> None:
        """Wait for coroutine listeners still running."""
        await self._background.join()

    async def close(self) -> None:
        self._listeners.clear()
        await self._background.cancel_all()
