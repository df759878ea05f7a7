"""
Sliding-window rate limiter for MealSync

Each identifier/endpoint pair owns a sorted set of request timestamps.
A check trims entries older than the window, counts the rest and, when
under the limit, records the new request.

Fails open: an absent or failing backend admits the request (subject to
DegradationPolicy.rate_limit_fail_open).
"""

import functools
import math
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger

from mealsync.cache.keys import KeyBuilder
from mealsync.cache.remote_client import RemoteCacheClient
from mealsync.config import DegradationPolicy, RateLimitSettings
from mealsync.errors import RateLimitError
from mealsync.utils import Clock, now_ms


@dataclass
class RateLimitResult:
    """Outcome of a rate-limit check. ``reset`` is epoch milliseconds."""
    success: bool
    limit: int
    remaining: int
    reset: int
    retry_after: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset": self.reset,
            "retry_after": self.retry_after,
        }


class RateLimiter:
    """Sliding-window limiter over sorted sets in the remote cache."""

    def __init__(
        self,
        client: RemoteCacheClient,
        keys: KeyBuilder,
        settings: Optional[RateLimitSettings] = None,
        policy: Optional[DegradationPolicy] = None,
        clock: Clock = now_ms,
    ):
        self.client = client
        self.keys = keys
        self.settings = settings or RateLimitSettings()
        self.policy = policy or DegradationPolicy()
        self._clock = clock

    def _admit(self, limit: int, window: int, now: int) -> RateLimitResult:
        return RateLimitResult(success=True, limit=limit, remaining=limit, reset=now + window * 1000)

    def _degraded(self, identifier: str, limit: int, window: int, now: int) -> RateLimitResult:
        if self.policy.rate_limit_fail_open:
            return self._admit(limit, window, now)
        logger.warning(f"Rate limiter backend unavailable, rejecting {identifier}")
        return RateLimitResult(
            success=False, limit=limit, remaining=0, reset=now + window * 1000, retry_after=window
        )

    async def check_rate_limit(
        self,
        identifier: str,
        limit: int,
        window: int,
        endpoint: Optional[str] = None,
    ) -> RateLimitResult:
        """
        Check and record one request for identifier.

        Args:
            identifier: who is being limited (user id, IP, ...)
            limit: maximum requests per window
            window: window length in seconds
            endpoint: optional endpoint segment of the key
        """
        now = self._clock()
        if not self.settings.enabled:
            return self._admit(limit, window, now)
        if not self.client.is_configured:
            return self._degraded(identifier, limit, window, now)

        key = self.keys.rate_limit(identifier, endpoint)
        window_ms = window * 1000
        window_start = now - window_ms

        pipe = self.client.pipeline()
        pipe.zremrangebyscore(key, 0, window_start)
        pipe.zcard(key)
        pipe.zrange(key, 0, 0, withscores=True)
        results = await pipe.exec()
        if results is None:
            return self._degraded(identifier, limit, window, now)

        count = int(results[1] or 0)
        if count >= limit:
            oldest = self._oldest_score(results[2])
            reset = (oldest if oldest is not None else now) + window_ms
            retry_after = max(1, math.ceil((reset - now) / 1000))
            logger.debug(f"Rate limit exceeded for {key}: {count}/{limit}")
            return RateLimitResult(
                success=False, limit=limit, remaining=0, reset=reset, retry_after=retry_after
            )

        pipe = self.client.pipeline()
        pipe.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.expire(key, window * 2)
        if await pipe.exec() is None:
            logger.warning(f"Failed to record request for {key}")

        return RateLimitResult(
            success=True, limit=limit, remaining=max(0, limit - count - 1), reset=now + window_ms
        )

    @staticmethod
    def _oldest_score(raw: Any) -> Optional[float]:
        if not raw:
            return None
        first = raw[0]
        try:
            if isinstance(first, (list, tuple)):
                return float(first[1])
            return float(raw[1])
        except (IndexError, TypeError, ValueError):
            return None

    # ============ Endpoint presets ============

    async def limit_endpoint(self, endpoint: str, identifier: str) -> RateLimitResult:
        rule = self.settings.rule_for(endpoint)
        return await self.check_rate_limit(identifier, rule.requests, rule.window, endpoint=endpoint)

    async def gemini(self, user_id: str) -> RateLimitResult:
        return await self.limit_endpoint("gemini", user_id)

    async def profile(self, user_id: str) -> RateLimitResult:
        return await self.limit_endpoint("profile", user_id)

    async def meals(self, user_id: str) -> RateLimitResult:
        return await self.limit_endpoint("meals", user_id)

    async def read(self, identifier: str) -> RateLimitResult:
        return await self.limit_endpoint("read", identifier)

    async def write(self, identifier: str) -> RateLimitResult:
        return await self.limit_endpoint("write", identifier)

    async def global_(self, identifier: str) -> RateLimitResult:
        rule = self.settings.default
        return await self.check_rate_limit(identifier, rule.requests, rule.window)

    async def enforce(self, endpoint: str, identifier: str) -> RateLimitResult:
        """Like limit_endpoint, but raise RateLimitError when rejected."""
        result = await self.limit_endpoint(endpoint, identifier)
        if not result.success:
            raise RateLimitError(result)
        return result

    def with_rate_limit(self, endpoint: str, identifier_arg: str = "user_id") -> Callable:
        """
        Decorator enforcing an endpoint limit on an async function.

        The identifier is taken from the keyword argument ``identifier_arg``,
        or from the first positional argument.
        """
        def decorator(func: Callable) -> Callable:
            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                identifier = kwargs.get(identifier_arg)
                if identifier is None and args:
                    identifier = args[0]
                await self.enforce(endpoint, str(identifier or "anonymous"))
                return await func(*args, **kwargs)
            return wrapper
        return decorator

    # ============ Introspection ============

    async def reset_rate_limit(self, identifier: str, endpoint: Optional[str] = None) -> bool:
        removed = await self.client.delete(self.keys.rate_limit(identifier, endpoint))
        return removed > 0

    async def get_rate_limit_status(
        self,
        identifier: str,
        endpoint: Optional[str] = None,
    ) -> RateLimitResult:
        """Current window usage without recording a request."""
        rule = self.settings.rule_for(endpoint)
        now = self._clock()
        if not self.settings.enabled:
            return self._admit(rule.requests, rule.window, now)
        if not self.client.is_configured:
            return self._degraded(identifier, rule.requests, rule.window, now)

        key = self.keys.rate_limit(identifier, endpoint)
        pipe = self.client.pipeline()
        pipe.zremrangebyscore(key, 0, now - rule.window * 1000)
        pipe.zcard(key)
        results = await pipe.exec()
        if results is None:
            return self._degraded(identifier, rule.requests, rule.window, now)

        remaining = max(0, rule.requests - int(results[1] or 0))
        return RateLimitResult(
            success=remaining > 0,
            limit=rule.requests,
            remaining=remaining,
            reset=now + rule.window * 1000,
        )

    @staticmethod
    def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset),
        }
        if result.retry_after is not None:
            headers["Retry-After"] = str(result.retry_after)
        return headers
