"""
Unit tests for KeyedAsyncLock.
"""

import asyncio

import pytest

from mealsync.services.locking import KeyedAsyncLock


class TestKeyedAsyncLock:
    """Tests for per-key mutual exclusion."""

    @pytest.mark.asyncio
    async def test_same_key_serializes(self):
        locks = KeyedAsyncLock()
        order = []

        async def worker(name):
            async with locks.hold(("u1", "2026-10-17")):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_different_keys_interleave(self):
        locks = KeyedAsyncLock()
        order = []

        async def worker(key):
            async with locks.hold(key):
                order.append(f"{key}-start")
                await asyncio.sleep(0.01)
                order.append(f"{key}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order[:2] == ["a-start", "b-start"]

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self):
        locks = KeyedAsyncLock()
        async with locks.hold("k"):
            assert locks.locked("k") is True
            assert len(locks) == 1
        assert locks.locked("k") is False
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = KeyedAsyncLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("boom")
        assert len(locks) == 0
