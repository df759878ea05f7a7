"""
Unit tests for device storage backends.
"""

import pytest

from mealsync.local.storage import FileStorageBackend, MemoryStorageBackend


class TestMemoryStorageBackend:
    """Tests for the in-memory backend."""

    @pytest.mark.asyncio
    async def test_basic_ops(self):
        backend = MemoryStorageBackend({"a": "1"})
        assert await backend.get_item("a") == "1"
        await backend.set_item("b", "2")
        assert sorted(await backend.get_all_keys()) == ["a", "b"]
        await backend.multi_remove(["a", "missing"])
        assert await backend.get_all_keys() == ["b"]
        await backend.remove_item("b")
        assert await backend.get_item("b") is None


class TestFileStorageBackend:
    """Tests for the one-file-per-key backend."""

    @pytest.mark.asyncio
    async def test_keys_with_separators_roundtrip(self, tmp_path):
        backend = FileStorageBackend(str(tmp_path / "local"))
        key = "@mealsync:meals:user-1:2026-10-17"

        await backend.set_item(key, '{"data": 1}')

        assert await backend.get_item(key) == '{"data": 1}'
        assert await backend.get_all_keys() == [key]

    @pytest.mark.asyncio
    async def test_overwrite_leaves_no_temp_files(self, tmp_path):
        backend = FileStorageBackend(str(tmp_path))
        await backend.set_item("k", "one")
        await backend.set_item("k", "two")

        assert await backend.get_item("k") == "two"
        assert [p.suffix for p in tmp_path.iterdir()] == [".json"]

    @pytest.mark.asyncio
    async def test_remove_and_foreign_files(self, tmp_path):
        backend = FileStorageBackend(str(tmp_path))
        (tmp_path / "README.txt").write_text("not a key")
        await backend.set_item("a", "1")
        await backend.set_item("b", "2")

        await backend.multi_remove(["a", "never-set"])
        await backend.remove_item("missing")

        assert await backend.get_all_keys() == ["b"]
        assert await backend.get_item("a") is None

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path):
        await FileStorageBackend(str(tmp_path)).set_item("k", "persisted")
        assert await FileStorageBackend(str(tmp_path)).get_item("k") == "persisted"
