"""
Device storage backends for the local persistent store.

Any durable string key-value API with get/set/remove/get-all-keys/
multi-remove can back the local store. Two bindings are provided:
- FileStorageBackend: one file per key under a directory
- MemoryStorageBackend: process memory, for tests and ephemeral use
"""

import asyncio
import base64
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol


class StorageBackend(Protocol):
    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...

    async def get_all_keys(self) -> List[str]: ...

    async def multi_remove(self, keys: List[str]) -> None: ...


class MemoryStorageBackend:
    """In-memory storage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def get_all_keys(self) -> List[str]:
        return list(self._data.keys())

    async def multi_remove(self, keys: List[str]) -> None:
        for key in keys:
            self._data.pop(key, None)


class FileStorageBackend:
    """
    One file per key. File names are the url-safe base64 of the key, so any
    key (including ':' and '@') maps to a valid, reversible file name.
    Blocking file I/O runs in the default executor.
    """

    SUFFIX = ".json"

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        name = base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")
        return self.directory / f"{name}{self.SUFFIX}"

    @classmethod
    def _key_from_name(cls, name: str) -> Optional[str]:
        if not name.endswith(cls.SUFFIX):
            return None
        try:
            return base64.urlsafe_b64decode(name[: -len(cls.SUFFIX)]).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            return None

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def _remove(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def _list(self) -> List[str]:
        keys = []
        for entry in self.directory.iterdir():
            key = self._key_from_name(entry.name)
            if key is not None:
                keys.append(key)
        return keys

    async def get_item(self, key: str) -> Optional[str]:
        return await self._run(self._read, key)

    async def set_item(self, key: str, value: str) -> None:
        await self._run(self._write, key, value)

    async def remove_item(self, key: str) -> None:
        await self._run(self._remove, key)

    async def get_all_keys(self) -> List[str]:
        return await self._run(self._list)

    async def multi_remove(self, keys: List[str]) -> None:
        for key in keys:
            await self._run(self._remove, key)
