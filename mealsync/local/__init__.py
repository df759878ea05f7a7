"""MealSync device-local tier."""

from mealsync.local.local_store import LocalStore
from mealsync.local.network import NetworkMonitor, http_probe
from mealsync.local.storage import FileStorageBackend, MemoryStorageBackend, StorageBackend

__all__ = [
    "FileStorageBackend",
    "LocalStore",
    "MemoryStorageBackend",
    "NetworkMonitor",
    "StorageBackend",
    "http_probe",
]
