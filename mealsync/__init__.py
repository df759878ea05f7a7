"""
MealSync - multi-tier data consistency layer for meal logging

Device-local store, shared remote cache and a relational source of truth,
with optimistic writes, offline replay and sliding-window rate limiting.
"""

from mealsync.config import Config, DegradationPolicy, load_config
from mealsync.context import MealSyncContext, build_context
from mealsync.errors import (
    ConfigurationError,
    CorruptLocalDataError,
    ErrorKind,
    MealSyncError,
    RateLimitError,
    SourceWriteError,
    TierUnavailableError,
)
from mealsync.models import DailyMeals, MealItem, MealType, SyncAction, SyncQueueItem, UserProfile

__version__ = "1.0.0"

__all__ = [
    "Config",
    "ConfigurationError",
    "CorruptLocalDataError",
    "DailyMeals",
    "DegradationPolicy",
    "ErrorKind",
    "MealItem",
    "MealSyncContext",
    "MealSyncError",
    "MealType",
    "RateLimitError",
    "SourceWriteError",
    "SyncAction",
    "SyncQueueItem",
    "TierUnavailableError",
    "UserProfile",
    "build_context",
    "load_config",
]
