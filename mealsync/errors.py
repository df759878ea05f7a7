"""
Error taxonomy for the MealSync consistency layer.

Tier failures are contained at the tier boundary. Only source write
failures, rate-limit rejections and unreachable source reads cross into
caller-visible paths.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds the layer can report."""
    TIER_UNAVAILABLE = "tier_unavailable"
    SOURCE_WRITE_FAILED = "source_write_failed"
    RATE_LIMITED = "rate_limited"
    CORRUPT_LOCAL_DATA = "corrupt_local_data"


class MealSyncError(Exception):
    """Base class for all errors raised by mealsync."""

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def __str__(self) -> str:
        return self.message


class ConfigurationError(MealSyncError):
    """Invalid or incomplete configuration detected at startup."""


class TierUnavailableError(MealSyncError):
    """A storage tier could not be reached."""

    kind = ErrorKind.TIER_UNAVAILABLE

    def __init__(self, tier: str, message: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message or f"Tier '{tier}' is unavailable")
        self.tier = tier
        self.cause = cause


class SourceWriteError(MealSyncError):
    """The source-of-truth store rejected or failed a write."""

    kind = ErrorKind.SOURCE_WRITE_FAILED

    def __init__(self, operation: str, message: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message or f"Source write failed during '{operation}'")
        self.operation = operation
        self.cause = cause


class RateLimitError(MealSyncError):
    """Request rejected by the sliding-window rate limiter."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, result: Any, message: Optional[str] = None):
        retry_after = getattr(result, "retry_after", None)
        super().__init__(
            message or f"Rate limit exceeded. Try again in {retry_after} seconds."
        )
        self.result = result

    @property
    def retry_after(self) -> Optional[int]:
        return getattr(self.result, "retry_after", None)


class CorruptLocalDataError(MealSyncError):
    """A local entry could not be decoded. Contained by the local store."""

    kind = ErrorKind.CORRUPT_LOCAL_DATA

    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or f"Corrupt local entry: {key}")
        self.key = key
