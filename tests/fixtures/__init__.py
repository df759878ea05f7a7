"""
Test fixtures for MealSync unit tests.
Provides an in-memory remote cache, a fake source store and sample meals.
"""

from .fake_remote import FakeClock, FakeRemoteClient
from .fake_source import FakeSourceStore
from .sample_meals import TODAY, USER_ID, Tiers, build_tiers, make_meal, sample_day

__all__ = [
    "FakeClock",
    "FakeRemoteClient",
    "FakeSourceStore",
    "TODAY",
    "Tiers",
    "USER_ID",
    "build_tiers",
    "make_meal",
    "sample_day",
]
