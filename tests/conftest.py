"""Shared fixtures for the SnapName test suite."""

import pytest

from snapname.app.core.cache import reset_cache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolated_caches():
    """Shared caches must not leak entries between tests."""
    reset_cache()
    yield
    reset_cache()
