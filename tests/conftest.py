"""Shared fixtures for the chatcache test suite."""

import pytest

from chatcache.config import reset_settings


class FakeClock:
    """Advanceable time source for stores."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _clean_settings():
    """Reset the settings singleton before and after each test."""
    reset_settings()
    yield
    reset_settings()
