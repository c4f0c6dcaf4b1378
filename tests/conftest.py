"""Shared fixtures for rate limiting tests."""

import pytest


class FakeClock:
    """Manually advanced epoch-milliseconds clock."""

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += seconds * 1000


@pytest.fixture
def clock():
    """Fake clock starting at a fixed epoch time."""
    return FakeClock()
