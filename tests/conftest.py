"""Shared fixtures for corelay tests."""

import time
from typing import Callable

import pytest

from corelay.engine import CoroutineEngine
from corelay.types import EngineConfig


def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def engine():
    """Engine with a short poll interval so orphaning is observed quickly."""
    return CoroutineEngine(config=EngineConfig(poll_interval=0.01))


@pytest.fixture
def wait_until():
    """Bounded polling helper for state reached asynchronously."""
    return _wait_until
