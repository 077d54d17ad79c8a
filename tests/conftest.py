"""Shared pytest fixtures for the consent banner."""

from __future__ import annotations

import pytest

from consent_banner import events
from consent_banner.client.backends import CookieJar, MemoryStorage
from consent_banner.schemas.consent import ClientConfig, ConsentRecord

CURRENT_VERSION = "2025-09-15"


@pytest.fixture(autouse=True)
def _reset_event_bus():
    """Each test gets a fresh bus; queues are bound to the test's event loop."""
    events.reset()
    yield
    events.reset()


@pytest.fixture()
def clock():
    """Mutable fake clock in seconds; call clock.advance(n) to move it."""

    class _Clock:
        def __init__(self) -> None:
            self.now = 1_700_000_000.0

        def __call__(self) -> float:
            return self.now

        def advance(self, seconds: float) -> None:
            self.now += seconds

    return _Clock()


@pytest.fixture()
def config():
    return ClientConfig(version=CURRENT_VERSION)


@pytest.fixture()
def storage():
    return MemoryStorage()


@pytest.fixture()
def jar(clock):
    return CookieJar(clock=clock)


@pytest.fixture()
def make_record():
    """Factory for valid ConsentRecords."""
    def _make(version: str = CURRENT_VERSION, timestamp: int = 1_700_000_000_000) -> ConsentRecord:
        return ConsentRecord(accepted=True, version=version, timestamp=timestamp)
    return _make
