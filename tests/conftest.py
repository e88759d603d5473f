"""Shared fixtures for the timer tracker tests."""

import asyncio

import pytest

from timer_tracker.persistence import MemoryKeyValueStore
from timer_tracker.store import TimerStore


class RecordingSink:
    """Notification sink that remembers what it was told."""

    def __init__(self):
        self.halfway = []
        self.completed = []

    async def notify_halfway(self, timer):
        self.halfway.append(timer)

    async def notify_completion(self, timer):
        self.completed.append(timer)


class YieldingKeyValueStore(MemoryKeyValueStore):
    """In-memory backend whose writes suspend, like a real one would.

    With ``hold`` set, each write also waits for ``release`` after
    signalling ``entered``.
    """

    def __init__(self):
        super().__init__()
        self.hold = False
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        if self.hold:
            self.entered.set()
            await self.release.wait()
        await super().set(key, value)


@pytest.fixture
def gateway():
    return MemoryKeyValueStore()


@pytest.fixture
def store(gateway):
    return TimerStore(gateway)


@pytest.fixture
def yielding_gateway():
    return YieldingKeyValueStore()


@pytest.fixture
def yielding_store(yielding_gateway):
    return TimerStore(yielding_gateway)


@pytest.fixture
def sink():
    return RecordingSink()
