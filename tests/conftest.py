"""Pytest configuration and fixtures for kvcache tests."""

import logging

import pytest

from kvcache.locmem import LocmemDriver, MemoryStore
from kvcache.redis import RedisDriver
from kvcache.registry import DriverRegistry


class FakeClock:
    """Manually advanced time source for expiration tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep developer configuration out of the tests."""
    for name in ("KVCACHE_URL", "KVCACHE_LOG_LEVEL", "KVCACHE_DRIVERS"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """Fresh in-memory store driven by the fake clock."""
    return MemoryStore(clock=clock)


@pytest.fixture
def registry(store):
    """Registry with the built-in drivers, isolated from the default one."""
    reg = DriverRegistry()
    reg.register("locmem", LocmemDriver(store))
    reg.register("redis", RedisDriver())
    return reg


@pytest.fixture
def redis_client():
    """fakeredis client backed by a private server."""
    fakeredis = pytest.importorskip("fakeredis")
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer())
    yield client
    client.flushall()


# Disable logging to reduce noise during tests
logging.getLogger().setLevel(logging.ERROR)
