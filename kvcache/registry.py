"""Driver registry and the descriptor based entry points.

Drivers are registered once per scheme name, normally at import time, and
looked up by ``open`` / ``open_connection``. Registration is not
synchronised with lookups: register every driver before opening caches
from several threads.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .base import Cache, CacheDriver
from .config import CacheConfig
from .dsn import parse_descriptor, sanitize_descriptor
from .errors import DriverRegistrationError, UnknownDriver

logger = logging.getLogger(__name__)


class DriverRegistry:
    """Mapping of scheme names to cache drivers."""

    def __init__(self) -> None:
        self._drivers: Dict[str, CacheDriver] = {}

    def register(self, name: str, driver: CacheDriver) -> None:
        """Make ``driver`` available under ``name``.

        Raises:
            DriverRegistrationError: if ``driver`` is None or ``name`` is taken
        """
        if driver is None:
            raise DriverRegistrationError("kvcache: register driver is None")
        if name in self._drivers:
            raise DriverRegistrationError(f"kvcache: register called twice for driver {name}")
        self._drivers[name] = driver
        logger.debug(f"Registered cache driver: {name}")

    def drivers(self) -> List[str]:
        """Registered driver names in lexicographic order."""
        return sorted(self._drivers)

    def get(self, name: str) -> CacheDriver:
        try:
            return self._drivers[name]
        except KeyError:
            raise UnknownDriver(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._drivers

    def open(self, descriptor: str) -> Cache:
        """Open a cache from a descriptor such as ``redis://localhost:6379/0?prefix=app``.

        Raises:
            MalformedDescriptor: if the descriptor cannot be parsed
            UnknownDriver: if no driver is registered for its scheme

        Errors raised by the driver propagate unchanged.
        """
        parsed = parse_descriptor(descriptor)
        driver = self.get(parsed.scheme)
        logger.debug(f"Opening cache: {sanitize_descriptor(descriptor)}")
        return driver.open(descriptor)

    def open_connection(
        self, name: str, connection: Any, options: Optional[str] = None
    ) -> Cache:
        """Open a cache around an existing connection object.

        Args:
            name: Registered driver name
            connection: Driver specific connection (e.g. a ``redis.ConnectionPool``)
            options: Query-style option string, e.g. ``"expiration=10"``

        Raises:
            UnknownDriver: if ``name`` is not registered
        """
        driver = self.get(name)
        return driver.open_connection(connection, options or "")


# Process-wide registry used by the module level helpers
default_registry = DriverRegistry()


def register(name: str, driver: CacheDriver) -> None:
    default_registry.register(name, driver)


def drivers() -> List[str]:
    return default_registry.drivers()


def open(descriptor: str) -> Cache:
    return default_registry.open(descriptor)


def open_connection(name: str, connection: Any, options: Optional[str] = None) -> Cache:
    return default_registry.open_connection(name, connection, options)


def open_default(config: Optional[CacheConfig] = None) -> Cache:
    """Open the cache configured by ``KVCACHE_URL`` (``locmem://`` when unset)."""
    config = config or CacheConfig.from_env()
    return default_registry.open(config.url)
