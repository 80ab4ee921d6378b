"""Base cache abstractions shared by every backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, Callable, Optional, Type, Union

from .errors import NotFound

# Values accepted by Cache.set; anything else is rejected.
CacheValue = Union[bytes, bytearray, memoryview, str]


def to_bytes(value: CacheValue) -> bytes:
    """Coerce a cache value to bytes (``str`` is encoded as UTF-8)."""
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"cache values must be bytes or str, got {type(value).__name__}")


class Cache(ABC):
    """Abstract base class for caches returned by drivers.

    Every operation is synchronous and safe to call from several threads.
    """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Get a value from the cache.

        Args:
            key: Cache key

        Returns:
            Stored bytes

        Raises:
            NotFound: if the key is absent or expired
        """
        ...

    @abstractmethod
    def set(self, key: str, value: CacheValue, *, ttl: Optional[float] = None) -> None:
        """Set a value in the cache, replacing any previous value.

        Args:
            key: Cache key
            value: Bytes to store (``str`` is stored as UTF-8)
            ttl: Time-to-live in seconds. ``None`` uses the cache's default
                expiration, ``0`` or less stores the value without expiration.
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete a value from the cache.

        Raises:
            NotFound: if the key was not present
        """
        ...

    @abstractmethod
    def incr(self, key: str, delta: int = 1) -> int:
        """Increment a counter and return the new value."""
        ...

    @abstractmethod
    def decr(self, key: str, delta: int = 1) -> int:
        """Decrement a counter and return the new value."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the resources held by this cache."""
        ...

    # Convenience methods for common patterns

    def get_or_set(
        self,
        key: str,
        factory: Union[Callable[[], CacheValue], CacheValue],
        *,
        ttl: Optional[float] = None,
    ) -> bytes:
        """Get value from cache, or compute and cache it.

        Args:
            key: Cache key
            factory: Callable returning the value, or the value itself
            ttl: Time-to-live in seconds (see :meth:`set`)

        Returns:
            Cached or computed value as bytes
        """
        try:
            return self.get(key)
        except NotFound:
            pass

        value = factory() if callable(factory) else factory
        data = to_bytes(value)
        self.set(key, data, ttl=ttl)
        return data

    def __enter__(self) -> "Cache":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()


class CacheDriver(ABC):
    """Factory producing caches for one descriptor scheme."""

    @abstractmethod
    def open(self, descriptor: str) -> Cache:
        """Open a cache from a full descriptor string."""
        ...

    @abstractmethod
    def open_connection(self, connection: Any, options: Optional[str] = None) -> Cache:
        """Open a cache around an existing connection object.

        Args:
            connection: Backend specific connection handle
            options: Query-style option string, e.g. ``"expiration=10&prefix=app"``
        """
        ...
