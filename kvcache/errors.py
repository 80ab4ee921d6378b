"""Error taxonomy shared by the registry and every cache backend."""

from __future__ import annotations

from typing import Any, Optional


class CacheError(Exception):
    """Base class for recoverable cache errors."""

    pass


class MalformedDescriptor(CacheError, ValueError):
    """Raised when a connection descriptor or option string cannot be parsed."""

    def __init__(self, descriptor: str, reason: str = "") -> None:
        self.descriptor = descriptor
        self.reason = reason
        message = f"kvcache: malformed descriptor {descriptor!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnknownDriver(CacheError, LookupError):
    """Raised when no driver is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"kvcache: unknown driver {name!r} (forgotten plugin?)")


class InvalidSetting(CacheError, ValueError):
    """Raised when an option value does not match its type grammar."""

    def __init__(self, key: str, value: Any, expected: str = "") -> None:
        self.key = key
        self.value = value
        message = f"kvcache: invalid value {value!r} for setting {key!r}"
        if expected:
            message = f"{message} (expected {expected})"
        super().__init__(message)


class NotFound(CacheError, KeyError):
    """Raised when a key is absent or has expired."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"kvcache: item {self.key!r} not found"


class NotANumber(CacheError, ValueError):
    """Raised by strict counters when the stored value is not a base-10 integer."""

    def __init__(self, key: str, value: Optional[bytes] = None) -> None:
        self.key = key
        self.value = value
        super().__init__(f"kvcache: value stored under {key!r} is not an integer")


class InvalidConnection(CacheError, TypeError):
    """Raised when a driver is handed a connection object it cannot use."""

    def __init__(self, driver: str, connection: Any) -> None:
        self.driver = driver
        self.connection = connection
        super().__init__(
            f"kvcache: driver {driver!r} cannot use connection of type "
            f"{type(connection).__name__}"
        )


class BackendUnavailable(CacheError):
    """Raised when the storage behind a cache cannot be reached.

    The original backend exception is kept as ``__cause__``.
    """

    pass


class DriverRegistrationError(RuntimeError):
    """Raised on registry misuse (missing driver or duplicate name).

    This is a configuration defect, not a runtime condition, so it does not
    derive from :class:`CacheError`.
    """

    pass
