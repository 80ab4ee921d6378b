"""Pluggable key-value cache for kvcache.

One synchronous interface (get/set/delete/incr/decr/close) in front of
interchangeable backends, selected by a connection descriptor.

Examples:
    In-memory (default): locmem://
    In-memory, named database with 5 minute default TTL: locmem:///sessions?expiration=5m
    Redis: redis://localhost:6379/0
    Redis with auth and key prefix: redis://:password@host:6379/0?prefix=app
"""

from .base import Cache, CacheDriver
from .config import CacheConfig, setup_logging
from .errors import (
    BackendUnavailable,
    CacheError,
    DriverRegistrationError,
    InvalidConnection,
    InvalidSetting,
    MalformedDescriptor,
    NotANumber,
    NotFound,
    UnknownDriver,
)
from .locmem import LocmemDriver, MemoryStore
from .plugins import load_plugins
from .redis import RedisDriver
from .registry import (
    DriverRegistry,
    default_registry,
    drivers,
    open,
    open_connection,
    open_default,
    register,
)

register("locmem", LocmemDriver())
register("redis", RedisDriver())

__all__ = [
    "Cache",
    "CacheDriver",
    "CacheConfig",
    "setup_logging",
    "CacheError",
    "MalformedDescriptor",
    "UnknownDriver",
    "InvalidSetting",
    "NotFound",
    "NotANumber",
    "InvalidConnection",
    "BackendUnavailable",
    "DriverRegistrationError",
    "DriverRegistry",
    "default_registry",
    "register",
    "drivers",
    "open",
    "open_connection",
    "open_default",
    "load_plugins",
    "LocmemDriver",
    "MemoryStore",
    "RedisDriver",
]
