"""Redis cache backend for multi-process deployments.

Descriptor: ``redis://[user[:password]@]host[:port][/db][?options]``

Options:
    expiration: default TTL for ``set`` (duration, 0 = none)
    prefix: key prefix, joined to keys with ``:``
    pool_max_active: maximum connections in the pool (default 20)
    pool_max_idle: idle connections kept open (default 10)
    pool_idle_timeout: idle time after which a connection is checked with
        PING before reuse (default 200ms)
    pool_timeout: how long a caller waits for a free connection
        (default 20s, 0 waits forever)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .base import Cache, CacheDriver, CacheValue, to_bytes
from .dsn import OptionValues, parse_descriptor, parse_query, sanitize_descriptor
from .errors import (
    BackendUnavailable,
    InvalidConnection,
    InvalidSetting,
    NotANumber,
    NotFound,
)

logger = logging.getLogger(__name__)

OPTION_POOL_MAX_ACTIVE = "pool_max_active"
OPTION_POOL_MAX_IDLE = "pool_max_idle"
OPTION_POOL_IDLE_TIMEOUT = "pool_idle_timeout"
OPTION_POOL_TIMEOUT = "pool_timeout"
OPTION_EXPIRATION = "expiration"
OPTION_PREFIX = "prefix"

DEFAULT_POOL_MAX_ACTIVE = 20
DEFAULT_POOL_MAX_IDLE = 10
DEFAULT_POOL_IDLE_TIMEOUT = 0.2
DEFAULT_POOL_TIMEOUT = 20.0
DEFAULT_EXPIRATION = 0.0
DEFAULT_PREFIX = ""

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6379


@dataclass(frozen=True)
class RedisSettings:
    """Settings attached to one Redis cache."""

    expiration: float = DEFAULT_EXPIRATION
    prefix: str = DEFAULT_PREFIX
    pool_max_active: int = DEFAULT_POOL_MAX_ACTIVE
    pool_max_idle: int = DEFAULT_POOL_MAX_IDLE
    pool_idle_timeout: float = DEFAULT_POOL_IDLE_TIMEOUT
    pool_timeout: float = DEFAULT_POOL_TIMEOUT

    def prefixed(self, key: str) -> str:
        if not self.prefix:
            return key
        return f"{self.prefix}:{key}"

    @classmethod
    def from_options(cls, options: OptionValues) -> "RedisSettings":
        max_active = options.get_int(OPTION_POOL_MAX_ACTIVE, DEFAULT_POOL_MAX_ACTIVE)
        if max_active < 1:
            raise InvalidSetting(OPTION_POOL_MAX_ACTIVE, max_active, "positive integer")

        max_idle = options.get_int(OPTION_POOL_MAX_IDLE, DEFAULT_POOL_MAX_IDLE)
        if max_idle < 0:
            raise InvalidSetting(OPTION_POOL_MAX_IDLE, max_idle, "non-negative integer")

        return cls(
            expiration=options.get_duration(OPTION_EXPIRATION, DEFAULT_EXPIRATION),
            prefix=options.get_string(OPTION_PREFIX, DEFAULT_PREFIX),
            pool_max_active=max_active,
            pool_max_idle=max_idle,
            pool_idle_timeout=options.get_duration(
                OPTION_POOL_IDLE_TIMEOUT, DEFAULT_POOL_IDLE_TIMEOUT
            ),
            pool_timeout=options.get_duration(OPTION_POOL_TIMEOUT, DEFAULT_POOL_TIMEOUT),
        )

    @classmethod
    def from_query(cls, query: Optional[str]) -> "RedisSettings":
        return cls.from_options(parse_query(query))


class IdleCappedConnectionPool(redis.BlockingConnectionPool):
    """Blocking pool that keeps at most ``max_idle`` idle connections open.

    A connection released while the pool already holds ``max_idle`` open idle
    ones is disconnected before it goes back. The base class does all the
    bookkeeping; the closed connection reconnects on its next checkout.
    """

    def __init__(self, max_idle: int = DEFAULT_POOL_MAX_IDLE, **kwargs: Any) -> None:
        self.max_idle = max_idle
        super().__init__(**kwargs)

    def idle_connections(self) -> int:
        """Number of queued connections that still hold an open socket."""
        return sum(
            1
            for conn in list(self.pool.queue)
            if conn is not None and getattr(conn, "_sock", None) is not None
        )

    def release(self, connection: Any) -> None:
        self._checkpid()
        if self.owns_connection(connection) and self.idle_connections() >= self.max_idle:
            connection.disconnect()
        super().release(connection)


@dataclass(frozen=True)
class RedisDescriptor:
    """Connection target and settings parsed from a ``redis://`` descriptor."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    db: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    settings: RedisSettings = field(default_factory=RedisSettings)

    @classmethod
    def parse(cls, descriptor: str) -> "RedisDescriptor":
        parsed = parse_descriptor(descriptor)
        selector = parsed.selector
        return cls(
            host=parsed.hostname or DEFAULT_HOST,
            port=parsed.port or DEFAULT_PORT,
            db=int(selector) if selector.isdigit() else None,
            username=parsed.username,
            password=parsed.password,
            settings=RedisSettings.from_options(parsed.options),
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def pool(self) -> IdleCappedConnectionPool:
        """Build a connection pool for this target; nothing connects until first use."""
        settings = self.settings
        return IdleCappedConnectionPool(
            max_idle=settings.pool_max_idle,
            max_connections=settings.pool_max_active,
            timeout=settings.pool_timeout if settings.pool_timeout > 0 else None,
            host=self.host,
            port=self.port,
            db=self.db or 0,
            username=self.username,
            password=self.password,
            health_check_interval=settings.pool_idle_timeout,
        )


class RedisCache(Cache):
    """Cache backed by a Redis connection pool.

    Each call borrows a connection from the pool and returns it afterwards.
    """

    def __init__(
        self,
        pool: redis.ConnectionPool,
        settings: RedisSettings,
        client: Optional[redis.Redis] = None,
    ) -> None:
        self._pool = pool
        self._settings = settings
        self._client = client if client is not None else redis.Redis(connection_pool=pool)

    @property
    def settings(self) -> RedisSettings:
        return self._settings

    @property
    def pool(self) -> redis.ConnectionPool:
        return self._pool

    @contextmanager
    def _backend_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as exc:
            logger.warning(f"Redis {operation} failed: {exc}")
            raise BackendUnavailable(f"kvcache: redis {operation} failed: {exc}") from exc

    def get(self, key: str) -> bytes:
        with self._backend_errors("GET"):
            data = self._client.get(self._settings.prefixed(key))
        if data is None:
            raise NotFound(key)
        if isinstance(data, str):
            return data.encode("utf-8")
        return data

    def set(self, key: str, value: CacheValue, *, ttl: Optional[float] = None) -> None:
        if ttl is None:
            ttl = self._settings.expiration
        ms = int(ttl * 1000)

        with self._backend_errors("SET"):
            self._client.set(
                self._settings.prefixed(key),
                to_bytes(value),
                px=ms if ms > 0 else None,
            )

    def delete(self, key: str) -> None:
        with self._backend_errors("DEL"):
            removed = self._client.delete(self._settings.prefixed(key))
        if not removed:
            raise NotFound(key)

    def incr(self, key: str, delta: int = 1) -> int:
        with self._backend_errors("INCRBY"):
            try:
                return int(self._client.incrby(self._settings.prefixed(key), delta))
            except ResponseError as exc:
                raise NotANumber(key) from exc

    def decr(self, key: str, delta: int = 1) -> int:
        with self._backend_errors("DECRBY"):
            try:
                return int(self._client.decrby(self._settings.prefixed(key), delta))
            except ResponseError as exc:
                raise NotANumber(key) from exc

    def close(self) -> None:
        """Disconnect every connection in the pool, idle or in use."""
        self._pool.disconnect()
        logger.debug("Redis connection pool closed")


class RedisDriver(CacheDriver):
    """Driver producing :class:`RedisCache` instances."""

    def open(self, descriptor: str) -> Cache:
        target = RedisDescriptor.parse(descriptor)
        logger.info(f"Connecting to Redis: {sanitize_descriptor(descriptor)}")
        return RedisCache(target.pool(), target.settings)

    def open_connection(self, connection: Any, options: Optional[str] = None) -> Cache:
        """Open a cache on an existing ``redis.ConnectionPool`` or ``redis.Redis`` client."""
        settings = RedisSettings.from_query(options)
        if isinstance(connection, redis.Redis):
            return RedisCache(connection.connection_pool, settings, client=connection)
        if isinstance(connection, redis.ConnectionPool):
            return RedisCache(connection, settings)
        raise InvalidConnection("redis", connection)
