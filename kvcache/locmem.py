"""In-memory cache backend for single-process deployments and tests.

Descriptor: ``locmem://[/database][?expiration=..&strict_counters=..&cleanup_interval=..]``

All caches opened through one driver share that driver's :class:`MemoryStore`;
a cache is only a view onto one named database inside the store. Nothing is
shared across processes and nothing is written to disk.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .base import Cache, CacheDriver, CacheValue, to_bytes
from .dsn import OptionValues, parse_descriptor, parse_query
from .errors import InvalidConnection, NotANumber, NotFound

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "default"

OPTION_EXPIRATION = "expiration"
OPTION_STRICT_COUNTERS = "strict_counters"
OPTION_CLEANUP_INTERVAL = "cleanup_interval"
OPTION_DATABASE = "database"

DEFAULT_EXPIRATION = 0.0
DEFAULT_CLEANUP_INTERVAL = 0.0

_COUNTER_RE = re.compile(rb"[+-]?[0-9]+")


def _parse_counter(value: bytes) -> Optional[int]:
    if not _COUNTER_RE.fullmatch(value):
        return None
    return int(value)


@dataclass(frozen=True)
class CacheItem:
    """Stored value with an absolute expiration timestamp (``None`` = never)."""

    value: bytes
    expires_at: Optional[float] = None

    def is_valid(self, now: float) -> bool:
        if self.expires_at is None:
            return True
        return now < self.expires_at


@dataclass(frozen=True)
class LocmemSettings:
    """Settings attached to one in-memory cache.

    Attributes:
        database: Name of the database inside the store
        expiration: Default TTL in seconds for ``set`` (0 disables it)
        strict_counters: Raise ``NotANumber`` instead of resetting counters
            whose stored value is not an integer
        cleanup_interval: Seconds between background purges of expired
            items (0 disables the purge thread)
    """

    database: str = DEFAULT_DATABASE
    expiration: float = DEFAULT_EXPIRATION
    strict_counters: bool = False
    cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL

    @classmethod
    def from_options(cls, options: OptionValues, database: str = "") -> "LocmemSettings":
        name = database.strip().strip("/")
        if not name:
            name = options.get_string(OPTION_DATABASE, "").strip().strip("/")

        return cls(
            database=name or DEFAULT_DATABASE,
            expiration=options.get_duration(OPTION_EXPIRATION, DEFAULT_EXPIRATION),
            strict_counters=options.get_bool(OPTION_STRICT_COUNTERS, False),
            cleanup_interval=options.get_duration(
                OPTION_CLEANUP_INTERVAL, DEFAULT_CLEANUP_INTERVAL
            ),
        )

    @classmethod
    def from_descriptor(cls, descriptor: str) -> "LocmemSettings":
        parsed = parse_descriptor(descriptor)
        return cls.from_options(parsed.options, parsed.selector)

    @classmethod
    def from_query(cls, query: Optional[str]) -> "LocmemSettings":
        return cls.from_options(parse_query(query))


class MemoryStore:
    """Thread-safe storage of named databases of cache items.

    One lock guards every database, so each operation is atomic with respect
    to every other operation on the store.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._databases: Dict[str, Dict[str, CacheItem]] = {}
        self._lock = threading.Lock()

        self._purge_lock = threading.Lock()
        self._purge_users = 0
        self._purge_interval = 0.0
        self._purge_stop = threading.Event()
        self._purger: Optional[threading.Thread] = None

    def _database(self, name: str) -> Dict[str, CacheItem]:
        # Caller must hold self._lock.
        db = self._databases.get(name)
        if db is None:
            db = self._databases[name] = {}
            logger.debug(f"Created in-memory database '{name}'")
        return db

    def databases(self) -> List[str]:
        """Names of every database created so far."""
        with self._lock:
            return sorted(self._databases)

    def get(self, database: str, key: str) -> bytes:
        with self._lock:
            db = self._database(database)
            item = db.get(key)
            if item is None:
                raise NotFound(key)
            if not item.is_valid(self._clock()):
                del db[key]
                raise NotFound(key)
            return item.value

    def set(self, database: str, key: str, value: bytes, ttl: Optional[float] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl if ttl and ttl > 0 else None
            self._database(database)[key] = CacheItem(value=value, expires_at=expires_at)

    def delete(self, database: str, key: str) -> None:
        """Remove ``key``, expired or not; only ``get`` treats expired items as missing."""
        with self._lock:
            if self._database(database).pop(key, None) is None:
                raise NotFound(key)

    def add(self, database: str, key: str, delta: int, *, strict: bool = False) -> int:
        """Add ``delta`` to the integer stored under ``key`` and return the result.

        A missing item counts as 0. A stored item is parsed even when its TTL
        has passed but no ``get`` has removed it yet. A value that is not a
        base-10 integer also counts as 0 unless ``strict`` is set, in which
        case ``NotANumber`` is raised and the item is left untouched. The new
        item never expires.
        """
        with self._lock:
            db = self._database(database)
            current = 0
            item = db.get(key)
            if item is not None:
                parsed = _parse_counter(item.value)
                if parsed is not None:
                    current = parsed
                elif strict:
                    raise NotANumber(key, item.value)

            result = current + delta
            db[key] = CacheItem(value=str(result).encode("ascii"))
            return result

    def purge_expired(self) -> int:
        """Remove every expired item from every database."""
        with self._lock:
            now = self._clock()
            removed = 0
            for db in self._databases.values():
                expired = [key for key, item in db.items() if not item.is_valid(now)]
                for key in expired:
                    del db[key]
                removed += len(expired)

        if removed:
            logger.debug(f"Purged {removed} expired in-memory cache items")
        return removed

    @property
    def purging(self) -> bool:
        """Whether the background purge thread is running."""
        return self._purger is not None

    def start_purging(self, interval: float) -> None:
        """Run ``purge_expired`` every ``interval`` seconds in a background thread.

        The store runs at most one purge thread, at the shortest interval
        requested so far. Every call must be paired with ``stop_purging``;
        the thread stops when the last user is gone.
        """
        with self._purge_lock:
            self._purge_users += 1
            if self._purger is not None:
                self._purge_interval = min(self._purge_interval, interval)
                return

            self._purge_interval = interval
            stop = threading.Event()
            self._purge_stop = stop
            self._purger = threading.Thread(
                target=self._purge_periodically,
                args=(stop,),
                name="kvcache-locmem-purge",
                daemon=True,
            )
            self._purger.start()
            logger.debug(f"Started in-memory purge thread (interval: {interval}s)")

    def stop_purging(self) -> None:
        with self._purge_lock:
            if self._purge_users == 0:
                return
            self._purge_users -= 1
            if self._purge_users or self._purger is None:
                return

            self._purge_stop.set()
            self._purger.join()
            self._purger = None
            logger.debug("Stopped in-memory purge thread")

    def _purge_periodically(self, stop: threading.Event) -> None:
        while not stop.wait(self._purge_interval):
            try:
                self.purge_expired()
            except Exception as e:
                logger.error(f"Error in in-memory cache purge: {e}")


_default_store = MemoryStore()


def default_store() -> MemoryStore:
    """Process-wide store used by the registered ``locmem`` driver."""
    return _default_store


class LocmemCache(Cache):
    """View of one database in a :class:`MemoryStore`.

    With ``cleanup_interval`` set, the cache joins the store's purge thread
    until ``close()`` is called.
    """

    def __init__(self, store: MemoryStore, settings: LocmemSettings) -> None:
        self._store = store
        self._settings = settings
        self._purging = False

        if settings.cleanup_interval > 0:
            store.start_purging(settings.cleanup_interval)
            self._purging = True

    @property
    def settings(self) -> LocmemSettings:
        return self._settings

    @property
    def store(self) -> MemoryStore:
        return self._store

    def get(self, key: str) -> bytes:
        return self._store.get(self._settings.database, key)

    def set(self, key: str, value: CacheValue, *, ttl: Optional[float] = None) -> None:
        if ttl is None:
            ttl = self._settings.expiration
        self._store.set(self._settings.database, key, to_bytes(value), ttl)

    def delete(self, key: str) -> None:
        self._store.delete(self._settings.database, key)

    def incr(self, key: str, delta: int = 1) -> int:
        return self._store.add(
            self._settings.database, key, delta, strict=self._settings.strict_counters
        )

    def decr(self, key: str, delta: int = 1) -> int:
        return self._store.add(
            self._settings.database, key, -delta, strict=self._settings.strict_counters
        )

    def close(self) -> None:
        """Leave the store's purge thread; the data stays in the store."""
        if not self._purging:
            return
        self._purging = False
        self._store.stop_purging()


class LocmemDriver(CacheDriver):
    """Driver producing :class:`LocmemCache` views onto one store."""

    def __init__(self, store: Optional[MemoryStore] = None) -> None:
        self.store = store if store is not None else default_store()

    def open(self, descriptor: str) -> Cache:
        settings = LocmemSettings.from_descriptor(descriptor)
        logger.debug(f"Opening in-memory cache (database: {settings.database})")
        return LocmemCache(self.store, settings)

    def open_connection(self, connection: Any, options: Optional[str] = None) -> Cache:
        """Open a cache on ``connection``, which must be a ``MemoryStore`` or None.

        ``None`` selects this driver's own store.
        """
        if connection is None:
            store = self.store
        elif isinstance(connection, MemoryStore):
            store = connection
        else:
            raise InvalidConnection("locmem", connection)
        return LocmemCache(store, LocmemSettings.from_query(options))
