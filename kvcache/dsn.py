"""Connection descriptor parsing.

A descriptor looks like ``scheme://[user[:password]@]host[:port][/path][?query]``.
The scheme picks the driver, the path carries a backend specific selector
(database name or number) and the query holds ``key=value`` options that
each backend turns into its own settings object.

Examples:
    locmem://
    locmem:///sessions?expiration=5m
    redis://:secret@localhost:6379/4?prefix=app&pool_max_active=10
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional
from urllib.parse import unquote, unquote_plus, urlsplit

from .errors import InvalidSetting, MalformedDescriptor

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")

_NUMBER = r"(?:\d+(?:\.\d*)?|\.\d+)"
_BARE_NUMBER_RE = re.compile(rf"^{_NUMBER}$")
_DURATION_TERM_RE = re.compile(rf"({_NUMBER})(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def parse_duration(text: str) -> float:
    """Parse a duration into seconds.

    A bare number is taken as seconds (``"10"``, ``"0.5"``). Otherwise the
    value is one or more ``<number><unit>`` terms, e.g. ``"200ms"`` or
    ``"1h30m"``, with units ``ns``, ``us``, ``ms``, ``s``, ``m`` and ``h``.

    Raises:
        ValueError: if the text does not follow the grammar
    """
    value = text.strip()
    if not value:
        raise ValueError("empty duration")

    if _BARE_NUMBER_RE.match(value):
        return float(value)

    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_TERM_RE.match(value, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return total


class OptionValues(Mapping):
    """Read-only option lookup with typed accessors.

    Every accessor takes the default used when the key is missing or empty;
    a present value that does not match the type raises ``InvalidSetting``.
    """

    def __init__(self, values: Optional[Mapping] = None) -> None:
        self._values: Dict[str, str] = dict(values or {})

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"OptionValues({self._values!r})"

    def _raw(self, key: str) -> Optional[str]:
        value = self._values.get(key)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def get_string(self, key: str, default: str = "") -> str:
        value = self._values.get(key)
        return default if value is None else value

    def get_int(self, key: str, default: int = 0) -> int:
        raw = self._raw(key)
        if raw is None:
            return default
        try:
            return int(raw, 10)
        except ValueError:
            raise InvalidSetting(key, raw, "base-10 integer") from None

    def get_duration(self, key: str, default: float = 0.0) -> float:
        """Return a duration in seconds."""
        raw = self._raw(key)
        if raw is None:
            return default
        try:
            return parse_duration(raw)
        except ValueError:
            raise InvalidSetting(key, raw, "duration such as 10, 1.5s or 1h30m") from None

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self._raw(key)
        if raw is None:
            return default
        normalized = raw.lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
        raise InvalidSetting(key, raw, "boolean")


def parse_query(query: Optional[str]) -> OptionValues:
    """Parse an ampersand separated ``key=value`` option string.

    A field without ``=`` is an option with an empty value. When a key
    repeats, the last value wins.

    Raises:
        MalformedDescriptor: on an invalid percent escape or an empty key
    """
    if not query:
        return OptionValues()

    query = query.lstrip("?")
    if _BAD_ESCAPE_RE.search(query):
        raise MalformedDescriptor(query, "invalid percent escape")

    values: Dict[str, str] = {}
    for chunk in query.split("&"):
        if not chunk:
            continue
        key, _, value = chunk.partition("=")
        key = unquote_plus(key)
        if not key:
            raise MalformedDescriptor(query, "empty option name")
        values[key] = unquote_plus(value)
    return OptionValues(values)


@dataclass(frozen=True)
class Descriptor:
    """Parsed connection descriptor."""

    raw: str
    scheme: str
    username: Optional[str] = None
    password: Optional[str] = None
    hostname: Optional[str] = None
    port: Optional[int] = None
    path: str = ""
    options: OptionValues = field(default_factory=OptionValues)

    @property
    def selector(self) -> str:
        """Path with surrounding whitespace and separators removed."""
        return self.path.strip().strip("/")


def parse_descriptor(descriptor: str) -> Descriptor:
    """Split a descriptor into its scheme, location and options.

    Raises:
        MalformedDescriptor: if the descriptor cannot be parsed
    """
    if not isinstance(descriptor, str) or not descriptor.strip():
        raise MalformedDescriptor(str(descriptor), "empty descriptor")

    text = descriptor.strip()
    if "://" not in text:
        raise MalformedDescriptor(descriptor, "missing '://'")
    if _BAD_ESCAPE_RE.search(text):
        raise MalformedDescriptor(descriptor, "invalid percent escape")

    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError as exc:
        raise MalformedDescriptor(descriptor, str(exc)) from exc

    if not parts.scheme or not _SCHEME_RE.match(parts.scheme):
        raise MalformedDescriptor(descriptor, "missing or invalid scheme")

    return Descriptor(
        raw=descriptor,
        scheme=parts.scheme.lower(),
        username=unquote(parts.username) if parts.username else None,
        password=unquote(parts.password) if parts.password else None,
        hostname=parts.hostname,
        port=port,
        path=unquote(parts.path),
        options=parse_query(parts.query),
    )


def sanitize_descriptor(descriptor: str) -> str:
    """Remove the password from a descriptor for logging."""
    return re.sub(r":([^:@/]+)@", r":***@", descriptor)
