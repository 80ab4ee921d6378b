"""Environment configuration and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_URL = "locmem://"
DEFAULT_LOG_LEVEL = "WARNING"


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip() or default
    return str(value)


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in str(value).split(",") if item.strip()]


@dataclass(frozen=True)
class CacheConfig:
    """Cache configuration read from the environment.

    Attributes:
        url: Descriptor opened by ``open_default`` (``KVCACHE_URL``)
        log_level: Level used by ``setup_logging`` (``KVCACHE_LOG_LEVEL``)
        plugins: Modules whose ``register(registry)`` adds drivers (``KVCACHE_DRIVERS``)
    """

    url: str = DEFAULT_URL
    log_level: str = DEFAULT_LOG_LEVEL
    plugins: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        return cls(
            url=_as_str(os.getenv("KVCACHE_URL"), DEFAULT_URL),
            log_level=_as_str(os.getenv("KVCACHE_LOG_LEVEL"), DEFAULT_LOG_LEVEL).upper(),
            plugins=_as_list(os.getenv("KVCACHE_DRIVERS")),
        )


def setup_logging(level_override: Optional[str] = None) -> None:
    """Configure root logging using the environment or an override."""

    level_name = (level_override or CacheConfig.from_env().log_level or "WARNING").upper()

    if level_name in {"NO", "NONE", "OFF"}:
        # Use a level above CRITICAL to ensure all logging is effectively disabled
        level = logging.CRITICAL + 10
    else:
        level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )

    logging.getLogger("kvcache").setLevel(level)

    # Keep the redis client logger at INFO or higher
    logging.getLogger("redis").setLevel(max(level, logging.INFO))
