import logging
from importlib import import_module
from typing import Any, Iterable, List, Optional

from .config import CacheConfig
from .errors import DriverRegistrationError
from .registry import DriverRegistry, default_registry

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "kvcache.drivers"


def _iter_entry_points() -> Iterable[Any]:
    from importlib.metadata import entry_points

    return entry_points(group=ENTRY_POINT_GROUP)


def _as_driver(obj: Any) -> Any:
    # Entry points may name a driver class or a ready-made instance
    if isinstance(obj, type):
        return obj()
    return obj


def load_plugins(
    registry: Optional[DriverRegistry] = None,
    *,
    config: Optional[CacheConfig] = None,
) -> List[str]:
    """Discover and register third-party cache drivers.

    Supports two mechanisms (both optional):
    - Entry points: group 'kvcache.drivers'. The entry name is the scheme
      and the object is a CacheDriver class or instance.
    - Environment variable: KVCACHE_DRIVERS, comma-separated module paths.
      Each module must expose a 'register(registry)' callable.

    Names that are already registered are skipped with a warning.

    Returns:
        Names of the drivers that were added
    """
    registry = registry if registry is not None else default_registry
    config = config or CacheConfig.from_env()
    before = set(registry.drivers())

    # 1) Python entry points
    try:
        eps = list(_iter_entry_points())
    except Exception as e:
        logger.debug(f"Entry point discovery skipped: {e}")
        eps = []

    for ep in eps:
        if ep.name in registry:
            logger.warning(f"Cache driver '{ep.name}' already registered, skipping entry point")
            continue
        try:
            registry.register(ep.name, _as_driver(ep.load()))
            logger.info(f"Loaded cache driver from entry point: {ep.name}")
        except DriverRegistrationError:
            raise
        except Exception as e:
            logger.warning(f"Failed loading cache driver entry point {ep.name}: {e}")

    # 2) Environment-driven module list
    for mod_path in config.plugins:
        try:
            module = import_module(mod_path)
            register_fn = getattr(module, "register", None)
            if callable(register_fn):
                register_fn(registry)
                logger.info(f"Loaded cache driver module: {mod_path}")
            else:
                logger.warning(f"Driver module {mod_path} has no callable 'register'")
        except DriverRegistrationError:
            raise
        except Exception as e:
            logger.warning(f"Failed loading driver module {mod_path}: {e}")

    return sorted(set(registry.drivers()) - before)
