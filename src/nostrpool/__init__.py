r"""nostrpool -- asyncio client for talking to many Nostr relays at once.

A [RelayPool][nostrpool.core.pool.RelayPool] keeps one self-healing
session per relay, publishes signed events to all of them and merges their
subscription streams into one de-duplicated, validated stream per
subscription.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
               core            Sessions, pool, logging, metrics
             /   |   \
          nips   |   utils     Event builders, key loading, transport
             \   |   /
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Keys, events, filters, wire messages and relay URLs.
    nips: Event builders and profile metadata.
    utils: Key loading from the environment and WebSocket transport.
    core: RelaySession, RelayPool, logging, metrics, YAML configuration.

Note:
    For lightweight usage, import directly from subpackages::

        from nostrpool.models import Event, Filter
        from nostrpool.core import RelayPool

    Top-level imports (``from nostrpool import RelayPool``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrpool")

__all__ = [
    "Event",
    "EventKind",
    "Filter",
    "Keys",
    "Logger",
    "NetworkType",
    "ProfileMetadata",
    "RelayPool",
    "RelayPoolConfig",
    "RelaySession",
    "RelayState",
    "RelayUrl",
    "Subscription",
    "UnsignedEvent",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("nostrpool.core", "Logger"),
    "RelayPool": ("nostrpool.core", "RelayPool"),
    "RelayPoolConfig": ("nostrpool.core", "RelayPoolConfig"),
    "RelaySession": ("nostrpool.core", "RelaySession"),
    "Subscription": ("nostrpool.core", "Subscription"),
    "Event": ("nostrpool.models", "Event"),
    "EventKind": ("nostrpool.models", "EventKind"),
    "Filter": ("nostrpool.models", "Filter"),
    "Keys": ("nostrpool.models", "Keys"),
    "NetworkType": ("nostrpool.models", "NetworkType"),
    "RelayState": ("nostrpool.models", "RelayState"),
    "RelayUrl": ("nostrpool.models", "RelayUrl"),
    "UnsignedEvent": ("nostrpool.models", "UnsignedEvent"),
    "ProfileMetadata": ("nostrpool.nips", "ProfileMetadata"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrpool' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
