r"""ringlink -- Federated web rings for independent sites.

Each node hosts rings it owns, mirrors rings it has joined on other
nodes, and talks to its peers over a small JSON protocol. Three async
services share one ring store:

```text
              services         Membership, ratings, health, sync, federation
             /        \
          core        utils    Store, pool, base service, logging / HTTP helpers
             \        /
              models           Pure dataclasses (zero I/O)
```

Attributes:
    models: Ring, member and identity records. Zero I/O.
    core: Ring store backends, connection pool, base service, exceptions,
        logging, metrics.
    utils: Federation endpoint URLs and bounded response reads.
    services: Membership and rating logic plus the HealthChecker,
        SyncAgent and Federation services.

Note:
    For lightweight usage, import directly from subpackages::

        from ringlink.models import HostedRing
        from ringlink.core import MemoryRingStore

    Top-level imports (``from ringlink import HostedRing``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("ringlink")

__all__ = [
    "BaseService",
    "Federation",
    "FederationConfig",
    "HealthChecker",
    "HealthCheckerConfig",
    "HostedRing",
    "Identity",
    "JoinedRing",
    "Logger",
    "Member",
    "MembershipService",
    "MemoryRingStore",
    "NodeConfig",
    "PostgresRingStore",
    "RatingService",
    "RingStore",
    "SyncAgent",
    "SyncAgentConfig",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("ringlink.core", "BaseService"),
    "Logger": ("ringlink.core", "Logger"),
    "MemoryRingStore": ("ringlink.core", "MemoryRingStore"),
    "NodeConfig": ("ringlink.core", "NodeConfig"),
    "PostgresRingStore": ("ringlink.core", "PostgresRingStore"),
    "RingStore": ("ringlink.core", "RingStore"),
    "HostedRing": ("ringlink.models", "HostedRing"),
    "Identity": ("ringlink.models", "Identity"),
    "JoinedRing": ("ringlink.models", "JoinedRing"),
    "Member": ("ringlink.models", "Member"),
    "Federation": ("ringlink.services", "Federation"),
    "FederationConfig": ("ringlink.services", "FederationConfig"),
    "HealthChecker": ("ringlink.services", "HealthChecker"),
    "HealthCheckerConfig": ("ringlink.services", "HealthCheckerConfig"),
    "MembershipService": ("ringlink.services", "MembershipService"),
    "RatingService": ("ringlink.services", "RatingService"),
    "SyncAgent": ("ringlink.services", "SyncAgent"),
    "SyncAgentConfig": ("ringlink.services", "SyncAgentConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'ringlink' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
