"""Core layer providing the foundation for all ringlink services.

Sits in the middle of the diamond DAG: depends only on
``ringlink.models`` and is depended upon by ``ringlink.services``.

Attributes:
    RingStore: Abstract persistence of hosted rings, joined mirrors and
        node settings, with per-ring locked edits. Backends:
        [MemoryRingStore][ringlink.core.store.MemoryRingStore] and
        [PostgresRingStore][ringlink.core.store.PostgresRingStore].
    Pool: Async PostgreSQL connection pool with retry/backoff.
    BaseService: Abstract generic base class with lifecycle management,
        factory methods and Prometheus metrics integration.
    NodeConfig: Store backend selection and site identity seed.
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.

Examples:
    ```python
    from ringlink.core import NodeConfig, open_store

    async with open_store(NodeConfig.from_yaml("config/ringlink.yaml")) as store:
        rings = await store.list_hosted()
    ```
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT
from .exceptions import (
    ConfigurationError,
    ConnectivityError,
    DuplicateMemberError,
    FederationError,
    ForbiddenError,
    InvalidRequestError,
    MemberNotFoundError,
    NotFoundError,
    PeerResponseError,
    PeerTimeoutError,
    RingExistsError,
    RingLinkError,
    RingNotFoundError,
    StoreError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    CYCLE_DURATION_SECONDS,
    PROBE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)
from .node import NodeConfig, SiteConfig, open_store
from .pool import (
    DatabaseConfig,
    Pool,
    PoolConfig,
    PoolLimitsConfig,
    PoolRetryConfig,
    PoolTimeoutsConfig,
)
from .store import MemoryRingStore, PostgresRingStore, RingStore
from .yaml import load_yaml


__all__ = [
    "CYCLE_DURATION_SECONDS",
    "PROBE_DURATION_SECONDS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "BaseService",
    "BaseServiceConfig",
    "ConfigT",
    "ConfigurationError",
    "ConnectivityError",
    "DatabaseConfig",
    "DuplicateMemberError",
    "FederationError",
    "ForbiddenError",
    "InvalidRequestError",
    "Logger",
    "MemberNotFoundError",
    "MemoryRingStore",
    "MetricsConfig",
    "MetricsServer",
    "NodeConfig",
    "NotFoundError",
    "PeerResponseError",
    "PeerTimeoutError",
    "Pool",
    "PoolConfig",
    "PoolLimitsConfig",
    "PoolRetryConfig",
    "PoolTimeoutsConfig",
    "PostgresRingStore",
    "RingExistsError",
    "RingLinkError",
    "RingNotFoundError",
    "RingStore",
    "SiteConfig",
    "StoreError",
    "StructuredFormatter",
    "format_kv_pairs",
    "load_yaml",
    "open_store",
    "start_metrics_server",
]
