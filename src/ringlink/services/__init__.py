"""Ring membership, ratings and the three node services.

Services are the top layer of the diamond DAG, depending on
[ringlink.core][ringlink.core], [ringlink.utils][ringlink.utils] and
[ringlink.models][ringlink.models]. Long-running services extend
[BaseService][ringlink.core.base_service.BaseService] and implement
``async def run()`` for one cycle of work.

```text
HealthChecker   hosted rings   probe sampled members, mark dead after max_fails
SyncAgent       joined rings   pull host snapshots into local mirrors
Federation      HTTP           join, snapshot, rating and local endpoints
```

Attributes:
    MembershipService: Admission policy per ring type, host actions,
        ring lifecycle and outbound joins.
    RatingService: Per-rater ratings on hosted rings, proxied to the host
        for joined rings.
    HealthChecker: Periodic liveness sampling of hosted-ring members.
    SyncAgent: Periodic refresh of joined-ring mirrors.
    Federation: FastAPI surface served to peers and same-node callers.
    presentation: Pure widget selection helpers (navigation, random pick,
        star counts, widget view model).

Note:
    All services share one [RingStore][ringlink.core.store.RingStore]
    and never talk to each other directly: the store's per-ring edits are
    the only coordination point.

Examples:
    ```python
    from ringlink.core import MemoryRingStore
    from ringlink.services import HealthChecker, SyncAgent

    store = MemoryRingStore()
    async with HealthChecker(store=store) as checker:
        await checker.run()
    ```
"""

from . import presentation
from .federation import Federation, FederationConfig
from .health_checker import HealthChecker, HealthCheckerConfig
from .membership import MembershipService
from .ratings import RatingService
from .sync_agent import PendingPolicy, SyncAgent, SyncAgentConfig


__all__ = [
    "Federation",
    "FederationConfig",
    "HealthChecker",
    "HealthCheckerConfig",
    "MembershipService",
    "PendingPolicy",
    "RatingService",
    "SyncAgent",
    "SyncAgentConfig",
    "presentation",
]
