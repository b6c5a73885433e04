"""Sync agent configuration models.

See Also:
    [SyncAgent][ringlink.services.sync_agent.SyncAgent]: The service class
        that consumes these configurations.
    [BaseServiceConfig][ringlink.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures``
        and ``metrics`` fields.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from ringlink.core.base_service import BaseServiceConfig
from ringlink.services.common.peers import PeerClientConfig


class PendingPolicy(StrEnum):
    """How a successful sync updates a mirror's ``pending`` flag.

    Attributes:
        CLEAR: Clear it on every successful fetch, whatever the host's
            actual admission state.
        DERIVE: Clear it only when this node's own site url appears in the
            fetched members; otherwise keep the previous value.
    """

    CLEAR = "clear"
    DERIVE = "derive"


class SyncAgentConfig(BaseServiceConfig):
    """Configuration for the joined-ring mirror refresher.

    Attributes:
        pending_policy: See [PendingPolicy][ringlink.services.sync_agent.configs.PendingPolicy].
        max_parallel_syncs: Upper bound on simultaneous snapshot fetches.
        http: Outbound request settings; ``fetch_timeout`` bounds each
            snapshot fetch.
    """

    pending_policy: PendingPolicy = Field(default=PendingPolicy.CLEAR)
    max_parallel_syncs: int = Field(default=10, ge=1, le=500, description="Concurrent fetches")
    http: PeerClientConfig = Field(default_factory=PeerClientConfig)
