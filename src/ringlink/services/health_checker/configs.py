"""Health checker configuration models.

See Also:
    [HealthChecker][ringlink.services.health_checker.HealthChecker]: The
        service class that consumes these configurations.
    [BaseServiceConfig][ringlink.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures``
        and ``metrics`` fields.
"""

from __future__ import annotations

from pydantic import Field

from ringlink.core.base_service import BaseServiceConfig
from ringlink.services.common.peers import PeerClientConfig


class HealthCheckerConfig(BaseServiceConfig):
    """Configuration for the member liveness checker.

    Attributes:
        sample_size: Members probed per ring and cycle (fewer when the
            ring is smaller).
        max_fails: Consecutive failed probes after which a member is
            marked dead.
        max_parallel_probes: Upper bound on simultaneous probes across
            all rings.
        http: Outbound request settings; ``probe_timeout`` bounds each
            ping.
    """

    sample_size: int = Field(default=3, ge=1, le=100, description="Members probed per ring")
    max_fails: int = Field(default=3, ge=1, le=100, description="Failures before marking dead")
    max_parallel_probes: int = Field(default=10, ge=1, le=500, description="Concurrent probes")
    http: PeerClientConfig = Field(default_factory=PeerClientConfig)
