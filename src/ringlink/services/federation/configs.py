"""Federation service configuration models.

See Also:
    [Federation][ringlink.services.federation.Federation]: The service
        class that consumes these configurations.
    [BaseServiceConfig][ringlink.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures``
        and ``metrics`` fields.
"""

from __future__ import annotations

from pydantic import Field

from ringlink.core.base_service import BaseServiceConfig
from ringlink.services.common.peers import PeerClientConfig
from ringlink.services.sync_agent.configs import PendingPolicy


class FederationConfig(BaseServiceConfig):
    """Configuration for the federation HTTP service.

    Attributes:
        host: Bind address for the HTTP server.
        port: Port for the HTTP server.
        local_clients: Client addresses allowed on the ``/local`` routes.
            Everything else gets 403 there. The check trusts the socket
            peer address, so requests carrying ``Forwarded``,
            ``X-Forwarded-For`` or ``X-Real-IP`` headers are refused too.
            A reverse proxy in front of this service must not forward
            ``/ringlink/v1/local`` at all.
        cors_origins: Allowed CORS origins. Empty list disables CORS.
        request_timeout: Upper bound for handling one request, in seconds.
        pending_policy: Applied by the immediate sync after a remote join.
        http: Outbound request settings (rater probes, join and rate
            proxying, post-join sync).
    """

    host: str = Field(default="0.0.0.0", min_length=1, description="HTTP bind address")  # noqa: S104
    port: int = Field(default=8080, ge=1, le=65535, description="HTTP port")
    local_clients: list[str] = Field(default_factory=lambda: ["127.0.0.1", "::1"])
    cors_origins: list[str] = Field(default_factory=list)
    request_timeout: float = Field(default=30.0, ge=1.0, le=300.0)
    pending_policy: PendingPolicy = Field(default=PendingPolicy.CLEAR)
    http: PeerClientConfig = Field(default_factory=PeerClientConfig)
