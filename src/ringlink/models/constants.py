"""Shared constants for the models layer.

Defines the enumerations and protocol constants used across model modules
and services. Placing them here avoids circular dependencies between the
models, core, and services layers.

See Also:
    [HostedRing][ringlink.models.ring.HostedRing]: Uses
        [RingType][ringlink.models.constants.RingType] and
        [MemberStatus][ringlink.models.constants.MemberStatus].
    [BaseService][ringlink.core.base_service.BaseService]: Uses
        [ServiceName][ringlink.models.constants.ServiceName] for logging
        and metrics labels.
"""

from __future__ import annotations

from enum import StrEnum


PROTOCOL_VERSION = "1.1.2"
"""Version string reported by the ``/ping`` endpoint."""

API_PREFIX = "/ringlink/v1"
"""Path prefix of the federation HTTP surface on every node."""

RATING_MIN = 1
RATING_MAX = 5


class RingType(StrEnum):
    """Admission policy of a hosted ring.

    Attributes:
        OPEN: Join requests are approved immediately.
        MODERATED: Join requests are queued for host approval.
        PRIVATE: Join requests require the invite secret and are then
            queued like moderated requests.
        CURATED: Join requests are always refused; only the host adds
            members.
    """

    OPEN = "open"
    MODERATED = "moderated"
    PRIVATE = "private"
    CURATED = "curated"


class MemberStatus(StrEnum):
    """Liveness state of a hosted-ring member, maintained by the health checker."""

    ACTIVE = "active"
    DEAD = "dead"


class JoinStatus(StrEnum):
    """Successful outcomes of a join request.

    Refusals (unknown ring, curated ring, bad invite code) are raised as
    [FederationError][ringlink.core.exceptions.FederationError] subclasses
    instead of being encoded here.
    """

    APPROVED = "approved"
    PENDING = "pending"
    ALREADY_MEMBER = "already_member"


class WidgetMode(StrEnum):
    """Display mode of the ring widget."""

    CAROUSEL = "carousel"
    LIVE = "live"
    DIRECTORY = "directory"


class WidgetTheme(StrEnum):
    """Color theme of the ring widget."""

    LIGHT = "light"
    DARK = "dark"


class WidgetWidth(StrEnum):
    """Width preset of the ring widget (``compact`` is 350px, ``full`` is 100%)."""

    COMPACT = "compact"
    FULL = "full"


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging, metrics, and the CLI.

    Attributes:
        HEALTH_CHECKER: Periodic member liveness probing
            ([HealthChecker][ringlink.services.health_checker.HealthChecker]).
        SYNC_AGENT: Periodic mirror refresh of joined rings
            ([SyncAgent][ringlink.services.sync_agent.SyncAgent]).
        FEDERATION: HTTP surface consumed by peer nodes
            ([Federation][ringlink.services.federation.Federation]).
    """

    HEALTH_CHECKER = "health_checker"
    SYNC_AGENT = "sync_agent"
    FEDERATION = "federation"
