"""Pure data layer: ring, member, and identity records with zero I/O.

Sits at the bottom of the diamond DAG. Every other layer may import from
here; this package imports only the standard library and ``rfc3986``.

Attributes:
    Identity: Site profile shared by the local node and ring members.
    WidgetSettings: Display defaults for ring widgets.
    Member: Admitted site in a hosted ring (status, fails, ratings).
    PendingRequest: Join request awaiting host approval.
    HostedRing: Authoritative ring owned by the local node.
    JoinedRing: Local mirror of a ring hosted elsewhere.
    UnknownRing: Resolution result for an unknown ring id.
"""

from .constants import (
    API_PREFIX,
    PROTOCOL_VERSION,
    RATING_MAX,
    RATING_MIN,
    JoinStatus,
    MemberStatus,
    RingType,
    ServiceName,
    WidgetMode,
    WidgetTheme,
    WidgetWidth,
)
from .identity import Identity, WidgetSettings
from .ring import (
    HostedRing,
    JoinedRing,
    Member,
    PendingRequest,
    UnknownRing,
    average_rating,
    joined_ring_key,
    mirror_members,
)


__all__ = [
    "API_PREFIX",
    "PROTOCOL_VERSION",
    "RATING_MAX",
    "RATING_MIN",
    "HostedRing",
    "Identity",
    "JoinStatus",
    "JoinedRing",
    "Member",
    "MemberStatus",
    "PendingRequest",
    "RingType",
    "ServiceName",
    "UnknownRing",
    "WidgetMode",
    "WidgetSettings",
    "WidgetTheme",
    "WidgetWidth",
    "average_rating",
    "joined_ring_key",
    "mirror_members",
]
