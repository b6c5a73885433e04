"""Shared infrastructure for ringlink services.

Attributes:
    peers: [PeerClient][ringlink.services.common.peers.PeerClient], the
        outbound federation client, and its
        [PeerClientConfig][ringlink.services.common.peers.PeerClientConfig].
    mixins: [PeerClientMixin][ringlink.services.common.mixins.PeerClientMixin]
        for owned-or-shared client lifecycle and
        [BoundedConcurrencyMixin][ringlink.services.common.mixins.BoundedConcurrencyMixin]
        for per-cycle request concurrency limits.
"""

from .mixins import BoundedConcurrencyMixin, PeerClientMixin
from .peers import PeerClient, PeerClientConfig


__all__ = [
    "BoundedConcurrencyMixin",
    "PeerClient",
    "PeerClientConfig",
    "PeerClientMixin",
]
