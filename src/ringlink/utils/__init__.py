"""Low-level helpers for outbound federation traffic.

The utils layer sits in the middle of the diamond DAG, depending only on
[ringlink.models][ringlink.models].

Attributes:
    http: Federation endpoint URL derivation and bounded JSON body reads
        used by [PeerClient][ringlink.services.common.peers.PeerClient].

Note:
    The utils layer has **zero** imports from ``ringlink.core`` or
    ``ringlink.services``.
"""

from .http import endpoint_url, read_bounded_json


__all__ = ["endpoint_url", "read_bounded_json"]
