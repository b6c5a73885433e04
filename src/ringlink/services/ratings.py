"""Member ratings with duplicate-voter suppression and cross-host proxying.

Ratings are stored on the hosted ring, keyed by the rater's site url, so
a resubmission overwrites the earlier vote instead of adding one. The
ring id is first resolved to exactly one ring kind:

* [HostedRing][ringlink.models.ring.HostedRing]: the rating is recorded
  here. Votes arriving through the federation surface must come from a
  node that answers its own ping endpoint (anti-spoof gate).
* [JoinedRing][ringlink.models.ring.JoinedRing]: this node is not
  authoritative; the vote is forwarded to the host with this node's site
  url as the rater, and the host's answer is surfaced as-is.
* [UnknownRing][ringlink.models.ring.UnknownRing]: rejected as not found.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ringlink.core.exceptions import (
    ForbiddenError,
    InvalidRequestError,
    MemberNotFoundError,
    RingNotFoundError,
)
from ringlink.core.logger import Logger
from ringlink.models import HostedRing, JoinedRing, UnknownRing
from ringlink.models._validation import validate_rating
from ringlink.services.common.peers import PeerClient


if TYPE_CHECKING:
    from ringlink.core.store import RingStore


RATER_REASON = "rater must be running ringlink"


def _check_rating(rating: Any) -> int:
    try:
        validate_rating(rating)
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(str(e)) from e
    return int(rating)


def _check_url(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"{name} is required")
    return value


class RatingService:
    """Records ratings on hosted rings and forwards them for joined rings.

    Args:
        store: Ring persistence.
        peers: Outbound client for the rater probe and the host proxy.
    """

    def __init__(self, store: RingStore, peers: PeerClient | None = None) -> None:
        self._store = store
        self._peers = peers if peers is not None else PeerClient()
        self._logger = Logger("ratings")

    async def submit_rating(
        self, ring_id: str, target_url: str, rating: int, rater_url: str
    ) -> None:
        """Federation entry point: a remote node rates a member.

        Raises:
            InvalidRequestError: Rating outside 1..5 or not an integer, or
                an empty url. Checked before anything else.
            RingNotFoundError: The id is neither hosted nor joined.
            MemberNotFoundError: The target is not a member of the hosted
                ring.
            ForbiddenError: The rater does not answer its ping endpoint.
            PeerResponseError: The host of a joined ring refused the vote.
            ConnectivityError: The host of a joined ring is unreachable.
        """
        rating = _check_rating(rating)
        _check_url(target_url, "target_url")
        _check_url(rater_url, "rater_url")
        await self._dispatch(ring_id, target_url, rating, rater_url, verify_rater=True)

    async def submit_local_rating(self, ring_id: str, target_url: str, rating: int) -> None:
        """Same-node entry point: rate as this node's own site, without the rater probe.

        Raises:
            InvalidRequestError: Bad rating or target, or no site identity.
            RingNotFoundError, MemberNotFoundError, PeerResponseError,
                ConnectivityError: As for
                [submit_rating()][ringlink.services.ratings.RatingService.submit_rating].
        """
        rating = _check_rating(rating)
        _check_url(target_url, "target_url")
        site = await self._store.get_site_identity()
        if site is None:
            raise InvalidRequestError("site identity is not configured")
        await self._dispatch(ring_id, target_url, rating, site.url, verify_rater=False)

    async def _dispatch(
        self, ring_id: str, target_url: str, rating: int, rater_url: str, *, verify_rater: bool
    ) -> None:
        match await self._store.resolve(ring_id):
            case HostedRing() as ring:
                if ring.find_member(target_url) is None:
                    raise MemberNotFoundError(ring_id, target_url)
                if verify_rater and not await self._peers.is_alive(rater_url):
                    self._logger.warning("rater_rejected", ring=ring_id, rater=rater_url)
                    raise ForbiddenError(RATER_REASON)
                await self._record(ring.id, target_url, rating, rater_url)
            case JoinedRing() as mirror:
                await self._proxy(mirror, target_url, rating)
            case UnknownRing():
                raise RingNotFoundError(ring_id)

    async def _record(self, ring_id: str, target_url: str, rating: int, rater_url: str) -> None:
        async with self._store.edit_hosted(ring_id) as ring:
            # Re-check under the lock: the member may have been removed during the probe
            member = ring.find_member(target_url)
            if member is None:
                raise MemberNotFoundError(ring_id, target_url)
            member.rate(rater_url, rating)
            ring.touch()
        self._logger.info("rating_recorded", ring=ring_id, target=target_url, rating=rating)

    async def _proxy(self, mirror: JoinedRing, target_url: str, rating: int) -> None:
        site = await self._store.get_site_identity()
        if site is None:
            raise InvalidRequestError("site identity is not configured")
        await self._peers.post_rating(mirror.host_url, mirror.ring_id, target_url, rating, site.url)
        self._logger.info(
            "rating_forwarded", host=mirror.host_url, ring=mirror.ring_id, target=target_url
        )
