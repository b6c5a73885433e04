"""Membership admission for hosted rings and remote join initiation.

[MembershipService][ringlink.services.membership.MembershipService] owns
the admission policy of hosted rings:

```text
type        join request                    host action
open        -> members, approved            remove
moderated   -> pending, pending             approve / reject / remove
private     secret ok -> pending            approve / reject / remove
            secret bad -> forbidden
curated     -> forbidden                    add_curated / remove
```

Before any append, the candidate url is looked up in ``members`` and then
in ``pending``; an existing entry answers ``already_member`` or
``pending`` without mutation, so a url never appears twice in a ring.
Every mutation runs inside
[RingStore.edit_hosted()][ringlink.core.store.RingStore.edit_hosted] and
is therefore atomic per ring.

The same service also creates and deletes hosted rings and, on the
joining side, sends this node's identity to a remote host and records the
resulting [JoinedRing][ringlink.models.ring.JoinedRing] mirror.

See Also:
    [Federation][ringlink.services.federation.Federation]: Exposes
        ``request_join`` to peers and the host operations locally.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ringlink.core.exceptions import DuplicateMemberError, ForbiddenError, InvalidRequestError
from ringlink.core.logger import Logger
from ringlink.models import (
    HostedRing,
    Identity,
    JoinedRing,
    JoinStatus,
    Member,
    PendingRequest,
    RingType,
)
from ringlink.services.common.peers import PeerClient


if TYPE_CHECKING:
    from ringlink.core.store import RingStore


CURATED_REASON = "curated rings accept members only from the host"
INVITE_REASON = "invalid invite code"


class MembershipService:
    """Admission protocol and host-side membership management.

    Args:
        store: Ring persistence.
        peers: Outbound client used by
            [join_remote()][ringlink.services.membership.MembershipService.join_remote].
            A default client is created when omitted.
    """

    def __init__(self, store: RingStore, peers: PeerClient | None = None) -> None:
        self._store = store
        self._peers = peers if peers is not None else PeerClient()
        self._logger = Logger("membership")

    # -------------------------------------------------------------------------
    # Inbound join protocol
    # -------------------------------------------------------------------------

    async def request_join(
        self, ring_id: str, candidate: Identity, supplied_secret: str = ""
    ) -> JoinStatus:
        """Apply the ring's admission policy to a join request.

        Returns:
            ``approved`` (open ring, appended to members), ``pending``
            (queued, or already queued) or ``already_member``.

        Raises:
            RingNotFoundError: No hosted ring has this id.
            ForbiddenError: The ring is curated, or private and the
                supplied secret does not match.
        """
        async with self._store.edit_hosted(ring_id) as ring:
            if ring.type is RingType.CURATED:
                raise ForbiddenError(CURATED_REASON)
            if not ring.check_secret(supplied_secret):
                raise ForbiddenError(INVITE_REASON)

            if ring.find_member(candidate.url) is not None:
                return JoinStatus.ALREADY_MEMBER
            if ring.find_pending(candidate.url) is not None:
                return JoinStatus.PENDING

            if ring.type is RingType.OPEN:
                ring.members.append(Member(identity=candidate))
                ring.touch()
                self._logger.info("member_joined", ring=ring_id, url=candidate.url)
                return JoinStatus.APPROVED

            # Queued requests do not bump ``updated``
            ring.pending.append(PendingRequest(identity=candidate))
            self._logger.info("join_queued", ring=ring_id, url=candidate.url)
            return JoinStatus.PENDING

    # -------------------------------------------------------------------------
    # Host actions
    # -------------------------------------------------------------------------

    async def approve(self, ring_id: str, member_url: str) -> bool:
        """Promote the first pending request for *member_url* to a member.

        The new member starts active with no failures and no ratings, and
        ``joined`` is stamped with the approval time.

        Returns:
            False if no pending request matched (nothing changes).

        Raises:
            RingNotFoundError: No hosted ring has this id.
        """
        async with self._store.edit_hosted(ring_id) as ring:
            request = ring.find_pending(member_url)
            if request is None:
                return False
            ring.pending.remove(request)
            ring.members.append(Member(identity=request.identity))
            ring.touch()
        self._logger.info("member_approved", ring=ring_id, url=member_url)
        return True

    async def reject(self, ring_id: str, member_url: str) -> bool:
        """Drop the pending request for *member_url*. Returns False if absent."""
        async with self._store.edit_hosted(ring_id) as ring:
            request = ring.find_pending(member_url)
            if request is None:
                return False
            ring.pending.remove(request)
        self._logger.info("member_rejected", ring=ring_id, url=member_url)
        return True

    async def remove(self, ring_id: str, member_url: str) -> bool:
        """Remove *member_url* from the members list. Returns False if absent."""
        async with self._store.edit_hosted(ring_id) as ring:
            member = ring.find_member(member_url)
            if member is None:
                return False
            ring.members.remove(member)
            ring.touch()
        self._logger.info("member_removed", ring=ring_id, url=member_url)
        return True

    async def add_curated(self, ring_id: str, identity: Identity) -> Member:
        """Append a host-authored member directly, whatever the ring type.

        Raises:
            RingNotFoundError: No hosted ring has this id.
            DuplicateMemberError: The url is already a member or pending.
        """
        async with self._store.edit_hosted(ring_id) as ring:
            if ring.find_member(identity.url) or ring.find_pending(identity.url):
                raise DuplicateMemberError(f"{identity.url} is already in ring {ring_id}")
            member = Member(identity=identity)
            ring.members.append(member)
            ring.touch()
        self._logger.info("member_added", ring=ring_id, url=identity.url)
        return member

    # -------------------------------------------------------------------------
    # Ring lifecycle
    # -------------------------------------------------------------------------

    async def create_ring(
        self, ring_id: str, name: str, ring_type: RingType | str, secret: str = ""
    ) -> HostedRing:
        """Create a hosted ring whose first member is this node's site.

        Raises:
            InvalidRequestError: The site identity is not configured, or
                the id, name, type or secret are invalid.
            RingExistsError: A hosted ring with this id already exists.
        """
        site = await self._store.get_site_identity()
        if site is None:
            raise InvalidRequestError("site identity is not configured")
        try:
            ring = HostedRing(
                id=ring_id,
                name=name,
                type=RingType(ring_type),
                secret=secret,
                members=[Member(identity=site)],
            )
        except (TypeError, ValueError) as e:
            raise InvalidRequestError(str(e)) from e
        await self._store.add_hosted(ring)
        self._logger.info("ring_created", ring=ring_id, type=ring.type.value)
        return ring

    async def delete_ring(self, ring_id: str) -> bool:
        """Delete a hosted ring irreversibly. Returns False if it did not exist."""
        deleted = await self._store.delete_hosted(ring_id)
        if deleted:
            self._logger.info("ring_deleted", ring=ring_id)
        return deleted

    # -------------------------------------------------------------------------
    # Outbound join
    # -------------------------------------------------------------------------

    async def join_remote(
        self, host_url: str, ring_id: str, secret: str = ""
    ) -> tuple[JoinStatus, JoinedRing]:
        """Ask a remote host to admit this node and record the mirror.

        The mirror starts empty, named after the ring id until the first
        sync, and flagged pending when the host queued the request.
        Nothing is stored when the host refuses or cannot be reached.

        Raises:
            InvalidRequestError: The site identity is not configured, or
                the host url or ring id are invalid.
            PeerResponseError: The host refused; carries its status and
                message.
            ConnectivityError: The host could not be reached.
        """
        site = await self._store.get_site_identity()
        if site is None:
            raise InvalidRequestError("site identity is not configured")
        try:
            mirror = JoinedRing(host_url=host_url, ring_id=ring_id, secret=secret)
        except (TypeError, ValueError) as e:
            raise InvalidRequestError(str(e)) from e

        status = await self._peers.post_join(host_url, ring_id, site, secret)
        mirror.pending = status is JoinStatus.PENDING
        await self._store.put_joined(mirror)
        self._logger.info(
            "remote_join_completed", host=host_url, ring=ring_id, status=status.value
        )
        return status, mirror

    async def leave(self, key: str) -> bool:
        """Forget a joined ring. Returns False if no mirror has this key."""
        left = await self._store.delete_joined(key)
        if left:
            self._logger.info("ring_left", key=key)
        return left
