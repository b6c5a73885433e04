"""
Hosted rings, joined-ring mirrors, and their member records.

A [HostedRing][ringlink.models.ring.HostedRing] is owned by the local node
and is the authoritative membership list for a ring. A
[JoinedRing][ringlink.models.ring.JoinedRing] is a local mirror of a ring
hosted elsewhere; its ``members`` are overwritten wholesale by the
[SyncAgent][ringlink.services.sync_agent.SyncAgent] and never edited
locally.

Unlike the frozen identity records, rings are mutable: services load a
ring through [RingStore.edit_hosted()][ringlink.core.store.RingStore.edit_hosted],
mutate it in place, and the store writes it back as one operation.
Validation runs in ``__post_init__`` and in ``from_dict``.

See Also:
    [Identity][ringlink.models.identity.Identity]: Base shape shared by
        members and pending requests.
    [RingStore][ringlink.core.store.RingStore]: Persistence of both ring
        kinds.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from time import time
from typing import TYPE_CHECKING, Any

from ._validation import (
    validate_rating,
    validate_ratings,
    validate_ring_id,
    validate_str_no_null,
    validate_str_not_empty,
    validate_timestamp,
    validate_url,
)
from .constants import MemberStatus, RingType
from .identity import Identity


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


def _now() -> int:
    return int(time())


def average_rating(ratings: Mapping[str, int]) -> float:
    """Arithmetic mean of the rating values rounded to one decimal.

    Returns ``0.0`` for an empty mapping, which display surfaces treat as
    "not rated".
    """
    if not ratings:
        return 0.0
    return round(sum(ratings.values()) / len(ratings), 1)


def joined_ring_key(host_url: str, ring_id: str) -> str:
    """Derive the storage key of a joined ring from its remote identity."""
    return hashlib.md5(f"{host_url}{ring_id}".encode(), usedforsecurity=False).hexdigest()


# ---------------------------------------------------------------------------
# Member records
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class PendingRequest:
    """A join request waiting for host approval.

    Attributes:
        identity: The requesting site's profile.
        joined: Unix timestamp when the request was received.
    """

    identity: Identity
    joined: int = field(default_factory=_now)

    def __post_init__(self) -> None:
        validate_timestamp(self.joined, "joined")

    @property
    def url(self) -> str:
        return self.identity.url

    def to_dict(self) -> dict[str, Any]:
        return {**self.identity.to_dict(), "joined": self.joined}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PendingRequest:
        return cls(identity=Identity.from_dict(data), joined=int(data.get("joined") or 0))


@dataclass(slots=True)
class Member:
    """An admitted site in a hosted ring.

    Attributes:
        identity: The member site's profile.
        joined: Unix timestamp of admission.
        status: Liveness state maintained by the health checker.
        fails: Consecutive failed probes since the last success.
        ratings: Rater site URL mapped to its rating (1..5). One entry per
            rater; resubmission overwrites.
    """

    identity: Identity
    joined: int = field(default_factory=_now)
    status: MemberStatus = MemberStatus.ACTIVE
    fails: int = 0
    ratings: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_timestamp(self.joined, "joined")
        validate_timestamp(self.fails, "fails")
        self.status = MemberStatus(self.status)
        validate_ratings(self.ratings)

    @property
    def url(self) -> str:
        return self.identity.url

    @property
    def average_rating(self) -> float:
        return average_rating(self.ratings)

    def rate(self, rater_url: str, rating: int) -> None:
        """Record *rating* from *rater_url*, replacing any earlier vote."""
        validate_str_not_empty(rater_url, "rater_url")
        validate_rating(rating)
        self.ratings[rater_url] = rating

    def record_probe_failure(self, max_fails: int) -> bool:
        """Count a failed probe; mark dead once *max_fails* is reached.

        Returns:
            True if this failure moved the member from active to dead.
        """
        self.fails += 1
        if self.fails >= max_fails and self.status is not MemberStatus.DEAD:
            self.status = MemberStatus.DEAD
            return True
        return False

    def record_probe_success(self) -> bool:
        """Clear accumulated failures after a successful probe.

        Returns:
            True if the member state changed (recovery).
        """
        if self.status is MemberStatus.DEAD or self.fails > 0:
            self.fails = 0
            self.status = MemberStatus.ACTIVE
            return True
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.identity.to_dict(),
            "joined": self.joined,
            "status": self.status.value,
            "fails": self.fails,
            "ratings": dict(self.ratings),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Member:
        return cls(
            identity=Identity.from_dict(data),
            joined=int(data.get("joined") or 0),
            status=MemberStatus(data.get("status") or MemberStatus.ACTIVE),
            fails=int(data.get("fails") or 0),
            ratings={str(k): int(v) for k, v in (data.get("ratings") or {}).items()},
        )


# ---------------------------------------------------------------------------
# Rings
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class HostedRing:
    """A ring whose authoritative membership lives on this node.

    Attributes:
        id: Unique, immutable slug (``[a-zA-Z0-9_-]+``).
        name: Display name.
        type: Admission policy.
        secret: Invite code; non-empty if and only if ``type`` is private.
        members: Ordered admitted members.
        pending: Ordered join requests awaiting approval.
        created: Unix timestamp of creation.
        updated: Unix timestamp of the last membership or rating change.

    Raises:
        ValueError: If the id is not a slug, the name is empty, the type
            is unknown, the secret does not match the type, or a URL
            appears twice across ``members`` and ``pending``.
    """

    id: str
    name: str
    type: RingType
    secret: str = ""
    members: list[Member] = field(default_factory=list)
    pending: list[PendingRequest] = field(default_factory=list)
    created: int = field(default_factory=_now)
    updated: int = field(default_factory=_now)

    def __post_init__(self) -> None:
        validate_ring_id(self.id, "id")
        validate_str_not_empty(self.name, "name")
        self.type = RingType(self.type)
        validate_str_no_null(self.secret, "secret")
        if self.type is RingType.PRIVATE and not self.secret:
            raise ValueError("private rings require a non-empty secret")
        if self.type is not RingType.PRIVATE and self.secret:
            raise ValueError(f"{self.type.value} rings must not carry a secret")
        validate_timestamp(self.created, "created")
        validate_timestamp(self.updated, "updated")
        urls = [m.url for m in self.members] + [p.url for p in self.pending]
        if len(urls) != len(set(urls)):
            raise ValueError("member urls must be unique across members and pending")

    def find_member(self, url: str) -> Member | None:
        return next((m for m in self.members if m.url == url), None)

    def find_pending(self, url: str) -> PendingRequest | None:
        return next((p for p in self.pending if p.url == url), None)

    def touch(self) -> None:
        """Bump ``updated`` after a membership or rating mutation.

        Strictly increases, even for several mutations within one second.
        """
        self.updated = max(_now(), self.updated + 1)

    def check_secret(self, supplied: str | None) -> bool:
        """Whether *supplied* grants access (always true for non-private rings)."""
        return self.type is not RingType.PRIVATE or supplied == self.secret

    def snapshot(self) -> dict[str, Any]:
        """Public wire shape served to peers (no secret, no pending queue)."""
        return {
            "ring_id": self.id,
            "name": self.name,
            "type": self.type.value,
            "members": [m.to_dict() for m in self.members],
            "updated": self.updated,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "secret": self.secret,
            "members": [m.to_dict() for m in self.members],
            "pending": [p.to_dict() for p in self.pending],
            "created": self.created,
            "updated": self.updated,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HostedRing:
        return cls(
            id=data["id"],
            name=data["name"],
            type=RingType(data["type"]),
            secret=data.get("secret") or "",
            members=[Member.from_dict(m) for m in data.get("members") or []],
            pending=[PendingRequest.from_dict(p) for p in data.get("pending") or []],
            created=int(data.get("created") or 0),
            updated=int(data.get("updated") or 0),
        )


@dataclass(slots=True)
class JoinedRing:
    """Local mirror of a ring hosted on another node.

    Attributes:
        host_url: Base URL of the hosting node.
        ring_id: Ring id on the host.
        name: Cached display name (the ring id until the first sync).
        secret: Invite code sent with snapshot fetches of private rings.
        members: Member dicts exactly as served by the host; replaced
            wholesale on every successful sync.
        last_sync: Unix timestamp of the last successful sync (0 = never).
        pending: Whether this node's admission is believed to be pending.
    """

    host_url: str
    ring_id: str
    name: str = ""
    secret: str = ""
    members: list[dict[str, Any]] = field(default_factory=list)
    last_sync: int = 0
    pending: bool = False

    def __post_init__(self) -> None:
        validate_url(self.host_url, "host_url")
        validate_ring_id(self.ring_id)
        if not self.name:
            self.name = self.ring_id
        validate_str_no_null(self.secret, "secret")
        validate_timestamp(self.last_sync, "last_sync")

    @property
    def key(self) -> str:
        """Storage key derived from ``host_url`` and ``ring_id``."""
        return joined_ring_key(self.host_url, self.ring_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "host_url": self.host_url,
            "ring_id": self.ring_id,
            "name": self.name,
            "secret": self.secret,
            "members": list(self.members),
            "last_sync": self.last_sync,
            "pending": self.pending,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JoinedRing:
        return cls(
            host_url=data["host_url"],
            ring_id=data["ring_id"],
            name=data.get("name") or "",
            secret=data.get("secret") or "",
            members=list(data.get("members") or []),
            last_sync=int(data.get("last_sync") or 0),
            pending=bool(data.get("pending", False)),
        )


@dataclass(frozen=True, slots=True)
class UnknownRing:
    """Resolution result for a ring id that is neither hosted nor joined."""

    ring_id: str


def mirror_members(members: Iterable[Any]) -> list[dict[str, Any]]:
    """Keep only dict entries of a fetched member collection."""
    return [dict(m) for m in members if isinstance(m, dict)]
