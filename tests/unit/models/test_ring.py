"""
Unit tests for models.ring module.

Tests:
- average_rating and joined_ring_key helpers
- Member rating upsert and probe hysteresis
- HostedRing invariants, lookups, secret check and snapshots
- JoinedRing defaults and storage key
"""

import hashlib
from unittest.mock import patch

import pytest

from ringlink.models import (
    HostedRing,
    Identity,
    JoinedRing,
    Member,
    MemberStatus,
    PendingRequest,
    RingType,
    average_rating,
    joined_ring_key,
    mirror_members,
)


A = Identity(url="https://a.example/", name="A")
B = Identity(url="https://b.example/", name="B")


# ============================================================================
# Helpers
# ============================================================================


class TestAverageRating:
    def test_empty(self):
        assert average_rating({}) == 0.0

    def test_rounded_to_one_decimal(self):
        assert average_rating({"x": 4, "y": 5, "z": 5}) == 4.7

    def test_single(self):
        assert average_rating({"x": 3}) == 3.0


class TestJoinedRingKey:
    def test_deterministic(self):
        assert joined_ring_key("https://h.example/", "r1") == joined_ring_key(
            "https://h.example/", "r1"
        )

    def test_md5_of_concatenation(self):
        expected = hashlib.md5(b"https://h.example/r1", usedforsecurity=False).hexdigest()
        assert joined_ring_key("https://h.example/", "r1") == expected

    def test_distinct_rings(self):
        assert joined_ring_key("https://h.example/", "r1") != joined_ring_key(
            "https://h.example/", "r2"
        )


# ============================================================================
# Member
# ============================================================================


class TestMember:
    def test_defaults(self):
        member = Member(identity=A)
        assert member.status is MemberStatus.ACTIVE
        assert member.fails == 0
        assert member.ratings == {}
        assert member.url == "https://a.example/"

    def test_rate_overwrites_same_rater(self):
        member = Member(identity=A)
        member.rate("https://r.example/", 5)
        member.rate("https://r.example/", 2)
        assert member.ratings == {"https://r.example/": 2}
        assert member.average_rating == 2.0

    def test_rate_out_of_range(self):
        member = Member(identity=A)
        with pytest.raises(ValueError):
            member.rate("https://r.example/", 6)
        assert member.ratings == {}

    def test_single_failure_does_not_kill(self):
        member = Member(identity=A)
        assert member.record_probe_failure(3) is False
        assert member.status is MemberStatus.ACTIVE
        assert member.fails == 1

    def test_dies_at_max_fails(self):
        member = Member(identity=A)
        died = [member.record_probe_failure(3) for _ in range(3)]
        assert died == [False, False, True]
        assert member.status is MemberStatus.DEAD

    def test_further_failures_after_death(self):
        member = Member(identity=A, status=MemberStatus.DEAD, fails=3)
        assert member.record_probe_failure(3) is False
        assert member.fails == 4
        assert member.status is MemberStatus.DEAD

    def test_success_recovers_dead(self):
        member = Member(identity=A, status=MemberStatus.DEAD, fails=5)
        assert member.record_probe_success() is True
        assert member.status is MemberStatus.ACTIVE
        assert member.fails == 0

    def test_success_clears_partial_failures(self):
        member = Member(identity=A, fails=2)
        assert member.record_probe_success() is True
        assert member.fails == 0

    def test_success_on_healthy_member_is_noop(self):
        assert Member(identity=A).record_probe_success() is False

    def test_roundtrip(self):
        member = Member(identity=A, joined=100, fails=1, ratings={"https://r.example/": 4})
        assert Member.from_dict(member.to_dict()) == member

    def test_invalid_stored_rating(self):
        with pytest.raises(ValueError):
            Member(identity=A, ratings={"https://r.example/": 0})


# ============================================================================
# HostedRing
# ============================================================================


class TestHostedRing:
    def test_private_requires_secret(self):
        with pytest.raises(ValueError, match="secret"):
            HostedRing(id="r1", name="R", type=RingType.PRIVATE)

    @pytest.mark.parametrize("ring_type", [RingType.OPEN, RingType.MODERATED, RingType.CURATED])
    def test_public_types_reject_secret(self, ring_type):
        with pytest.raises(ValueError, match="secret"):
            HostedRing(id="r1", name="R", type=ring_type, secret="x")

    def test_invalid_id(self):
        with pytest.raises(ValueError):
            HostedRing(id="bad id", name="R", type=RingType.OPEN)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            HostedRing(id="r1", name="R", type="secretive")

    def test_duplicate_urls_rejected(self):
        with pytest.raises(ValueError, match="unique"):
            HostedRing(
                id="r1",
                name="R",
                type=RingType.MODERATED,
                members=[Member(identity=A)],
                pending=[PendingRequest(identity=A)],
            )

    def test_find(self):
        ring = HostedRing(
            id="r1",
            name="R",
            type=RingType.MODERATED,
            members=[Member(identity=A)],
            pending=[PendingRequest(identity=B)],
        )
        assert ring.find_member(A.url).identity == A
        assert ring.find_member(B.url) is None
        assert ring.find_pending(B.url).identity == B

    def test_check_secret(self):
        private = HostedRing(id="r1", name="R", type=RingType.PRIVATE, secret="s")
        assert private.check_secret("s") is True
        assert private.check_secret("wrong") is False
        assert private.check_secret("") is False
        assert HostedRing(id="r2", name="R", type=RingType.OPEN).check_secret(None) is True

    def test_snapshot_hides_secret_and_pending(self):
        ring = HostedRing(
            id="r1",
            name="R",
            type=RingType.PRIVATE,
            secret="s",
            members=[Member(identity=A)],
            pending=[PendingRequest(identity=B)],
        )
        snapshot = ring.snapshot()
        assert snapshot["ring_id"] == "r1"
        assert "secret" not in snapshot
        assert "pending" not in snapshot
        assert [m["url"] for m in snapshot["members"]] == [A.url]

    def test_touch(self):
        ring = HostedRing(id="r1", name="R", type=RingType.OPEN, updated=0)
        ring.touch()
        assert ring.updated > 0

    def test_touch_within_same_second(self):
        ring = HostedRing(id="r1", name="R", type=RingType.OPEN)
        created = ring.updated

        with patch("ringlink.models.ring.time", return_value=float(created)):
            ring.touch()
            ring.touch()

        assert ring.updated == created + 2

    def test_touch_catches_up_with_clock(self):
        ring = HostedRing(id="r1", name="R", type=RingType.OPEN, updated=100)

        with patch("ringlink.models.ring.time", return_value=5000.0):
            ring.touch()

        assert ring.updated == 5000

    def test_roundtrip(self):
        ring = HostedRing(
            id="r1",
            name="R",
            type=RingType.MODERATED,
            members=[Member(identity=A)],
            pending=[PendingRequest(identity=B, joined=5)],
            created=1,
            updated=2,
        )
        assert HostedRing.from_dict(ring.to_dict()) == ring


# ============================================================================
# JoinedRing
# ============================================================================


class TestJoinedRing:
    def test_name_defaults_to_ring_id(self):
        mirror = JoinedRing(host_url="https://h.example/", ring_id="r1")
        assert mirror.name == "r1"
        assert mirror.last_sync == 0
        assert mirror.pending is False

    def test_key(self):
        mirror = JoinedRing(host_url="https://h.example/", ring_id="r1")
        assert mirror.key == joined_ring_key("https://h.example/", "r1")

    def test_invalid_host(self):
        with pytest.raises(ValueError):
            JoinedRing(host_url="h.example", ring_id="r1")

    def test_roundtrip(self):
        mirror = JoinedRing(
            host_url="https://h.example/",
            ring_id="r1",
            name="Remote",
            members=[{"url": A.url, "extra": True}],
            last_sync=10,
            pending=True,
        )
        assert JoinedRing.from_dict(mirror.to_dict()) == mirror


class TestMirrorMembers:
    def test_drops_non_dicts(self):
        assert mirror_members([{"url": A.url}, "junk", 3, None]) == [{"url": A.url}]

    def test_copies_entries(self):
        source = [{"url": A.url}]
        mirrored = mirror_members(source)
        mirrored[0]["url"] = "changed"
        assert source[0]["url"] == A.url
