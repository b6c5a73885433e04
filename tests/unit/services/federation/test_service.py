"""Unit tests for services.federation.service module.

Tests:
- Federation service initialization and lifecycle
- Peer endpoints: ping, ring snapshot, join, rate
- Local endpoints: rating, widget, site, display defaults, ring admin,
  remote join and leave
- Error body shapes and status mapping (400/403/404/409/502/504/500)
- Local-only access control, including refusal of proxied requests
- Run cycle metrics and server task monitoring
"""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from ringlink.core.exceptions import PeerResponseError, PeerTimeoutError
from ringlink.core.store import MemoryRingStore
from ringlink.models import PROTOCOL_VERSION, JoinStatus, ServiceName, joined_ring_key
from ringlink.services.federation import Federation, FederationConfig
from ringlink.services.membership import CURATED_REASON, INVITE_REASON
from ringlink.services.ratings import RATER_REASON


API = "/ringlink/v1"
LOCAL = f"{API}/local"
SELF = "https://self.example/"
OTHER = "https://a.example/"
MIRROR_KEY = joined_ring_key("https://host.example/", "remote")


def _member_urls(client: TestClient, ring_id: str, secret: str = "") -> list[str]:
    resp = client.get(f"{API}/ring/{ring_id}", params={"secret": secret} if secret else None)
    assert resp.status_code == 200
    return [m["url"] for m in resp.json()["members"]]


def _ratings_of(client: TestClient, ring_id: str, url: str) -> dict[str, int]:
    members = client.get(f"{API}/ring/{ring_id}").json()["members"]
    return next(m["ratings"] for m in members if m["url"] == url)


# ============================================================================
# Service Tests
# ============================================================================


class TestFederation:
    """Tests for Federation service class."""

    def test_service_name(self) -> None:
        assert Federation.SERVICE_NAME == ServiceName.FEDERATION
        assert Federation.CONFIG_CLASS is FederationConfig

    def test_init(self, federation: Federation, mock_peers: MagicMock) -> None:
        assert federation._requests_total == 0
        assert federation._requests_failed == 0
        assert federation._server_task is None
        assert federation.peers is mock_peers

    async def test_context_starts_and_stops_server(
        self, federation: Federation, mock_peers: MagicMock
    ) -> None:
        started = asyncio.Event()

        async def serve(_app: Any) -> None:
            started.set()
            await asyncio.sleep(3600)

        with patch.object(federation, "_run_server", side_effect=serve):
            async with federation:
                await asyncio.wait_for(started.wait(), timeout=1)
                assert federation._server_task is not None
                assert not federation._server_task.done()

        assert federation._server_task is None
        mock_peers.close.assert_not_awaited()

    async def test_bounded_times_out(self, federation: Federation) -> None:
        federation._config.request_timeout = 0.01

        with pytest.raises(TimeoutError):
            await federation._bounded(asyncio.sleep(1))


# ============================================================================
# Peer Endpoint Tests
# ============================================================================


class TestPing:
    """Tests for GET /ping."""

    def test_ping(self, test_client: TestClient) -> None:
        resp = test_client.get(f"{API}/ping")

        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "version": PROTOCOL_VERSION,
            "site_name": "Self Site",
        }

    def test_ping_without_site(self, store: MemoryRingStore, mock_peers: MagicMock) -> None:
        service = Federation(store=store, config=FederationConfig(), client=mock_peers)

        resp = TestClient(service.build_app()).get(f"{API}/ping")

        assert resp.status_code == 200
        assert resp.json()["site_name"] == ""


class TestRingSnapshot:
    """Tests for GET /ring/{ring_id}."""

    def test_snapshot(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.get(f"{API}/ring/r1")

        assert resp.status_code == 200
        body = resp.json()
        assert body["ring_id"] == "r1"
        assert body["name"] == "Ring r1"
        assert body["type"] == "open"
        assert [m["url"] for m in body["members"]] == [SELF, OTHER]
        assert "secret" not in body
        assert "pending" not in body

    def test_unknown_ring(self, test_client: TestClient) -> None:
        resp = test_client.get(f"{API}/ring/missing")

        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_joined_ring_is_not_served(
        self, test_client: TestClient, rings: MemoryRingStore
    ) -> None:
        assert test_client.get(f"{API}/ring/{MIRROR_KEY}").status_code == 404

    @pytest.mark.parametrize("secret", ["", "wrong"])
    def test_private_ring_bad_secret(
        self, test_client: TestClient, rings: MemoryRingStore, secret: str
    ) -> None:
        resp = test_client.get(f"{API}/ring/priv", params={"secret": secret})

        assert resp.status_code == 403
        assert resp.json() == {"code": "forbidden", "message": INVITE_REASON}

    def test_private_ring_good_secret(
        self, test_client: TestClient, rings: MemoryRingStore
    ) -> None:
        assert _member_urls(test_client, "priv", "s3cret") == [SELF]


class TestJoinEndpoint:
    """Tests for POST /ring/{ring_id}/join."""

    def test_open_ring_approved(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.post(
            f"{API}/ring/r1/join",
            json={"url": "https://b.example/", "name": "Site B", "excerpt": "hello"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"status": "approved"}
        assert _member_urls(test_client, "r1") == [SELF, OTHER, "https://b.example/"]

    def test_repeat_join_already_member(
        self, test_client: TestClient, rings: MemoryRingStore
    ) -> None:
        resp = test_client.post(f"{API}/ring/r1/join", json={"url": OTHER, "name": "A"})

        assert resp.json() == {"status": "already_member"}
        assert len(_member_urls(test_client, "r1")) == 2

    def test_moderated_ring_pending(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.post(
            f"{API}/ring/mod/join", json={"url": "https://b.example/", "name": "B"}
        )

        assert resp.json() == {"status": "pending"}
        assert _member_urls(test_client, "mod") == [SELF]

    def test_private_ring_with_secret_pending(
        self, test_client: TestClient, rings: MemoryRingStore
    ) -> None:
        resp = test_client.post(
            f"{API}/ring/priv/join",
            json={"url": "https://b.example/", "name": "B", "secret": "s3cret"},
        )

        assert resp.json() == {"status": "pending"}

    def test_private_ring_bad_secret(
        self, test_client: TestClient, rings: MemoryRingStore
    ) -> None:
        resp = test_client.post(
            f"{API}/ring/priv/join",
            json={"url": "https://b.example/", "name": "B", "secret": "nope"},
        )

        assert resp.status_code == 403
        assert resp.json()["message"] == INVITE_REASON

    def test_curated_ring_forbidden(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.post(
            f"{API}/ring/cur/join", json={"url": "https://b.example/", "name": "B"}
        )

        assert resp.status_code == 403
        assert resp.json() == {"code": "forbidden", "message": CURATED_REASON}

    def test_unknown_ring(self, test_client: TestClient) -> None:
        resp = test_client.post(
            f"{API}/ring/missing/join", json={"url": "https://b.example/", "name": "B"}
        )

        assert resp.status_code == 404

    @pytest.mark.parametrize(
        "body",
        [
            {"name": "B"},
            {"url": "https://b.example/"},
            {"url": "ftp://b.example/", "name": "B"},
            {"url": "https://b.example/", "name": "B", "secret": 42},
        ],
    )
    def test_invalid_body(
        self, test_client: TestClient, rings: MemoryRingStore, body: dict[str, Any]
    ) -> None:
        resp = test_client.post(f"{API}/ring/r1/join", json=body)

        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid"

    @pytest.mark.parametrize("content", [b"not json", b"[1, 2]", b""])
    def test_body_not_json_object(
        self, test_client: TestClient, rings: MemoryRingStore, content: bytes
    ) -> None:
        resp = test_client.post(
            f"{API}/ring/r1/join", content=content, headers={"Content-Type": "application/json"}
        )

        assert resp.status_code == 400


class TestRateEndpoint:
    """Tests for POST /ring/{ring_id}/rate."""

    def test_rate(
        self, test_client: TestClient, rings: MemoryRingStore, mock_peers: MagicMock
    ) -> None:
        resp = test_client.post(
            f"{API}/ring/r1/rate",
            json={"target_url": OTHER, "rating": 4, "rater_url": "https://rater.example/"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"status": "rated"}
        mock_peers.is_alive.assert_awaited_once_with("https://rater.example/")
        assert _ratings_of(test_client, "r1", OTHER) == {"https://rater.example/": 4}

    @pytest.mark.parametrize("rating", [0, 6, "5", None])
    def test_rating_out_of_range(
        self, test_client: TestClient, rings: MemoryRingStore, rating: Any
    ) -> None:
        resp = test_client.post(
            f"{API}/ring/r1/rate",
            json={"target_url": OTHER, "rating": rating, "rater_url": "https://rater.example/"},
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid"
        assert _ratings_of(test_client, "r1", OTHER) == {}

    def test_rater_not_running_protocol(
        self, test_client: TestClient, rings: MemoryRingStore, mock_peers: MagicMock
    ) -> None:
        mock_peers.is_alive.return_value = False

        resp = test_client.post(
            f"{API}/ring/r1/rate",
            json={"target_url": OTHER, "rating": 4, "rater_url": "https://spoof.example/"},
        )

        assert resp.status_code == 403
        assert resp.json()["message"] == RATER_REASON

    def test_unknown_member(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.post(
            f"{API}/ring/r1/rate",
            json={
                "target_url": "https://stranger.example/",
                "rating": 4,
                "rater_url": "https://rater.example/",
            },
        )

        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"


# ============================================================================
# Local Endpoint Tests
# ============================================================================


class TestLocalAccess:
    """Local routes are refused to clients outside ``local_clients``."""

    @pytest.fixture
    def remote_client(self, site_store: MemoryRingStore, mock_peers: MagicMock) -> TestClient:
        service = Federation(
            store=site_store,
            config=FederationConfig(local_clients=["127.0.0.1"]),
            client=mock_peers,
        )
        return TestClient(service.build_app())

    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("get", "/site"),
            ("get", "/rings"),
            ("get", "/widget/r1"),
            ("post", "/rate"),
            ("delete", "/rings/r1"),
        ],
    )
    def test_forbidden(self, remote_client: TestClient, method: str, path: str) -> None:
        resp = getattr(remote_client, method)(f"{LOCAL}{path}")

        assert resp.status_code == 403
        assert resp.json() == {"code": "forbidden", "message": "local endpoint"}

    def test_peer_routes_still_open(self, remote_client: TestClient) -> None:
        assert remote_client.get(f"{API}/ping").status_code == 200

    @pytest.mark.parametrize(
        "header",
        [
            {"X-Forwarded-For": "203.0.113.9"},
            {"Forwarded": "for=203.0.113.9"},
            {"X-Real-IP": "203.0.113.9"},
        ],
    )
    def test_proxied_request_refused(
        self, test_client: TestClient, rings: MemoryRingStore, header: dict[str, str]
    ) -> None:
        resp = test_client.delete(f"{LOCAL}/rings/r1", headers=header)

        assert resp.status_code == 403
        assert resp.json() == {"code": "forbidden", "message": "local endpoint"}
        assert test_client.get(f"{API}/ring/r1").status_code == 200

    def test_proxied_peer_routes_still_open(self, test_client: TestClient) -> None:
        resp = test_client.get(f"{API}/ping", headers={"X-Forwarded-For": "203.0.113.9"})

        assert resp.status_code == 200


class TestLocalRate:
    """Tests for POST /local/rate."""

    def test_rates_as_own_site_without_probe(
        self, test_client: TestClient, rings: MemoryRingStore, mock_peers: MagicMock
    ) -> None:
        resp = test_client.post(
            f"{LOCAL}/rate", json={"ring_id": "r1", "target_url": OTHER, "rating": 5}
        )

        assert resp.status_code == 200
        mock_peers.is_alive.assert_not_awaited()
        assert _ratings_of(test_client, "r1", OTHER) == {SELF: 5}

    def test_joined_ring_proxied(
        self, test_client: TestClient, rings: MemoryRingStore, mock_peers: MagicMock
    ) -> None:
        resp = test_client.post(
            f"{LOCAL}/rate",
            json={"ring_id": MIRROR_KEY, "target_url": "https://x.example/", "rating": 3},
        )

        assert resp.status_code == 200
        mock_peers.post_rating.assert_awaited_once_with(
            "https://host.example/", "remote", "https://x.example/", 3, SELF
        )

    def test_host_refusal_is_bad_gateway(
        self, test_client: TestClient, rings: MemoryRingStore, mock_peers: MagicMock
    ) -> None:
        mock_peers.post_rating.side_effect = PeerResponseError(403, RATER_REASON)

        resp = test_client.post(
            f"{LOCAL}/rate",
            json={"ring_id": MIRROR_KEY, "target_url": "https://x.example/", "rating": 3},
        )

        assert resp.status_code == 502
        assert resp.json() == {"code": "host_error", "message": RATER_REASON}

    def test_unknown_ring(self, test_client: TestClient) -> None:
        resp = test_client.post(
            f"{LOCAL}/rate", json={"ring_id": "missing", "target_url": OTHER, "rating": 3}
        )

        assert resp.status_code == 404


class TestWidget:
    """Tests for GET /local/widget/{ring_id}."""

    def test_hosted_ring(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.get(f"{LOCAL}/widget/r1")

        assert resp.status_code == 200
        body = resp.json()
        assert body["ring_name"] == "Ring r1"
        assert body["mode"] == "carousel"
        assert body["count"] == 2
        assert body["start_index"] == 1
        assert [m["url"] for m in body["members"]] == [SELF, OTHER]

    def test_joined_ring_excludes_dead(
        self, test_client: TestClient, rings: MemoryRingStore
    ) -> None:
        body = test_client.get(f"{LOCAL}/widget/{MIRROR_KEY}").json()

        assert body["ring_name"] == "Remote Ring"
        assert [m["url"] for m in body["members"]] == ["https://x.example/"]

    def test_directory_flag(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        body = test_client.get(f"{LOCAL}/widget/r1", params={"directory": "1"}).json()

        assert body["mode"] == "directory"
        assert body["start_index"] == 0

    def test_overrides(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        body = test_client.get(
            f"{LOCAL}/widget/r1", params={"theme": "dark", "width": "full"}
        ).json()

        assert body["theme"] == "dark"
        assert body["width"] == "full"

    def test_invalid_override(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.get(f"{LOCAL}/widget/r1", params={"mode": "slideshow"})

        assert resp.status_code == 400

    def test_unknown_ring(self, test_client: TestClient) -> None:
        assert test_client.get(f"{LOCAL}/widget/missing").status_code == 404


class TestSettingsEndpoints:
    """Tests for /local/site and /local/widget-settings."""

    def test_get_site(self, test_client: TestClient) -> None:
        resp = test_client.get(f"{LOCAL}/site")

        assert resp.status_code == 200
        assert resp.json()["url"] == SELF
        assert resp.json()["page_url"] == SELF

    def test_get_site_unconfigured(self, store: MemoryRingStore, mock_peers: MagicMock) -> None:
        service = Federation(
            store=store, config=FederationConfig(local_clients=["testclient"]), client=mock_peers
        )

        resp = TestClient(service.build_app()).get(f"{LOCAL}/site")

        assert resp.status_code == 404

    def test_put_site(self, test_client: TestClient) -> None:
        resp = test_client.put(
            f"{LOCAL}/site",
            json={
                "url": "https://new.example/",
                "name": "New",
                "image": "https://new.example/b.png",
            },
        )

        assert resp.status_code == 200
        assert test_client.get(f"{LOCAL}/site").json()["url"] == "https://new.example/"
        assert test_client.get(f"{API}/ping").json()["site_name"] == "New"

    def test_put_site_invalid(self, test_client: TestClient) -> None:
        resp = test_client.put(f"{LOCAL}/site", json={"url": "nope", "name": "New"})

        assert resp.status_code == 400

    def test_widget_settings_defaults(self, test_client: TestClient) -> None:
        resp = test_client.get(f"{LOCAL}/widget-settings")

        assert resp.json() == {"mode": "carousel", "theme": "light", "width": "compact"}

    def test_put_widget_settings_partial(self, test_client: TestClient) -> None:
        resp = test_client.put(f"{LOCAL}/widget-settings", json={"theme": "dark"})

        assert resp.json() == {"mode": "carousel", "theme": "dark", "width": "compact"}
        assert test_client.get(f"{LOCAL}/widget-settings").json()["theme"] == "dark"

    def test_put_widget_settings_invalid(self, test_client: TestClient) -> None:
        resp = test_client.put(f"{LOCAL}/widget-settings", json={"width": "huge"})

        assert resp.status_code == 400
        assert test_client.get(f"{LOCAL}/widget-settings").json()["width"] == "compact"


class TestRingAdmin:
    """Tests for the local ring administration routes."""

    def test_list_rings(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        body = test_client.get(f"{LOCAL}/rings").json()

        assert sorted(r["id"] for r in body["hosted"]) == ["cur", "mod", "priv", "r1"]
        assert [r["key"] for r in body["joined"]] == [MIRROR_KEY]

    def test_create_ring(self, test_client: TestClient) -> None:
        resp = test_client.post(
            f"{LOCAL}/rings", json={"ring_id": "blogs", "name": "Blogs", "type": "moderated"}
        )

        assert resp.status_code == 201
        assert resp.json()["members"][0]["url"] == SELF
        assert _member_urls(test_client, "blogs") == [SELF]

    def test_create_existing_conflict(
        self, test_client: TestClient, rings: MemoryRingStore
    ) -> None:
        resp = test_client.post(
            f"{LOCAL}/rings", json={"ring_id": "r1", "name": "X", "type": "open"}
        )

        assert resp.status_code == 409
        assert resp.json()["code"] == "exists"

    def test_create_invalid(self, test_client: TestClient) -> None:
        resp = test_client.post(
            f"{LOCAL}/rings", json={"ring_id": "p", "name": "P", "type": "private"}
        )

        assert resp.status_code == 400

    def test_delete_ring(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        assert test_client.delete(f"{LOCAL}/rings/r1").json() == {"status": "deleted"}
        assert test_client.delete(f"{LOCAL}/rings/r1").status_code == 404
        assert test_client.get(f"{API}/ring/r1").status_code == 404

    def test_approve_and_reject(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.post(
            f"{LOCAL}/rings/mod/approve", json={"url": "https://waiting.example/"}
        )
        assert resp.json() == {"changed": True}
        assert _member_urls(test_client, "mod") == [SELF, "https://waiting.example/"]

        resp = test_client.post(
            f"{LOCAL}/rings/mod/reject", json={"url": "https://waiting.example/"}
        )
        assert resp.json() == {"changed": False}

    def test_remove(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.post(f"{LOCAL}/rings/r1/remove", json={"url": OTHER})

        assert resp.json() == {"changed": True}
        assert _member_urls(test_client, "r1") == [SELF]

    def test_add_curated(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.post(
            f"{LOCAL}/rings/cur/members", json={"url": "https://b.example/", "name": "B"}
        )

        assert resp.status_code == 201
        assert resp.json()["status"] == "active"
        assert _member_urls(test_client, "cur") == [SELF, "https://b.example/"]

    def test_add_curated_duplicate(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        resp = test_client.post(f"{LOCAL}/rings/cur/members", json={"url": SELF, "name": "Me"})

        assert resp.status_code == 400
        assert resp.json()["code"] == "duplicate"


class TestRemoteJoin:
    """Tests for POST /local/joined and DELETE /local/joined/{key}."""

    def test_join_then_sync(self, test_client: TestClient, mock_peers: MagicMock) -> None:
        mock_peers.fetch_ring.return_value = {
            "ring_id": "remote",
            "name": "Remote",
            "members": [{"url": "https://host.example/", "name": "Host"}],
        }

        resp = test_client.post(
            f"{LOCAL}/joined", json={"host_url": "https://host.example/", "ring_id": "remote"}
        )

        assert resp.status_code == 200
        assert resp.json() == {"status": "approved", "key": MIRROR_KEY, "synced": True}
        joined = test_client.get(f"{LOCAL}/rings").json()["joined"]
        assert joined[0]["name"] == "Remote"
        assert joined[0]["pending"] is False

    def test_join_sync_failure_keeps_mirror(
        self, test_client: TestClient, mock_peers: MagicMock
    ) -> None:
        mock_peers.post_join.return_value = JoinStatus.PENDING
        mock_peers.fetch_ring.side_effect = PeerTimeoutError("timed out")

        resp = test_client.post(
            f"{LOCAL}/joined",
            json={"host_url": "https://host.example/", "ring_id": "remote", "secret": "s"},
        )

        assert resp.json() == {"status": "pending", "key": MIRROR_KEY, "synced": False}
        joined = test_client.get(f"{LOCAL}/rings").json()["joined"]
        assert joined[0]["pending"] is True

    def test_host_refuses(self, test_client: TestClient, mock_peers: MagicMock) -> None:
        mock_peers.post_join.side_effect = PeerResponseError(403, INVITE_REASON)

        resp = test_client.post(
            f"{LOCAL}/joined", json={"host_url": "https://host.example/", "ring_id": "remote"}
        )

        assert resp.status_code == 502
        assert resp.json() == {"code": "host_error", "message": INVITE_REASON}
        assert test_client.get(f"{LOCAL}/rings").json()["joined"] == []

    def test_host_unreachable(self, test_client: TestClient, mock_peers: MagicMock) -> None:
        mock_peers.post_join.side_effect = PeerTimeoutError("POST timed out after 15.0s")

        resp = test_client.post(
            f"{LOCAL}/joined", json={"host_url": "https://host.example/", "ring_id": "remote"}
        )

        assert resp.status_code == 502
        assert resp.json()["message"] == "POST timed out after 15.0s"

    def test_invalid_host(self, test_client: TestClient) -> None:
        resp = test_client.post(f"{LOCAL}/joined", json={"host_url": "nope", "ring_id": "remote"})

        assert resp.status_code == 400

    def test_leave(self, test_client: TestClient, rings: MemoryRingStore) -> None:
        assert test_client.delete(f"{LOCAL}/joined/{MIRROR_KEY}").json() == {"status": "left"}
        assert test_client.delete(f"{LOCAL}/joined/{MIRROR_KEY}").status_code == 404


# ============================================================================
# Error Mapping Tests
# ============================================================================


class TestErrorMapping:
    """Status codes for timeouts and unexpected failures."""

    def test_timeout_is_gateway_timeout(
        self, test_client: TestClient, federation: Federation, rings: MemoryRingStore
    ) -> None:
        with patch.object(
            federation._membership, "request_join", new_callable=AsyncMock, side_effect=TimeoutError
        ):
            resp = test_client.post(
                f"{API}/ring/r1/join", json={"url": "https://b.example/", "name": "B"}
            )

        assert resp.status_code == 504
        assert resp.json()["code"] == "timeout"

    def test_unhandled_error_is_internal(
        self, test_client: TestClient, federation: Federation
    ) -> None:
        with patch.object(
            federation._store, "list_hosted", new_callable=AsyncMock, side_effect=RuntimeError("x")
        ):
            resp = test_client.get(f"{LOCAL}/rings")

        assert resp.status_code == 500
        assert resp.json() == {"code": "internal", "message": "internal server error"}

    def test_cors_headers(self, site_store: MemoryRingStore, mock_peers: MagicMock) -> None:
        service = Federation(
            store=site_store,
            config=FederationConfig(cors_origins=["https://widget.example"]),
            client=mock_peers,
        )

        resp = TestClient(service.build_app()).get(
            f"{API}/ping", headers={"Origin": "https://widget.example"}
        )

        assert resp.headers["access-control-allow-origin"] == "https://widget.example"


# ============================================================================
# Run Cycle Tests
# ============================================================================


class TestRun:
    """Tests for Federation.run() metrics and server task monitoring."""

    def test_requests_counted(
        self, test_client: TestClient, federation: Federation, rings: MemoryRingStore
    ) -> None:
        test_client.get(f"{API}/ping")
        test_client.get(f"{API}/ring/missing")

        assert federation._requests_total == 2
        assert federation._requests_failed == 1

    async def test_run_reports_and_resets(
        self, federation: Federation, rings: MemoryRingStore
    ) -> None:
        federation._requests_total = 7
        federation._requests_failed = 2

        with (
            patch.object(federation, "inc_counter") as inc_counter,
            patch.object(federation, "set_gauge") as set_gauge,
        ):
            await federation.run()

        inc_counter.assert_any_call("requests_total", 7)
        inc_counter.assert_any_call("requests_failed", 2)
        set_gauge.assert_any_call("hosted_rings", 4)
        set_gauge.assert_any_call("joined_rings", 1)
        assert federation._requests_total == 0
        assert federation._requests_failed == 0

    async def test_run_raises_when_server_crashed(self, federation: Federation) -> None:
        task = MagicMock()
        task.done.return_value = True
        task.cancelled.return_value = False
        task.exception.return_value = OSError("address already in use")
        federation._server_task = task

        with pytest.raises(RuntimeError, match="stopped unexpectedly"):
            await federation.run()

    async def test_run_with_live_server_task(self, federation: Federation) -> None:
        task = MagicMock()
        task.done.return_value = False
        federation._server_task = task

        await federation.run()
