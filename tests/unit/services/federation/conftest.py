"""Shared fixtures for services.federation test package."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from ringlink.core.store import MemoryRingStore
from ringlink.models import JoinedRing, RingType
from ringlink.services.federation import Federation, FederationConfig


OTHER_URL = "https://a.example/"


@pytest.fixture
def federation_config() -> FederationConfig:
    """Config that treats the TestClient's peer address as local."""
    return FederationConfig(
        interval=60.0,
        host="127.0.0.1",
        port=9999,
        local_clients=["testclient"],
        request_timeout=5.0,
    )


@pytest.fixture
def federation(
    site_store: MemoryRingStore, federation_config: FederationConfig, mock_peers: MagicMock
) -> Federation:
    return Federation(store=site_store, config=federation_config, client=mock_peers)


@pytest.fixture
def test_client(federation: Federation) -> TestClient:
    """FastAPI TestClient from the Federation service."""
    return TestClient(federation.build_app())


@pytest.fixture
async def rings(site_store: MemoryRingStore, make_ring: Any) -> MemoryRingStore:
    """Seed one hosted ring of every type plus a joined mirror.

    ``r1`` (open) holds the site and ``OTHER_URL``; ``mod`` (moderated)
    has one pending request; ``priv`` is private with secret ``s3cret``;
    ``cur`` is curated.
    """
    await site_store.add_hosted(make_ring("r1", members=["https://self.example/", OTHER_URL]))
    await site_store.add_hosted(
        make_ring("mod", RingType.MODERATED, pending=["https://waiting.example/"])
    )
    await site_store.add_hosted(make_ring("priv", RingType.PRIVATE))
    await site_store.add_hosted(make_ring("cur", RingType.CURATED))
    mirror = JoinedRing(
        host_url="https://host.example/",
        ring_id="remote",
        name="Remote Ring",
        members=[
            {"url": "https://x.example/", "name": "X"},
            {"url": "https://dead.example/", "name": "Dead", "status": "dead"},
        ],
    )
    await site_store.put_joined(mirror)
    return site_store
