"""
Pytest configuration and shared fixtures for ringlink tests.

Provides:
- Mock fixtures for the asyncpg pool and the Pool wrapper
- In-memory ring stores seeded with a site identity
- Sample identities and hosted/joined rings
- A PeerClient double with AsyncMock methods
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from ringlink.core.pool import Pool, PoolConfig
from ringlink.core.store import MemoryRingStore
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


SITE_URL = "https://self.example/"
HOST_URL = "https://host.example/"


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Database Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_connection() -> MagicMock:
    """Create a mock asyncpg connection."""
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value="OK")

    mock_transaction = MagicMock()
    mock_transaction.__aenter__ = AsyncMock(return_value=conn)
    mock_transaction.__aexit__ = AsyncMock(return_value=None)
    conn.transaction = MagicMock(return_value=mock_transaction)

    return conn


@pytest.fixture
def mock_asyncpg_pool(mock_connection: MagicMock) -> MagicMock:
    """Create a mock asyncpg pool."""
    pool = MagicMock()
    pool.close = AsyncMock()

    mock_acquire = MagicMock()
    mock_acquire.__aenter__ = AsyncMock(return_value=mock_connection)
    mock_acquire.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = MagicMock(return_value=mock_acquire)

    return pool


@pytest.fixture
def pool_config_dict() -> dict[str, Any]:
    return {
        "database": {
            "host": "localhost",
            "port": 5432,
            "database": "ringlink_test",
            "user": "tester",
            "password": "test_pass",  # pragma: allowlist secret
        },
        "limits": {"min_size": 1, "max_size": 2},
        "retry": {"max_attempts": 2, "initial_delay": 0.1, "max_delay": 0.2},
    }


@pytest.fixture
def mock_pool(mock_asyncpg_pool: MagicMock, pool_config_dict: dict[str, Any]) -> Pool:
    """Create a connected Pool whose asyncpg internals are mocks."""
    pool = Pool(PoolConfig(**pool_config_dict))
    pool._pool = mock_asyncpg_pool
    pool._is_connected = True
    return pool


# ============================================================================
# Sample Data Fixtures
# ============================================================================


def _make_identity(url: str, name: str | None = None) -> Identity:
    return Identity(url=url, name=name or url.split("//")[1].rstrip("/"))


def _make_ring(
    ring_id: str = "r1",
    ring_type: RingType = RingType.OPEN,
    members: list[str] | None = None,
    pending: list[str] | None = None,
    secret: str = "",
) -> HostedRing:
    """Build a hosted ring whose members and pending requests are given by url."""
    if ring_type is RingType.PRIVATE and not secret:
        secret = "s3cret"  # pragma: allowlist secret
    member_urls = members if members is not None else [SITE_URL]
    return HostedRing(
        id=ring_id,
        name=f"Ring {ring_id}",
        type=ring_type,
        secret=secret,
        members=[Member(identity=_make_identity(u)) for u in member_urls],
        pending=[PendingRequest(identity=_make_identity(u)) for u in (pending or [])],
    )


@pytest.fixture
def site() -> Identity:
    return Identity(url=SITE_URL, name="Self Site")


@pytest.fixture
def candidate() -> Identity:
    return Identity(url="https://b.example/", name="Site B")


@pytest.fixture
def store() -> MemoryRingStore:
    return MemoryRingStore()


@pytest.fixture
async def site_store(store: MemoryRingStore, site: Identity) -> MemoryRingStore:
    """Memory store with the local site identity configured."""
    await store.save_site_identity(site)
    return store


@pytest.fixture
def joined_ring() -> JoinedRing:
    return JoinedRing(host_url=HOST_URL, ring_id="remote")


# ============================================================================
# Peer Client Double
# ============================================================================


@pytest.fixture
def mock_peers() -> MagicMock:
    """PeerClient double: every peer answers and accepts by default."""
    peers = MagicMock(spec=PeerClient)
    peers.ping = AsyncMock(return_value={"status": "ok", "version": "1.1.2", "site_name": "x"})
    peers.is_alive = AsyncMock(return_value=True)
    peers.fetch_ring = AsyncMock(return_value={"ring_id": "remote", "name": "Remote", "members": []})
    peers.post_join = AsyncMock(return_value=JoinStatus.APPROVED)
    peers.post_rating = AsyncMock(return_value={"status": "rated"})
    peers.close = AsyncMock()
    return peers


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest.fixture
def make_identity() -> Any:
    """Factory: ``make_identity(url, name=None)`` -> Identity."""
    return _make_identity


@pytest.fixture
def make_ring() -> Any:
    """Factory: ``make_ring(ring_id, ring_type, members, pending, secret)`` -> HostedRing.

    Members default to the local site only.
    """
    return _make_ring
