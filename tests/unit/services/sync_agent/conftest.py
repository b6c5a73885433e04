"""Shared fixtures for services.sync_agent test package."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from ringlink.core.store import MemoryRingStore
from ringlink.models import JoinedRing
from ringlink.services.sync_agent import SyncAgent, SyncAgentConfig


@pytest.fixture
def agent(site_store: MemoryRingStore, mock_peers: MagicMock) -> SyncAgent:
    return SyncAgent(store=site_store, config=SyncAgentConfig(interval=60.0), client=mock_peers)


@pytest.fixture
async def stored_mirror(site_store: MemoryRingStore, joined_ring: JoinedRing) -> JoinedRing:
    """Joined ring mirroring two members, flagged pending, never synced."""
    joined_ring.members = [{"url": "https://x.example/"}, {"url": "https://y.example/"}]
    joined_ring.pending = True
    await site_store.put_joined(joined_ring)
    return joined_ring
