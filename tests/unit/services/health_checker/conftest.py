"""Shared fixtures for services.health_checker test package."""

from __future__ import annotations

import random
from unittest.mock import MagicMock

import pytest

from ringlink.core.store import MemoryRingStore
from ringlink.services.health_checker import HealthChecker, HealthCheckerConfig


@pytest.fixture
def checker_config() -> HealthCheckerConfig:
    return HealthCheckerConfig(interval=60.0, sample_size=3, max_fails=3)


@pytest.fixture
def checker(
    store: MemoryRingStore, checker_config: HealthCheckerConfig, mock_peers: MagicMock
) -> HealthChecker:
    """HealthChecker over an empty memory store, probing through ``mock_peers``."""
    return HealthChecker(
        store=store, config=checker_config, client=mock_peers, rng=random.Random(1234)
    )
