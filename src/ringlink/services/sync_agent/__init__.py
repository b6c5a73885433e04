"""Sync agent service package.

Re-exports all public symbols::

    from ringlink.services.sync_agent import SyncAgent, SyncAgentConfig
"""

from .configs import PendingPolicy, SyncAgentConfig
from .service import SyncAgent, SyncCycleCounters, apply_snapshot


__all__ = ["PendingPolicy", "SyncAgent", "SyncAgentConfig", "SyncCycleCounters", "apply_snapshot"]
