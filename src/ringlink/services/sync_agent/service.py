"""Sync agent service for ringlink.

Keeps joined-ring mirrors fresh by pulling the authoritative snapshot
from each ring's host:

1. ``GET <host>/ringlink/v1/ring/<ring_id>`` (with ``?secret=`` when the
   mirror stores one), bounded by ``http.fetch_timeout``.
2. On success (2xx, JSON object with a ``members`` list) the mirror's
   members are **replaced wholesale**, its name updated when the host
   sent one, ``last_sync`` set to now and ``pending`` updated per
   [PendingPolicy][ringlink.services.sync_agent.configs.PendingPolicy].
3. On any failure the mirror is left untouched until the next cycle.

Mirrors have no dead/alive tracking: staleness is only visible through
the age of ``last_sync``.

See Also:
    [SyncAgentConfig][ringlink.services.sync_agent.SyncAgentConfig]:
        Configuration model for this service.
    [HealthChecker][ringlink.services.health_checker.HealthChecker]:
        Independent job maintaining the hosted side.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from ringlink.core.base_service import BaseService
from ringlink.core.exceptions import ConnectivityError, RingNotFoundError
from ringlink.models import mirror_members
from ringlink.models.constants import ServiceName
from ringlink.services.common.mixins import BoundedConcurrencyMixin, PeerClientMixin

from .configs import PendingPolicy, SyncAgentConfig


if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from ringlink.core.store import RingStore
    from ringlink.models import JoinedRing
    from ringlink.services.common.peers import PeerClient


def apply_snapshot(
    mirror: JoinedRing,
    snapshot: Mapping[str, Any],
    *,
    policy: PendingPolicy,
    self_url: str | None,
    now: int | None = None,
) -> None:
    """Overwrite *mirror* with a host snapshot in place.

    Members are replaced, never merged. Without a known *self_url* the
    ``derive`` policy leaves ``pending`` unchanged.
    """
    mirror.members = mirror_members(snapshot.get("members") or [])
    name = snapshot.get("name")
    if isinstance(name, str) and name:
        mirror.name = name
    mirror.last_sync = now if now is not None else int(time.time())
    if policy is PendingPolicy.CLEAR:
        mirror.pending = False
    elif self_url and any(m.get("url") == self_url for m in mirror.members):
        mirror.pending = False


@dataclass(slots=True)
class SyncCycleCounters:
    """Per-cycle totals, reset at the start of every ``run()``."""

    mirrors: int = 0
    synced: int = 0
    skipped: int = 0

    def reset(self) -> None:
        self.mirrors = 0
        self.synced = 0
        self.skipped = 0


class SyncAgent(PeerClientMixin, BoundedConcurrencyMixin, BaseService[SyncAgentConfig]):
    """Pulls ring snapshots from remote hosts into local mirrors.

    Args:
        store: Ring persistence.
        config: Service configuration.
        client: Shared outbound client; one is created from
            ``config.http`` when omitted.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.SYNC_AGENT
    CONFIG_CLASS: ClassVar[type[SyncAgentConfig]] = SyncAgentConfig

    def __init__(
        self,
        store: RingStore,
        config: SyncAgentConfig | None = None,
        client: PeerClient | None = None,
    ) -> None:
        super().__init__(store=store, config=config)
        self._config: SyncAgentConfig
        self._init_peers(self._config.http, client)
        self._init_semaphore(self._config.max_parallel_syncs)
        self._counters = SyncCycleCounters()

    @property
    def counters(self) -> SyncCycleCounters:
        return self._counters

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self._close_peers()
        await super().__aexit__(_exc_type, _exc_val, _exc_tb)

    async def run(self) -> None:
        """Execute one sync cycle and report its counters."""
        self._logger.info("cycle_started", pending_policy=self._config.pending_policy.value)
        cycle_start = time.monotonic()
        self._counters.reset()

        await self.run_sync_cycle()

        self.set_gauge("mirrors", self._counters.mirrors)
        self.set_gauge("synced", self._counters.synced)
        self.set_gauge("skipped", self._counters.skipped)

        self._logger.info(
            "cycle_stats",
            mirrors=self._counters.mirrors,
            synced=self._counters.synced,
            skipped=self._counters.skipped,
            duration_s=round(time.monotonic() - cycle_start, 2),
        )

    async def run_sync_cycle(self) -> None:
        """Refresh every joined-ring mirror with bounded concurrency."""
        self._init_semaphore(self._config.max_parallel_syncs)
        mirrors = await self._store.list_joined()
        if not mirrors:
            self._logger.debug("no_mirrors_to_sync")
            return

        keys = [m.key for m in mirrors]
        results = await asyncio.gather(*(self._bounded_sync(k) for k in keys), return_exceptions=True)
        for key, result in zip(keys, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                self._logger.error(
                    "sync_unexpected_error",
                    key=key,
                    error=str(result),
                    error_type=type(result).__name__,
                )
            self._counters.mirrors += 1
            if result is True:
                self._counters.synced += 1
            else:
                self._counters.skipped += 1

    async def _bounded_sync(self, key: str) -> bool:
        async with self._semaphore:
            try:
                return await self.sync_ring(key)
            except RingNotFoundError:
                self._logger.info("ring_left_during_sync", key=key)
                return False

    async def sync_ring(self, key: str) -> bool:
        """Fetch and apply the host snapshot for one mirror.

        Returns:
            True if the mirror was updated; False if the host could not be
            reached, refused, sent an unusable body, or the mirror was
            removed meanwhile (the mirror is then left as it was).

        Raises:
            RingNotFoundError: No mirror is stored under *key*.
        """
        mirror = await self._store.get_joined(key)
        if mirror is None:
            raise RingNotFoundError(key)

        try:
            snapshot = await self._peers.fetch_ring(mirror.host_url, mirror.ring_id, mirror.secret)
        except ConnectivityError as e:
            self._logger.warning(
                "ring_sync_failed",
                host=mirror.host_url,
                ring=mirror.ring_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        site = await self._store.get_site_identity()
        try:
            async with self._store.edit_joined(key) as current:
                apply_snapshot(
                    current,
                    snapshot,
                    policy=self._config.pending_policy,
                    self_url=site.url if site is not None else None,
                )
                members = len(current.members)
        except RingNotFoundError:
            self._logger.info("ring_left_during_sync", key=key)
            return False

        self._logger.info(
            "ring_synced", host=mirror.host_url, ring=mirror.ring_id, members=members
        )
        return True
