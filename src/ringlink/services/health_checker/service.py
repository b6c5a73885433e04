"""Health checker service for ringlink.

Keeps the liveness state of hosted-ring members current. Each cycle, for
every hosted ring with ``N`` members, ``min(sample_size, N)`` members are
drawn uniformly without replacement and their ping endpoint is probed.

Transition rules, per member:

```text
probe fails     fails += 1; fails >= max_fails -> status = dead
probe succeeds  status == dead or fails > 0 -> fails = 0, status = active
not sampled     unchanged
```

A single failure never kills a member and a single success clears all
accumulated failures. Probes for all rings run concurrently under one
semaphore; a failing probe never aborts the others. Results are applied
afterwards inside
[RingStore.edit_hosted()][ringlink.core.store.RingStore.edit_hosted],
matching members by url, so membership edits made while probing are kept
and a ring is written back only when a member state changed.

Examples:
    ```python
    from ringlink.core import MemoryRingStore
    from ringlink.services import HealthChecker

    checker = HealthChecker(store=MemoryRingStore())
    async with checker:
        await checker.run()
    ```
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ringlink.core.base_service import BaseService
from ringlink.core.exceptions import RingNotFoundError
from ringlink.core.metrics import PROBE_DURATION_SECONDS
from ringlink.models.constants import ServiceName
from ringlink.services.common.mixins import BoundedConcurrencyMixin, PeerClientMixin

from .configs import HealthCheckerConfig


if TYPE_CHECKING:
    from types import TracebackType

    from ringlink.core.store import RingStore
    from ringlink.models import HostedRing
    from ringlink.services.common.peers import PeerClient


@dataclass(slots=True)
class HealthCycleCounters:
    """Per-cycle totals, reset at the start of every ``run()``."""

    rings: int = 0
    probed: int = 0
    failed: int = 0
    recovered: int = 0
    died: int = 0

    def reset(self) -> None:
        self.rings = 0
        self.probed = 0
        self.failed = 0
        self.recovered = 0
        self.died = 0


class HealthChecker(PeerClientMixin, BoundedConcurrencyMixin, BaseService[HealthCheckerConfig]):
    """Samples hosted-ring members and maintains their failure hysteresis.

    Args:
        store: Ring persistence.
        config: Service configuration.
        client: Shared outbound client; one is created from
            ``config.http`` when omitted.
        rng: Random source for member sampling.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.HEALTH_CHECKER
    CONFIG_CLASS: ClassVar[type[HealthCheckerConfig]] = HealthCheckerConfig

    def __init__(
        self,
        store: RingStore,
        config: HealthCheckerConfig | None = None,
        client: PeerClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(store=store, config=config)
        self._config: HealthCheckerConfig
        self._init_peers(self._config.http, client)
        self._rng = rng if rng is not None else random.Random()  # noqa: S311
        self._counters = HealthCycleCounters()

    @property
    def counters(self) -> HealthCycleCounters:
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
        """Execute one health-check cycle and report its counters."""
        self._logger.info("cycle_started", sample_size=self._config.sample_size)
        cycle_start = time.monotonic()
        self._counters.reset()

        await self.run_health_check_cycle()

        self.set_gauge("rings", self._counters.rings)
        self.set_gauge("probed", self._counters.probed)
        self.set_gauge("failed", self._counters.failed)
        self.set_gauge("recovered", self._counters.recovered)
        self.set_gauge("died", self._counters.died)
        self.inc_counter("total_members_died", self._counters.died)

        self._logger.info(
            "cycle_stats",
            rings=self._counters.rings,
            probed=self._counters.probed,
            failed=self._counters.failed,
            recovered=self._counters.recovered,
            died=self._counters.died,
            duration_s=round(time.monotonic() - cycle_start, 2),
        )

    async def run_health_check_cycle(self) -> None:
        """Probe a sample of every hosted ring and apply the results.

        Callable on its own (without counter reset or cycle logging), e.g.
        from an external scheduler.
        """
        self._init_semaphore(self._config.max_parallel_probes)
        plans = [(ring.id, self.sample_members(ring)) for ring in await self._store.list_hosted()]
        plans = [(ring_id, urls) for ring_id, urls in plans if urls]
        if not plans:
            self._logger.debug("no_members_to_probe")
            return

        outcomes = await asyncio.gather(*(self._probe_all(urls) for _, urls in plans))
        for (ring_id, _), results in zip(plans, outcomes, strict=True):
            self._counters.rings += 1
            await self._apply(ring_id, results)

    def sample_members(self, ring: HostedRing) -> list[str]:
        """Urls of ``min(sample_size, N)`` members drawn without replacement."""
        urls = [m.url for m in ring.members]
        return self._rng.sample(urls, min(self._config.sample_size, len(urls)))

    async def probe(self, url: str) -> bool:
        """Ping one member under the cycle semaphore. True when it answered."""
        async with self._semaphore:
            start = time.monotonic()
            alive = await self._peers.is_alive(url)
            if self._config.metrics.enabled:
                PROBE_DURATION_SECONDS.labels(
                    service=self.SERVICE_NAME, outcome="ok" if alive else "failed"
                ).observe(time.monotonic() - start)
            return alive

    async def _probe_all(self, urls: list[str]) -> dict[str, bool]:
        results = await asyncio.gather(*(self.probe(u) for u in urls), return_exceptions=True)
        outcome: dict[str, bool] = {}
        for url, result in zip(urls, results, strict=True):
            # gather(return_exceptions=True) captures CancelledError as a result
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                self._logger.warning(
                    "probe_error", url=url, error=str(result), error_type=type(result).__name__
                )
                outcome[url] = False
            else:
                outcome[url] = result
        self._counters.probed += len(urls)
        return outcome

    async def _apply(self, ring_id: str, results: dict[str, bool]) -> None:
        """Apply probe outcomes to the current copy of the ring."""
        try:
            async with self._store.edit_hosted(ring_id) as ring:
                for url, alive in results.items():
                    member = ring.find_member(url)
                    if member is None:
                        continue
                    if alive:
                        if member.record_probe_success():
                            self._counters.recovered += 1
                            self._logger.info("member_recovered", ring=ring_id, url=url)
                        continue
                    self._counters.failed += 1
                    if member.record_probe_failure(self._config.max_fails):
                        self._counters.died += 1
                        self._logger.warning(
                            "member_dead", ring=ring_id, url=url, fails=member.fails
                        )
                    else:
                        self._logger.info(
                            "probe_failed", ring=ring_id, url=url, fails=member.fails
                        )
        except RingNotFoundError:
            self._logger.info("ring_deleted_during_probe", ring=ring_id)
