"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are process-wide singletons shared by all
services. ``BaseService.run_forever()`` records cycle counts, durations and
failure streaks automatically; services add their own values through
``set_gauge()`` and ``inc_counter()``. The health checker additionally
observes probe latency in ``PROBE_DURATION_SECONDS``.

``MetricsServer`` exposes the registry on an aiohttp endpoint for
Prometheus scraping, configured by ``MetricsConfig`` which every service
config embeds.

Architecture:
    SERVICE_INFO:             Static metadata set once at startup.
    SERVICE_GAUGE:            Point-in-time values (members probed, rings synced).
    SERVICE_COUNTER:          Cumulative totals (cycles, errors by type).
    CYCLE_DURATION_SECONDS:   Histogram of whole-cycle latency.
    PROBE_DURATION_SECONDS:   Histogram of single peer request latency.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint is only started when ``enabled`` is True. Bind ``host``
    to ``"0.0.0.0"`` in containers to allow external scraping.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


SERVICE_INFO = Info(
    "ringlink_service",
    "Service information and metadata",
)

CYCLE_DURATION_SECONDS = Histogram(
    "ringlink_cycle_duration_seconds",
    "Duration of service cycle in seconds",
    ["service"],
    buckets=(0.5, 1, 5, 10, 30, 60, 120, 300, 600, 1800),
)

PROBE_DURATION_SECONDS = Histogram(
    "ringlink_peer_request_duration_seconds",
    "Duration of outbound peer requests in seconds",
    ["service", "outcome"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 15),
)

# Automatic labels (BaseService.run_forever):
#   gauge:   consecutive_failures, last_cycle_timestamp
#   counter: cycles_success, cycles_failed, errors_{type}
SERVICE_GAUGE = Gauge(
    "ringlink_service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "ringlink_service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)


class MetricsServer:
    """Async HTTP server exposing the Prometheus registry.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... service runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint; no-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Release the bound port. Safe to call when never started."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )


async def start_metrics_server(config: MetricsConfig | None = None) -> MetricsServer:
    """Create and start a metrics server; the caller must ``stop()`` it."""
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
