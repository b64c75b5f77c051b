"""
Prometheus metrics for relay pools and an aiohttp exposition endpoint.

Module-level metric objects are process-wide singletons shared by every
[RelayPool][nostrpool.core.pool.RelayPool]; each pool labels its samples with
its own ``pool`` name. Pools record through
[RelayPool.inc_counter()][nostrpool.core.pool.RelayPool.inc_counter] and
[RelayPool.set_gauge()][nostrpool.core.pool.RelayPool.set_gauge], which are
no-ops unless ``MetricsConfig.enabled`` is set.

Architecture:
    POOL_GAUGE:    Point-in-time values (relays connected, subscriptions open).
    POOL_COUNTER:  Cumulative totals (events delivered, duplicates dropped, ...).
    RELAY_STATE:   One-hot relay state per (pool, relay, state).
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for metric recording and the ``/metrics`` endpoint.

    The HTTP endpoint is only started when ``enabled`` is True.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Pool metrics
#
#   gauge:   {pool="default", name="relays_connected"}
#            {pool="default", name="subscriptions"}
#   counter: {pool="default", name="events_delivered"}
#            {pool="default", name="events_duplicate"}
#            {pool="default", name="events_invalid"}
#            {pool="default", name="frames_malformed"}
# ---------------------------------------------------------------------------

POOL_GAUGE = Gauge(
    "nostrpool_gauge",
    "Relay pool gauge values (point-in-time state)",
    ["pool", "name"],
)

POOL_COUNTER = Counter(
    "nostrpool_counter",
    "Relay pool counter values (cumulative totals)",
    ["pool", "name"],
)

RELAY_STATE = Gauge(
    "nostrpool_relay_state",
    "1 for the current state of each relay session, 0 otherwise",
    ["pool", "relay", "state"],
)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... pool runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start listening for scrape requests. No-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled or self._runner is not None:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Stop the HTTP server. Safe to call when it never started."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})
