"""Outbound federation client.

[PeerClient][ringlink.services.common.peers.PeerClient] is the single
place where a node talks to other nodes: liveness probes, ring snapshot
fetches, join requests and proxied ratings. Every call is bounded by an
``aiohttp.ClientTimeout`` and is never retried; failures are translated
into the [ConnectivityError][ringlink.core.exceptions.ConnectivityError]
family so callers decide whether to count, skip or surface them.

Examples:
    ```python
    async with PeerClient(PeerClientConfig(probe_timeout=5)) as peers:
        alive = await peers.is_alive("https://a.example/")
        snapshot = await peers.fetch_ring("https://host.example/", "r1")
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import aiohttp
from pydantic import BaseModel, Field

from ringlink.core.exceptions import ConnectivityError, PeerResponseError, PeerTimeoutError
from ringlink.core.logger import Logger
from ringlink.models.constants import PROTOCOL_VERSION, JoinStatus
from ringlink.utils.http import endpoint_url, read_bounded_json


if TYPE_CHECKING:
    from types import TracebackType

    from ringlink.models import Identity


_HTTP_ERROR_THRESHOLD = 400


class PeerClientConfig(BaseModel):
    """Timeouts and limits for outbound federation requests (seconds/bytes)."""

    probe_timeout: float = Field(default=10.0, ge=0.1, le=60.0, description="Ping timeout")
    fetch_timeout: float = Field(default=15.0, ge=0.1, le=60.0, description="Snapshot timeout")
    post_timeout: float = Field(default=15.0, ge=0.1, le=60.0, description="Join/rate timeout")
    max_response_size: int = Field(
        default=1_048_576, ge=1024, le=52_428_800, description="Maximum response body size"
    )
    allow_insecure: bool = Field(default=False, description="Skip TLS certificate verification")
    user_agent: str = Field(default=f"ringlink/{PROTOCOL_VERSION}", min_length=1)


class PeerClient:
    """aiohttp-based client for the federation endpoints of other nodes.

    The underlying ``ClientSession`` is created on first use (inside the
    running event loop) and released by ``close()`` or on context exit.
    """

    def __init__(
        self,
        config: PeerClientConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or PeerClientConfig()
        self._session = session
        self._owns_session = session is None
        self._logger = Logger("peers")

    @property
    def config(self) -> PeerClientConfig:
        return self._config

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=not self._config.allow_insecure),
                headers={"User-Agent": self._config.user_agent},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if this client created it. Idempotent."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> PeerClient:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        timeout: float,  # noqa: ASYNC109
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Perform one request and return the parsed JSON body.

        Raises:
            PeerTimeoutError: The request exceeded *timeout*.
            PeerResponseError: Non-2xx status (carrying the peer's
                ``message`` when it sent one) or an unparseable 2xx body.
            ConnectivityError: Any other network-level failure.
        """
        try:
            async with self._get_session().request(
                method,
                url,
                params=params,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                try:
                    body = await read_bounded_json(response, self._config.max_response_size)
                except ValueError:
                    body = None
                if response.status >= _HTTP_ERROR_THRESHOLD:
                    message = body.get("message") if isinstance(body, dict) else None
                    raise PeerResponseError(response.status, str(message or response.reason))
                if body is None:
                    raise PeerResponseError(0, f"unparseable response from {url}")
                return body
        except TimeoutError as e:
            raise PeerTimeoutError(f"{method} {url} timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise ConnectivityError(f"{method} {url} failed: {e}") from e

    # -------------------------------------------------------------------------
    # Federation calls
    # -------------------------------------------------------------------------

    async def ping(self, site_url: str) -> dict[str, Any]:
        """Fetch the ping document of the node serving *site_url*."""
        body = await self._request(
            "GET", endpoint_url(site_url, "ping"), timeout=self._config.probe_timeout
        )
        if not isinstance(body, dict):
            raise PeerResponseError(0, "ping response is not an object")
        return body

    async def is_alive(self, site_url: str) -> bool:
        """Whether *site_url* answers its ping endpoint with a success status."""
        try:
            await self.ping(site_url)
        except ConnectivityError as e:
            self._logger.debug("ping_failed", url=site_url, error=str(e))
            return False
        return True

    async def fetch_ring(self, host_url: str, ring_id: str, secret: str = "") -> dict[str, Any]:
        """Fetch the public snapshot of a ring from its host.

        Raises:
            PeerResponseError: Also when the body lacks a ``members`` list.
        """
        body = await self._request(
            "GET",
            endpoint_url(host_url, "ring", ring_id),
            timeout=self._config.fetch_timeout,
            params={"secret": secret} if secret else None,
        )
        if not isinstance(body, dict) or not isinstance(body.get("members"), list):
            raise PeerResponseError(0, "ring snapshot has no members list")
        return body

    async def post_join(
        self, host_url: str, ring_id: str, identity: Identity, secret: str = ""
    ) -> JoinStatus:
        """Ask the host to admit *identity* into *ring_id*."""
        body = await self._request(
            "POST",
            endpoint_url(host_url, "ring", ring_id, "join"),
            timeout=self._config.post_timeout,
            payload={**identity.to_dict(), "secret": secret},
        )
        status = body.get("status") if isinstance(body, dict) else None
        try:
            return JoinStatus(status)
        except ValueError as e:
            raise PeerResponseError(0, f"unexpected join status: {status!r}") from e

    async def post_rating(
        self, host_url: str, ring_id: str, target_url: str, rating: int, rater_url: str
    ) -> dict[str, Any]:
        """Submit a rating to the host of *ring_id* on behalf of *rater_url*."""
        body = await self._request(
            "POST",
            endpoint_url(host_url, "ring", ring_id, "rate"),
            timeout=self._config.post_timeout,
            payload={"target_url": target_url, "rating": rating, "rater_url": rater_url},
        )
        if not isinstance(body, dict):
            raise PeerResponseError(0, "rate response is not an object")
        return body
