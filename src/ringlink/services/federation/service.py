"""Federation HTTP service for ringlink via FastAPI.

Serves the endpoints other nodes call, under ``/ringlink/v1``:

```text
GET  /ping                       liveness and identity proof
GET  /ring/{ring_id}?secret=     public snapshot of a hosted ring
POST /ring/{ring_id}/join        admission request
POST /ring/{ring_id}/rate        rating from another node
```

and a local-only surface under ``/ringlink/v1/local`` for same-node
callers (rendering surfaces, admin tooling), accepted only from the
addresses in ``local_clients``: same-site rating, the widget view model,
site identity and display defaults, ring creation and deletion, member
approval/rejection/removal, curated additions, remote join and leave.

Refusals are [FederationError][ringlink.core.exceptions.FederationError]
subclasses mapped to their ``status_code`` with a ``{code, message}``
JSON body. A remote host's refusal or unreachability during a proxied
call answers 502 with the host's message.

The HTTP server runs as a background ``asyncio.Task`` alongside the
standard ``run_forever()`` cycle; each ``run()`` logs request statistics
and updates Prometheus metrics.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Any, ClassVar

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ringlink.core.base_service import BaseService
from ringlink.core.exceptions import (
    ConnectivityError,
    FederationError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    PeerResponseError,
    RingExistsError,
    RingNotFoundError,
)
from ringlink.models import (
    API_PREFIX,
    PROTOCOL_VERSION,
    HostedRing,
    Identity,
    JoinedRing,
    UnknownRing,
    WidgetMode,
)
from ringlink.models.constants import ServiceName
from ringlink.services.common.mixins import PeerClientMixin
from ringlink.services.membership import INVITE_REASON, MembershipService
from ringlink.services.presentation import build_widget, resolve_display
from ringlink.services.ratings import RatingService
from ringlink.services.sync_agent import SyncAgent, SyncAgentConfig

from .configs import FederationConfig


if TYPE_CHECKING:
    from collections.abc import Awaitable
    from types import TracebackType

    from ringlink.core.store import RingStore
    from ringlink.services.common.peers import PeerClient

_HTTP_ERROR_THRESHOLD = 400
_TRUTHY = frozenset({"1", "true", "yes"})
_FORWARDING_HEADERS = ("forwarded", "x-forwarded-for", "x-real-ip")


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse({"code": code, "message": message}, status_code=status)


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidRequestError("request body must be JSON") from e
    if not isinstance(body, dict):
        raise InvalidRequestError("request body must be a JSON object")
    return body


def _identity(body: dict[str, Any]) -> Identity:
    if not body.get("url") or not body.get("name"):
        raise InvalidRequestError("url and name are required")
    try:
        return Identity.from_dict(body)
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(str(e)) from e


def _text(body: dict[str, Any], key: str) -> str:
    value = body.get(key) or ""
    if not isinstance(value, str):
        raise InvalidRequestError(f"{key} must be a string")
    return value


class Federation(PeerClientMixin, BaseService[FederationConfig]):
    """HTTP surface consumed by peer nodes and same-node callers.

    Lifecycle:
        1. ``__aenter__``: build the FastAPI app, start uvicorn.
        2. ``run()``: log request statistics and update Prometheus gauges.
        3. ``__aexit__``: cancel the HTTP server task, close the client.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.FEDERATION
    CONFIG_CLASS: ClassVar[type[FederationConfig]] = FederationConfig

    def __init__(
        self,
        store: RingStore,
        config: FederationConfig | None = None,
        client: PeerClient | None = None,
    ) -> None:
        super().__init__(store=store, config=config)
        self._config: FederationConfig
        self._init_peers(self._config.http, client)
        self._membership = MembershipService(store, self._peers)
        self._ratings = RatingService(store, self._peers)
        self._sync = SyncAgent(
            store,
            SyncAgentConfig(pending_policy=self._config.pending_policy, http=self._config.http),
            client=self._peers,
        )
        self._server_task: asyncio.Task[None] | None = None
        self._requests_total = 0
        self._requests_failed = 0

    async def __aenter__(self) -> Federation:
        await super().__aenter__()
        app = self.build_app()
        self._server_task = asyncio.create_task(self._run_server(app))
        self._logger.info("http_server_started", host=self._config.host, port=self._config.port)
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        if self._server_task is not None:
            self._server_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._server_task
            self._server_task = None
        self._logger.info("http_server_stopped")
        await self._close_peers()
        await super().__aexit__(_exc_type, _exc_val, _exc_tb)

    async def run(self) -> None:
        """Log request stats and update Prometheus counters."""
        if self._server_task is not None and self._server_task.done():
            exc = self._server_task.exception() if not self._server_task.cancelled() else None
            self._logger.error("http_server_crashed", error=str(exc) if exc else "cancelled")
            raise RuntimeError("HTTP server task has stopped unexpectedly") from exc

        total = self._requests_total
        failed = self._requests_failed
        self._requests_total = 0
        self._requests_failed = 0

        hosted = len(await self._store.list_hosted())
        joined = len(await self._store.list_joined())
        self._logger.info(
            "cycle_stats",
            requests_total=total,
            requests_failed=failed,
            hosted_rings=hosted,
            joined_rings=joined,
        )
        self.inc_counter("requests_total", total)
        self.inc_counter("requests_failed", failed)
        self.set_gauge("hosted_rings", hosted)
        self.set_gauge("joined_rings", joined)

    async def _bounded(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self._config.request_timeout)

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------

    def build_app(self) -> FastAPI:
        """Construct the FastAPI application with all federation routes."""
        app = FastAPI(title="ringlink federation", version=PROTOCOL_VERSION)

        if self._config.cors_origins:
            app.add_middleware(
                CORSMiddleware,
                allow_origins=self._config.cors_origins,
                allow_methods=["GET", "POST"],
                allow_headers=["*"],
            )

        @app.middleware("http")
        async def log_requests(request: Request, call_next: Any) -> Response:
            start = time.monotonic()
            try:
                response: Response = await call_next(request)
            except Exception as exc:  # HTTP request error boundary
                self._logger.error("unhandled_error", error=str(exc), path=request.url.path)
                response = _error(500, "internal", "internal server error")
            duration_ms = round((time.monotonic() - start) * 1000, 1)
            self._requests_total += 1
            if response.status_code >= _HTTP_ERROR_THRESHOLD:
                self._requests_failed += 1
                self._logger.warning(
                    "request_failed",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=duration_ms,
                )
            else:
                self._logger.debug(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=duration_ms,
                )
            return response

        @app.exception_handler(FederationError)
        async def federation_error(_request: Request, exc: FederationError) -> JSONResponse:
            return _error(exc.status_code, exc.code, exc.message)

        @app.exception_handler(RingExistsError)
        async def ring_exists(_request: Request, exc: RingExistsError) -> JSONResponse:
            return _error(409, "exists", str(exc))

        @app.exception_handler(ConnectivityError)
        async def host_error(_request: Request, exc: ConnectivityError) -> JSONResponse:
            message = exc.message if isinstance(exc, PeerResponseError) else str(exc)
            return _error(502, "host_error", message)

        @app.exception_handler(TimeoutError)
        async def timeout(_request: Request, _exc: TimeoutError) -> JSONResponse:
            return _error(504, "timeout", "request timed out")

        app.include_router(self._peer_router(), prefix=API_PREFIX)
        app.include_router(
            self._local_router(),
            prefix=f"{API_PREFIX}/local",
            dependencies=[Depends(self._require_local)],
        )
        return app

    async def _require_local(self, request: Request) -> None:
        client = request.client.host if request.client is not None else ""
        if client not in self._config.local_clients:
            raise ForbiddenError("local endpoint")
        # Proxied requests carry the proxy's address, not the caller's
        if any(h in request.headers for h in _FORWARDING_HEADERS):
            raise ForbiddenError("local endpoint")

    # -------------------------------------------------------------------------
    # Peer surface
    # -------------------------------------------------------------------------

    def _peer_router(self) -> APIRouter:
        router = APIRouter()

        @router.get("/ping")
        async def ping() -> dict[str, str]:
            site = await self._store.get_site_identity()
            return {
                "status": "ok",
                "version": PROTOCOL_VERSION,
                "site_name": site.name if site is not None else "",
            }

        @router.get("/ring/{ring_id}")
        async def get_ring(ring_id: str, secret: str = "") -> dict[str, Any]:
            ring = await self._store.get_hosted(ring_id)
            if ring is None:
                raise RingNotFoundError(ring_id)
            if not ring.check_secret(secret):
                raise ForbiddenError(INVITE_REASON)
            return ring.snapshot()

        @router.post("/ring/{ring_id}/join")
        async def join_ring(ring_id: str, request: Request) -> dict[str, str]:
            body = await _json_body(request)
            candidate = _identity(body)
            status = await self._bounded(
                self._membership.request_join(ring_id, candidate, _text(body, "secret"))
            )
            return {"status": status.value}

        @router.post("/ring/{ring_id}/rate")
        async def rate_member(ring_id: str, request: Request) -> dict[str, str]:
            body = await _json_body(request)
            await self._bounded(
                self._ratings.submit_rating(
                    ring_id, body.get("target_url"), body.get("rating"), body.get("rater_url")
                )
            )
            return {"status": "rated"}

        return router

    # -------------------------------------------------------------------------
    # Local surface
    # -------------------------------------------------------------------------

    def _local_router(self) -> APIRouter:  # noqa: C901, PLR0915
        router = APIRouter()

        @router.post("/rate")
        async def rate_local(request: Request) -> dict[str, str]:
            body = await _json_body(request)
            await self._bounded(
                self._ratings.submit_local_rating(
                    _text(body, "ring_id"), body.get("target_url"), body.get("rating")
                )
            )
            return {"status": "rated"}

        @router.get("/widget/{ring_id}")
        async def widget(
            ring_id: str,
            mode: str = "",
            theme: str = "",
            width: str = "",
            directory: str = "",
        ) -> dict[str, Any]:
            if directory.lower() in _TRUTHY:
                mode = WidgetMode.DIRECTORY
            display = resolve_display(await self._store.get_widget_settings(), mode, theme, width)
            site = await self._store.get_site_identity()
            self_url = site.url if site is not None else ""
            match await self._store.resolve(ring_id):
                case HostedRing() as ring:
                    members = [m.to_dict() for m in ring.members]
                    return build_widget(ring.id, ring.name, members, display, self_url)
                case JoinedRing() as mirror:
                    return build_widget(ring_id, mirror.name, mirror.members, display, self_url)
                case UnknownRing():
                    raise RingNotFoundError(ring_id)

        @router.get("/site")
        async def get_site() -> dict[str, Any]:
            site = await self._store.get_site_identity()
            if site is None:
                raise NotFoundError("site identity is not configured")
            return site.to_dict()

        @router.put("/site")
        async def put_site(request: Request) -> dict[str, Any]:
            identity = _identity(await _json_body(request))
            await self._store.save_site_identity(identity)
            self._logger.info("site_identity_saved", url=identity.url)
            return identity.to_dict()

        @router.get("/widget-settings")
        async def get_widget_settings() -> dict[str, str]:
            return (await self._store.get_widget_settings()).to_dict()

        @router.put("/widget-settings")
        async def put_widget_settings(request: Request) -> dict[str, str]:
            body = await _json_body(request)
            settings = resolve_display(
                await self._store.get_widget_settings(),
                _text(body, "mode"),
                _text(body, "theme"),
                _text(body, "width"),
            )
            await self._store.save_widget_settings(settings)
            return settings.to_dict()

        @router.get("/rings")
        async def list_rings() -> dict[str, Any]:
            hosted = await self._store.list_hosted()
            joined = await self._store.list_joined()
            return {
                "hosted": [r.to_dict() for r in hosted],
                "joined": [{**r.to_dict(), "key": r.key} for r in joined],
            }

        @router.post("/rings", status_code=201)
        async def create_ring(request: Request) -> dict[str, Any]:
            body = await _json_body(request)
            ring = await self._membership.create_ring(
                _text(body, "ring_id"),
                _text(body, "name"),
                _text(body, "type"),
                _text(body, "secret"),
            )
            return ring.to_dict()

        @router.delete("/rings/{ring_id}")
        async def delete_ring(ring_id: str) -> dict[str, str]:
            if not await self._membership.delete_ring(ring_id):
                raise RingNotFoundError(ring_id)
            return {"status": "deleted"}

        @router.post("/rings/{ring_id}/approve")
        async def approve(ring_id: str, request: Request) -> dict[str, bool]:
            url = _text(await _json_body(request), "url")
            return {"changed": await self._membership.approve(ring_id, url)}

        @router.post("/rings/{ring_id}/reject")
        async def reject(ring_id: str, request: Request) -> dict[str, bool]:
            url = _text(await _json_body(request), "url")
            return {"changed": await self._membership.reject(ring_id, url)}

        @router.post("/rings/{ring_id}/remove")
        async def remove(ring_id: str, request: Request) -> dict[str, bool]:
            url = _text(await _json_body(request), "url")
            return {"changed": await self._membership.remove(ring_id, url)}

        @router.post("/rings/{ring_id}/members", status_code=201)
        async def add_curated(ring_id: str, request: Request) -> dict[str, Any]:
            identity = _identity(await _json_body(request))
            member = await self._membership.add_curated(ring_id, identity)
            return member.to_dict()

        @router.post("/joined")
        async def join_remote(request: Request) -> dict[str, Any]:
            body = await _json_body(request)
            status, mirror = await self._bounded(
                self._membership.join_remote(
                    _text(body, "host_url"), _text(body, "ring_id"), _text(body, "secret")
                )
            )
            synced = await self._bounded(self._sync.sync_ring(mirror.key))
            return {"status": status.value, "key": mirror.key, "synced": synced}

        @router.delete("/joined/{key}")
        async def leave(key: str) -> dict[str, str]:
            if not await self._membership.leave(key):
                raise RingNotFoundError(key)
            return {"status": "left"}

        return router

    async def _run_server(self, app: FastAPI) -> None:
        """Run uvicorn as an asyncio server."""
        config = uvicorn.Config(
            app,
            host=self._config.host,
            port=self._config.port,
            log_level="warning",
            access_log=False,
        )
        server = uvicorn.Server(config)
        await server.serve()
