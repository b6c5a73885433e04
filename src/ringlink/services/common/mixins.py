"""Reusable service mixins for ringlink.

Service extensions live here as mixin classes with an ``_init_*()``
method called from the service's ``__init__``.

See Also:
    [BaseService][ringlink.core.base_service.BaseService]: The base class
        these mixins are composed with via multiple inheritance.
"""

from __future__ import annotations

import asyncio

from .peers import PeerClient, PeerClientConfig


class PeerClientMixin:
    """Mixin giving a service a [PeerClient][ringlink.services.common.peers.PeerClient].

    A client passed in by the caller is shared and left open; a client
    created here from the config is owned and closed by ``_close_peers()``.

    Examples:
        ```python
        class MyService(PeerClientMixin, BaseService[MyConfig]):
            def __init__(self, store, config=None, client=None):
                super().__init__(store=store, config=config)
                self._init_peers(self._config.http, client)
        ```
    """

    _peers: PeerClient
    _owns_peers: bool

    def _init_peers(self, config: PeerClientConfig, client: PeerClient | None) -> None:
        self._peers = client if client is not None else PeerClient(config)
        self._owns_peers = client is None

    @property
    def peers(self) -> PeerClient:
        return self._peers

    async def _close_peers(self) -> None:
        if self._owns_peers:
            await self._peers.close()


class BoundedConcurrencyMixin:
    """Mixin providing a semaphore that caps simultaneous outbound requests.

    Call ``_init_semaphore()`` at the start of each ``run()`` cycle so
    configuration changes to the limit are picked up.
    """

    _semaphore: asyncio.Semaphore

    def _init_semaphore(self, max_parallel: int) -> None:
        self._semaphore = asyncio.Semaphore(max_parallel)
