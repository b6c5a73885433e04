"""
Node-level configuration: store backend selection and site identity.

A node is one running ringlink site. ``config/ringlink.yaml`` describes
what every service process of that node shares: which
[RingStore][ringlink.core.store.RingStore] backend to use and, optionally,
the site identity to seed into an empty store.

Examples:
    ```yaml
    store: postgres
    pool:
      database:
        host: localhost
        database: ringlink
    site:
      url: https://a.example/
      name: Site A
    ```
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

from ringlink.models import Identity

from .logger import Logger
from .pool import Pool, PoolConfig
from .store import MemoryRingStore, PostgresRingStore, RingStore
from .yaml import load_yaml


if TYPE_CHECKING:
    from collections.abc import AsyncIterator


_logger = Logger("node")


class SiteConfig(BaseModel):
    """Site identity seeded into the store when none is saved yet."""

    url: str = Field(min_length=1)
    name: str = Field(min_length=1)
    page_url: str = ""
    image: str = ""
    excerpt: str = ""

    def to_identity(self) -> Identity:
        return Identity(
            url=self.url,
            name=self.name,
            page_url=self.page_url,
            image=self.image,
            excerpt=self.excerpt,
        )


class NodeConfig(BaseModel):
    """Configuration shared by every service process of a node.

    Attributes:
        store: Backend kind. ``memory`` keeps state in-process only.
        pool: Connection pool settings, used when ``store`` is ``postgres``.
        site: Optional site identity seeded at startup.
    """

    store: Literal["memory", "postgres"] = Field(default="memory", description="Store backend")
    pool: PoolConfig | None = Field(default=None, description="PostgreSQL pool settings")
    site: SiteConfig | None = Field(default=None, description="Site identity seed")

    @classmethod
    def from_yaml(cls, config_path: str) -> NodeConfig:
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeConfig:
        return cls(**data)

    def build_store(self) -> RingStore:
        """Instantiate the configured backend (not yet connected)."""
        if self.store == "postgres":
            return PostgresRingStore(Pool(self.pool or PoolConfig()))
        return MemoryRingStore()


@asynccontextmanager
async def open_store(config: NodeConfig) -> AsyncIterator[RingStore]:
    """Build, connect and prepare the node's store for the duration of the block.

    PostgreSQL stores are connected and their schema ensured. The site
    identity from the config is saved only when the store has none yet,
    so identities edited through the local surface are never overwritten.

    Raises:
        ConnectionError: If the database cannot be reached.
    """
    store = config.build_store()
    if isinstance(store, PostgresRingStore):
        async with store.pool:
            await store.ensure_schema()
            await _seed_site(store, config)
            yield store
    else:
        await _seed_site(store, config)
        yield store


async def _seed_site(store: RingStore, config: NodeConfig) -> None:
    if config.site is None or await store.get_site_identity() is not None:
        return
    identity = config.site.to_identity()
    await store.save_site_identity(identity)
    _logger.info("site_identity_seeded", url=identity.url)
