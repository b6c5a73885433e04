"""
Ring persistence: hosted rings, joined-ring mirrors, and node settings.

[RingStore][ringlink.core.store.RingStore] is the only component that
touches storage. It exposes typed operations over three key-value
collections and holds no policy: admission, health and rating rules live
in the services layer.

Collections:

```text
hosted    ring id          -> HostedRing.to_dict()
joined    joined_ring_key  -> JoinedRing.to_dict()
settings  "site"           -> Identity.to_dict()
          "widget"         -> WidgetSettings.to_dict()
```

Every read-modify-write goes through
[edit_hosted()][ringlink.core.store.RingStore.edit_hosted] or
[edit_joined()][ringlink.core.store.RingStore.edit_joined]. Both hold an
``asyncio.Lock`` keyed by ``(collection, key)`` for the whole edit, and the
backend performs the load and the write-back as one atomic unit (a
``SELECT ... FOR UPDATE`` transaction in PostgreSQL), so concurrent
approvals, rating upserts and health updates on the same ring are never
lost. The record is written back only when the edit actually changed it.

Backends:
    [MemoryRingStore][ringlink.core.store.MemoryRingStore]: dict-backed,
        copies values in and out. Used by tests and single-process nodes.
    [PostgresRingStore][ringlink.core.store.PostgresRingStore]: one
        ``ringlink_kv`` JSONB table behind the asyncpg
        [Pool][ringlink.core.pool.Pool].
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from ringlink.models import HostedRing, Identity, JoinedRing, UnknownRing, WidgetSettings

from .exceptions import RingExistsError, RingNotFoundError
from .logger import Logger


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .pool import Pool


@dataclass(slots=True)
class _KeyLock:
    """Lock for one ``(collection, key)`` plus the number of holders and waiters."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


@dataclass(slots=True)
class _Slot:
    """Mutable holder for the record under edit; ``value=None`` means absent."""

    value: dict[str, Any] | None


class RingStore(ABC):
    """Abstract persistence over the hosted, joined and settings collections.

    Subclasses implement the storage primitives (``_get``, ``_put``,
    ``_insert``, ``_delete``, ``_values``, ``_edit``); the typed
    operations and per-key locking live here.
    """

    HOSTED: ClassVar[str] = "hosted"
    JOINED: ClassVar[str] = "joined"
    SETTINGS: ClassVar[str] = "settings"

    SITE_KEY: ClassVar[str] = "site"
    WIDGET_KEY: ClassVar[str] = "widget"

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], _KeyLock] = {}
        self._logger = Logger("store")

    # -------------------------------------------------------------------------
    # Storage primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _get(self, collection: str, key: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def _put(self, collection: str, key: str, value: dict[str, Any]) -> None: ...

    @abstractmethod
    async def _insert(self, collection: str, key: str, value: dict[str, Any]) -> bool:
        """Store *value* only if *key* is absent. Returns whether it was stored."""

    @abstractmethod
    async def _delete(self, collection: str, key: str) -> bool: ...

    @abstractmethod
    async def _values(self, collection: str) -> list[dict[str, Any]]: ...

    @abstractmethod
    def _edit(self, collection: str, key: str) -> Any:
        """Async context manager yielding a [_Slot][ringlink.core.store._Slot].

        The slot holds the current value (``None`` if absent). Whatever the
        slot holds on clean exit is written back atomically with the read;
        on error nothing is written.
        """

    @asynccontextmanager
    async def _lock(self, collection: str, key: str) -> AsyncIterator[None]:
        """Hold the per-key lock. The entry is dropped once nobody holds or awaits it."""
        slot_key = (collection, key)
        entry = self._locks.get(slot_key)
        if entry is None:
            entry = self._locks[slot_key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[slot_key]

    # -------------------------------------------------------------------------
    # Hosted rings
    # -------------------------------------------------------------------------

    async def get_hosted(self, ring_id: str) -> HostedRing | None:
        data = await self._get(self.HOSTED, ring_id)
        return HostedRing.from_dict(data) if data is not None else None

    async def list_hosted(self) -> list[HostedRing]:
        return [HostedRing.from_dict(v) for v in await self._values(self.HOSTED)]

    async def add_hosted(self, ring: HostedRing) -> None:
        """Persist a new hosted ring.

        Raises:
            RingExistsError: If a ring with the same id already exists.
        """
        async with self._lock(self.HOSTED, ring.id):
            if not await self._insert(self.HOSTED, ring.id, ring.to_dict()):
                raise RingExistsError(ring.id)
        self._logger.debug("hosted_ring_added", ring=ring.id)

    async def delete_hosted(self, ring_id: str) -> bool:
        """Delete a hosted ring irreversibly. Returns False if it did not exist."""
        async with self._lock(self.HOSTED, ring_id):
            return await self._delete(self.HOSTED, ring_id)

    @asynccontextmanager
    async def edit_hosted(self, ring_id: str) -> AsyncIterator[HostedRing]:
        """Load a hosted ring for modification under its per-ring lock.

        The ring is written back when the block exits cleanly and its
        content changed; an exception inside the block discards the edit.

        Raises:
            RingNotFoundError: If no hosted ring has this id.

        Examples:
            ```python
            async with store.edit_hosted("r1") as ring:
                ring.members.pop()
                ring.touch()
            ```
        """
        async with self._lock(self.HOSTED, ring_id), self._edit(self.HOSTED, ring_id) as slot:
            if slot.value is None:
                raise RingNotFoundError(ring_id)
            ring = HostedRing.from_dict(slot.value)
            yield ring
            updated = ring.to_dict()
            if updated != slot.value:
                slot.value = updated

    # -------------------------------------------------------------------------
    # Joined rings
    # -------------------------------------------------------------------------

    async def get_joined(self, key: str) -> JoinedRing | None:
        data = await self._get(self.JOINED, key)
        return JoinedRing.from_dict(data) if data is not None else None

    async def list_joined(self) -> list[JoinedRing]:
        return [JoinedRing.from_dict(v) for v in await self._values(self.JOINED)]

    async def put_joined(self, ring: JoinedRing) -> None:
        """Create or overwrite the mirror stored under ``ring.key``."""
        async with self._lock(self.JOINED, ring.key):
            await self._put(self.JOINED, ring.key, ring.to_dict())

    async def delete_joined(self, key: str) -> bool:
        async with self._lock(self.JOINED, key):
            return await self._delete(self.JOINED, key)

    @asynccontextmanager
    async def edit_joined(self, key: str) -> AsyncIterator[JoinedRing]:
        """Joined-ring counterpart of [edit_hosted()][ringlink.core.store.RingStore.edit_hosted].

        Raises:
            RingNotFoundError: If no joined ring is stored under *key*.
        """
        async with self._lock(self.JOINED, key), self._edit(self.JOINED, key) as slot:
            if slot.value is None:
                raise RingNotFoundError(key)
            ring = JoinedRing.from_dict(slot.value)
            yield ring
            updated = ring.to_dict()
            if updated != slot.value:
                slot.value = updated

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def resolve(self, ring_id: str) -> HostedRing | JoinedRing | UnknownRing:
        """Resolve an id to exactly one ring kind.

        Hosted ids take precedence; otherwise the id is looked up as a
        joined-ring key.
        """
        hosted = await self.get_hosted(ring_id)
        if hosted is not None:
            return hosted
        joined = await self.get_joined(ring_id)
        if joined is not None:
            return joined
        return UnknownRing(ring_id)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_site_identity(self) -> Identity | None:
        """The node's own profile, or None until it has been configured."""
        data = await self._get(self.SETTINGS, self.SITE_KEY)
        return Identity.from_dict(data) if data is not None else None

    async def save_site_identity(self, identity: Identity) -> None:
        await self._put(self.SETTINGS, self.SITE_KEY, identity.to_dict())

    async def get_widget_settings(self) -> WidgetSettings:
        """Stored display defaults, falling back to the built-in defaults."""
        data = await self._get(self.SETTINGS, self.WIDGET_KEY)
        return WidgetSettings.from_dict(data) if data is not None else WidgetSettings()

    async def save_widget_settings(self, settings: WidgetSettings) -> None:
        await self._put(self.SETTINGS, self.WIDGET_KEY, settings.to_dict())


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class MemoryRingStore(RingStore):
    """Dict-backed store. Values are deep-copied on every read and write."""

    def __init__(self) -> None:
        super().__init__()
        self._data: defaultdict[str, dict[str, dict[str, Any]]] = defaultdict(dict)

    async def _get(self, collection: str, key: str) -> dict[str, Any] | None:
        value = self._data[collection].get(key)
        return copy.deepcopy(value) if value is not None else None

    async def _put(self, collection: str, key: str, value: dict[str, Any]) -> None:
        self._data[collection][key] = copy.deepcopy(value)

    async def _insert(self, collection: str, key: str, value: dict[str, Any]) -> bool:
        if key in self._data[collection]:
            return False
        self._data[collection][key] = copy.deepcopy(value)
        return True

    async def _delete(self, collection: str, key: str) -> bool:
        return self._data[collection].pop(key, None) is not None

    async def _values(self, collection: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(v) for v in self._data[collection].values()]

    @asynccontextmanager
    async def _edit(self, collection: str, key: str) -> AsyncIterator[_Slot]:
        original = await self._get(collection, key)
        slot = _Slot(copy.deepcopy(original))
        yield slot
        if slot.value is not None and slot.value != original:
            await self._put(collection, key, slot.value)


# ---------------------------------------------------------------------------
# PostgreSQL backend
# ---------------------------------------------------------------------------


_SCHEMA = """
CREATE TABLE IF NOT EXISTS ringlink_kv (
    collection TEXT NOT NULL,
    key TEXT NOT NULL,
    value JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (collection, key)
)
"""


class PostgresRingStore(RingStore):
    """Store backed by a single ``ringlink_kv`` table.

    Values are JSONB documents (the pool registers JSON codecs, so they
    round-trip as dicts). Listings are returned in creation order. Edits
    run in one transaction holding the row with ``SELECT ... FOR UPDATE``,
    which also serializes edits issued by other processes sharing the
    database (the health checker, sync agent and federation services run
    as separate processes).

    Args:
        pool: Connected or connectable [Pool][ringlink.core.pool.Pool].
    """

    def __init__(self, pool: Pool) -> None:
        super().__init__()
        self._pool = pool

    @property
    def pool(self) -> Pool:
        return self._pool

    async def ensure_schema(self) -> None:
        """Create the ``ringlink_kv`` table if it does not exist."""
        await self._pool.execute(_SCHEMA)
        self._logger.info("schema_ready", table="ringlink_kv")

    async def _get(self, collection: str, key: str) -> dict[str, Any] | None:
        value: dict[str, Any] | None = await self._pool.fetchval(
            "SELECT value FROM ringlink_kv WHERE collection = $1 AND key = $2",
            collection,
            key,
        )
        return value

    async def _put(self, collection: str, key: str, value: dict[str, Any]) -> None:
        await self._pool.execute(
            """
            INSERT INTO ringlink_kv (collection, key, value)
            VALUES ($1, $2, $3)
            ON CONFLICT (collection, key)
            DO UPDATE SET value = EXCLUDED.value, updated_at = now()
            """,
            collection,
            key,
            value,
        )

    async def _insert(self, collection: str, key: str, value: dict[str, Any]) -> bool:
        inserted = await self._pool.fetchval(
            """
            INSERT INTO ringlink_kv (collection, key, value)
            VALUES ($1, $2, $3)
            ON CONFLICT (collection, key) DO NOTHING
            RETURNING key
            """,
            collection,
            key,
            value,
        )
        return inserted is not None

    async def _delete(self, collection: str, key: str) -> bool:
        result = await self._pool.execute(
            "DELETE FROM ringlink_kv WHERE collection = $1 AND key = $2",
            collection,
            key,
        )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return result.split()[-1] != "0"

    async def _values(self, collection: str) -> list[dict[str, Any]]:
        rows = await self._pool.fetch(
            "SELECT value FROM ringlink_kv WHERE collection = $1 ORDER BY created_at, key",
            collection,
        )
        return [row["value"] for row in rows]

    @asynccontextmanager
    async def _edit(self, collection: str, key: str) -> AsyncIterator[_Slot]:
        async with self._pool.transaction() as conn:
            original = await conn.fetchval(
                "SELECT value FROM ringlink_kv WHERE collection = $1 AND key = $2 FOR UPDATE",
                collection,
                key,
            )
            slot = _Slot(copy.deepcopy(original))
            yield slot
            if slot.value is not None and slot.value != original:
                await conn.execute(
                    """
                    UPDATE ringlink_kv SET value = $3, updated_at = now()
                    WHERE collection = $1 AND key = $2
                    """,
                    collection,
                    key,
                    slot.value,
                )
