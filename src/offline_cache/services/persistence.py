"""Cache persistence bridge.

Serializes successful cache entries and replayable paused mutations to a
key store, throttled, and restores them at startup.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

import pydantic

from offline_cache.config import settings
from offline_cache.dto import PersistedClientState, PersistedMutation, PersistedQuery
from offline_cache.entities import CacheEntry, Mutation, MutationState, QueryKey, QueryStatus
from offline_cache.errors import PersistenceError
from offline_cache.protocols import KeyStore
from offline_cache.utils import resolve

from .connectivity import ConnectivityMonitor
from .entity_cache import EntityCache
from .mutation_coordinator import MutationCoordinator

logger = logging.getLogger(__name__)


class CachePersistenceBridge:
    """Keeps a durable copy of the client state.

    While started, every cache or mutation change schedules a write; writes
    are coalesced so at most one happens per throttle interval.

    Example:
        ```python
        bridge = CachePersistenceBridge(cache, coordinator, MemoryKeyStore(), monitor)
        await bridge.restore()
        bridge.start()
        ```
    """

    def __init__(
        self,
        cache: EntityCache,
        coordinator: MutationCoordinator,
        store: KeyStore,
        monitor: ConnectivityMonitor,
        storage_key: str | None = None,
        throttle: float | None = None,
        max_age: float | None = None,
        buster: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the bridge.

        Args:
            cache: Source of entries to persist and target of hydration.
            coordinator: Source of paused mutations and target of restore.
            store: Durable key store.
            monitor: Decides whether restored mutations replay right away.
            storage_key: Key of the snapshot. Defaults to settings.
            throttle: Minimum seconds between writes. Defaults to settings.
            max_age: Snapshots older than this are discarded. Defaults to settings.
            buster: Version tag; snapshots with another tag are discarded.
            clock: Source of Unix timestamps.
        """
        self._cache = cache
        self._coordinator = coordinator
        self._store = store
        self._monitor = monitor
        self._key = storage_key or settings.persist_key
        self._throttle = settings.persist_throttle if throttle is None else throttle
        self._max_age = settings.persist_max_age if max_age is None else max_age
        self._buster = settings.persist_buster if buster is None else buster
        self._clock = clock
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def storage_key(self) -> str:
        return self._key

    @property
    def is_started(self) -> bool:
        return bool(self._unsubscribers)

    def start(self) -> None:
        """Persist automatically on every change."""
        if self.is_started:
            return
        self._unsubscribers = [
            self._cache.subscribe(lambda _event: self.schedule_persist()),
            self._coordinator.subscribe(lambda _mutation: self.schedule_persist()),
        ]

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def schedule_persist(self) -> None:
        """Request a write; coalesced with any write already scheduled."""
        if self._handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._handle = loop.call_later(self._throttle, self._flush)

    def schedule_clear(self) -> None:
        """Cancel any scheduled write and remove the snapshot in the background."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, persisted client state not cleared")
            return
        self._spawn(self.clear())

    async def drain(self) -> None:
        """Wait for background writes and removals to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _flush(self) -> None:
        self._handle = None
        self._spawn(self.persist())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def flush(self) -> bool:
        """Write immediately, cancelling any scheduled write."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        return await self.persist()

    def build_state(self) -> PersistedClientState:
        """Capture the persistable client state.

        Only successful entries are kept, and only paused mutations with a
        registered action (others cannot be rebuilt after a restart).
        """
        queries = [
            PersistedQuery(key=entry.key.to_list(), data=entry.data, updated_at=entry.updated_at)
            for entry in self._cache.snapshot()
            if entry.status == QueryStatus.SUCCESS and entry.updated_at is not None
        ]
        mutations = [
            PersistedMutation(
                id=m.id,
                action=m.action,
                kind=m.kind,
                target_key=m.target_key.to_list(),
                payload=m.payload,
                optimistic_snapshot=m.optimistic_snapshot,
                created_at=m.created_at,
            )
            for m in self._coordinator.paused()
            if m.action
        ]
        return PersistedClientState(
            buster=self._buster,
            timestamp=self._clock(),
            queries=queries,
            mutations=mutations,
        )

    async def persist(self) -> bool:
        """Serialize and write the current state.

        Returns:
            True if the snapshot was written
        """
        try:
            raw = self.build_state().model_dump_json()
            await resolve(self._store.set_item(self._key, raw))
        except (PersistenceError, ValueError) as e:
            logger.warning("Failed to persist client state: %s", e)
            return False
        logger.debug("Persisted client state under %s", self._key)
        return True

    async def restore(self) -> bool:
        """Load the stored snapshot into the cache and coordinator.

        Restored entries are marked invalidated so they refresh on first read.
        Paused mutations are replayed right away when online.

        Returns:
            True if a snapshot was restored
        """
        try:
            raw = await resolve(self._store.get_item(self._key))
        except PersistenceError as e:
            logger.warning("Failed to read persisted client state: %s", e)
            return False
        if raw is None:
            return False

        try:
            state = PersistedClientState.model_validate_json(raw)
            entries = [
                CacheEntry(
                    key=QueryKey(tuple(query.key)),
                    data=query.data,
                    status=QueryStatus.SUCCESS,
                    updated_at=query.updated_at,
                    is_invalidated=True,
                )
                for query in state.queries
            ]
            mutations = [
                Mutation(
                    id=record.id,
                    kind=record.kind,
                    target_key=QueryKey(tuple(record.target_key)),
                    payload=record.payload,
                    state=MutationState.PAUSED,
                    optimistic_snapshot=record.optimistic_snapshot,
                    created_at=record.created_at,
                    action=record.action,
                )
                for record in state.mutations
            ]
        except (pydantic.ValidationError, ValueError) as e:
            logger.warning("Discarding unreadable persisted client state: %s", e)
            await self.clear()
            return False

        if state.buster != self._buster:
            logger.info("Discarding persisted client state from another version")
            await self.clear()
            return False
        if self._clock() - state.timestamp > self._max_age:
            logger.info("Discarding persisted client state older than %ss", self._max_age)
            await self.clear()
            return False

        hydrated = self._cache.hydrate(entries)
        restored = self._coordinator.restore(mutations)
        logger.info("Restored %d cache entries and %d paused mutation(s)", hydrated, restored)
        if restored and self._monitor.is_online():
            await self._coordinator.resume_paused()
        return True

    async def clear(self) -> None:
        """Remove the stored snapshot."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        try:
            await resolve(self._store.remove_item(self._key))
        except PersistenceError as e:
            logger.warning("Failed to clear persisted client state: %s", e)
