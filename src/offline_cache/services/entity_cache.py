"""Entity cache: keyed collections with stale-while-revalidate reads.

Each query key owns one CacheEntry snapshot plus the bookkeeping needed to
deduplicate fetches, discard cancelled results and garbage collect unused
entries. All methods run on the event loop thread; fetches are scheduled as
asyncio tasks and only from within a running loop.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from offline_cache.config import settings
from offline_cache.entities import CacheEntry, QueryKey, QueryStatus
from offline_cache.errors import UnauthorizedError

from .retry import RetryPolicy

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Updater = Callable[[Any], Any]
Reconciler = Callable[[QueryKey, Any], Any]
EntryObserver = Callable[[CacheEntry], None]


class CacheEventType(str, Enum):
    UPDATED = "updated"
    REMOVED = "removed"
    CLEARED = "cleared"


@dataclass(frozen=True)
class CacheEvent:
    """Change notification delivered to cache subscribers."""

    type: CacheEventType
    key: QueryKey | None = None
    entry: CacheEntry | None = None


@dataclass(frozen=True)
class QueryOptions:
    """Per-key read options.

    Attributes:
        enabled: When False the key is never fetched (e.g. no session)
        stale_time: Seconds a successful fetch stays fresh
        gc_time: Seconds an unobserved entry is kept after its last use
    """

    enabled: bool = True
    stale_time: float = field(default_factory=lambda: settings.stale_time)
    gc_time: float = field(default_factory=lambda: settings.gc_time)


@dataclass
class _Query:
    entry: CacheEntry
    fetcher: Fetcher | None = None
    options: QueryOptions = field(default_factory=QueryOptions)
    task: asyncio.Task | None = None
    generation: int = 0
    observers: list[EntryObserver] = field(default_factory=list)
    last_accessed: float = 0.0
    gc_handle: asyncio.TimerHandle | None = None


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class EntityCache:
    """In-memory store of server collections keyed by QueryKey.

    Reads never block on the network: ``read()`` returns the current snapshot
    and schedules a background refresh when it is stale. At most one fetch is
    in flight per key; ``ensure()`` awaits it.

    Example:
        ```python
        cache = EntityCache()
        entry = cache.read(QueryKeys.ENTRIES_LIST, fetch_entries)
        entry = await cache.ensure(QueryKeys.ENTRIES_LIST)
        ```
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        retry: RetryPolicy | None = None,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            clock: Source of Unix timestamps, injectable for tests.
            retry: Retry policy for fetches. Defaults to settings.
            on_unauthorized: Called once when a fetch is rejected with 401.
        """
        self._clock = clock
        self._retry = retry or RetryPolicy()
        self._on_unauthorized = on_unauthorized
        self._queries: dict[QueryKey, _Query] = {}
        self._listeners: list[Callable[[CacheEvent], None]] = []
        self._reconciler: Reconciler | None = None
        self._holds: dict[QueryKey, int] = {}
        self._epoch = 0
        self._refresh_suspended = False

    @property
    def epoch(self) -> int:
        """Incremented by every teardown."""
        return self._epoch

    @property
    def refresh_suspended(self) -> bool:
        return self._refresh_suspended

    def set_unauthorized_handler(self, callback: Callable[[], None] | None) -> None:
        self._on_unauthorized = callback

    def set_reconciler(self, reconciler: Reconciler | None) -> None:
        """Install a hook applied to every fetched value before it is stored.

        The mutation coordinator uses it to re-layer unresolved optimistic
        writes on top of fresh server data.
        """
        self._reconciler = reconciler

    # ------------------------------------------------------------------ reads

    def get(self, key: QueryKey) -> CacheEntry | None:
        """Return the current snapshot without side effects."""
        query = self._queries.get(key)
        return query.entry if query else None

    def keys(self) -> list[QueryKey]:
        return list(self._queries)

    def snapshot(self) -> list[CacheEntry]:
        """Return every current entry."""
        return [query.entry for query in self._queries.values()]

    def read(
        self,
        key: QueryKey,
        fetcher: Fetcher | None = None,
        options: QueryOptions | None = None,
    ) -> CacheEntry:
        """Return the cached entry, scheduling a refresh if it is stale.

        The fetcher and options are remembered for the key, so later reads,
        invalidations and refetches can omit them.
        """
        query = self._ensure_query(key)
        if fetcher is not None:
            query.fetcher = fetcher
        if options is not None:
            query.options = options
        self._touch(query)
        if self._should_fetch(query):
            self._start_fetch(query)
        return query.entry

    async def ensure(
        self,
        key: QueryKey,
        fetcher: Fetcher | None = None,
        options: QueryOptions | None = None,
    ) -> CacheEntry:
        """Like ``read()``, but wait for any fetch in flight to settle."""
        entry = self.read(key, fetcher, options)
        query = self._queries[key]
        if query.task is None:
            return entry
        return await asyncio.shield(query.task)

    async def refetch(self, key: QueryKey) -> CacheEntry | None:
        """Fetch ``key`` now regardless of staleness and wait for the result.

        Joins the in-flight fetch instead of starting a second one.
        """
        query = self._queries.get(key)
        if query is None:
            return None
        if query.task is None and self._can_fetch(query):
            self._start_fetch(query)
        if query.task is None:
            return query.entry
        return await asyncio.shield(query.task)

    # ----------------------------------------------------------------- writes

    def write(self, key: QueryKey, updater: Updater) -> CacheEntry:
        """Replace the data of ``key`` with ``updater(old_data)``.

        The entry is marked successful and fresh as of now.
        """
        query = self._ensure_query(key)
        data = updater(query.entry.data)
        now = self._clock()
        self._touch(query)
        self._set_entry(
            query,
            replace(
                query.entry,
                data=data,
                status=QueryStatus.SUCCESS,
                updated_at=now,
                error=None,
                is_invalidated=False,
            ),
        )
        return query.entry

    def invalidate(self, key: QueryKey, exact: bool = True) -> int:
        """Mark entries stale and refetch the observed ones.

        Args:
            key: Key to invalidate.
            exact: When False, every key starting with ``key`` is invalidated.

        Returns:
            Number of entries invalidated
        """
        targets = [
            query
            for query_key, query in self._queries.items()
            if (query_key == key if exact else query_key.starts_with(key))
        ]
        for query in targets:
            self._set_entry(query, replace(query.entry, is_invalidated=True))
            if query.observers and self._should_fetch(query):
                self._start_fetch(query)
        return len(targets)

    def cancel_in_flight(self, key: QueryKey) -> bool:
        """Detach the pending fetch of ``key`` so its result is discarded.

        Returns:
            True if a fetch was in flight
        """
        query = self._queries.get(key)
        if query is None or query.task is None:
            return False
        query.generation += 1
        query.task = None
        entry = query.entry
        status = entry.status
        if status == QueryStatus.LOADING:
            status = QueryStatus.SUCCESS if entry.has_data else QueryStatus.IDLE
        self._set_entry(query, replace(entry, status=status, is_fetching=False))
        logger.debug("Cancelled in-flight fetch for %s", key)
        return True

    def hold(self, key: QueryKey) -> None:
        """Keep fetches of ``key`` from starting until the matching ``release()``.

        A fetch already in flight is cancelled. Holds nest; the mutation
        coordinator holds a key for the duration of each commit so no server
        response can land half way through one.
        """
        self.cancel_in_flight(key)
        self._holds[key] = self._holds.get(key, 0) + 1

    def release(self, key: QueryKey) -> None:
        """Drop one hold. Once none are left a stale, observed key is refetched."""
        count = self._holds.get(key, 0) - 1
        if count > 0:
            self._holds[key] = count
            return
        self._holds.pop(key, None)
        query = self._queries.get(key)
        if query is not None and query.observers and self._should_fetch(query):
            self._start_fetch(query)

    def is_held(self, key: QueryKey) -> bool:
        return key in self._holds

    def hydrate(self, entries: Iterable[CacheEntry], options: QueryOptions | None = None) -> int:
        """Seed entries restored from persistent storage.

        Keys that already hold live data are left untouched. Entries nobody
        reads are collected after the gc_time of ``options``.

        Returns:
            Number of entries added
        """
        added = 0
        for entry in entries:
            if entry.key in self._queries:
                continue
            query = _Query(entry=entry, options=options or QueryOptions())
            self._queries[entry.key] = query
            self._touch(query)
            added += 1
        return added

    def remove(self, key: QueryKey) -> bool:
        query = self._queries.pop(key, None)
        if query is None:
            return False
        self._detach(query)
        self._emit(CacheEvent(CacheEventType.REMOVED, key))
        return True

    def teardown(self) -> None:
        """Drop every entry and detach every fetch in flight.

        Used on logout. Results of fetches started before the teardown are
        discarded and the epoch moves on, so late rollbacks become no-ops.
        """
        for query in self._queries.values():
            self._detach(query)
        self._queries.clear()
        self._holds.clear()
        self._epoch += 1
        self._refresh_suspended = False
        logger.info("Entity cache torn down (epoch %d)", self._epoch)
        self._emit(CacheEvent(CacheEventType.CLEARED))

    def resume_refresh(self) -> None:
        """Allow fetches again after a 401 suspended them."""
        self._refresh_suspended = False

    # ------------------------------------------------------------ observation

    def observe(self, key: QueryKey, observer: EntryObserver) -> Callable[[], None]:
        """Watch one key. Observed keys are refetched on invalidation and never collected.

        Returns:
            Unsubscribe function. When the last observer leaves, the entry is
            collected after its gc_time.
        """
        query = self._ensure_query(key)
        query.observers.append(observer)
        if query.gc_handle is not None:
            query.gc_handle.cancel()
            query.gc_handle = None

        def unsubscribe() -> None:
            if observer in query.observers:
                query.observers.remove(observer)
            if not query.observers and self._queries.get(key) is query:
                self._schedule_gc(query)

        return unsubscribe

    def subscribe(self, listener: Callable[[CacheEvent], None]) -> Callable[[], None]:
        """Listen to every cache change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def collect_garbage(self, now: float | None = None) -> int:
        """Remove unobserved, idle entries unused for longer than their gc_time.

        Returns:
            Number of entries removed
        """
        now = self._clock() if now is None else now
        expired = [
            key
            for key, query in self._queries.items()
            if not query.observers
            and query.task is None
            and now - query.last_accessed > query.options.gc_time
        ]
        for key in expired:
            self.remove(key)
        if expired:
            logger.debug("Garbage collected %d cache entries", len(expired))
        return len(expired)

    # -------------------------------------------------------------- internals

    def _ensure_query(self, key: QueryKey) -> _Query:
        query = self._queries.get(key)
        if query is None:
            query = _Query(entry=CacheEntry(key=key), last_accessed=self._clock())
            self._queries[key] = query
        return query

    def _can_fetch(self, query: _Query) -> bool:
        return (
            query.fetcher is not None
            and query.options.enabled
            and not self._refresh_suspended
            and query.entry.key not in self._holds
            and _running_loop() is not None
        )

    def _should_fetch(self, query: _Query) -> bool:
        return (
            query.task is None
            and self._can_fetch(query)
            and query.entry.is_stale(self._clock(), query.options.stale_time)
        )

    def _start_fetch(self, query: _Query) -> asyncio.Task:
        if query.task is not None:
            return query.task
        entry = query.entry
        status = entry.status if entry.has_data else QueryStatus.LOADING
        self._set_entry(query, replace(entry, status=status, is_fetching=True))
        query.task = asyncio.get_running_loop().create_task(
            self._run_fetch(query, query.generation)
        )
        return query.task

    def _is_current(self, query: _Query, generation: int) -> bool:
        return query.generation == generation and self._queries.get(query.entry.key) is query

    async def _run_fetch(self, query: _Query, generation: int) -> CacheEntry:
        key = query.entry.key
        fetcher = query.fetcher
        assert fetcher is not None
        try:
            data = await self._retry.call(fetcher)
        except UnauthorizedError as e:
            if self._is_current(query, generation):
                self._fail(query, e.message)
                if not self._refresh_suspended:
                    self._refresh_suspended = True
                    logger.warning("Fetch for %s rejected as unauthorized", key)
                    if self._on_unauthorized is not None:
                        self._on_unauthorized()
        except Exception as e:
            logger.warning("Fetch for %s failed: %s", key, e)
            if self._is_current(query, generation):
                self._fail(query, str(e) or e.__class__.__name__)
        else:
            if self._is_current(query, generation):
                if self._reconciler is not None:
                    data = self._reconciler(key, data)
                self._set_entry(
                    query,
                    replace(
                        query.entry,
                        data=data,
                        status=QueryStatus.SUCCESS,
                        updated_at=self._clock(),
                        error=None,
                        is_invalidated=False,
                        is_fetching=False,
                    ),
                )
            else:
                logger.debug("Discarded result of cancelled fetch for %s", key)
        finally:
            if query.task is asyncio.current_task():
                query.task = None
        return query.entry

    def _fail(self, query: _Query, message: str) -> None:
        # The last good data stays in place.
        self._set_entry(
            query,
            replace(query.entry, status=QueryStatus.ERROR, error=message, is_fetching=False),
        )

    def _detach(self, query: _Query) -> None:
        query.generation += 1
        query.task = None
        query.observers.clear()
        if query.gc_handle is not None:
            query.gc_handle.cancel()
            query.gc_handle = None

    def _touch(self, query: _Query) -> None:
        query.last_accessed = self._clock()
        if not query.observers:
            self._schedule_gc(query)

    def _schedule_gc(self, query: _Query) -> None:
        """(Re)start the collection timer of an unobserved entry."""
        if query.gc_handle is not None:
            query.gc_handle.cancel()
            query.gc_handle = None
        loop = _running_loop()
        if loop is None:
            return
        key = query.entry.key

        def collect() -> None:
            query.gc_handle = None
            if self._queries.get(key) is not query or query.observers:
                return
            if query.task is not None:
                # Busy; try again once the fetch had time to settle.
                self._schedule_gc(query)
                return
            logger.debug("Collecting unobserved entry %s", key)
            self.remove(key)

        query.gc_handle = loop.call_later(query.options.gc_time, collect)

    def _set_entry(self, query: _Query, entry: CacheEntry) -> None:
        query.entry = entry
        for observer in list(query.observers):
            try:
                observer(entry)
            except Exception:
                logger.exception("Cache observer for %s failed", entry.key)
        self._emit(CacheEvent(CacheEventType.UPDATED, entry.key, entry))

    def _emit(self, event: CacheEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Cache listener failed")
