"""Observed view of one cached collection."""

import logging
from collections.abc import Callable

from offline_cache.entities import CacheEntry, QueryKey

from .entity_cache import EntityCache, Fetcher, QueryOptions

logger = logging.getLogger(__name__)


class CollectionView:
    """Live handle on a cache key, as used by the domain services.

    Keeps the key observed (so it refetches on invalidation and is never
    garbage collected) until ``close()``. Properties always reflect the
    current cache entry.
    """

    def __init__(
        self,
        cache: EntityCache,
        key: QueryKey,
        fetcher: Fetcher,
        options: QueryOptions | None = None,
    ) -> None:
        self._cache = cache
        self._key = key
        self._listeners: list[Callable[[CacheEntry], None]] = []
        self._unobserve: Callable[[], None] | None = cache.observe(key, self._on_change)
        self._epoch = cache.epoch
        cache.read(key, fetcher, options)

    @property
    def key(self) -> QueryKey:
        return self._key

    @property
    def entry(self) -> CacheEntry:
        return self._cache.get(self._key) or CacheEntry(key=self._key)

    @property
    def data(self):
        return self.entry.data

    @property
    def is_loading(self) -> bool:
        return self.entry.is_loading

    @property
    def is_fetching(self) -> bool:
        return self.entry.is_fetching

    @property
    def error(self) -> str | None:
        return self.entry.error

    @property
    def is_stale(self) -> bool:
        """True while the shown data may be outdated."""
        entry = self._cache.get(self._key)
        return entry is None or entry.is_invalidated or not entry.has_data

    @property
    def is_closed(self) -> bool:
        """True after ``close()`` or once the cache was torn down."""
        return self._unobserve is None or self._epoch != self._cache.epoch

    def read(self) -> CacheEntry:
        """Return the current entry, refreshing it in the background if stale."""
        return self._cache.read(self._key)

    async def wait(self) -> CacheEntry:
        """Wait for the fetch in flight, if any."""
        return await self._cache.ensure(self._key)

    async def refresh(self) -> CacheEntry | None:
        """Refetch now, ignoring staleness."""
        return await self._cache.refetch(self._key)

    def subscribe(self, listener: Callable[[CacheEntry], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        if self._unobserve is not None:
            self._unobserve()
            self._unobserve = None
        self._listeners.clear()

    def _on_change(self, entry: CacheEntry) -> None:
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                logger.exception("Collection listener for %s failed", self._key)
