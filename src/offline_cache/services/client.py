"""Offline client: wires the cache, coordinator, persistence and services."""

import logging
import time
from collections.abc import Callable
from typing import Any

from offline_cache.config import Settings, settings
from offline_cache.entities import AuthSession, CommitFn, MutationKind, OptimisticUpdater, QueryKey
from offline_cache.protocols import DataGateway, KeyStore
from offline_cache.repositories import (
    AuthApi,
    EntriesApi,
    FilesApi,
    HttpDataGateway,
    create_key_store,
)

from .auth_service import AuthService
from .collection import CollectionView
from .connectivity import ConnectivityMonitor
from .entity_cache import EntityCache, Fetcher, QueryOptions
from .entries_service import EntriesService
from .files_service import FilesService
from .mutation_coordinator import MutationCoordinator
from .persistence import CachePersistenceBridge
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class OfflineClient:
    """One explicitly constructed client per process.

    Example:
        ```python
        async with OfflineClient.create() as client:
            await client.auth.login("alice", "secret")
            await client.entries.add("hello")
        ```
    """

    def __init__(
        self,
        gateway: DataGateway,
        store: KeyStore,
        monitor: ConnectivityMonitor | None = None,
        config: Settings | None = None,
        retry: RetryPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the client.

        Args:
            gateway: Remote API transport.
            store: Durable storage for the snapshot and the token.
            monitor: Connectivity source. A new online monitor by default.
            config: Settings to use. Defaults to the global settings.
            retry: Retry policy for reads and commits. Defaults to config.
            clock: Source of Unix timestamps.
        """
        self._settings = config or settings
        self.gateway = gateway
        self.store = store
        self.monitor = monitor or ConnectivityMonitor()
        retry = retry or RetryPolicy.from_settings(self._settings)
        self._options = QueryOptions(stale_time=self._settings.stale_time, gc_time=self._settings.gc_time)

        self.cache = EntityCache(clock=clock, retry=retry, on_unauthorized=self._handle_unauthorized)
        self.coordinator = MutationCoordinator(
            self.cache,
            self.monitor,
            retry=retry,
            on_unauthorized=self._handle_unauthorized,
            clock=clock,
        )
        self.persistence = CachePersistenceBridge(
            self.cache,
            self.coordinator,
            store,
            self.monitor,
            storage_key=self._settings.persist_key,
            throttle=self._settings.persist_throttle,
            max_age=self._settings.persist_max_age,
            buster=self._settings.persist_buster,
            clock=clock,
        )
        self.auth = AuthService(AuthApi(gateway), store)
        self.entries = EntriesService(self.cache, self.coordinator, EntriesApi(gateway), self.auth, self._options)
        self.files = FilesService(
            self.cache, self.coordinator, self.monitor, FilesApi(gateway), self.auth, self._options
        )
        self._initialized = False
        self._unsubscribe_auth: Callable[[], None] | None = None

    @classmethod
    def create(
        cls,
        gateway: DataGateway | None = None,
        store: KeyStore | None = None,
        config: Settings | None = None,
        online: bool = True,
    ) -> "OfflineClient":
        """Factory method to create a client with default implementations.

        Args:
            gateway: Remote API transport. If None, an HTTP gateway from settings.
            store: Durable storage. If None, the backend selected by settings.
            config: Settings to use. If None, the global settings.
            online: Initial connectivity state.

        Returns:
            Configured OfflineClient instance (call ``init()`` before use)
        """
        config = config or settings
        if gateway is None:
            gateway = HttpDataGateway.create(base_url=config.api_base_url, timeout=config.request_timeout)
        if store is None:
            store = create_key_store(config)
        return cls(
            gateway=gateway,
            store=store,
            monitor=ConnectivityMonitor(online=online),
            config=config,
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def init(self) -> None:
        """Restore the session and, for a logged-in user, the cached state."""
        if self._initialized:
            return
        session = await self.auth.load()
        if session.is_authenticated:
            await self.persistence.restore()
        else:
            await self.persistence.clear()
        self._unsubscribe_auth = self.auth.subscribe(self._on_session_change)
        self.persistence.start()
        if self._settings.connectivity_probe_interval > 0:
            self.monitor.start_probe(self.gateway.health, self._settings.connectivity_probe_interval)
        self._initialized = True
        logger.info("Offline client initialized (authenticated=%s)", session.is_authenticated)

    async def teardown(self) -> None:
        """Flush state, stop background work and release the gateway."""
        if not self._initialized:
            return
        await self.monitor.stop_probe()
        self.persistence.stop()
        if self.auth.is_authenticated:
            await self.persistence.flush()
        await self.coordinator.close()
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        close = getattr(self.gateway, "close", None)
        if close is not None:
            await close()
        self._initialized = False
        logger.info("Offline client shut down")

    async def __aenter__(self) -> "OfflineClient":
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.teardown()

    def collection(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        options: QueryOptions | None = None,
    ) -> CollectionView:
        """Observe an arbitrary collection."""
        return CollectionView(self.cache, key, fetcher, options or self._options)

    async def mutate(
        self,
        kind: MutationKind,
        target_key: QueryKey,
        payload: Any,
        optimistic_updater: OptimisticUpdater,
        commit_fn: CommitFn,
        action: str | None = None,
    ) -> bool:
        return await self.coordinator.mutate(kind, target_key, payload, optimistic_updater, commit_fn, action)

    def is_online(self) -> bool:
        return self.monitor.is_online()

    def set_online(self, online: bool) -> bool:
        """Feed the platform's network state."""
        return self.monitor.set_online(online)

    def subscribe_online_status(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        return self.monitor.subscribe(callback)

    async def clear_cache(self) -> None:
        """Drop cached collections and the persisted snapshot, keeping the session."""
        self.cache.teardown()
        self.coordinator.clear()
        await self.persistence.clear()

    def _handle_unauthorized(self) -> None:
        self.auth.handle_unauthorized()

    def _on_session_change(self, session: AuthSession) -> None:
        if session.is_authenticated:
            self.cache.resume_refresh()
            return
        logger.info("Session ended, discarding cached state")
        self.cache.teardown()
        self.coordinator.clear()
        self.persistence.schedule_clear()
