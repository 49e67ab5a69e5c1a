"""Offline Cache - Offline-first data layer for a REST entries API.

This package provides a layered architecture for caching server collections,
applying writes optimistically and syncing them when connectivity returns:

Layers:
    - protocols: Interface contracts (DataGateway, KeyStore)
    - repositories: Data access implementations (HTTP, memory, file, Redis)
    - services: Business logic (entity cache, mutation coordinator, persistence)
    - handlers: HTTP endpoint handlers for the local sync API
    - dto: Data transfer objects (API contracts, persisted snapshot)
    - entities: Domain models (internal)

Usage:
    ```python
    from offline_cache.services import OfflineClient

    async with OfflineClient.create() as client:
        await client.auth.login("alice", "secret")
        await client.entries.add("hello")
    ```

For HTTP API:
    ```python
    from offline_cache.api.app import app
    ```
"""

from offline_cache.config import get_redis_client, settings
from offline_cache.entities import (
    CacheEntry,
    GatewayResponse,
    Mutation,
    MutationKind,
    MutationState,
    QueryKey,
    QueryKeys,
    QueryStatus,
)
from offline_cache.errors import (
    ConnectivityError,
    GatewayError,
    PersistenceError,
    ServerError,
    SyncError,
    UnauthorizedError,
    ValidationError,
)
from offline_cache.handlers import SyncHandler
from offline_cache.log_config import setup_logging
from offline_cache.protocols import DataGateway, KeyStore
from offline_cache.repositories import FileKeyStore, HttpDataGateway, MemoryKeyStore, RedisKeyStore
from offline_cache.services import (
    CachePersistenceBridge,
    ConnectivityMonitor,
    EntityCache,
    MutationCoordinator,
    OfflineClient,
    QueryOptions,
    RetryPolicy,
)

__all__ = [
    # Configuration
    "settings",
    "get_redis_client",
    "setup_logging",
    # Protocols (interfaces)
    "DataGateway",
    "KeyStore",
    # Services (business logic)
    "CachePersistenceBridge",
    "ConnectivityMonitor",
    "EntityCache",
    "MutationCoordinator",
    "OfflineClient",
    "QueryOptions",
    "RetryPolicy",
    # Handlers (HTTP)
    "SyncHandler",
    # Repositories (data access)
    "FileKeyStore",
    "HttpDataGateway",
    "MemoryKeyStore",
    "RedisKeyStore",
    # Entities (domain models)
    "CacheEntry",
    "GatewayResponse",
    "Mutation",
    "MutationKind",
    "MutationState",
    "QueryKey",
    "QueryKeys",
    "QueryStatus",
    # Errors
    "ConnectivityError",
    "GatewayError",
    "PersistenceError",
    "ServerError",
    "SyncError",
    "UnauthorizedError",
    "ValidationError",
]
