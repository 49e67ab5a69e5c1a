"""Service layer for business logic.

This layer contains the core cache and sync logic, independent of
HTTP frameworks, storage backends or the remote transport.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)
"""

from .auth_service import AuthOutcome, AuthService
from .client import OfflineClient
from .collection import CollectionView
from .connectivity import ConnectivityMonitor
from .entity_cache import CacheEvent, CacheEventType, EntityCache, QueryOptions
from .entries_service import EntriesService
from .files_service import FilesService
from .mutation_coordinator import MutationCoordinator, placeholder_id
from .persistence import CachePersistenceBridge
from .retry import RetryPolicy

__all__ = [
    "AuthOutcome",
    "AuthService",
    "CacheEvent",
    "CacheEventType",
    "CachePersistenceBridge",
    "CollectionView",
    "ConnectivityMonitor",
    "EntityCache",
    "EntriesService",
    "FilesService",
    "MutationCoordinator",
    "OfflineClient",
    "QueryOptions",
    "RetryPolicy",
    "placeholder_id",
]
