"""Domain entities for internal representation.

These are pure dataclasses (frozen) used internally by services
and repositories. They are NOT used for API contracts or the persisted
snapshot format - use DTOs from the dto package for that.

Entities should have:
- No JSON serialization logic
- No Pydantic validation
- No external dependencies
- Pure domain logic only
"""

from .cache_entry import CacheEntry, QueryStatus
from .gateway_response import NETWORK_ERROR_STATUS, GatewayResponse
from .mutation import (
    CommitFn,
    Mutation,
    MutationHandler,
    MutationKind,
    MutationState,
    OptimisticUpdater,
)
from .query_key import QueryKey, QueryKeys
from .records import AuthSession, DownloadedFile, Entry, FileMetadata

__all__ = [
    "AuthSession",
    "CacheEntry",
    "CommitFn",
    "DownloadedFile",
    "Entry",
    "FileMetadata",
    "GatewayResponse",
    "Mutation",
    "MutationHandler",
    "MutationKind",
    "MutationState",
    "NETWORK_ERROR_STATUS",
    "OptimisticUpdater",
    "QueryKey",
    "QueryKeys",
    "QueryStatus",
]
