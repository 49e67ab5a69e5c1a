"""Data Transfer Objects for external contracts.

These Pydantic models define the wire formats: payloads of the remote API,
the local sync API, and the persisted snapshot.
They are used for validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .persistence import PersistedClientState, PersistedMutation, PersistedQuery
from .records import AuthResult, EntryItem, FileItem, ResetTokenResult
from .requests import ConnectivityRequest, EntryTextRequest, LoginRequest
from .responses import (
    EntriesResponse,
    FilesResponse,
    HealthCheckResponse,
    MutationResponse,
    StatusResponse,
)

__all__ = [
    "AuthResult",
    "ConnectivityRequest",
    "EntriesResponse",
    "EntryItem",
    "EntryTextRequest",
    "FileItem",
    "FilesResponse",
    "HealthCheckResponse",
    "LoginRequest",
    "MutationResponse",
    "PersistedClientState",
    "PersistedMutation",
    "PersistedQuery",
    "ResetTokenResult",
    "StatusResponse",
]
