"""Persisted snapshot DTOs.

These Pydantic models define the on-disk format written by the cache
persistence bridge. The format is internal: only the bridge reads it.
"""

from typing import Any

from pydantic import BaseModel, Field

from offline_cache.entities import MutationKind


class PersistedQuery(BaseModel):
    """One successful cache entry."""

    key: list[str] = Field(..., min_length=1)
    data: Any = None
    updated_at: float


class PersistedMutation(BaseModel):
    """One paused mutation awaiting replay."""

    id: int
    action: str
    kind: MutationKind
    target_key: list[str] = Field(..., min_length=1)
    payload: Any = None
    optimistic_snapshot: Any = None
    created_at: float


class PersistedClientState(BaseModel):
    """Complete persisted client state."""

    buster: str = ""
    timestamp: float = Field(..., description="Unix timestamp of the snapshot")
    queries: list[PersistedQuery] = Field(default_factory=list)
    mutations: list[PersistedMutation] = Field(default_factory=list)
