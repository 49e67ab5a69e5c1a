"""Mutation domain entity."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .gateway_response import GatewayResponse
from .query_key import QueryKey

OptimisticUpdater = Callable[[Any, Any], Any]
CommitFn = Callable[[Any], Awaitable[GatewayResponse]]


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MutationState(str, Enum):
    """Lifecycle of a single write.

    pending -> committing -> success | error
    pending -> paused -> committing -> ...
    """

    PENDING = "pending"
    PAUSED = "paused"
    COMMITTING = "committing"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_unresolved(self) -> bool:
        return self in (MutationState.PENDING, MutationState.PAUSED, MutationState.COMMITTING)


@dataclass(frozen=True)
class Mutation:
    """Domain entity for one pending write.

    The rollback snapshot is carried on the record itself (not in a closure)
    so paused mutations can be persisted and restored.

    Attributes:
        id: Creation-ordered identifier
        kind: create, update or delete
        target_key: The collection this mutation affects
        payload: JSON-serializable argument of the commit function
        state: Current lifecycle state
        optimistic_snapshot: Collection data captured before the optimistic apply
        created_at: Unix timestamp of creation
        action: Registered handler name, required for restore after restart
        error: Message of the last failure
        attempts: Number of commit attempts made so far
        epoch: Cache epoch the optimistic write was applied in
        optimistic_updater: ``(old_data, payload) -> new_data``, not persisted
        commit_fn: ``payload -> GatewayResponse``, not persisted
    """

    id: int
    kind: MutationKind
    target_key: QueryKey
    payload: Any
    state: MutationState = MutationState.PENDING
    optimistic_snapshot: Any = None
    created_at: float = 0.0
    action: str | None = None
    error: str | None = None
    attempts: int = 0
    epoch: int = 0
    optimistic_updater: OptimisticUpdater | None = field(default=None, compare=False, repr=False)
    commit_fn: CommitFn | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class MutationHandler:
    """Named mutation definition.

    Registering handlers by name lets the coordinator rebuild the commit and
    optimistic functions for mutations restored from persistent storage.
    """

    action: str
    kind: MutationKind
    target_key: QueryKey
    optimistic: OptimisticUpdater
    commit: CommitFn
