"""Cache entry domain entity."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .query_key import QueryKey


class QueryStatus(str, Enum):
    """Lifecycle status of a cached collection."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class CacheEntry:
    """Immutable snapshot of one cached collection.

    The entity cache replaces the snapshot on every change, so a reference
    handed out by ``read()`` never changes underneath its holder.

    Attributes:
        key: The query key this entry belongs to
        data: Last known value (JSON-serializable, usually a list of records)
        status: idle, loading, success or error
        updated_at: Unix timestamp of the last successful fetch or write
        error: Message of the last failed fetch, if any
        is_invalidated: Marked stale explicitly (invalidate or restore)
        is_fetching: A background fetch is currently in flight
    """

    key: QueryKey
    data: Any = None
    status: QueryStatus = QueryStatus.IDLE
    updated_at: float | None = None
    error: str | None = None
    is_invalidated: bool = False
    is_fetching: bool = False

    @property
    def has_data(self) -> bool:
        return self.updated_at is not None

    @property
    def is_loading(self) -> bool:
        """First load in progress (nothing to show yet)."""
        return self.status == QueryStatus.LOADING

    def is_stale(self, now: float, stale_time: float) -> bool:
        """Check if the entry should be refreshed.

        Args:
            now: Current Unix timestamp
            stale_time: Seconds a successful fetch stays fresh

        Returns:
            True if invalidated, never fetched, or older than stale_time
        """
        if self.is_invalidated or self.updated_at is None:
            return True
        return now - self.updated_at > stale_time
