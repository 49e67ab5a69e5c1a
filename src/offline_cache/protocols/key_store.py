"""Persistent key store protocol.

Defines the interface for durable string key-value storage used to keep
serialized cache snapshots and the auth token across process restarts.

Implementations can include:
- In-memory dict (tests, ephemeral sessions)
- Local files
- Redis
- Any other string key-value backend
"""

from collections.abc import Awaitable
from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyStore(Protocol):
    """Protocol for persistent key-value storage.

    Methods may be synchronous or return awaitables; callers resolve both.

    Example:
        ```python
        from offline_cache.protocols import KeyStore

        store: KeyStore = MemoryKeyStore()
        store: KeyStore = RedisKeyStore.create()
        ```
    """

    def get_item(self, key: str) -> str | None | Awaitable[str | None]:
        """Read a stored value.

        Args:
            key: The storage key

        Returns:
            The stored string, or None if absent
        """
        ...

    def set_item(self, key: str, value: str) -> None | Awaitable[None]:
        """Store a value, replacing any previous one.

        Args:
            key: The storage key
            value: The string to store
        """
        ...

    def remove_item(self, key: str) -> None | Awaitable[None]:
        """Remove a stored value. Removing an absent key is not an error.

        Args:
            key: The storage key
        """
        ...
