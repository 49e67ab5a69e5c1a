"""Redis implementation of KeyStore.

Lets several client processes on one machine (or a thin client on a server)
share the persisted cache snapshot through a Redis instance.
"""

import redis

from offline_cache.config import Settings, get_redis_client
from offline_cache.errors import PersistenceError


class RedisKeyStore:
    """Redis-backed key store.

    This class satisfies the KeyStore protocol through structural
    typing - no explicit inheritance needed.

    Keys are namespaced with a prefix so the store can share a database.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        namespace: str = "offline_cache",
    ) -> None:
        """Initialize the Redis key store.

        Args:
            redis_client: Redis client instance. If None, creates default.
            namespace: Prefix prepended to every key.
        """
        self._client = redis_client or get_redis_client()
        self._namespace = namespace

    @classmethod
    def create(
        cls,
        config: Settings | None = None,
        namespace: str = "offline_cache",
    ) -> "RedisKeyStore":
        """Factory method to create RedisKeyStore, connecting with ``config``."""
        return cls(redis_client=get_redis_client(config), namespace=namespace)

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}" if self._namespace else key

    def get_item(self, key: str) -> str | None:
        try:
            value = self._client.get(self._key(key))
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read {key!r}: {e}") from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value  # type: ignore[return-value]

    def set_item(self, key: str, value: str) -> None:
        try:
            self._client.set(self._key(key), value)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to write {key!r}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to remove {key!r}: {e}") from e

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
