"""Repository layer for data access.

This layer abstracts external dependencies (the remote API, durable storage)
behind protocol-based interfaces. This enables:
- Easy swapping of implementations (memory -> file -> Redis storage)
- Unit testing with fake implementations
- Clear separation of concerns

The repositories are protocol-based (structural typing), not inheritance-based.
Any class implementing the required methods will satisfy the protocol.
"""

from offline_cache.config import Settings
from offline_cache.protocols import DataGateway, KeyStore

from .file_key_store import FileKeyStore
from .http_gateway import HttpDataGateway
from .memory_key_store import MemoryKeyStore
from .redis_key_store import RedisKeyStore
from .remote_api import AuthApi, EntriesApi, FilesApi


def create_key_store(config: Settings) -> KeyStore:
    """Build the key store selected by ``STORAGE_BACKEND``."""
    if config.storage_backend == "file":
        return FileKeyStore.create(config.storage_path)
    if config.storage_backend == "redis":
        return RedisKeyStore.create(config)
    return MemoryKeyStore()


__all__ = [
    "AuthApi",
    "DataGateway",
    "EntriesApi",
    "FileKeyStore",
    "FilesApi",
    "HttpDataGateway",
    "KeyStore",
    "MemoryKeyStore",
    "RedisKeyStore",
    "create_key_store",
]
