"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (memory -> file -> Redis storage, real -> fake gateway)
- Unit testing with fake implementations
- Clear separation of concerns

Usage:
    ```python
    from offline_cache.protocols import DataGateway, KeyStore

    store: KeyStore = FileKeyStore.create()
    gateway: DataGateway = HttpDataGateway.create()
    ```
"""

from .data_gateway import DataGateway
from .key_store import KeyStore

__all__ = [
    "DataGateway",
    "KeyStore",
]
