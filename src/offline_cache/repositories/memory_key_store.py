"""In-memory implementation of KeyStore."""


class MemoryKeyStore:
    """Dict-backed key store.

    Satisfies the KeyStore protocol. Contents are lost when the process
    exits, which makes it the default for tests and throwaway sessions.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items
