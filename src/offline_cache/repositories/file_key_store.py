"""File-system implementation of KeyStore.

Each key is stored in its own file under a directory. Filenames are derived
from a hash of the key, so arbitrary key strings are safe.
"""

import hashlib
import os
from pathlib import Path

from offline_cache.config import settings
from offline_cache.errors import PersistenceError


class FileKeyStore:
    """Directory-backed key store.

    Satisfies the KeyStore protocol. Writes go to a temporary file that is
    then renamed over the target, so a crash never leaves a half-written value.
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        """Initialize the file key store.

        Args:
            directory: Storage directory. Defaults to settings.storage_path.
        """
        self._directory = Path(directory or settings.storage_path)

    @classmethod
    def create(cls, directory: str | Path | None = None) -> "FileKeyStore":
        """Factory method to create FileKeyStore with defaults."""
        return cls(directory=directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self._directory / f"{digest}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to read {key!r}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {key!r}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to remove {key!r}: {e}") from e
