"""Storage backend interface for reverse share uploads: save, resolve to a local path, delete."""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO


class StorageBackend(ABC):
    """Abstract upload storage. Keys are relative, '/'-separated, and never escape the backend root."""

    @abstractmethod
    def save(self, storage_key: str, stream: BinaryIO, max_bytes: int) -> int:
        """Copy stream to storage_key and return the byte count. Raise UploadTooLargeError past max_bytes (nothing is kept)."""
        ...

    @abstractmethod
    def resolve(self, storage_key: str) -> Path:
        """Absolute local path for storage_key. Raise ValueError if the key escapes the root."""
        ...

    @abstractmethod
    def delete(self, storage_key: str) -> None:
        """Remove the object if present."""
        ...
