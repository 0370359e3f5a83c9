"""Local disk storage under upload_storage_dir; the AV scanner reads files from here."""
import logging
from pathlib import Path
from typing import BinaryIO

from app.core.errors import UploadTooLargeError
from app.services.storage.base import StorageBackend

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024


class LocalStorage(StorageBackend):
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def resolve(self, storage_key: str) -> Path:
        path = (self._root / storage_key.lstrip("/")).resolve()
        if path != self._root and self._root not in path.parents:
            raise ValueError(f"Storage key escapes root: {storage_key}")
        return path

    def save(self, storage_key: str, stream: BinaryIO, max_bytes: int) -> int:
        path = self.resolve(storage_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        try:
            with path.open("wb") as out:
                while True:
                    chunk = stream.read(_CHUNK)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        raise UploadTooLargeError()
                    out.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return written

    def delete(self, storage_key: str) -> None:
        try:
            self.resolve(storage_key).unlink(missing_ok=True)
        except ValueError:
            logger.warning("Refusing to delete key outside storage root: %s", storage_key)
