"""Storage backend factory. Only local disk is supported: the AV scanner needs the bytes on local storage."""
from app.core.config import Settings, get_settings
from app.services.storage.base import StorageBackend
from app.services.storage.local import LocalStorage


def get_storage(settings: Settings | None = None) -> StorageBackend:
    return LocalStorage((settings or get_settings()).upload_storage_dir)
