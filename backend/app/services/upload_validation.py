"""Upload naming and limits for reverse share uploads."""
import re
from pathlib import PurePosixPath
from uuid import UUID, uuid4

from app.core.config import Settings

_MB = 1024 * 1024


def sanitize_storage_filename(filename: str | None) -> str:
    """Safe suffix for storage_key: no path separators, no control chars, bounded length."""
    if not filename or not filename.strip():
        return ""
    base = filename.strip().split("/")[-1].split("\\")[-1]
    safe = re.sub(r"[^\w\-.]", "_", base)
    return safe[:200] if len(safe) > 200 else safe


def safe_extension(filename: str | None) -> str:
    suffix = PurePosixPath(sanitize_storage_filename(filename)).suffix.lower()
    if not re.fullmatch(r"\.[a-z0-9]{1,10}", suffix):
        return ""
    return suffix


def upload_storage_key(invite_id: UUID, filename: str | None) -> str:
    """temp/<invite_id>/<uuid><ext>; the client's filename never becomes a path component."""
    return f"temp/{invite_id}/{uuid4()}{safe_extension(filename)}"


def max_upload_bytes(settings: Settings) -> int:
    return settings.max_upload_size_mb * _MB
