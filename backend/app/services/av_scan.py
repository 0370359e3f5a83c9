"""Antivirus scanning of uploads via the ClamAV REST API.

Policy: no scanner configured => clean (uploads allowed, warning logged). Any malfunction
(unreadable file, non-2xx, timeout, garbage body) => undetermined, which callers treat as not clean.
One attempt per call; the file handle is always closed.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO

import httpx
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings
from app.core.errors import ScanConfigurationWarning, ScanServerError, ScanTransportError
from app.core.metrics import record_scan_skipped, record_scan_verdict
from app.services.storage.base import StorageBackend

logger = logging.getLogger(__name__)

# Multipart field name expected by the ClamAV REST API
FILE_FIELD = "FILES"


def _signature_names(value) -> list[str]:
    """Scanners report viruses as a list; a bare string is one name, anything else names nothing."""
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, list):
        return [str(v) for v in value if v]
    return []


class VerdictStatus(str, Enum):
    CLEAN = "clean"
    INFECTED = "infected"
    UNDETERMINED = "undetermined"


@dataclass(frozen=True)
class ScanVerdict:
    status: VerdictStatus
    signatures: list[str] = field(default_factory=list)
    reason: str | None = None

    @property
    def is_clean(self) -> bool:
        return self.status is VerdictStatus.CLEAN

    @classmethod
    def clean(cls, reason: str | None = None) -> ScanVerdict:
        return cls(VerdictStatus.CLEAN, [], reason)

    @classmethod
    def infected(cls, signatures: list[str]) -> ScanVerdict:
        return cls(VerdictStatus.INFECTED, list(signatures), "malware_detected")

    @classmethod
    def undetermined(cls, reason: str) -> ScanVerdict:
        return cls(VerdictStatus.UNDETERMINED, [], reason)


class ScanGateway:
    def __init__(
        self,
        settings: Settings,
        storage: StorageBackend,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = settings.clamav_url
        self._timeout = httpx.Timeout(settings.av_scan_timeout_seconds)
        self._storage = storage
        self._transport = transport

    async def scan(self, storage_key: str) -> ScanVerdict:
        verdict = await self._scan(storage_key)
        record_scan_verdict(verdict.status.value)
        return verdict

    async def _scan(self, storage_key: str) -> ScanVerdict:
        if not self._url:
            logger.warning("ClamAV URL not configured, skipping AV scan (storage_key=%s)", storage_key)
            warnings.warn(
                "CLAMAV_URL is not configured; upload accepted without scanning",
                ScanConfigurationWarning,
                stacklevel=3,
            )
            record_scan_skipped()
            return ScanVerdict.clean(reason="scanner_not_configured")

        try:
            path = self._storage.resolve(storage_key)
            handle = self._open(path)
        except (OSError, ValueError) as e:
            logger.error("ClamAV scan: file not readable (storage_key=%s): %s", storage_key, type(e).__name__)
            return ScanVerdict.undetermined("file_unreadable")

        with handle:
            logger.info("ClamAV scan: sending %s to scanner", storage_key)
            try:
                results = await run_in_threadpool(self._submit, path.name, handle)
            except ScanServerError as e:
                logger.error("ClamAV scan HTTP error: status=%s body=%s", e.status_code, e.body)
                return ScanVerdict.undetermined("scanner_http_error")
            except ScanTransportError as e:
                logger.error("ClamAV scan failed for %s: %s", storage_key, e)
                return ScanVerdict.undetermined("scanner_unavailable")

        return self._evaluate(results, path.name)

    def _open(self, path: Path) -> BinaryIO:
        return path.open("rb")

    def _submit(self, filename: str, handle: BinaryIO) -> list[dict]:
        """Blocking multipart POST; runs in the threadpool so file reads stay off the event loop."""
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = client.post(self._url, files={FILE_FIELD: (filename, handle)})
            except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
                raise ScanTransportError(f"{type(e).__name__}: {e}") from e
        if not response.is_success:
            raise ScanServerError(response.status_code, response.text[:500])
        try:
            body = response.json()
        except ValueError as e:
            raise ScanTransportError("scanner returned a non-JSON body") from e
        data = body.get("data") if isinstance(body, dict) else None
        results = data.get("result") if isinstance(data, dict) else None
        if not isinstance(results, list) or not all(isinstance(r, dict) for r in results):
            raise ScanTransportError("scanner response has no data.result list")
        return results

    def _evaluate(self, results: list[dict], filename: str) -> ScanVerdict:
        for entry in results:
            if entry.get("is_infected"):
                viruses = _signature_names(entry.get("viruses"))
                logger.warning(
                    "ClamAV detected malware in %s: %s",
                    entry.get("name") or filename,
                    ", ".join(viruses) or "unnamed signature",
                )
                return ScanVerdict.infected(viruses or ["unknown"])
        return ScanVerdict.clean()
