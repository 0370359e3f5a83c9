"""ScanGateway: fail-open when unconfigured, fail-closed on every malfunction, handle always closed."""
import logging
import threading

import httpx
import pytest

from app.core.config import Settings
from app.core.errors import ScanConfigurationWarning
from app.services.av_scan import FILE_FIELD, ScanGateway, ScanVerdict, VerdictStatus
from app.services.storage.local import LocalStorage

SCANNER_URL = "http://clamav.test/api/v1/scan"


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    root = tmp_path / "storage"
    (root / "temp" / "1").mkdir(parents=True)
    (root / "temp" / "1" / "f.exe").write_bytes(b"X5O!P%@AP[4\\PZX54(P^)7CC)7}$EICAR")
    (root / "temp" / "1" / "f.txt").write_bytes(b"hello")
    return LocalStorage(root)


class TrackingGateway(ScanGateway):
    """Records every handle it opens so tests can assert they were closed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.opened = []

    def _open(self, path):
        handle = super()._open(path)
        self.opened.append(handle)
        return handle


def _gateway(storage, handler=None, url=SCANNER_URL, timeout=5.0) -> TrackingGateway:
    settings = Settings(clamav_url=url, av_scan_timeout_seconds=timeout)
    transport = httpx.MockTransport(handler) if handler else None
    return TrackingGateway(settings, storage, transport=transport)


def _json(payload, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)
    return handler


async def test_unconfigured_scanner_fails_open_with_warning(storage, caplog):
    gateway = _gateway(storage, url=None)
    with caplog.at_level(logging.WARNING, logger="app.services.av_scan"):
        with pytest.warns(ScanConfigurationWarning):
            verdict = await gateway.scan("temp/1/f.exe")
    assert verdict.status is VerdictStatus.CLEAN
    assert verdict.is_clean
    assert verdict.reason == "scanner_not_configured"
    assert any("not configured" in r.getMessage() for r in caplog.records)
    assert gateway.opened == []


async def test_unconfigured_scanner_ignores_missing_file(storage):
    with pytest.warns(ScanConfigurationWarning):
        verdict = await _gateway(storage, url=None).scan("temp/1/does-not-exist")
    assert verdict.is_clean


async def test_infected_entry(storage):
    """Scanner flags the file: verdict infected with the reported signatures."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json={"data": {"result": [{"name": "f.exe", "is_infected": True, "viruses": ["Eicar-Test"]}]}},
        )

    gateway = _gateway(storage, handler)
    verdict = await gateway.scan("temp/1/f.exe")
    assert verdict.status is VerdictStatus.INFECTED
    assert verdict.signatures == ["Eicar-Test"]
    assert not verdict.is_clean
    assert len(calls) == 1
    assert calls[0].method == "POST"
    assert str(calls[0].url) == SCANNER_URL
    assert f'name="{FILE_FIELD}"' in calls[0].content.decode("latin-1")
    assert b"EICAR" in calls[0].content
    assert all(h.closed for h in gateway.opened)


async def test_clean_entry(storage):
    verdict = await _gateway(storage, _json({"data": {"result": [{"name": "f.txt", "is_infected": False}]}})).scan(
        "temp/1/f.txt"
    )
    assert verdict == ScanVerdict.clean()


async def test_any_infected_entry_wins(storage):
    payload = {
        "data": {
            "result": [
                {"name": "a", "is_infected": False, "viruses": []},
                {"name": "b", "is_infected": True, "viruses": ["Win.Trojan"]},
                {"name": "c", "is_infected": True, "viruses": ["Never.Reached"]},
            ]
        }
    }
    verdict = await _gateway(storage, _json(payload)).scan("temp/1/f.exe")
    assert verdict.status is VerdictStatus.INFECTED
    assert verdict.signatures == ["Win.Trojan"]


async def test_infected_without_signature_names(storage):
    verdict = await _gateway(storage, _json({"data": {"result": [{"name": "f", "is_infected": True}]}})).scan(
        "temp/1/f.exe"
    )
    assert verdict.status is VerdictStatus.INFECTED
    assert verdict.signatures


@pytest.mark.parametrize("key", ["temp/1/missing.bin", "temp/1", "../../etc/passwd"])
async def test_unreadable_file_is_never_clean(storage, key):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"data": {"result": []}})

    verdict = await _gateway(storage, handler).scan(key)
    assert verdict.status is VerdictStatus.UNDETERMINED
    assert verdict.reason == "file_unreadable"
    assert calls == []


@pytest.mark.parametrize("status_code", [400, 401, 404, 500, 502, 503])
async def test_non_2xx_is_undetermined_and_closes_handle(storage, status_code):
    gateway = _gateway(storage, _json({"data": {"result": []}}, status_code=status_code))
    verdict = await gateway.scan("temp/1/f.txt")
    assert verdict.status is VerdictStatus.UNDETERMINED
    assert verdict.reason == "scanner_http_error"
    assert len(gateway.opened) == 1
    assert gateway.opened[0].closed


@pytest.mark.parametrize(
    "exc",
    [httpx.ConnectError("connection refused"), httpx.ReadTimeout("timed out"), httpx.RemoteProtocolError("bad")],
)
async def test_transport_errors_are_undetermined_and_close_handle(storage, exc):
    def handler(request):
        raise exc

    gateway = _gateway(storage, handler)
    verdict = await gateway.scan("temp/1/f.txt")
    assert verdict.status is VerdictStatus.UNDETERMINED
    assert verdict.reason == "scanner_unavailable"
    assert gateway.opened[0].closed


async def test_repeated_failures_leak_no_handles(storage):
    def handler(request):
        raise httpx.ConnectError("down")

    gateway = _gateway(storage, handler)
    for _ in range(20):
        assert (await gateway.scan("temp/1/f.txt")).status is VerdictStatus.UNDETERMINED
    assert len(gateway.opened) == 20
    assert all(h.closed for h in gateway.opened)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json=["no", "envelope"]),
        httpx.Response(200, json={"data": {}}),
        httpx.Response(200, json={"data": {"result": "clean"}}),
        httpx.Response(200, json={"data": {"result": ["x"]}}),
    ],
)
async def test_malformed_body_is_undetermined(storage, response):
    gateway = _gateway(storage, lambda request: response)
    verdict = await gateway.scan("temp/1/f.txt")
    assert verdict.status is VerdictStatus.UNDETERMINED
    assert gateway.opened[0].closed


async def test_empty_result_list_is_clean(storage):
    verdict = await _gateway(storage, _json({"data": {"result": []}})).scan("temp/1/f.txt")
    assert verdict.is_clean


@pytest.mark.parametrize(
    "viruses, expected",
    [
        ("Eicar-Test", ["Eicar-Test"]),
        (["Win.Trojan", "Eicar-Test"], ["Win.Trojan", "Eicar-Test"]),
        ({"name": "Eicar-Test"}, ["unknown"]),
        (42, ["unknown"]),
        ("", ["unknown"]),
    ],
)
async def test_signature_names_are_normalized(storage, viruses, expected):
    payload = {"data": {"result": [{"name": "f.exe", "is_infected": True, "viruses": viruses}]}}
    verdict = await _gateway(storage, _json(payload)).scan("temp/1/f.exe")
    assert verdict.status is VerdictStatus.INFECTED
    assert verdict.signatures == expected


async def test_scanner_upload_runs_off_the_event_loop(storage):
    loop_thread = threading.get_ident()
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(threading.get_ident())
        return httpx.Response(200, json={"data": {"result": []}})

    assert (await _gateway(storage, handler).scan("temp/1/f.txt")).is_clean
    assert seen and seen[0] != loop_thread
