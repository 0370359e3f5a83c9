"""Prometheus metrics: request count by route/status, latency, AV verdicts, invite creation."""
import re

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total requests",
    ["method", "path", "status_class"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
AV_SCAN_TOTAL = Counter(
    "av_scan_total",
    "Antivirus scan verdicts",
    ["verdict"],  # clean | infected | undetermined
)
AV_SCAN_SKIPPED_TOTAL = Counter(
    "av_scan_skipped_total",
    "Uploads accepted without scanning because no scanner is configured",
)
INVITES_TOTAL = Counter(
    "reverse_share_invites_total",
    "Reverse share invite attempts",
    ["result"],  # created | disabled | failed
)

_UUID_SEGMENT = re.compile(r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


def _status_class(status: int) -> str:
    if status < 200:
        return "1xx"
    if status < 300:
        return "2xx"
    if status < 400:
        return "3xx"
    if status < 500:
        return "4xx"
    return "5xx"


def normalize_path(path: str) -> str:
    """Collapse ids and setting keys to keep label cardinality bounded."""
    path = _UUID_SEGMENT.sub("/{id}", path or "/")
    if path.startswith("/api/admin/settings/"):
        path = "/api/admin/settings/{key}"
    return path


def record_request(method: str, path: str, status_code: int, latency_seconds: float) -> None:
    path = normalize_path(path)
    sc = _status_class(status_code)
    REQUEST_COUNT.labels(method=method, path=path, status_class=sc).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(latency_seconds)


def record_scan_verdict(verdict: str) -> None:
    AV_SCAN_TOTAL.labels(verdict=verdict).inc()


def record_scan_skipped() -> None:
    AV_SCAN_SKIPPED_TOTAL.inc()


def record_invite(result: str) -> None:
    INVITES_TOTAL.labels(result=result).inc()


def get_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
