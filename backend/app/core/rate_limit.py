"""In-memory sliding-window rate limit (login, invite creation). Per process; use WAF/API Gateway in prod for scale."""
import time
from collections import defaultdict

from app.core.config import get_settings

_buckets: dict[str, list[float]] = defaultdict(list)
_window = 60.0


def _check_limit(scope: str, identifier: str, limit_per_minute: int) -> bool:
    now = time.monotonic()
    bucket = _buckets[f"{scope}:{identifier}"]
    bucket[:] = [t for t in bucket if now - t < _window]
    if len(bucket) >= limit_per_minute:
        return True
    bucket.append(now)
    return False


def is_login_rate_limited(identifier: str) -> bool:
    return _check_limit("login", identifier.lower(), get_settings().login_rate_limit_per_minute)


def is_invite_rate_limited(identifier: str) -> bool:
    """Per-owner limit on invite creation (each invite sends an email)."""
    return _check_limit("invite", identifier, get_settings().invite_rate_limit_per_minute)


def reset_rate_limits() -> None:
    _buckets.clear()
