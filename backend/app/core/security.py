"""JWT (owner sessions, guest credentials), password hashing, CSRF token (double-submit cookie)."""
import hmac
import secrets
import string
from datetime import datetime, timezone, timedelta

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError
from jose import JWTError, jwt
from app.core.config import get_settings

settings = get_settings()
_ph = PasswordHasher()
_ALPHANUMERIC = string.ascii_letters + string.digits

GUEST_TOKEN_TYPE = "guest"


def hash_password(plain: str) -> str:
    return _ph.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        _ph.verify(hashed, plain)
        return True
    except VerifyMismatchError:
        return False


def random_string(length: int) -> str:
    """Cryptographically random alphanumeric string."""
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def create_access_token(subject: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": subject,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    # Guest credentials are signed with the same key but never grant a session
    if payload.get("typ") == GUEST_TOKEN_TYPE:
        return None
    return payload


def create_guest_token(subject: str, invite_id: str, secret_key: str, algorithm: str) -> str:
    """Guest credential bound to one invite: no exp claim; that invite's expires_at bounds it. jti keeps every mint unique."""
    payload = {
        "sub": subject,
        "inv": invite_id,
        "typ": GUEST_TOKEN_TYPE,
        "iat": datetime.now(timezone.utc),
        "jti": secrets.token_urlsafe(16),
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_guest_token(token: str, secret_key: str, algorithm: str) -> dict | None:
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        return None
    if payload.get("typ") != GUEST_TOKEN_TYPE or "sub" not in payload or "inv" not in payload:
        return None
    return payload


def create_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def verify_csrf_token(cookie_value: str | None, header_value: str | None) -> bool:
    if not cookie_value or not header_value:
        return False
    return hmac.compare_digest(cookie_value, header_value)
