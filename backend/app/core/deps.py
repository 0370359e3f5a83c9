"""FastAPI dependencies: DB, current user, CSRF, admin/metrics guards, reverse share services."""
from uuid import UUID

from fastapi import Cookie, Header, Request, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.security import decode_access_token, verify_csrf_token
from app.db import get_db, User
from app.services.av_scan import ScanGateway
from app.services.credentials import CredentialIssuer
from app.services.feature_flags import FeatureFlags
from app.services.invites import InviteService
from app.services.storage import get_storage
from app.services.storage.base import StorageBackend

settings = get_settings()


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_db),
    cookie: str | None = Cookie(None, alias=settings.cookie_name),
) -> User | None:
    """Return current user if valid JWT in cookie; else None (no 401). Guests never have a session."""
    if not cookie:
        return None
    payload = decode_access_token(cookie)
    if not payload or "sub" not in payload:
        return None
    try:
        user_id = UUID(payload["sub"])
    except (ValueError, TypeError):
        return None
    result = await db.execute(
        select(User).where(
            User.id == user_id,
            User.is_active.is_(True),
            User.is_guest.is_(False),
        )
    )
    user = result.scalar_one_or_none()
    if user is not None:
        request.state.user_id = user.id
    return user


async def get_current_user(
    user: User | None = Depends(get_current_user_optional),
) -> User:
    """Require authenticated user; 401 if not."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


def require_csrf(
    csrf_cookie: str | None = Cookie(None, alias=settings.csrf_cookie_name),
    csrf_header: str | None = Header(None, alias=settings.csrf_header_name),
) -> None:
    """Validate CSRF for state-changing methods. Raise 403 if invalid."""
    if not verify_csrf_token(csrf_cookie, csrf_header):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing CSRF token",
        )


def require_csrf_for_session(
    user: User | None = Depends(get_current_user_optional),
    csrf_cookie: str | None = Cookie(None, alias=settings.csrf_cookie_name),
    csrf_header: str | None = Header(None, alias=settings.csrf_header_name),
) -> None:
    """CSRF only guards cookie sessions; anonymous calls fall through so the handler can answer 401."""
    if user is not None and not verify_csrf_token(csrf_cookie, csrf_header):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing CSRF token",
        )


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require admin role (settings, audit viewer, metrics)."""
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user


def require_metrics_access(
    user: User | None = Depends(get_current_user_optional),
    x_metrics_secret: str | None = Header(None, alias="X-Metrics-Secret"),
    s: Settings = Depends(get_settings),
) -> None:
    """Allow /metrics if: admin (when metrics_require_admin), or valid X-Metrics-Secret, or no guard (local)."""
    if s.metrics_require_admin:
        if user is None or user.role != "admin":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Metrics require admin authentication",
            )
        return
    if s.metrics_secret and x_metrics_secret != s.metrics_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-Metrics-Secret",
        )


# ----- Reverse share services (settings injected so tests can override get_settings) -----


def get_feature_flags(db: AsyncSession = Depends(get_db)) -> FeatureFlags:
    return FeatureFlags(db)


def get_credential_issuer(s: Settings = Depends(get_settings)) -> CredentialIssuer:
    return CredentialIssuer(s)


def get_invite_service(
    db: AsyncSession = Depends(get_db),
    s: Settings = Depends(get_settings),
    flags: FeatureFlags = Depends(get_feature_flags),
    issuer: CredentialIssuer = Depends(get_credential_issuer),
) -> InviteService:
    return InviteService(db, s, flags=flags, issuer=issuer)


def get_storage_backend(s: Settings = Depends(get_settings)) -> StorageBackend:
    return get_storage(s)


def get_scan_gateway(
    s: Settings = Depends(get_settings),
    storage: StorageBackend = Depends(get_storage_backend),
) -> ScanGateway:
    return ScanGateway(s, storage)
