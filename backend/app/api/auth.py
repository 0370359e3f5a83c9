"""Auth: login, logout, me. Cookie-based JWT + CSRF. Guest accounts cannot log in."""
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.deps import get_current_user, require_csrf
from app.core.rate_limit import is_login_rate_limited
from app.core.security import (
    create_access_token,
    create_csrf_token,
    verify_password,
)
from app.db import get_db, User
from app.api.schemas import LoginRequest, UserProfile
from app.services.audit import log_audit

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def _cookie_params() -> dict:
    return {
        "httponly": True,
        "samesite": settings.cookie_samesite,
        "path": "/",
        "max_age": settings.access_token_expire_minutes * 60,
        "secure": settings.cookie_secure,
    }


def _profile(user: User) -> UserProfile:
    return UserProfile(id=user.id, name=user.name, email=user.email, role=user.role)


@router.post("/login")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    if is_login_rate_limited(body.email):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many login attempts")
    result = await db.execute(
        select(User).where(
            func.lower(User.email) == body.email.lower(),
            User.is_active.is_(True),
            User.is_guest.is_(False),
        )
    )
    user = result.scalar_one_or_none()
    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    access_token = create_access_token(str(user.id))
    csrf_token = create_csrf_token()
    response.set_cookie(key=settings.cookie_name, value=access_token, **_cookie_params())
    response.set_cookie(
        key=settings.csrf_cookie_name,
        value=csrf_token,
        httponly=False,
        samesite=settings.cookie_samesite,
        path="/",
        max_age=3600 * 24,
        secure=settings.cookie_secure,
    )
    await log_audit(
        db,
        user.id,
        "login_success",
        event_data={"email": body.email},
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return {"user": _profile(user), "csrf_token": csrf_token}


@router.post("/logout", dependencies=[Depends(require_csrf)])
async def logout(response: Response):
    response.delete_cookie(settings.cookie_name, path="/")
    response.delete_cookie(settings.csrf_cookie_name, path="/")
    return {"ok": True}


@router.get("/me", response_model=UserProfile)
async def me(user: User = Depends(get_current_user)):
    return _profile(user)
