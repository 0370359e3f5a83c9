"""Admin: process-wide settings (feature flags) and audit viewer. Admin only."""
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import get_feature_flags, require_admin, require_csrf
from app.db import get_db, User, Setting, AuditEvent
from app.api.schemas import AuditEventEntry, AuditEventListResponse, SettingOut, SettingUpdateRequest
from app.services.audit import log_audit
from app.services.feature_flags import ALLOW_REVERSE_SHARES, FeatureFlags

router = APIRouter(prefix="/admin", tags=["admin"])

KNOWN_SETTINGS = frozenset({ALLOW_REVERSE_SHARES})


def _check_key(key: str) -> None:
    if key not in KNOWN_SETTINGS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown setting")


@router.get("/settings/{key}", response_model=SettingOut)
async def get_setting(
    key: str,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Current value; unset settings read as null (flags then count as off)."""
    _check_key(key)
    row = await db.get(Setting, key)
    if row is None:
        return SettingOut(key=key, value=None)
    return SettingOut.model_validate(row)


@router.put("/settings/{key}", response_model=SettingOut, dependencies=[Depends(require_csrf)])
async def put_setting(
    key: str,
    body: SettingUpdateRequest,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    _check_key(key)
    row = await flags.set(key, body.value)
    await log_audit(db, user.id, "setting_updated", event_data={"key": key, "value": body.value})
    return SettingOut.model_validate(row)


# ----- Audit viewer -----
@router.get("/audit", response_model=AuditEventListResponse)
async def list_audit_events(
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    event_type: str | None = Query(None, description="Filter by event_type"),
    user_id: UUID | None = Query(None, description="Filter by user_id"),
    from_time: datetime | None = Query(None, description="Events on or after (ISO datetime)"),
    to_time: datetime | None = Query(None, description="Events on or before (ISO datetime)"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List audit events with optional filters and pagination."""
    q = select(AuditEvent).order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
    if event_type is not None:
        q = q.where(AuditEvent.event_type == event_type)
    if user_id is not None:
        q = q.where(AuditEvent.user_id == user_id)
    if from_time is not None:
        q = q.where(AuditEvent.created_at >= from_time.astimezone(timezone.utc))
    if to_time is not None:
        q = q.where(AuditEvent.created_at <= to_time.astimezone(timezone.utc))
    q = q.offset(offset).limit(limit + 1)
    result = await db.execute(q)
    rows = result.scalars().all()
    has_more = len(rows) > limit
    if has_more:
        rows = rows[:limit]
    events = [
        AuditEventEntry(
            id=r.id,
            user_id=r.user_id,
            event_type=r.event_type,
            event_data=r.event_data,
            ip=r.ip,
            user_agent=r.user_agent,
            created_at=r.created_at,
        )
        for r in rows
    ]
    next_offset = (offset + limit) if has_more else None
    return AuditEventListResponse(events=events, next_offset=next_offset)
