"""Audit logging: login_success, reverse_share_invite_created, reverse_share_upload_accepted. Never log secrets."""
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import AuditEvent
from app.core.logging_redaction import redact_for_log


async def log_audit(
    db: AsyncSession,
    user_id: UUID,
    event_type: str,
    event_data: dict | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> None:
    safe_data = redact_for_log(event_data) if event_data else None
    db.add(
        AuditEvent(
            user_id=user_id,
            event_type=event_type,
            event_data=safe_data,
            ip=ip,
            user_agent=user_agent,
        )
    )
    await db.flush()
