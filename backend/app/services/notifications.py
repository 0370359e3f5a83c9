"""Notification outbox: jobs are written in the request transaction and delivered later by the mail worker.

The invite flow only enqueues. Delivery outcome (sent / failed) is recorded on the job and never
touches the invite that produced it.
"""
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import NotificationJob, ReverseShareInvite, User, utcnow

logger = logging.getLogger(__name__)

REVERSE_SHARE_INVITE_TEMPLATE = "reverse_share_invite"

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def owner_payload(user: User) -> dict:
    return {"id": str(user.id), "name": user.name, "email": user.email}


def invite_payload(invite: ReverseShareInvite) -> dict:
    return {
        "id": str(invite.id),
        "user_id": str(invite.user_id),
        "guest_user_id": str(invite.guest_user_id),
        "recipient_name": invite.recipient_name,
        "recipient_email": invite.recipient_email,
        "message": invite.message,
        "created_at": _iso(invite.created_at),
        "expires_at": _iso(invite.expires_at),
    }


class NotificationQueue:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def enqueue(self, recipient_email: str, template: str, payload: dict) -> NotificationJob:
        job = NotificationJob(
            recipient_email=recipient_email,
            template=template,
            payload=payload,
            status=STATUS_PENDING,
            attempts=0,
        )
        self._db.add(job)
        await self._db.flush()
        logger.info("Enqueued %s notification job %s", template, job.id)
        return job

    async def enqueue_reverse_share_invite(
        self, owner: User, invite: ReverseShareInvite, encrypted_token: str
    ) -> NotificationJob:
        return await self.enqueue(
            invite.recipient_email,
            REVERSE_SHARE_INVITE_TEMPLATE,
            {
                "user": owner_payload(owner),
                "invite": invite_payload(invite),
                "token": encrypted_token,
            },
        )

    async def claim_pending(self, limit: int = 50) -> list[NotificationJob]:
        """Oldest pending jobs first. Row locks where the backend supports them, so workers don't double-send."""
        q = (
            select(NotificationJob)
            .where(NotificationJob.status == STATUS_PENDING)
            .order_by(NotificationJob.created_at, NotificationJob.id)
            .limit(limit)
        )
        if self._db.get_bind().dialect.name == "postgresql":
            q = q.with_for_update(skip_locked=True)
        result = await self._db.execute(q)
        return list(result.scalars().all())

    async def mark_sent(self, job: NotificationJob) -> None:
        job.status = STATUS_SENT
        job.attempts += 1
        job.last_error = None
        job.processed_at = utcnow()
        await self._db.flush()

    async def mark_failed(self, job: NotificationJob, error: str) -> None:
        job.status = STATUS_FAILED
        job.attempts += 1
        job.last_error = error[:2000]
        job.processed_at = utcnow()
        await self._db.flush()
        logger.warning("Notification job %s failed: %s", job.id, job.last_error)
