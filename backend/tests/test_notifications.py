"""Notification outbox: claim order and delivery bookkeeping."""
from datetime import datetime, timedelta, timezone

from app.db.models import NotificationJob
from app.services.notifications import STATUS_FAILED, STATUS_PENDING, STATUS_SENT, NotificationQueue

T0 = datetime(2026, 10, 1, 9, 0, 0, tzinfo=timezone.utc)


async def _job(db, email: str, minutes: int, status: str = STATUS_PENDING) -> NotificationJob:
    job = NotificationJob(
        recipient_email=email,
        template="reverse_share_invite",
        payload={"token": "t"},
        status=status,
        created_at=T0 + timedelta(minutes=minutes),
    )
    db.add(job)
    await db.flush()
    return job


async def test_claim_pending_oldest_first_and_skips_processed(db):
    await _job(db, "late@x.com", 5)
    await _job(db, "early@x.com", 1)
    await _job(db, "done@x.com", 0, status=STATUS_SENT)
    await _job(db, "broken@x.com", 0, status=STATUS_FAILED)
    jobs = await NotificationQueue(db).claim_pending()
    assert [j.recipient_email for j in jobs] == ["early@x.com", "late@x.com"]


async def test_claim_pending_respects_limit(db):
    for i in range(3):
        await _job(db, f"r{i}@x.com", i)
    jobs = await NotificationQueue(db).claim_pending(limit=2)
    assert [j.recipient_email for j in jobs] == ["r0@x.com", "r1@x.com"]


async def test_mark_sent(db):
    queue = NotificationQueue(db)
    job = await _job(db, "a@x.com", 0)
    await queue.mark_sent(job)
    assert job.status == STATUS_SENT
    assert job.attempts == 1
    assert job.processed_at is not None
    assert await queue.claim_pending() == []


async def test_mark_failed_truncates_error(db):
    queue = NotificationQueue(db)
    job = await _job(db, "a@x.com", 0)
    await queue.mark_failed(job, "smtp down " * 500)
    assert job.status == STATUS_FAILED
    assert job.attempts == 1
    assert len(job.last_error) == 2000
    assert await queue.claim_pending() == []
