from .models import (
    User,
    ReverseShareInvite,
    Setting,
    NotificationJob,
    AuditEvent,
)
from .session import get_db, async_session_factory, engine, init_db

__all__ = [
    "User",
    "ReverseShareInvite",
    "Setting",
    "NotificationJob",
    "AuditEvent",
    "get_db",
    "async_session_factory",
    "engine",
    "init_db",
]
