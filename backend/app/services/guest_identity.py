"""Find or create the restricted guest account that anchors a reverse share recipient.

Guests never see their own email or password: the email is a random placeholder
(kept only for the users.email unique constraint) and the password hash is of a
random secret that is thrown away. The recipient's real address is stored in
``guest_recipient_email`` purely as the find-or-create key.
"""
import logging
import secrets

from sqlalchemy import func, insert as plain_insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import hash_password, random_string
from app.db.models import User, gen_uuid, utcnow

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_LENGTH = 32


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _insert_for(dialect_name: str):
    """Dialect insert with ON CONFLICT support, or None when the backend has none."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    return insert


class GuestIdentityProvisioner:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def ensure_guest(self, recipient_email: str, recipient_name: str) -> User:
        key = normalize_email(recipient_email)
        existing = await self._match_existing_account(key)
        if existing is not None:
            return existing
        guest = await self._find_guest(key)
        if guest is not None:
            return guest
        return await self._create_guest(key, recipient_name)

    async def _match_existing_account(self, email: str) -> User | None:
        """A user whose own email is the recipient's is reused, guest or not.

        Open question: this can attach an invite to somebody's real account.
        Keep it confined here so the policy can change without touching the rest of the flow.
        """
        result = await self._db.execute(
            select(User).where(func.lower(User.email) == email).limit(1)
        )
        return result.scalar_one_or_none()

    async def _find_guest(self, email: str) -> User | None:
        result = await self._db.execute(
            select(User).where(User.guest_recipient_email == email, User.is_guest.is_(True))
        )
        return result.scalar_one_or_none()

    async def _create_guest(self, email: str, recipient_name: str) -> User:
        values = dict(
            id=gen_uuid(),
            name=recipient_name,
            email=random_string(PLACEHOLDER_EMAIL_LENGTH),
            password_hash=hash_password(secrets.token_urlsafe(32)),
            role="user",
            is_guest=True,
            is_active=True,
            guest_recipient_email=email,
            created_at=utcnow(),
        )
        insert = _insert_for(self._db.get_bind().dialect.name)
        if insert is not None:
            stmt = insert(User.__table__).values(**values).on_conflict_do_nothing(
                index_elements=["guest_recipient_email"]
            )
            result = await self._db.execute(stmt)
            if result.rowcount == 0:
                logger.info("Guest for recipient already created concurrently; reusing it")
        else:
            await self._insert_or_lose_race(values)
        guest = await self._find_guest(email)
        if guest is None:
            # Conflict on a row we cannot see (e.g. placeholder email collision); let the caller see a server error
            raise RuntimeError("Guest identity could not be created")
        return guest

    async def _insert_or_lose_race(self, values: dict) -> None:
        """Plain INSERT in a savepoint; a unique violation means another request won."""
        try:
            async with self._db.begin_nested():
                await self._db.execute(plain_insert(User.__table__).values(**values))
        except IntegrityError:
            logger.info("Guest for recipient already created concurrently; reusing it")
