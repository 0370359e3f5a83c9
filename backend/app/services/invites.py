"""Reverse share invites: flag check, guest provisioning, credential issuance, invite row, notification job."""
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.errors import CredentialIssuanceError, FeatureDisabledError, UnauthorizedError
from app.core.metrics import record_invite
from app.db.models import ReverseShareInvite, User, gen_uuid, utcnow
from app.services.audit import log_audit
from app.services.credentials import CredentialIssuer
from app.services.feature_flags import ALLOW_REVERSE_SHARES, FeatureFlags
from app.services.guest_identity import GuestIdentityProvisioner
from app.services.notifications import NotificationQueue

logger = logging.getLogger(__name__)

INVITE_TTL = timedelta(days=7)


class InviteService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        *,
        flags: FeatureFlags | None = None,
        provisioner: GuestIdentityProvisioner | None = None,
        issuer: CredentialIssuer | None = None,
        queue: NotificationQueue | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._flags = flags or FeatureFlags(db)
        self._provisioner = provisioner or GuestIdentityProvisioner(db)
        self._issuer = issuer or CredentialIssuer(settings)
        self._queue = queue or NotificationQueue(db)
        self._clock = clock

    async def create_invite(
        self,
        owner: User | None,
        recipient_name: str,
        recipient_email: str,
        message: str | None = None,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> ReverseShareInvite:
        """Recipient fields must already be validated. Nothing is written unless the credential was issued."""
        if not await self._flags.is_enabled(ALLOW_REVERSE_SHARES):
            record_invite("disabled")
            raise FeatureDisabledError()
        if owner is None:
            raise UnauthorizedError()

        # Savepoint: a failed credential leaves neither the guest nor the invite behind
        invite_id = gen_uuid()
        async with self._db.begin_nested():
            guest = await self._provisioner.ensure_guest(recipient_email, recipient_name)
            try:
                encrypted_token = self._issuer.issue_for(guest.id, invite_id)
            except CredentialIssuanceError:
                record_invite("failed")
                raise

            created_at = self._clock()
            invite = ReverseShareInvite(
                id=invite_id,
                user_id=owner.id,
                guest_user_id=guest.id,
                recipient_name=recipient_name,
                recipient_email=recipient_email,
                message=message,
                created_at=created_at,
                expires_at=created_at + INVITE_TTL,
            )
            self._db.add(invite)
            await self._db.flush()

            await self._queue.enqueue_reverse_share_invite(owner, invite, encrypted_token)
            await log_audit(
                self._db,
                owner.id,
                "reverse_share_invite_created",
                event_data={"invite_id": str(invite.id), "guest_user_id": str(guest.id)},
                ip=ip,
                user_agent=user_agent,
            )
        record_invite("created")
        logger.info("Reverse share invite %s created by %s", invite.id, owner.id)
        return invite
