"""Reverse shares: owners invite a guest by email; guests upload files that must pass the AV scan."""
import logging

from fastapi import APIRouter, Depends, File, Header, HTTPException, Request, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.api.schemas import CreateInviteRequest, InviteData, InviteOut, SuccessEnvelope, UploadData, UploadOut
from app.core.config import Settings, get_settings
from app.core.deps import (
    get_credential_issuer,
    get_current_user_optional,
    get_invite_service,
    get_scan_gateway,
    get_storage_backend,
    require_csrf_for_session,
)
from app.core.errors import InvalidCredentialError, InviteNotActiveError, UploadRejectedError
from app.core.rate_limit import is_invite_rate_limited
from app.db import get_db, ReverseShareInvite, User
from app.db.models import utcnow
from app.services.audit import log_audit
from app.services.av_scan import ScanGateway
from app.services.credentials import CredentialIssuer, GuestCredential
from app.services.invites import InviteService
from app.services.storage.base import StorageBackend
from app.services.upload_validation import max_upload_bytes, upload_storage_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reverse-shares", tags=["reverse-shares"])
settings = get_settings()


@router.post(
    "/invite",
    response_model=SuccessEnvelope[InviteData],
    dependencies=[Depends(require_csrf_for_session)],
)
async def create_invite(
    request: Request,
    body: CreateInviteRequest,
    user: User | None = Depends(get_current_user_optional),
    service: InviteService = Depends(get_invite_service),
):
    """Create an invite for recipient_email and queue the invite email (carrying the encrypted guest token)."""
    if user is not None and is_invite_rate_limited(str(user.id)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many invites")
    invite = await service.create_invite(
        user,
        body.recipient_name,
        str(body.recipient_email),
        body.message,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return SuccessEnvelope(data=InviteData(invite=InviteOut.model_validate(invite)))


async def _active_invite(db: AsyncSession, credential: GuestCredential) -> ReverseShareInvite:
    """The invite this credential was issued for. It must belong to the guest and must not have expired."""
    result = await db.execute(
        select(ReverseShareInvite, (ReverseShareInvite.expires_at > utcnow()).label("active")).where(
            ReverseShareInvite.id == credential.invite_id,
            ReverseShareInvite.guest_user_id == credential.guest_user_id,
        )
    )
    row = result.one_or_none()
    if row is None:
        raise InvalidCredentialError()
    invite, active = row
    if not active:
        raise InviteNotActiveError()
    return invite


@router.post(
    "/uploads",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[UploadData],
)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    token: str | None = Header(None, alias=settings.guest_token_header_name),
    db: AsyncSession = Depends(get_db),
    s: Settings = Depends(get_settings),
    issuer: CredentialIssuer = Depends(get_credential_issuer),
    storage: StorageBackend = Depends(get_storage_backend),
    scanner: ScanGateway = Depends(get_scan_gateway),
):
    """Guest upload under an active invite. Stored bytes are removed unless the scan verdict is clean."""
    credential = issuer.decode(token)
    guest_user_id = credential.guest_user_id
    invite = await _active_invite(db, credential)
    request.state.user_id = guest_user_id

    storage_key = upload_storage_key(invite.id, file.filename)
    byte_size = await run_in_threadpool(storage.save, storage_key, file.file, max_upload_bytes(s))

    verdict = await scanner.scan(storage_key)
    if not verdict.is_clean:
        storage.delete(storage_key)
        logger.warning(
            "Rejected upload for invite %s: verdict=%s reason=%s",
            invite.id,
            verdict.status.value,
            verdict.reason,
        )
        raise UploadRejectedError()

    await log_audit(
        db,
        guest_user_id,
        "reverse_share_upload_accepted",
        event_data={
            "invite_id": str(invite.id),
            "storage_key": storage_key,
            "byte_size": byte_size,
            "scan_reason": verdict.reason,
        },
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return SuccessEnvelope(
        data=UploadData(upload=UploadOut(storage_key=storage_key, byte_size=byte_size, verdict=verdict.status.value))
    )
