"""Pydantic request/response schemas."""
from datetime import datetime
from typing import Generic, Literal, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

T = TypeVar("T")


def _config_forbid(**kwargs):
    return ConfigDict(extra="forbid", **kwargs)


class SuccessEnvelope(BaseModel, Generic[T]):
    status: Literal["success"] = "success"
    data: T


# ----- Auth -----
class LoginRequest(BaseModel):
    model_config = _config_forbid()
    email: EmailStr
    password: str


class UserProfile(BaseModel):
    model_config = _config_forbid()
    id: UUID
    name: str
    email: str
    role: str


# ----- Reverse shares -----
class CreateInviteRequest(BaseModel):
    model_config = _config_forbid(str_strip_whitespace=True)
    recipient_name: str = Field(min_length=1, max_length=255)
    recipient_email: EmailStr
    message: str | None = None


class InviteOut(BaseModel):
    """Invite as returned to the owner. The guest credential is never part of it."""
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    user_id: UUID
    guest_user_id: UUID
    recipient_name: str
    recipient_email: str
    message: str | None
    created_at: datetime
    expires_at: datetime


class InviteData(BaseModel):
    invite: InviteOut


class UploadOut(BaseModel):
    storage_key: str
    byte_size: int
    verdict: str


class UploadData(BaseModel):
    upload: UploadOut


# ----- Admin -----
class SettingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    key: str
    value: str | None
    updated_at: datetime | None = None


class SettingUpdateRequest(BaseModel):
    model_config = _config_forbid()
    value: str = Field(max_length=1000)


class AuditEventEntry(BaseModel):
    model_config = _config_forbid()
    id: UUID
    user_id: UUID
    event_type: str
    event_data: dict | None
    ip: str | None
    user_agent: str | None
    created_at: datetime


class AuditEventListResponse(BaseModel):
    model_config = _config_forbid()
    events: list[AuditEventEntry]
    next_offset: int | None
