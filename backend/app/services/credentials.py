"""Guest credentials: a fresh JWT per invite, only ever handed out Fernet-encrypted."""
import logging
from typing import NamedTuple
from uuid import UUID

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError

from app.core.config import Settings
from app.core.errors import CredentialIssuanceError, InvalidCredentialError
from app.core.security import create_guest_token, decode_guest_token

logger = logging.getLogger(__name__)


class GuestCredential(NamedTuple):
    guest_user_id: UUID
    invite_id: UUID


class CredentialIssuer:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _fernet(self) -> Fernet:
        key = self._settings.token_encryption_key
        if not key:
            logger.error("TOKEN_ENCRYPTION_KEY is not configured; cannot handle guest credentials")
            raise CredentialIssuanceError()
        try:
            return Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError):
            logger.error("TOKEN_ENCRYPTION_KEY is not a valid Fernet key")
            raise CredentialIssuanceError() from None

    def issue_for(self, guest_user_id: UUID, invite_id: UUID) -> str:
        """Mint a new guest token for one invite (never reused) and return it encrypted."""
        fernet = self._fernet()
        try:
            token = create_guest_token(
                str(guest_user_id),
                str(invite_id),
                self._settings.secret_key,
                self._settings.jwt_algorithm,
            )
        except JWTError as e:
            logger.error("Guest token signing failed: %s", type(e).__name__)
            raise CredentialIssuanceError() from e
        return fernet.encrypt(token.encode()).decode()

    def decrypt(self, encrypted_token: str) -> str:
        try:
            return self._fernet().decrypt(encrypted_token.encode()).decode()
        except InvalidToken as e:
            raise CredentialIssuanceError("Credential could not be decrypted") from e

    def decode(self, encrypted_token: str | None) -> GuestCredential:
        """Return the guest user id and the invite an encrypted credential was issued for."""
        if not encrypted_token:
            raise InvalidCredentialError()
        try:
            token = self.decrypt(encrypted_token)
        except CredentialIssuanceError as e:
            raise InvalidCredentialError() from e
        payload = decode_guest_token(token, self._settings.secret_key, self._settings.jwt_algorithm)
        if payload is None:
            raise InvalidCredentialError()
        try:
            return GuestCredential(UUID(payload["sub"]), UUID(payload["inv"]))
        except (ValueError, TypeError):
            raise InvalidCredentialError() from None
