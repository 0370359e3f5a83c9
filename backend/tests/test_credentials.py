"""Guest credentials: fresh per call, encrypted, reversible only with the issuing key."""
from uuid import uuid4

import pytest
from cryptography.fernet import Fernet
from jose import jwt

from app.core.config import Settings
from app.core.errors import CredentialIssuanceError, InvalidCredentialError
from app.core.security import GUEST_TOKEN_TYPE, decode_access_token, decode_guest_token
from app.services.credentials import CredentialIssuer


def _settings(key: str | None) -> Settings:
    return Settings(token_encryption_key=key)


def test_issue_for_round_trips_and_never_equals_plaintext():
    settings = _settings(Fernet.generate_key().decode())
    issuer = CredentialIssuer(settings)
    guest_id, invite_id = uuid4(), uuid4()
    encrypted = issuer.issue_for(guest_id, invite_id)
    token = issuer.decrypt(encrypted)
    assert token != encrypted
    assert encrypted.encode() != token.encode()
    payload = decode_guest_token(token, settings.secret_key, settings.jwt_algorithm)
    assert payload["sub"] == str(guest_id)
    assert payload["inv"] == str(invite_id)
    assert "exp" not in payload


def test_issue_for_mints_a_new_token_every_time():
    issuer = CredentialIssuer(_settings(Fernet.generate_key().decode()))
    guest_id, invite_id = uuid4(), uuid4()
    first = issuer.issue_for(guest_id, invite_id)
    second = issuer.issue_for(guest_id, invite_id)
    assert first != second
    assert issuer.decrypt(first) != issuer.decrypt(second)


def test_decode_returns_guest_and_invite():
    issuer = CredentialIssuer(_settings(Fernet.generate_key().decode()))
    guest_id, invite_id = uuid4(), uuid4()
    credential = issuer.decode(issuer.issue_for(guest_id, invite_id))
    assert credential.guest_user_id == guest_id
    assert credential.invite_id == invite_id


def test_other_key_cannot_decrypt():
    issuer = CredentialIssuer(_settings(Fernet.generate_key().decode()))
    other = CredentialIssuer(_settings(Fernet.generate_key().decode()))
    encrypted = issuer.issue_for(uuid4(), uuid4())
    with pytest.raises(CredentialIssuanceError):
        other.decrypt(encrypted)
    with pytest.raises(InvalidCredentialError):
        other.decode(encrypted)


@pytest.mark.parametrize("key", [None, "", "not-a-fernet-key"])
def test_missing_or_bad_key_fails_issuance(key):
    with pytest.raises(CredentialIssuanceError):
        CredentialIssuer(_settings(key)).issue_for(uuid4(), uuid4())


@pytest.mark.parametrize("value", [None, "", "garbage"])
def test_decode_rejects_garbage(value):
    issuer = CredentialIssuer(_settings(Fernet.generate_key().decode()))
    with pytest.raises(InvalidCredentialError):
        issuer.decode(value)


def test_guest_token_is_not_a_session_token():
    settings = _settings(Fernet.generate_key().decode())
    issuer = CredentialIssuer(settings)
    token = issuer.decrypt(issuer.issue_for(uuid4(), uuid4()))
    assert decode_access_token(token) is None


def test_token_without_invite_claim_is_rejected():
    settings = _settings(Fernet.generate_key().decode())
    issuer = CredentialIssuer(settings)
    unbound = jwt.encode({"sub": str(uuid4()), "typ": GUEST_TOKEN_TYPE}, settings.secret_key, settings.jwt_algorithm)
    encrypted = Fernet(settings.token_encryption_key.encode()).encrypt(unbound.encode()).decode()
    with pytest.raises(InvalidCredentialError):
        issuer.decode(encrypted)
