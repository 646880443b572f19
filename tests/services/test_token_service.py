from __future__ import annotations

import base64
import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from tenant_idp.core.config import OAuthConfig
from tenant_idp.models.user import Tenant, User
from tenant_idp.services.token_service import (
    ISSUER,
    InvalidTokenError,
    SessionClaims,
    TokenCodec,
)

SECRET = "unit-test-signing-secret-0123456789abcdef"


def _codec(secret: str = SECRET, ttl: int = 86400) -> TokenCodec:
    return TokenCodec(
        OAuthConfig(
            client_id="c",
            client_secret="s",
            jwt_secret=secret,
            session_token_ttl_sec=ttl,
        )
    )


def _claims(**overrides) -> SessionClaims:
    claims = SessionClaims(
        user_id="u-1",
        tenant_id="t-1",
        email="alice@acme.example.com",
        role="admin",
        licensed_modules=("crm", "invoicing"),
        subscription_tier="professional",
    )
    return replace(claims, **overrides)


def _b64(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def test_sign_then_verify_preserves_claims() -> None:
    codec = _codec()
    out = codec.verify(codec.sign(_claims()))
    assert out.user_id == "u-1"
    assert out.tenant_id == "t-1"
    assert out.email == "alice@acme.example.com"
    assert out.role == "admin"
    assert out.licensed_modules == ("crm", "invoicing")
    assert out.subscription_tier == "professional"


def test_expiry_is_issued_at_plus_ttl() -> None:
    codec = _codec()
    issued_at = datetime.now(UTC).replace(microsecond=0)
    out = codec.verify(codec.sign(_claims(issued_at=issued_at)))
    assert out.issued_at == issued_at
    assert out.expires_at == issued_at + timedelta(seconds=86400)


def test_expired_token_is_rejected() -> None:
    codec = _codec()
    issued_at = datetime.now(UTC) - timedelta(seconds=86400 + 5)
    with pytest.raises(InvalidTokenError, match="expired"):
        codec.verify(codec.sign(_claims(issued_at=issued_at)))


def test_token_from_another_secret_is_rejected() -> None:
    token = _codec("some-other-secret-that-is-long-enough").sign(_claims())
    with pytest.raises(InvalidTokenError):
        _codec().verify(token)


def test_every_single_bit_flip_is_rejected() -> None:
    codec = _codec()
    token = codec.sign(_claims())
    for i, ch in enumerate(token):
        for bit in range(8):
            flipped = chr(ord(ch) ^ (1 << bit))
            tampered = token[:i] + flipped + token[i + 1 :]
            with pytest.raises(InvalidTokenError):
                codec.verify(tampered)


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "..", "a..c"])
def test_malformed_structure_is_rejected(token: str) -> None:
    with pytest.raises(InvalidTokenError):
        _codec().verify(token)


def test_alg_none_is_rejected() -> None:
    now = int(datetime.now(UTC).timestamp())
    header = _b64({"alg": "none", "typ": "JWT"})
    payload = _b64(
        {
            "sub": "u-1",
            "tenant_id": "t-1",
            "email": "e@x.com",
            "role": "admin",
            "iss": ISSUER,
            "iat": now,
            "exp": now + 60,
        }
    )
    with pytest.raises(InvalidTokenError):
        _codec().verify(f"{header}.{payload}.")
    with pytest.raises(InvalidTokenError):
        _codec().verify(f"{header}.{payload}.AAAA")


def test_wrong_issuer_is_rejected() -> None:
    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "sub": "u-1",
            "tenant_id": "t-1",
            "email": "e@x.com",
            "role": "admin",
            "iss": "someone-else",
            "iat": now,
            "exp": now + timedelta(minutes=5),
        },
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(InvalidTokenError):
        _codec().verify(token)


def test_missing_required_claim_is_rejected() -> None:
    now = datetime.now(UTC)
    token = jwt.encode(
        {"sub": "u-1", "iss": ISSUER, "iat": now, "exp": now + timedelta(minutes=5)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(InvalidTokenError):
        _codec().verify(token)


def test_non_list_licensed_modules_is_rejected() -> None:
    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "sub": "u-1",
            "tenant_id": "t-1",
            "email": "e@x.com",
            "role": "admin",
            "licensed_modules": "crm",
            "iss": ISSUER,
            "iat": now,
            "exp": now + timedelta(minutes=5),
        },
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(InvalidTokenError, match="licensed_modules"):
        _codec().verify(token)


def test_missing_tier_defaults_to_free() -> None:
    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "sub": "u-1",
            "tenant_id": "t-1",
            "email": "e@x.com",
            "role": "user",
            "iss": ISSUER,
            "iat": now,
            "exp": now + timedelta(minutes=5),
        },
        SECRET,
        algorithm="HS256",
    )
    out = _codec().verify(token)
    assert out.subscription_tier == "free"
    assert out.licensed_modules == ()


def test_claims_for_user_take_tenant_licensing() -> None:
    tenant = Tenant.new(
        name="Acme", subdomain="acme", licensed_modules=("crm",), subscription_tier=""
    )
    user = User.new(email="Bob@Acme.example.com", name="Bob", tenant=tenant)
    claims = SessionClaims.for_user(user)
    assert claims.user_id == user.id
    assert claims.tenant_id == tenant.id
    assert claims.email == "bob@acme.example.com"
    assert claims.licensed_modules == ("crm",)
    assert claims.subscription_tier == "free"
