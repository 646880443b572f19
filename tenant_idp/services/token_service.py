"""Session token codec (HS256 JWT).

The session token is the bearer credential handed to end users at login
and to the relying party by /oauth/token.  It is stateless: once verified,
the token is the only record of its claims.  It stops being valid by
expiry or by signature mismatch, nothing else.

The signing secret is process-wide and read-only.  Every instance that
may verify a token must be provisioned with the same JWT_SECRET.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import jwt

from tenant_idp.core.config import OAuthConfig
from tenant_idp.models.user import User

ALGORITHM = "HS256"
ISSUER = "tenant-idp"

_SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")
_REQUIRED_CLAIMS = ["sub", "tenant_id", "email", "role", "iat", "exp", "iss"]


class InvalidTokenError(Exception):
    """Token is malformed, tampered with, or expired."""


@dataclass(frozen=True, slots=True)
class SessionClaims:
    user_id: str
    tenant_id: str
    email: str
    role: str
    licensed_modules: tuple[str, ...] = ()
    subscription_tier: str = "free"
    issued_at: datetime | None = None
    expires_at: datetime | None = field(default=None, compare=False)

    @staticmethod
    def for_user(user: User) -> SessionClaims:
        """Claims built from the user's *current* tenant licensing."""
        return SessionClaims(
            user_id=user.id,
            tenant_id=user.tenant_id,
            email=user.email,
            role=user.role,
            licensed_modules=user.tenant.licensed_modules,
            subscription_tier=user.tenant.subscription_tier,
        )


def _is_canonical_segment(segment: str) -> bool:
    # urlsafe_b64decode tolerates stray characters and non-zero padding
    # bits, so two different strings can decode to the same bytes.  Only
    # the canonical spelling of each segment is accepted.
    if not _SEGMENT.match(segment):
        return False
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError):
        return False
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii") == segment


class TokenCodec:
    def __init__(self, config: OAuthConfig) -> None:
        self._secret = config.jwt_secret
        self.ttl_sec = config.session_token_ttl_sec

    def sign(self, claims: SessionClaims) -> str:
        """Sign *claims*.  issued_at defaults to now; expiry is issued_at + TTL."""
        issued_at = claims.issued_at or datetime.now(UTC)
        payload = {
            "sub": claims.user_id,
            "tenant_id": claims.tenant_id,
            "email": claims.email,
            "role": claims.role,
            "licensed_modules": list(claims.licensed_modules),
            "subscription_tier": claims.subscription_tier,
            "iss": ISSUER,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.ttl_sec),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> SessionClaims:
        """Return the claims of a valid token.

        Raises InvalidTokenError on bad structure, bad signature, wrong
        issuer, missing claims or expiry.  Pins the algorithm to HS256 so
        alg:none and algorithm-switching tokens are rejected.
        """
        parts = token.split(".")
        if len(parts) != 3 or not all(_is_canonical_segment(p) for p in parts):
            raise InvalidTokenError("malformed token")

        try:
            data = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=ISSUER,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("token expired") from None
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(str(e)) from None

        modules = data.get("licensed_modules", [])
        if not isinstance(modules, list):
            raise InvalidTokenError("licensed_modules must be a list of strings")
        if not all(isinstance(m, str) for m in modules):
            raise InvalidTokenError("licensed_modules must be a list of strings")
        for name in ("sub", "tenant_id", "email", "role"):
            if not isinstance(data[name], str):
                raise InvalidTokenError(f"{name} must be a string")

        return SessionClaims(
            user_id=data["sub"],
            tenant_id=data["tenant_id"],
            email=data["email"],
            role=data["role"],
            licensed_modules=tuple(modules),
            subscription_tier=str(data.get("subscription_tier") or "free"),
            issued_at=datetime.fromtimestamp(data["iat"], UTC),
            expires_at=datetime.fromtimestamp(data["exp"], UTC),
        )
