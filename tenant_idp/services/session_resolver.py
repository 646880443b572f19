from __future__ import annotations

import logging

from tenant_idp.models.principal import Identity
from tenant_idp.models.user import User
from tenant_idp.repos.user_repo import UserRepo
from tenant_idp.services.token_service import TokenCodec

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


class UnauthorizedError(Exception):
    """No usable bearer credential in the Authorization header."""


class UserNotFoundError(Exception):
    """Token verified, but its subject no longer exists."""


def parse_bearer(authorization: str | None) -> str:
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise UnauthorizedError("missing or non-Bearer authorization header")
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise UnauthorizedError("empty bearer token")
    return token


class SessionResolver:
    """Bearer credential → identity.

    Raises UnauthorizedError, token_service.InvalidTokenError or
    UserNotFoundError; repository failures propagate untouched.
    """

    def __init__(self, codec: TokenCodec, user_repo: UserRepo) -> None:
        self._codec = codec
        self._user_repo = user_repo

    async def resolve_user(self, token: str) -> User:
        claims = self._codec.verify(token)
        user = await self._user_repo.find_user_by_id(claims.user_id)
        if user is None:
            logger.warning("Session for unknown user  sub=%s", claims.user_id)
            raise UserNotFoundError(claims.user_id)
        if user.tenant_id != claims.tenant_id:
            # Licensing below comes from the store either way.
            logger.warning(
                "Tenant mismatch  sub=%s token_tenant=%s store_tenant=%s",
                user.id,
                claims.tenant_id,
                user.tenant_id,
            )
        return user

    async def resolve(self, authorization: str | None) -> Identity:
        token = parse_bearer(authorization)
        return Identity.from_user(await self.resolve_user(token))
