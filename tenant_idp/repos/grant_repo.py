from __future__ import annotations

import logging
import secrets

from tenant_idp.core.logging import fingerprint
from tenant_idp.models.grants import (
    AuthorizationCodeGrant,
    MalformedGrantError,
    RefreshTokenGrant,
)
from tenant_idp.services.ephemeral_store import EphemeralStore

logger = logging.getLogger(__name__)

CODE_PREFIX = "oauth:code:"
REFRESH_PREFIX = "oauth:refresh:"


def new_opaque_credential() -> str:
    """256 random bits as 64 lowercase hex characters."""
    return secrets.token_hex(32)


class GrantRepo:
    """Authorization codes and refresh tokens on top of the ephemeral store.

    Issue methods write and return the new credential.  Redeem methods are
    single-use: they remove the entry in the same step that reads it, so a
    credential is returned at most once however many callers race for it.
    StoreUnavailableError from the store propagates unchanged.
    """

    def __init__(
        self,
        store: EphemeralStore,
        *,
        code_ttl_sec: int,
        refresh_ttl_sec: int,
    ) -> None:
        self._store = store
        self._code_ttl_sec = code_ttl_sec
        self._refresh_ttl_sec = refresh_ttl_sec

    async def issue_code(self, grant: AuthorizationCodeGrant) -> str:
        code = new_opaque_credential()
        await self._store.put(CODE_PREFIX + code, grant.to_json(), self._code_ttl_sec)
        return code

    async def redeem_code(self, code: str) -> AuthorizationCodeGrant | None:
        raw = await self._store.take(CODE_PREFIX + code)
        if raw is None:
            return None
        try:
            return AuthorizationCodeGrant.from_json(raw)
        except MalformedGrantError as e:
            # Already removed by take(); treat as never issued.
            logger.error(
                "Discarding malformed code payload  code=%s…: %s",
                fingerprint(code),
                e,
            )
            return None

    async def issue_refresh_token(self, grant: RefreshTokenGrant) -> str:
        token = new_opaque_credential()
        await self._store.put(
            REFRESH_PREFIX + token, grant.to_json(), self._refresh_ttl_sec
        )
        return token

    async def redeem_refresh_token(self, token: str) -> RefreshTokenGrant | None:
        raw = await self._store.take(REFRESH_PREFIX + token)
        if raw is None:
            return None
        try:
            return RefreshTokenGrant.from_json(raw)
        except MalformedGrantError as e:
            logger.error(
                "Discarding malformed refresh payload  token=%s…: %s",
                fingerprint(token),
                e,
            )
            return None
