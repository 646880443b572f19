"""Payloads stored against one-time authorization codes and refresh tokens.

Both live only in the ephemeral store, serialized as JSON.  The key is the
opaque credential itself; the payload is what the token endpoint needs to
finish the exchange.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass


class MalformedGrantError(ValueError):
    """Stored payload could not be decoded into the expected shape."""


def _load(raw: str, fields: tuple[str, ...]) -> dict[str, str]:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedGrantError(str(e)) from None
    if not isinstance(data, dict):
        raise MalformedGrantError("payload is not an object")
    missing = [f for f in fields if not isinstance(data.get(f), str)]
    if missing:
        raise MalformedGrantError(f"payload missing {missing}")
    return {f: data[f] for f in fields}


@dataclass(frozen=True, slots=True)
class AuthorizationCodeGrant:
    user_id: str
    tenant_id: str
    redirect_uri: str
    client_id: str
    scope: str

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @staticmethod
    def from_json(raw: str) -> AuthorizationCodeGrant:
        return AuthorizationCodeGrant(
            **_load(
                raw, ("user_id", "tenant_id", "redirect_uri", "client_id", "scope")
            )
        )


@dataclass(frozen=True, slots=True)
class RefreshTokenGrant:
    user_id: str
    tenant_id: str
    client_id: str

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @staticmethod
    def from_json(raw: str) -> RefreshTokenGrant:
        return RefreshTokenGrant(**_load(raw, ("user_id", "tenant_id", "client_id")))
