from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest

# Tests run against the in-process backends; settings are read at import
# time, so this must happen before tenant_idp is imported.
os.environ["APP_ENV"] = "test"
for _name in ("DATABASE_URL", "REDIS_URL", "OAUTH_REDIRECT_URIS", "LOGIN_URL"):
    os.environ.pop(_name, None)

# Ensure repo root is on sys.path so `import tenant_idp` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fastapi.testclient import TestClient  # noqa: E402

from tenant_idp.api.dependencies import token_codec, user_repo  # noqa: E402
from tenant_idp.core.config import SETTINGS  # noqa: E402
from tenant_idp.main import app  # noqa: E402
from tenant_idp.models.user import Tenant, User  # noqa: E402
from tenant_idp.services import auth_service  # noqa: E402
from tenant_idp.services.ephemeral_store import ephemeral_store  # noqa: E402
from tenant_idp.services.token_service import SessionClaims  # noqa: E402

CLIENT_ID = SETTINGS.oauth.client_id
CLIENT_SECRET = SETTINGS.oauth.client_secret
REDIRECT_URI = "https://app.acme.example.com/oauth/callback"

TEST_EMAIL = "alice@acme.example.com"
TEST_PASSWORD = "correct-horse-battery"

# argon2 is deliberately slow; hash once per session.
_PASSWORD_HASH = auth_service.hash_password(TEST_PASSWORD)


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_state() -> Iterator[None]:
    """Clear the module-level stores between tests."""
    ephemeral_store.clear()  # type: ignore[attr-defined]
    user_repo.clear()  # type: ignore[attr-defined]
    yield
    ephemeral_store.clear()  # type: ignore[attr-defined]
    user_repo.clear()  # type: ignore[attr-defined]


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(ephemeral_store, "_clock", fake)
    return fake


@pytest.fixture
def client() -> TestClient:
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def tenant() -> Tenant:
    return Tenant.new(
        name="Acme Corp",
        subdomain="acme",
        licensed_modules=("crm", "invoicing"),
        subscription_tier="professional",
    )


@pytest.fixture
def user(tenant: Tenant) -> User:
    u = User.new(
        email=TEST_EMAIL,
        name="Alice Example",
        role="admin",
        tenant=tenant,
        password_hash=_PASSWORD_HASH,
        email_verified=True,
    )
    user_repo.add(u)  # type: ignore[attr-defined]
    return u


def mint_session(user: User, *, issued_at: datetime | None = None) -> str:
    """Sign a session token for *user* as the login page would."""
    return token_codec.sign(replace(SessionClaims.for_user(user), issued_at=issued_at))


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def authorize_params(**overrides: str) -> dict[str, str]:
    params = {
        "client_id": CLIENT_ID,
        "redirect_uri": REDIRECT_URI,
        "response_type": "code",
        "state": "xyz-state",
    }
    params.update(overrides)
    return params


def get_code(client: TestClient, user: User, **overrides: str) -> str:
    """Drive /oauth/authorize with a session cookie and return the code."""
    client.cookies.set(SETTINGS.session_cookie_name, mint_session(user))
    resp = client.get("/oauth/authorize", params=authorize_params(**overrides))
    assert resp.status_code == 302, resp.text
    query = parse_qs(urlparse(resp.headers["location"]).query)
    return query["code"][0]


def code_exchange_body(code: str, **overrides: str) -> dict[str, str]:
    body = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": REDIRECT_URI,
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
    }
    body.update(overrides)
    return body


def refresh_body(refresh_token: str, **overrides: str) -> dict[str, str]:
    body = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
    }
    body.update(overrides)
    return body
