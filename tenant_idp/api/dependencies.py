"""Process-wide wiring of the OAuth core.

Configuration is read once, here, and handed to constructors.  Route
handlers receive collaborators through FastAPI dependencies, which lets
tests swap them via ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Header

from tenant_idp.core.config import SETTINGS
from tenant_idp.db.engine import async_session_factory
from tenant_idp.models.principal import Identity
from tenant_idp.models.user import Tenant, User
from tenant_idp.repos.grant_repo import GrantRepo
from tenant_idp.repos.pg_user_repo import PgUserRepo
from tenant_idp.repos.user_repo import InMemoryUserRepo, UserRepo
from tenant_idp.services import auth_service
from tenant_idp.services.ephemeral_store import ephemeral_store
from tenant_idp.services.oauth_service import OAuthProvider
from tenant_idp.services.token_service import TokenCodec

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    user_repo: UserRepo = PgUserRepo(async_session_factory)
else:
    user_repo = InMemoryUserRepo()

token_codec = TokenCodec(SETTINGS.oauth)

grant_repo = GrantRepo(
    ephemeral_store,
    code_ttl_sec=SETTINGS.oauth.auth_code_ttl_sec,
    refresh_ttl_sec=SETTINGS.oauth.refresh_token_ttl_sec,
)

oauth_provider = OAuthProvider(
    SETTINGS.oauth,
    codec=token_codec,
    grants=grant_repo,
    user_repo=user_repo,
    login_url=SETTINGS.login_url,
)


def _seed_dev_user() -> None:
    """Seed a demo tenant and user for local development."""
    if not isinstance(user_repo, InMemoryUserRepo) or not SETTINGS.is_dev:
        return
    tenant = Tenant.new(
        name="Demo Tenant",
        subdomain="demo",
        licensed_modules=("crm", "invoicing"),
        subscription_tier="professional",
    )
    user_repo.add(
        User.new(
            email="admin@demo.example.com",
            name="Demo Admin",
            role="owner",
            tenant=tenant,
            password_hash=auth_service.hash_password("demo-password"),
            email_verified=True,
        )
    )
    logger.info("Seeded dev user admin@demo.example.com")


_seed_dev_user()


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_oauth_provider() -> OAuthProvider:
    return oauth_provider


def get_token_codec() -> TokenCodec:
    return token_codec


def get_user_repo() -> UserRepo:
    return user_repo


async def require_identity(
    provider: Annotated[OAuthProvider, Depends(get_oauth_provider)],
    authorization: Annotated[str | None, Header()] = None,
) -> Identity:
    """Bearer header → Identity, licensing taken from the store.

    Raises unauthorized / invalid_token / user_not_found as OAuthErrors.
    """
    user = await provider.current_user(authorization)
    identity = Identity.from_user(user)
    logger.debug(
        "Session resolved  user=%s tenant=%s", identity.user_id, identity.tenant_id
    )
    return identity
