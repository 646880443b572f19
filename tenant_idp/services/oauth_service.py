"""OAuth2 authorization-code provider: the authorize, token and userinfo steps.

Flow:
  authorize  session cookie → identity → one-time code (300 s) → redirect
  token      client auth → take(code) → redirect_uri binding → current
             licensing → session token + rotating refresh token (30 days)
  userinfo   bearer session token → identity claims, licensing from store

Every failure is raised as an OAuthError subclass (core/errors.py).
Successful outcomes are returned as the small result types below; the
route layer only serializes them.

Single-use is enforced by GrantRepo.redeem_*, which removes the entry in
the same store operation that reads it.  Redemption always happens before
any other check on the grant, so a code that fails a later check (say a
redirect_uri mismatch) is burnt, and the client must restart from
/oauth/authorize.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from tenant_idp.core.config import OAuthConfig
from tenant_idp.core.errors import (
    InvalidClient,
    InvalidGrant,
    InvalidRequest,
    InvalidToken,
    ServerError,
    Unauthorized,
    UnsupportedGrantType,
    UnsupportedResponseType,
    UserNotFound,
)
from tenant_idp.core.logging import fingerprint
from tenant_idp.core.metrics import OAUTH_REQUESTS
from tenant_idp.models.grants import AuthorizationCodeGrant, RefreshTokenGrant
from tenant_idp.models.user import User
from tenant_idp.repos.grant_repo import GrantRepo
from tenant_idp.repos.user_repo import UserRepo
from tenant_idp.services.ephemeral_store import StoreUnavailableError
from tenant_idp.services.session_resolver import (
    SessionResolver,
    UnauthorizedError,
    UserNotFoundError,
    parse_bearer,
)
from tenant_idp.services.token_service import (
    InvalidTokenError,
    SessionClaims,
    TokenCodec,
)

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "openid profile email"
GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoginRedirect:
    """No valid session: send the browser to the login page, then back."""

    location: str


@dataclass(frozen=True, slots=True)
class CodeRedirect:
    """Code issued: send the browser back to the relying party."""

    location: str


AuthorizeResult = LoginRedirect | CodeRedirect


@dataclass(frozen=True, slots=True)
class AuthorizeParams:
    client_id: str | None
    redirect_uri: str | None
    response_type: str | None
    state: str | None = None
    scope: str | None = None


@dataclass(frozen=True, slots=True)
class TokenParams:
    grant_type: str | None
    client_id: str | None = None
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None


@dataclass(frozen=True, slots=True)
class TokenGrant:
    access_token: str
    refresh_token: str
    expires_in: int
    scope: str | None = None
    token_type: str = "Bearer"


@dataclass(frozen=True, slots=True)
class UserInfo:
    sub: str
    email: str
    name: str
    email_verified: bool
    role: str
    tenant_id: str
    tenant_name: str
    tenant_subdomain: str
    licensed_modules: tuple[str, ...]
    subscription_tier: str

    @staticmethod
    def from_user(user: User) -> UserInfo:
        return UserInfo(
            sub=user.id,
            email=user.email,
            name=user.name,
            email_verified=user.email_verified,
            role=user.role,
            tenant_id=user.tenant_id,
            tenant_name=user.tenant.name,
            tenant_subdomain=user.tenant.subdomain,
            licensed_modules=user.tenant.licensed_modules,
            subscription_tier=user.tenant.subscription_tier,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _append_query(url: str, params: dict[str, str]) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def _is_absolute_http_url(uri: str) -> bool:
    try:
        parts = urlsplit(uri)
    except ValueError:
        return False
    return (
        parts.scheme in ("http", "https")
        and bool(parts.netloc)
        and not parts.fragment
    )


def _ok(endpoint: str) -> None:
    OAUTH_REQUESTS.labels(endpoint=endpoint, outcome="ok").inc()


class OAuthProvider:
    def __init__(
        self,
        config: OAuthConfig,
        *,
        codec: TokenCodec,
        grants: GrantRepo,
        user_repo: UserRepo,
        login_url: str = "/login",
    ) -> None:
        self._config = config
        self._codec = codec
        self._grants = grants
        self._user_repo = user_repo
        self._resolver = SessionResolver(codec, user_repo)
        self._login_url = login_url

    # --- shared checks ---------------------------------------------------

    def _client_id_matches(self, client_id: str | None) -> bool:
        return client_id is not None and hmac.compare_digest(
            client_id.encode(), self._config.client_id.encode()
        )

    def _authenticate_client(
        self, client_id: str | None, client_secret: str | None
    ) -> str:
        # Evaluate both comparisons so timing does not reveal which failed.
        id_ok = self._client_id_matches(client_id)
        secret_ok = client_secret is not None and hmac.compare_digest(
            client_secret.encode(), self._config.client_secret.encode()
        )
        if not (id_ok and secret_ok):
            logger.warning(
                "OAUTH [token] client authentication failed  client_id=%s", client_id
            )
            raise InvalidClient("Invalid client credentials")
        assert client_id is not None
        return client_id

    async def _load_user(self, user_id: str) -> User | None:
        try:
            return await self._user_repo.find_user_by_id(user_id)
        except Exception as e:
            logger.exception("User lookup failed  user_id=%s", user_id)
            raise ServerError() from e

    async def _mint(self, user: User, client_id: str) -> tuple[str, str]:
        # Licensing comes from the store as of now, never from the grant.
        access_token = self._codec.sign(SessionClaims.for_user(user))
        try:
            refresh_token = await self._grants.issue_refresh_token(
                RefreshTokenGrant(
                    user_id=user.id, tenant_id=user.tenant_id, client_id=client_id
                )
            )
        except StoreUnavailableError as e:
            raise ServerError("An error occurred during token exchange") from e
        return access_token, refresh_token

    # --- GET /oauth/authorize ------------------------------------------

    def _check_redirect_uri(self, redirect_uri: str | None) -> str:
        if not redirect_uri:
            raise InvalidRequest("redirect_uri is required")
        if not _is_absolute_http_url(redirect_uri):
            raise InvalidRequest("redirect_uri must be an absolute http(s) URL")
        allowed = self._config.redirect_uris
        if allowed and redirect_uri not in allowed:
            raise InvalidRequest("redirect_uri is not registered for this client")
        return redirect_uri

    async def authorize(
        self,
        params: AuthorizeParams,
        *,
        session_token: str | None,
        request_url: str,
    ) -> AuthorizeResult:
        logger.info(
            "OAUTH [authorize] request  client_id=%s redirect_uri=%s",
            params.client_id,
            params.redirect_uri,
        )

        if not self._client_id_matches(params.client_id):
            # Never redirect for an unknown client.
            raise InvalidClient("Invalid client_id", status_code=400)
        if params.response_type != "code":
            raise UnsupportedResponseType()
        redirect_uri = self._check_redirect_uri(params.redirect_uri)
        scope = params.scope or DEFAULT_SCOPE

        login = LoginRedirect(
            location=_append_query(self._login_url, {"redirect": request_url})
        )
        if not session_token:
            logger.info("OAUTH [authorize] no session - redirecting to login")
            OAUTH_REQUESTS.labels(endpoint="authorize", outcome="login_redirect").inc()
            return login

        try:
            claims = self._codec.verify(session_token)
        except InvalidTokenError as e:
            logger.info(
                "OAUTH [authorize] session rejected (%s) - redirecting to login", e
            )
            OAUTH_REQUESTS.labels(endpoint="authorize", outcome="login_redirect").inc()
            return login

        user = await self._load_user(claims.user_id)
        if user is None:
            logger.warning(
                "OAUTH [authorize] session user gone  sub=%s - redirecting to login",
                claims.user_id,
            )
            OAUTH_REQUESTS.labels(endpoint="authorize", outcome="login_redirect").inc()
            return login

        grant = AuthorizationCodeGrant(
            user_id=user.id,
            tenant_id=user.tenant_id,
            redirect_uri=redirect_uri,
            client_id=self._config.client_id,
            scope=scope,
        )
        try:
            code = await self._grants.issue_code(grant)
        except StoreUnavailableError as e:
            raise ServerError("An error occurred during authorization") from e

        location_params = {"code": code}
        if params.state:
            location_params["state"] = params.state
        logger.info(
            "OAUTH [authorize] code issued  user=%s tenant=%s code=%s…",
            user.id,
            user.tenant_id,
            fingerprint(code),
        )
        _ok("authorize")
        return CodeRedirect(location=_append_query(redirect_uri, location_params))

    # --- POST /oauth/token ---------------------------------------------

    async def exchange(self, params: TokenParams) -> TokenGrant:
        if not params.grant_type:
            raise InvalidRequest("grant_type is required")
        logger.info(
            "OAUTH [token] request  grant_type=%s client_id=%s",
            params.grant_type,
            params.client_id,
        )
        if params.grant_type == GRANT_AUTHORIZATION_CODE:
            result = await self._exchange_code(params)
        elif params.grant_type == GRANT_REFRESH_TOKEN:
            result = await self._exchange_refresh_token(params)
        else:
            raise UnsupportedGrantType()
        _ok("token")
        return result

    async def _exchange_code(self, params: TokenParams) -> TokenGrant:
        client_id = self._authenticate_client(params.client_id, params.client_secret)
        if not params.code:
            raise InvalidRequest("Authorization code is required")

        try:
            grant = await self._grants.redeem_code(params.code)
        except StoreUnavailableError:
            # Fail closed: an outage is never a valid code.
            raise InvalidGrant("Authorization code could not be verified") from None
        if grant is None:
            logger.warning(
                "OAUTH [token] code unknown, expired or already used  code=%s…",
                fingerprint(params.code),
            )
            raise InvalidGrant("Authorization code is invalid or expired")

        if params.redirect_uri != grant.redirect_uri:
            logger.warning(
                "OAUTH [token] redirect_uri mismatch  user=%s", grant.user_id
            )
            raise InvalidGrant("redirect_uri does not match")
        if grant.client_id != client_id:
            raise InvalidGrant("Authorization code was issued to another client")

        user = await self._load_user(grant.user_id)
        if user is None:
            raise InvalidGrant("User not found")

        access_token, refresh_token = await self._mint(user, client_id)
        logger.info(
            "OAUTH [token] code exchanged  user=%s tenant=%s", user.id, user.tenant_id
        )
        return TokenGrant(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._codec.ttl_sec,
            scope=grant.scope,
        )

    async def _exchange_refresh_token(self, params: TokenParams) -> TokenGrant:
        client_id = self._authenticate_client(params.client_id, params.client_secret)
        if not params.refresh_token:
            raise InvalidRequest("Refresh token is required")

        try:
            grant = await self._grants.redeem_refresh_token(params.refresh_token)
        except StoreUnavailableError:
            raise InvalidGrant("Refresh token could not be verified") from None
        if grant is None:
            logger.warning(
                "OAUTH [token] refresh token unknown, expired or already rotated  "
                "token=%s…",
                fingerprint(params.refresh_token),
            )
            raise InvalidGrant("Refresh token is invalid or expired")
        if grant.client_id != client_id:
            raise InvalidGrant("Refresh token was issued to another client")

        user = await self._load_user(grant.user_id)
        if user is None:
            raise InvalidGrant("User not found")

        # The presented token is already gone; the successor starts a fresh TTL.
        access_token, refresh_token = await self._mint(user, client_id)
        logger.info(
            "OAUTH [token] refresh token rotated  user=%s old=%s… new=%s…",
            user.id,
            fingerprint(params.refresh_token),
            fingerprint(refresh_token),
        )
        return TokenGrant(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._codec.ttl_sec,
        )

    # --- GET /oauth/userinfo -------------------------------------------

    async def current_user(self, authorization: str | None) -> User:
        """Bearer header → current user, with the userinfo error taxonomy."""
        try:
            token = parse_bearer(authorization)
        except UnauthorizedError:
            raise Unauthorized() from None
        try:
            return await self._resolver.resolve_user(token)
        except InvalidTokenError as e:
            logger.info("Bearer token rejected: %s", e)
            raise InvalidToken() from None
        except UserNotFoundError:
            raise UserNotFound() from None

    async def userinfo(self, authorization: str | None) -> UserInfo:
        user = await self.current_user(authorization)
        _ok("userinfo")
        return UserInfo.from_user(user)
