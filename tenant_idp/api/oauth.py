from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, ValidationError

from tenant_idp.api.dependencies import get_oauth_provider
from tenant_idp.core.config import SETTINGS
from tenant_idp.core.errors import InvalidRequest
from tenant_idp.services.oauth_service import (
    AuthorizeParams,
    OAuthProvider,
    TokenParams,
)

# ---------------------------------------------------------------------------
# Authorization Server - OAuth 2.0 Authorization Code (confidential client)
#
# Endpoints:
#   GET  /oauth/authorize  - session cookie → one-time code → redirect back
#   POST /oauth/token      - code or refresh token → session token pair
#   GET  /oauth/userinfo   - bearer session token → identity claims
#
# The routes only translate HTTP to OAuthProvider calls and back.
# Failures propagate as OAuthError and are rendered by core/errors.py.
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])

_NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


class TokenRequest(BaseModel):
    """Body of POST /oauth/token, JSON or form-encoded."""

    model_config = ConfigDict(extra="ignore")

    grant_type: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str
    scope: str | None = None


class UserInfoResponse(BaseModel):
    sub: str
    email: str
    name: str
    email_verified: bool
    role: str
    tenant_id: str
    tenant_name: str
    tenant_subdomain: str
    licensed_modules: list[str]
    subscription_tier: str


# ========================== GET /oauth/authorize ==========================


@router.get("/oauth/authorize")
async def authorize(
    request: Request,
    provider: Annotated[OAuthProvider, Depends(get_oauth_provider)],
    client_id: str | None = Query(None),
    redirect_uri: str | None = Query(None),
    response_type: str | None = Query(None),
    state: str | None = Query(None),
    scope: str | None = Query(None),
) -> RedirectResponse:
    # Parameters are optional here so missing ones surface as OAuth errors
    # instead of FastAPI's 422.
    result = await provider.authorize(
        AuthorizeParams(
            client_id=client_id,
            redirect_uri=redirect_uri,
            response_type=response_type,
            state=state,
            scope=scope,
        ),
        session_token=request.cookies.get(SETTINGS.session_cookie_name),
        request_url=str(request.url),
    )
    return RedirectResponse(url=result.location, status_code=status.HTTP_302_FOUND)


# ========================== POST /oauth/token =============================


async def _read_token_request(request: Request) -> TokenRequest:
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            body = await request.json()
            if not isinstance(body, dict):
                raise InvalidRequest("Request body must be a JSON object")
        else:
            form = await request.form()
            body = {k: v for k, v in form.items() if isinstance(v, str)}
    except ValueError:
        raise InvalidRequest("Request body could not be parsed") from None

    try:
        return TokenRequest.model_validate(body)
    except ValidationError:
        raise InvalidRequest("Token request parameters must be strings") from None


@router.post("/oauth/token", response_model=TokenResponse)
async def exchange_token(
    request: Request,
    provider: Annotated[OAuthProvider, Depends(get_oauth_provider)],
) -> JSONResponse:
    body = await _read_token_request(request)
    grant = await provider.exchange(TokenParams(**body.model_dump()))
    payload = TokenResponse(
        access_token=grant.access_token,
        token_type=grant.token_type,
        expires_in=grant.expires_in,
        refresh_token=grant.refresh_token,
        scope=grant.scope,
    )
    return JSONResponse(payload.model_dump(exclude_none=True), headers=_NO_STORE)


# ========================== GET /oauth/userinfo ===========================


@router.get("/oauth/userinfo", response_model=UserInfoResponse)
async def userinfo(
    provider: Annotated[OAuthProvider, Depends(get_oauth_provider)],
    authorization: Annotated[str | None, Header()] = None,
) -> UserInfoResponse:
    info = await provider.userinfo(authorization)
    return UserInfoResponse(
        sub=info.sub,
        email=info.email,
        name=info.name,
        email_verified=info.email_verified,
        role=info.role,
        tenant_id=info.tenant_id,
        tenant_name=info.tenant_name,
        tenant_subdomain=info.tenant_subdomain,
        licensed_modules=list(info.licensed_modules),
        subscription_tier=info.subscription_tier,
    )
