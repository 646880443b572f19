"""Login UI: minimal HTML form that sets the session cookie.

This is the identity provider's own login page.  When /oauth/authorize
finds no usable session cookie it redirects the browser here with
``?redirect=<authorize URL>``.  After a successful login we set an
HttpOnly session cookie and send the browser back, which resumes the
authorization request.

Only same-site targets are honoured for ``redirect``; anything else
falls back to a plain "signed in" page so this form cannot be used as an
open redirector.
"""

from __future__ import annotations

import html
import logging
from typing import Annotated
from urllib.parse import urlsplit, urlunsplit

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from tenant_idp.api.dependencies import get_token_codec, get_user_repo
from tenant_idp.core.config import SETTINGS
from tenant_idp.repos.user_repo import UserRepo
from tenant_idp.services import auth_service
from tenant_idp.services.token_service import SessionClaims, TokenCodec

logger = logging.getLogger(__name__)

router = APIRouter(tags=["login"])

# ---------------------------------------------------------------------------
# Minimal login form (inline HTML)
# ---------------------------------------------------------------------------

_LOGIN_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>tenant-idp | sign in</title>
  <style>
    body {{ font: 15px/1.4 sans-serif; max-width: 22rem; margin: 12vh auto; }}
    form p {{ margin: 0 0 .9rem; }}
    form input {{ display: block; width: 100%; padding: .4rem; }}
    .error {{ color: #b00020; }}
  </style>
</head>
<body>
  <h1>Sign in to your workspace</h1>
  {error}
  <form method="post" action="/login">
    <p><label>Email <input name="email" type="email" required autofocus></label></p>
    <p><label>Password <input name="password" type="password" required></label></p>
    <input type="hidden" name="redirect" value="{redirect}">
    <p><button type="submit">Continue</button></p>
  </form>
</body>
</html>
"""

_SIGNED_IN_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Signed in</title></head>
<body><h1>Signed in</h1><p>Welcome, {email}</p></body>
</html>
"""


def _render_form(redirect: str, error: str | None = None) -> str:
    error_block = f'<p class="error">{html.escape(error)}</p>' if error else ""
    return _LOGIN_HTML.format(
        redirect=html.escape(redirect, quote=True), error=error_block
    )


def safe_redirect_target(target: str | None, request_host: str) -> str | None:
    """Return a same-site path for *target*, or None if it leaves the site.

    Absolute URLs are accepted only when they point back at this host, and
    are reduced to their path and query.
    """
    if not target:
        return None
    try:
        parts = urlsplit(target)
    except ValueError:
        return None
    if parts.scheme or parts.netloc:
        if parts.scheme not in ("http", "https") or parts.netloc != request_host:
            return None
        target = urlunsplit(("", "", parts.path or "/", parts.query, ""))
    # "//evil.example" and "/\evil.example" are protocol-relative in browsers.
    if not target.startswith("/") or target.startswith(("//", "/\\")):
        return None
    return target


# ========================== GET /login ======================================


@router.get("/login")
def login_page(
    redirect: str | None = Query(None),
    error: str | None = Query(None),
) -> HTMLResponse:
    """Render the login form, carrying ?redirect through the POST."""
    return HTMLResponse(_render_form(redirect or "", error))


# ========================== POST /login =====================================


@router.post("/login", response_model=None)
async def login_submit(
    request: Request,
    repo: Annotated[UserRepo, Depends(get_user_repo)],
    codec: Annotated[TokenCodec, Depends(get_token_codec)],
    email: str = Form(...),
    password: str = Form(...),
    redirect: str = Form(""),
) -> RedirectResponse | HTMLResponse:
    """Validate credentials, set the session cookie, redirect back."""
    logger.info("Login attempt  email=%s", email)

    user = await auth_service.authenticate_user(repo, email, password)
    if user is None:
        logger.warning("Login failed  email=%s", email)
        return HTMLResponse(
            _render_form(redirect, "Invalid email or password."), status_code=401
        )

    session_token = codec.sign(SessionClaims.for_user(user))

    target = safe_redirect_target(redirect, request.url.netloc)
    if target is not None:
        response: RedirectResponse | HTMLResponse = RedirectResponse(
            url=target, status_code=302
        )
    else:
        if redirect:
            logger.warning("Ignoring off-site login redirect  target=%s", redirect)
        response = HTMLResponse(_SIGNED_IN_HTML.format(email=html.escape(email)))

    response.set_cookie(
        key=SETTINGS.session_cookie_name,
        value=session_token,
        httponly=True,
        samesite="lax",
        secure=SETTINGS.is_prod,
        path="/",
        max_age=codec.ttl_sec,
    )
    logger.info("Login succeeded  user=%s tenant=%s", user.id, user.tenant_id)
    return response
