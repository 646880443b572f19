"""OAuth2 error taxonomy and its single serialization point.

Every failure a client can observe from /oauth/* (and /auth/me) is an
``OAuthError``: a machine-readable ``error`` code, a human
``error_description`` and an HTTP status.  Handlers raise; the exception
handler installed by ``register_exception_handlers`` renders the
``{"error", "error_description"}`` body.  Nothing else builds error JSON.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tenant_idp.core.metrics import OAUTH_REQUESTS

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    error = "server_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_description = "An unexpected error occurred"

    def __init__(
        self,
        description: str | None = None,
        *,
        headers: dict[str, str] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.error_description = description or self.default_description
        self.headers = headers
        if status_code is not None:
            self.status_code = status_code
        super().__init__(f"{self.error}: {self.error_description}")

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error, "error_description": self.error_description}


class InvalidClient(OAuthError):
    error = "invalid_client"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_description = "Invalid client credentials"


class InvalidRequest(OAuthError):
    error = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST
    default_description = "The request is missing a required parameter"


class UnsupportedResponseType(OAuthError):
    error = "unsupported_response_type"
    status_code = status.HTTP_400_BAD_REQUEST
    default_description = 'Only "code" response type is supported'


class UnsupportedGrantType(OAuthError):
    error = "unsupported_grant_type"
    status_code = status.HTTP_400_BAD_REQUEST
    default_description = (
        'Only "authorization_code" and "refresh_token" grant types are supported'
    )


class InvalidGrant(OAuthError):
    error = "invalid_grant"
    status_code = status.HTTP_400_BAD_REQUEST
    default_description = "The grant is invalid or expired"


class Unauthorized(OAuthError):
    error = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_description = "Missing or invalid authorization header"

    def __init__(self, description: str | None = None) -> None:
        super().__init__(description, headers={"WWW-Authenticate": "Bearer"})


class InvalidToken(OAuthError):
    error = "invalid_token"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_description = "Invalid or expired token"

    def __init__(self, description: str | None = None) -> None:
        super().__init__(
            description, headers={"WWW-Authenticate": 'Bearer error="invalid_token"'}
        )


class UserNotFound(OAuthError):
    error = "user_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_description = "User not found"


class ServerError(OAuthError):
    pass


# Paths whose unexpected exceptions are rendered as OAuth server_error.
_OAUTH_PATH_PREFIXES = ("/oauth/", "/auth/")


def _endpoint_label(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1] or "unknown"


def register_exception_handlers(app: FastAPI) -> None:
    """Install the OAuthError renderer and the generic server_error fallback."""

    @app.exception_handler(OAuthError)
    async def handle_oauth_error(request: Request, exc: OAuthError) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "OAuth error  path=%s error=%s description=%s",
            request.url.path,
            exc.error,
            exc.error_description,
            extra={"oauth_error": exc.error},
        )
        OAUTH_REQUESTS.labels(
            endpoint=_endpoint_label(request.url.path), outcome=exc.error
        ).inc()
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        # Full detail goes to the log, never to the client.
        logger.exception("Unhandled error  path=%s", request.url.path)
        if request.url.path.startswith(_OAUTH_PATH_PREFIXES):
            error = ServerError()
            OAUTH_REQUESTS.labels(
                endpoint=_endpoint_label(request.url.path), outcome=error.error
            ).inc()
            return JSONResponse(status_code=error.status_code, content=error.to_dict())
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error"},
        )
