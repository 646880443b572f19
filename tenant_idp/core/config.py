from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

# Dev-only fallbacks.  load_settings() refuses to start in prod with these.
_DEV_JWT_SECRET = "dev-only-jwt-signing-secret-change-me-please"
_DEV_CLIENT_ID = "dev-client"
_DEV_CLIENT_SECRET = "dev-client-secret"

SESSION_TOKEN_TTL_SEC = 24 * 60 * 60
AUTH_CODE_TTL_SEC = 5 * 60
REFRESH_TOKEN_TTL_SEC = 30 * 24 * 60 * 60


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class OAuthConfig:
    """Everything the OAuth core needs, handed to constructors at startup.

    There is exactly one trusted relying party, so the "client registry"
    is a single id/secret pair plus an optional redirect allow-list.
    """

    client_id: str
    client_secret: str
    jwt_secret: str
    redirect_uris: tuple[str, ...] = ()
    session_token_ttl_sec: int = SESSION_TOKEN_TTL_SEC
    auth_code_ttl_sec: int = AUTH_CODE_TTL_SEC
    refresh_token_ttl_sec: int = REFRESH_TOKEN_TTL_SEC


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    redis_timeout_ms: int
    oauth: OAuthConfig
    session_cookie_name: str = "session"
    login_url: str = "/login"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    redis_timeout_raw = _getenv("REDIS_TIMEOUT_MS", "1000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        redis_timeout_ms = int(redis_timeout_raw)
    except ValueError:
        raise ValueError(
            f"REDIS_TIMEOUT_MS must be an integer (got {redis_timeout_raw!r})"
        ) from None
    if redis_timeout_ms <= 0:
        raise ValueError(f"REDIS_TIMEOUT_MS must be positive (got {redis_timeout_ms})")

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    jwt_secret = _getenv("JWT_SECRET", "")
    client_id = _getenv("OAUTH_CLIENT_ID", "")
    client_secret = _getenv("OAUTH_CLIENT_SECRET", "")

    if app_env_raw == "prod":
        missing = [
            name
            for name, value in (
                ("JWT_SECRET", jwt_secret),
                ("OAUTH_CLIENT_ID", client_id),
                ("OAUTH_CLIENT_SECRET", client_secret),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"{', '.join(missing)} must be set when APP_ENV=prod")

    redirect_uris = tuple(
        uri.strip()
        for uri in _getenv("OAUTH_REDIRECT_URIS", "").split(",")
        if uri.strip()
    )

    oauth = OAuthConfig(
        client_id=client_id or _DEV_CLIENT_ID,
        client_secret=client_secret or _DEV_CLIENT_SECRET,
        jwt_secret=jwt_secret or _DEV_JWT_SECRET,
        redirect_uris=redirect_uris,
    )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        redis_timeout_ms=redis_timeout_ms,
        oauth=oauth,
        session_cookie_name=_getenv("SESSION_COOKIE_NAME", "session") or "session",
        login_url=_getenv("LOGIN_URL", "/login") or "/login",
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
