from __future__ import annotations

import pytest

from tenant_idp.core.config import (
    AUTH_CODE_TTL_SEC,
    REFRESH_TOKEN_TTL_SEC,
    SESSION_TOKEN_TTL_SEC,
    AppEnv,
    OAuthConfig,
    Settings,
    load_settings,
)

_ENV_VARS = (
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "DATABASE_URL",
    "REDIS_URL",
    "REDIS_TIMEOUT_MS",
    "JWT_SECRET",
    "OAUTH_CLIENT_ID",
    "OAUTH_CLIENT_SECRET",
    "OAUTH_REDIRECT_URIS",
    "SESSION_COOKIE_NAME",
    "LOGIN_URL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _set_prod_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JWT_SECRET", "prod-secret")
    monkeypatch.setenv("OAUTH_CLIENT_ID", "rp")
    monkeypatch.setenv("OAUTH_CLIENT_SECRET", "rp-secret")


# ---- valid values ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.port == 8000
    assert settings.database_url is None
    assert settings.redis_url is None
    assert settings.redis_timeout_ms == 1000
    assert settings.session_cookie_name == "session"
    assert settings.login_url == "/login"


def test_oauth_defaults_and_lifetimes() -> None:
    oauth = load_settings().oauth
    assert oauth.client_id
    assert oauth.client_secret
    assert oauth.jwt_secret
    assert oauth.redirect_uris == ()
    assert oauth.session_token_ttl_sec == SESSION_TOKEN_TTL_SEC == 86400
    assert oauth.auth_code_ttl_sec == AUTH_CODE_TTL_SEC == 300
    assert oauth.refresh_token_ttl_sec == REFRESH_TOKEN_TTL_SEC == 2_592_000


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("LOG_JSON", "true")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    _set_prod_secrets(monkeypatch)
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"
    assert settings.log_json is True
    assert settings.redis_url == "redis://cache:6379/0"
    assert settings.oauth.client_id == "rp"
    assert settings.oauth.client_secret == "rp-secret"
    assert settings.oauth.jwt_secret == "prod-secret"


def test_load_settings_normalizes_case(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "TEST")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "debug"


def test_load_settings_strips_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  test  ")
    monkeypatch.setenv("LOG_LEVEL", "  warning  ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "warning"


def test_redirect_uris_are_split_on_commas(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(
        "OAUTH_REDIRECT_URIS", " https://a.example/cb , ,https://b.example/cb"
    )
    assert load_settings().oauth.redirect_uris == (
        "https://a.example/cb",
        "https://b.example/cb",
    )


def test_empty_urls_mean_not_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "   ")
    monkeypatch.setenv("REDIS_URL", "")
    settings = load_settings()
    assert settings.database_url is None
    assert settings.redis_url is None


# ---- invalid values ----


def test_load_settings_rejects_invalid_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_invalid_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_load_settings_rejects_non_integer_port(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(ValueError, match="PORT must be an integer"):
        load_settings()


@pytest.mark.parametrize("raw", ["0", "-5", "soon"])
def test_load_settings_rejects_bad_redis_timeout(
    monkeypatch: pytest.MonkeyPatch, raw: str
) -> None:
    monkeypatch.setenv("REDIS_TIMEOUT_MS", raw)
    with pytest.raises(ValueError, match="REDIS_TIMEOUT_MS"):
        load_settings()


def test_load_settings_rejects_bad_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "maybe")
    with pytest.raises(ValueError, match="LOG_JSON must be a boolean"):
        load_settings()


def test_prod_requires_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("OAUTH_CLIENT_ID", "rp")
    with pytest.raises(ValueError, match="JWT_SECRET, OAUTH_CLIENT_SECRET must be set"):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
        redis_timeout_ms=1000,
        oauth=OAuthConfig(client_id="c", client_secret="s", jwt_secret="j"),
    )


def test_settings_is_dev() -> None:
    s = _make_settings("dev")
    assert s.is_dev is True
    assert s.is_test is False
    assert s.is_prod is False


def test_settings_is_test() -> None:
    s = _make_settings("test")
    assert s.is_dev is False
    assert s.is_test is True
    assert s.is_prod is False


def test_settings_is_prod() -> None:
    s = _make_settings("prod")
    assert s.is_dev is False
    assert s.is_test is False
    assert s.is_prod is True


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
