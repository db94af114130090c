"""
Configuration Tests
===================

Tests for session_gateway/config.py
"""

import pytest
from pydantic import ValidationError

from session_gateway.config import Settings, get_settings, validate_configuration

REQUIRED = {
    "OIDC_ISSUER_URL": "https://idp.example.com/",
    "OIDC_CLIENT_ID": "client",
    "OIDC_CLIENT_SECRET": "secret",
    "OIDC_POST_LOGOUT_REDIRECT_URI": "https://app.example.com/api/auth/logout/callback",
    "SESSION_SECRET": "s" * 32,
}


def make_settings(**overrides):
    return Settings(_env_file=None, **{**REQUIRED, **overrides})


def test_defaults():
    settings = make_settings()

    assert settings.SESSION_JWT_ALGORITHM == "HS256"
    assert settings.SESSION_MAX_AGE == 3600
    assert settings.SESSION_COOKIE_NAME == "session_token"
    assert settings.LOGOUT_STATE_MAX_AGE == 300
    assert settings.REFRESH_SINGLE_FLIGHT is True
    assert settings.OIDC_HTTP_TIMEOUT_SECONDS == 10.0
    assert settings.is_production is False
    assert settings.allowed_origins_list == []


def test_provider_config_snapshot():
    config = make_settings(OIDC_DISCOVERY_CACHE_SECONDS=60).provider_config

    assert config.issuer_url == "https://idp.example.com"
    assert config.client_id == "client"
    assert config.discovery_cache_seconds == 60

    with pytest.raises(ValidationError):
        config.client_id = "other"


def test_allowed_origins_list():
    settings = make_settings(ALLOWED_ORIGINS=" https://a.example.com, ,https://b.example.com ")

    assert settings.allowed_origins_list == ["https://a.example.com", "https://b.example.com"]


def test_log_level_is_normalized():
    assert make_settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"


@pytest.mark.parametrize(
    "overrides",
    [
        {"SESSION_SECRET": "too-short"},
        {"SESSION_JWT_ALGORITHM": "RS256"},
        {"SESSION_JWT_ALGORITHM": "none"},
        {"OIDC_ISSUER_URL": "idp.example.com"},
        {"OIDC_POST_LOGOUT_REDIRECT_URI": "/relative/callback"},
        {"LOG_LEVEL": "LOUD"},
        {"OIDC_HTTP_TIMEOUT_SECONDS": 0},
        {"OIDC_DISCOVERY_CACHE_SECONDS": -1},
    ],
)
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValidationError):
        make_settings(**overrides)


def test_missing_required_settings(monkeypatch):
    for name in REQUIRED:
        monkeypatch.delenv(name, raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_settings_from_environment(monkeypatch):
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    monkeypatch.setenv("REFRESH_SINGLE_FLIGHT", "false")
    get_settings.cache_clear()

    try:
        settings = get_settings()
        assert settings.OIDC_CLIENT_ID == "client"
        assert settings.REFRESH_SINGLE_FLIGHT is False
        assert get_settings() is settings
    finally:
        get_settings.cache_clear()


def test_validate_configuration_development():
    report = validate_configuration(make_settings())

    assert report["valid"] is True
    assert report["errors"] == []
    assert any("Secure flag" in w for w in report["warnings"])
    assert report["session_max_age"] == 3600


def test_validate_configuration_production_requires_https_issuer():
    report = validate_configuration(make_settings(
        ENVIRONMENT="production",
        OIDC_ISSUER_URL="http://idp.internal",
    ))

    assert report["valid"] is False
    assert any("https" in e for e in report["errors"])


def test_validate_configuration_flags_disabled_discovery_cache():
    report = validate_configuration(make_settings(OIDC_DISCOVERY_CACHE_SECONDS=0))

    assert any("Discovery cache disabled" in w for w in report["warnings"])
