"""
Session Cookie Tests
====================

Tests for session_gateway/auth/session.py

Test Coverage:
--------------
1. Cookie codec: round trip, tampering, wrong issuer, expiry, bad payload
2. shape_session: refresh token hidden, errored sessions unauthenticated
3. establish_session writes the cookie from a sign-in event
4. require_session dependency
"""

import logging
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from fastapi import HTTPException, Response

from session_gateway.auth.session import (
    MAX_COOKIE_BYTES,
    SESSION_EXPIRED_DETAIL,
    TOKEN_SET_CLAIM,
    SessionCookieError,
    decode_session,
    encode_session,
    establish_session,
    get_optional_session,
    require_session,
    shape_session,
)
from session_gateway.auth.tokens import TokenLifecycleManager
from session_gateway.models import ErrorKind, SignInEvent


def fake_request(token_set):
    return SimpleNamespace(state=SimpleNamespace(token_set=token_set))


# ============================================================================
# Codec
# ============================================================================

def test_session_cookie_round_trip(token_set, mock_settings):
    value = encode_session(token_set, mock_settings)

    assert decode_session(value, mock_settings) == token_set


def test_session_cookie_keeps_error_flag(token_set, mock_settings):
    flagged = token_set.model_copy(update={"error": ErrorKind.REFRESH_ACCESS_TOKEN_ERROR})

    decoded = decode_session(encode_session(flagged, mock_settings), mock_settings)

    assert decoded.error == ErrorKind.REFRESH_ACCESS_TOKEN_ERROR
    assert not decoded.is_usable


def test_tampered_cookie_is_rejected(token_set, mock_settings):
    signature = encode_session(token_set, mock_settings).rsplit(".", 1)[1]
    forged = token_set.model_copy(update={"access_token": "stolen"})
    signing_input = encode_session(forged, mock_settings).rsplit(".", 1)[0]
    tampered = f"{signing_input}.{signature}"

    with pytest.raises(SessionCookieError):
        decode_session(tampered, mock_settings)


def test_cookie_signed_with_other_secret_is_rejected(token_set, mock_settings):
    other = mock_settings.model_copy(update={"SESSION_SECRET": "x" * 40})

    with pytest.raises(SessionCookieError):
        decode_session(encode_session(token_set, other), mock_settings)


def test_cookie_from_other_issuer_is_rejected(token_set, mock_settings):
    other = mock_settings.model_copy(update={"SESSION_ISSUER": "someone-else"})

    with pytest.raises(SessionCookieError):
        decode_session(encode_session(token_set, other), mock_settings)


def test_expired_cookie_is_rejected(token_set, mock_settings):
    issued = datetime.now(timezone.utc) - timedelta(hours=2)
    value = jwt.encode(
        {
            "iat": issued,
            "exp": issued + timedelta(hours=1),
            "iss": mock_settings.SESSION_ISSUER,
            TOKEN_SET_CLAIM: token_set.model_dump(mode="json"),
        },
        mock_settings.SESSION_SECRET,
        algorithm=mock_settings.SESSION_JWT_ALGORITHM,
    )

    with pytest.raises(SessionCookieError, match="expired"):
        decode_session(value, mock_settings)


@pytest.mark.parametrize(
    "claims",
    [
        {},
        {TOKEN_SET_CLAIM: {"id_token": "only-an-id-token"}},
        {TOKEN_SET_CLAIM: "not-an-object"},
    ],
)
def test_cookie_without_token_set_is_rejected(mock_settings, claims):
    now = datetime.now(timezone.utc)
    value = jwt.encode(
        {"iat": now, "exp": now + timedelta(minutes=5), "iss": mock_settings.SESSION_ISSUER, **claims},
        mock_settings.SESSION_SECRET,
        algorithm=mock_settings.SESSION_JWT_ALGORITHM,
    )

    with pytest.raises(SessionCookieError):
        decode_session(value, mock_settings)


def test_oversized_cookie_is_logged(token_set, mock_settings, caplog):
    bulky = token_set.model_copy(update={"access_token": "x" * MAX_COOKIE_BYTES})

    with caplog.at_level(logging.WARNING, logger="session_gateway.auth.session"):
        encode_session(token_set, mock_settings)
        assert caplog.records == []

        encode_session(bulky, mock_settings)

    assert any("size limit" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize("value", ["", "garbage", "a.b.c"])
def test_malformed_cookie_is_rejected(mock_settings, value):
    with pytest.raises(SessionCookieError):
        decode_session(value, mock_settings)


# ============================================================================
# Session shaping
# ============================================================================

def test_shape_session_hides_refresh_token(token_set):
    view = shape_session(token_set)

    assert view.authenticated is True
    assert view.id_token == "idtok-123"
    assert view.access_token == "access-token"
    assert view.error is None
    assert "refresh_token" not in view.model_dump()


def test_shape_session_with_error_is_unauthenticated(token_set):
    flagged = token_set.model_copy(update={"error": ErrorKind.REFRESH_ACCESS_TOKEN_ERROR})

    view = shape_session(flagged)

    assert view.authenticated is False
    assert view.error == ErrorKind.REFRESH_ACCESS_TOKEN_ERROR
    assert view.model_dump(mode="json")["error"] == "RefreshAccessTokenError"


@pytest.mark.asyncio
async def test_establish_session_sets_cookie(mock_provider, mock_settings):
    manager = TokenLifecycleManager(mock_provider, clock=lambda: 1_000)
    response = Response()
    event = SignInEvent(id_token="idtok", access_token="access", refresh_token="refresh", expires_at=7200)

    token_set = await establish_session(response, event, manager, mock_settings)

    assert token_set.expires_at == 7_200_000
    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith(f"{mock_settings.SESSION_COOKIE_NAME}=")
    assert "httponly" in set_cookie.lower()
    assert "samesite=lax" in set_cookie.lower()

    value = set_cookie.split(";", 1)[0].split("=", 1)[1]
    assert decode_session(value, mock_settings) == token_set


# ============================================================================
# Dependencies
# ============================================================================

@pytest.mark.asyncio
async def test_require_session_without_session():
    with pytest.raises(HTTPException) as exc_info:
        await require_session(fake_request(None))

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Not authenticated"


@pytest.mark.asyncio
async def test_require_session_with_errored_session(token_set):
    flagged = token_set.model_copy(update={"error": ErrorKind.REFRESH_ACCESS_TOKEN_ERROR})

    with pytest.raises(HTTPException) as exc_info:
        await require_session(fake_request(flagged))

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == SESSION_EXPIRED_DETAIL


@pytest.mark.asyncio
async def test_require_session_returns_view(token_set):
    view = await require_session(fake_request(token_set))

    assert view.authenticated is True
    assert view.access_token == "access-token"


@pytest.mark.asyncio
async def test_optional_session(token_set):
    assert await get_optional_session(fake_request(None)) is None
    assert (await get_optional_session(fake_request(token_set))).access_token == "access-token"
