"""
Session Cookie Management
=========================

Handles the session cookie that carries the token set between requests,
and exposes the session to route handlers.

The cookie is an HMAC-signed JWT (PyJWT) holding the token set under the
``tks`` claim. On every request the session middleware decodes it, lets the
token lifecycle manager reconcile it, and re-issues the cookie. Each
re-issue moves ``exp`` forward, so SESSION_MAX_AGE is a rolling idle
timeout rather than an absolute one.

The payload is signed, not encrypted, and the cookie is HTTP-only.
Browsers silently drop cookies larger than about 4 KB; oversized sessions
are logged.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, Request, Response, status
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import ValidationError

from ..config import Settings
from ..models import SessionView, SignInEvent, TokenSet
from .cookies import clear_session_cookie, set_session_cookie
from .tokens import TokenLifecycleManager

logger = logging.getLogger(__name__)

TOKEN_SET_CLAIM = "tks"
SESSION_EXPIRED_DETAIL = "Session expired, please sign in again"

# Per-cookie limit enforced by browsers (name + value + attributes)
MAX_COOKIE_BYTES = 4096


# =============================================================================
# Exceptions
# =============================================================================

class SessionCookieError(Exception):
    """Session cookie is expired, tampered with, or malformed."""


# =============================================================================
# Codec
# =============================================================================

def encode_session(token_set: TokenSet, settings: Settings) -> str:
    """
    Encode a token set into a signed session cookie value.

    Args:
        token_set: Token set to persist
        settings: Application settings (secret, algorithm, max age)

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "iat": now,
        "exp": now + timedelta(seconds=settings.SESSION_MAX_AGE),
        "iss": settings.SESSION_ISSUER,
        TOKEN_SET_CLAIM: token_set.model_dump(mode="json"),
    }
    encoded = jwt.encode(
        payload,
        settings.SESSION_SECRET,
        algorithm=settings.SESSION_JWT_ALGORITHM,
    )

    size = len(settings.SESSION_COOKIE_NAME) + len(encoded) + 1
    if size > MAX_COOKIE_BYTES:
        logger.warning(
            "Session cookie exceeds browser size limit and may be dropped",
            extra={"cookie_bytes": size, "limit": MAX_COOKIE_BYTES},
        )

    return encoded


def decode_session(value: str, settings: Settings) -> TokenSet:
    """
    Verify and decode a session cookie value.

    Raises:
        SessionCookieError: If the cookie is expired, forged or malformed
    """
    if not value:
        raise SessionCookieError("Empty session cookie")

    try:
        decoded = jwt.decode(
            value,
            settings.SESSION_SECRET,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            issuer=settings.SESSION_ISSUER,
            options={"require": ["exp", "iat", "iss", TOKEN_SET_CLAIM]},
        )
    except ExpiredSignatureError as e:
        raise SessionCookieError("Session has expired") from e
    except InvalidTokenError as e:
        raise SessionCookieError(f"Invalid session: {e}") from e

    try:
        return TokenSet.model_validate(decoded[TOKEN_SET_CLAIM])
    except ValidationError as e:
        raise SessionCookieError("Session payload is not a token set") from e


# =============================================================================
# Session Shaping
# =============================================================================

def shape_session(token_set: TokenSet) -> SessionView:
    """
    Build the session view exposed to the application.

    The refresh token never leaves the cookie. A token set carrying an
    error is reported as unauthenticated.
    """
    return SessionView(
        id_token=token_set.id_token,
        access_token=token_set.access_token,
        error=token_set.error,
        authenticated=token_set.is_usable,
        expires_at=token_set.expires_at,
    )


async def establish_session(
    response: Response,
    event: SignInEvent,
    manager: TokenLifecycleManager,
    settings: Settings,
) -> TokenSet:
    """
    Seed a session from a completed sign-in and write the cookie.

    Called by the host's sign-in callback once the code exchange is done.
    """
    token_set = await manager.reconcile(event)
    set_session_cookie(response, encode_session(token_set, settings), settings)
    logger.info("Session established")
    return token_set


# =============================================================================
# Middleware
# =============================================================================

async def session_middleware(request: Request, call_next):
    """
    Decode, reconcile and re-encode the session around each request.

    Any request carrying a valid session gets a fresh cookie, which slides
    the session expiry forward. Handlers can set
    ``request.state.session_cleared = True`` to stop the session from being
    written back.
    """
    settings: Settings = request.app.state.settings
    manager: TokenLifecycleManager = request.app.state.token_manager

    raw = request.cookies.get(settings.SESSION_COOKIE_NAME)
    token_set: Optional[TokenSet] = None
    stale_cookie = False

    if raw:
        try:
            token_set = decode_session(raw, settings)
        except SessionCookieError as e:
            logger.info(f"Discarding session cookie: {e}")
            stale_cookie = True

    reconciled = await manager.reconcile(token_set) if token_set is not None else None
    request.state.token_set = reconciled
    request.state.session_cleared = False

    response = await call_next(request)

    if request.state.session_cleared:
        return response

    if reconciled is not None:
        set_session_cookie(response, encode_session(reconciled, settings), settings)
    elif stale_cookie:
        clear_session_cookie(response, settings)

    return response


# =============================================================================
# FastAPI Dependencies
# =============================================================================

def get_token_set(request: Request) -> Optional[TokenSet]:
    return getattr(request.state, "token_set", None)


async def get_optional_session(request: Request) -> Optional[SessionView]:
    """Session view, or None when the request carries no session."""
    token_set = get_token_set(request)
    if token_set is None:
        return None
    return shape_session(token_set)


async def require_session(request: Request) -> SessionView:
    """
    FastAPI dependency for routes that need a usable session.

    Raises:
        HTTPException: 401 when there is no session or it carries an error
    """
    token_set = get_token_set(request)
    if token_set is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    if not token_set.is_usable:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=SESSION_EXPIRED_DETAIL,
        )
    return shape_session(token_set)


__all__ = [
    "encode_session",
    "decode_session",
    "shape_session",
    "establish_session",
    "session_middleware",
    "get_token_set",
    "get_optional_session",
    "require_session",
    "SessionCookieError",
    "SESSION_EXPIRED_DETAIL",
    "MAX_COOKIE_BYTES",
]
