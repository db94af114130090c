"""
Cookie policy for the session and logout-state cookies.

Session cookie: HTTP-only, SameSite=Lax, site-wide path.
Logout state cookie: HTTP-only, SameSite=Lax, scoped to the logout callback
path only, short-lived. Both are Secure in production.
"""

from fastapi import Response

from ..config import Settings

LOGOUT_STATE_COOKIE = "logout_state"
LOGOUT_CALLBACK_PATH = "/api/auth/logout/callback"


def set_session_cookie(response: Response, value: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=value,
        max_age=settings.SESSION_MAX_AGE,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def set_logout_state_cookie(response: Response, state: str, settings: Settings) -> None:
    response.set_cookie(
        key=LOGOUT_STATE_COOKIE,
        value=state,
        max_age=settings.LOGOUT_STATE_MAX_AGE,
        path=LOGOUT_CALLBACK_PATH,
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def clear_logout_state_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=LOGOUT_STATE_COOKIE,
        path=LOGOUT_CALLBACK_PATH,
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )
