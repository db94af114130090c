"""
Authentication routes for logout, session inspection and user info.

This module implements the HTTP side of RP-initiated logout with the
identity provider, plus the session-backed API endpoints.
"""

import html
import logging
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from ..models import SessionView, TokenSet
from .cookies import (
    LOGOUT_STATE_COOKIE,
    clear_logout_state_cookie,
    clear_session_cookie,
    set_logout_state_cookie,
)
from .logout import LogoutCoordinator, NoValidSession
from .provider import ProviderError
from .session import get_token_set, require_session

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/api/auth",
    tags=["authentication"],
)

api_router = APIRouter(
    prefix="/api",
    tags=["session"],
)

pages_router = APIRouter(
    tags=["pages"],
)

LOGOUT_SUCCESS_PATH = "/logout/success"
LOGOUT_ERROR_PATH = "/logout/error"


# =============================================================================
# Logout Endpoints
# =============================================================================

@auth_router.post("/logout", response_class=RedirectResponse)
async def logout(
    request: Request,
    token_set: Optional[TokenSet] = Depends(get_token_set),
):
    """
    Start logout by redirecting to the identity provider's end-session endpoint.

    This endpoint:
    1. Requires an authenticated session holding an ID token (400 otherwise)
    2. Generates a CSRF state and builds the end-session URL
    3. Stores the state in a cookie scoped to the callback path
    4. Redirects the user to the identity provider

    Returns:
        RedirectResponse to the identity provider
    """
    settings = request.app.state.settings
    coordinator: LogoutCoordinator = request.app.state.logout_coordinator

    id_token = token_set.id_token if token_set is not None and token_set.is_usable else None

    try:
        initiation = await coordinator.initiate(id_token)
    except NoValidSession as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except ProviderError as e:
        logger.error(f"Unable to build logout URL: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Unable to communicate with the identity provider",
        )

    response = RedirectResponse(url=initiation.redirect_url, status_code=302)
    set_logout_state_cookie(response, initiation.state, settings)
    return response


@auth_router.get("/logout/callback", response_class=RedirectResponse)
async def logout_callback(
    request: Request,
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
):
    """
    Handle the identity provider's redirect after logout.

    On a matching state the session is torn down with Clear-Site-Data and
    the user lands on the success page. Otherwise only the state cookie is
    discarded and the user lands on the error page with the reason.
    """
    settings = request.app.state.settings

    result = LogoutCoordinator.validate_callback(
        returned_state=state,
        stored_state=request.cookies.get(LOGOUT_STATE_COOKIE),
    )

    if not result.ok:
        query = urlencode({"reason": result.reason}, quote_via=quote)
        response = RedirectResponse(url=f"{LOGOUT_ERROR_PATH}?{query}", status_code=302)
        # State is single use; the session itself stays.
        clear_logout_state_cookie(response, settings)
        return response

    response = RedirectResponse(url=LOGOUT_SUCCESS_PATH, status_code=302)
    response.headers["Clear-Site-Data"] = '"cookies"'
    clear_session_cookie(response, settings)
    clear_logout_state_cookie(response, settings)
    request.state.session_cleared = True

    logger.info("Logout completed")
    return response


# =============================================================================
# Session API
# =============================================================================

@api_router.get("/session", response_model=SessionView)
async def read_session(session: SessionView = Depends(require_session)):
    """Return the current session as seen by the application."""
    return session


@api_router.get("/userinfo")
async def userinfo(
    request: Request,
    token_set: Optional[TokenSet] = Depends(get_token_set),
):
    """
    Fetch extended user information from the identity provider's UserInfo endpoint.

    Returns:
        The provider's UserInfo document, 401 without a usable access token,
        500 when the provider call fails
    """
    if token_set is None or not token_set.is_usable or not token_set.access_token:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    provider = request.app.state.provider

    try:
        metadata = await provider.discover()
        return await provider.fetch_userinfo(metadata, token_set.access_token)
    except ProviderError as e:
        logger.error(f"UserInfo fetch failed: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch user info"})


# =============================================================================
# Logout Result Pages
# =============================================================================

@pages_router.get(LOGOUT_SUCCESS_PATH, response_class=HTMLResponse)
async def logout_success():
    return _render_page(
        title="Signed Out",
        message="You have been signed out successfully.",
        status_code=200,
    )


@pages_router.get(LOGOUT_ERROR_PATH, response_class=HTMLResponse)
async def logout_error(reason: Optional[str] = Query(None)):
    return _render_page(
        title="Sign Out Failed",
        message=f"We could not complete your sign out: {reason or 'unknown error'}.",
        status_code=400,
    )


# =============================================================================
# HTML Response Templates
# =============================================================================

def _render_page(title: str, message: str, status_code: int) -> HTMLResponse:
    """
    Render a minimal status page.

    Args:
        title: Page title
        message: Message shown to the user (escaped here)
        status_code: HTTP status code
    """
    title = html.escape(title)
    message = html.escape(message)

    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>{title}</title>
        <style>
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
                display: flex;
                align-items: center;
                justify-content: center;
                min-height: 100vh;
                margin: 0;
                background: #f3f4f6;
            }}
            .container {{
                background: white;
                border-radius: 12px;
                padding: 40px;
                max-width: 500px;
                text-align: center;
                box-shadow: 0 10px 40px rgba(0,0,0,0.1);
            }}
            h1 {{ color: #1f2937; font-size: 24px; margin-bottom: 16px; }}
            .message {{ color: #6b7280; font-size: 16px; line-height: 1.6; }}
            a {{ color: #667eea; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>{title}</h1>
            <p class="message">{message}</p>
            <p><a href="/">Back to home</a></p>
        </div>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content, status_code=status_code)
