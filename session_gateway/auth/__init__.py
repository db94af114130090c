"""
Authentication Package

This package handles the OIDC relying-party session for the gateway.

Key responsibilities:
- Keeping the session's access token fresh (silent refresh)
- RP-initiated logout with CSRF-protected state round trip
- Session cookie encoding, decoding and shaping

Modules:
- provider: Identity provider client (discovery, refresh grant, end session, userinfo)
- tokens: Token lifecycle manager
- logout: Logout coordinator
- session: Session cookie codec, middleware and FastAPI dependencies
- cookies: Cookie policy
- routes: Logout, session and userinfo endpoints
"""

from .routes import api_router, auth_router, pages_router

__all__ = [
    "auth_router",
    "api_router",
    "pages_router",
]
