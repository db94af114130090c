"""
Data Models Module

This module defines Pydantic models shared by the session gateway.

Models are organized by functional area:
- Token models (token set carried in the session, sign-in event)
- Provider models (discovery metadata, token endpoint response)
- Logout models (initiation result, callback validation outcome)
- Response models (session view, health, errors)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Token Models
# ============================================================================

class ErrorKind(str, Enum):
    """Sticky session error flags."""

    REFRESH_ACCESS_TOKEN_ERROR = "RefreshAccessTokenError"


class TokenSet(BaseModel):
    """
    Tokens carried inside the session cookie.

    A token set with ``error`` set must never be treated as authenticated,
    even though the token fields may still hold stale values.
    """

    model_config = ConfigDict(frozen=True)

    id_token: Optional[str] = Field(None, description="OIDC ID token, only used as logout hint")
    access_token: str = Field(..., description="Bearer credential for downstream APIs")
    refresh_token: Optional[str] = Field(None, description="Refresh token, absent if not renewable")
    expires_at: int = Field(..., description="Access token expiry in ms since epoch")
    error: Optional[ErrorKind] = Field(None, description="Set when the last refresh failed")

    @property
    def is_usable(self) -> bool:
        return self.error is None


class SignInEvent(BaseModel):
    """Token-exchange result delivered by the host after a completed sign-in."""

    id_token: Optional[str] = None
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = Field(None, description="Expiry in seconds since epoch")


# ============================================================================
# Provider Models
# ============================================================================

class ProviderMetadata(BaseModel):
    """Subset of the OpenID Provider discovery document the gateway uses."""

    model_config = ConfigDict(extra="allow")

    issuer: str
    token_endpoint: str
    authorization_endpoint: Optional[str] = None
    end_session_endpoint: Optional[str] = None
    userinfo_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None


class TokenEndpointResponse(BaseModel):
    """Refresh-token grant response."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    id_token: Optional[str] = None


# ============================================================================
# Logout Models
# ============================================================================

class LogoutInitiation(BaseModel):
    """Redirect target and CSRF state returned when logout starts."""

    redirect_url: str
    state: str


class LogoutCallbackResult(BaseModel):
    """Outcome of validating the state returned by the identity provider."""

    ok: bool
    error_kind: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "LogoutCallbackResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, reason: str) -> "LogoutCallbackResult":
        return cls(ok=False, error_kind="InvalidLogoutState", reason=reason)


# ============================================================================
# Response Models
# ============================================================================

class SessionView(BaseModel):
    """Session data exposed to the rest of the application."""

    id_token: Optional[str] = Field(None, description="OIDC ID token")
    access_token: Optional[str] = Field(None, description="OAuth2 access token")
    error: Optional[ErrorKind] = Field(None, description="Error flag when refresh fails")
    authenticated: bool = Field(..., description="False whenever error is set")
    expires_at: Optional[int] = Field(None, description="Access token expiry in ms since epoch")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[Any] = Field(None, description="Additional error details")
