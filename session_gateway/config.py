"""
Configuration module for the OIDC Session Gateway.

This module uses Pydantic Settings to load and validate environment variables
for the identity provider, session cookie management, and CORS settings.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderConfig(BaseModel):
    """
    Immutable provider configuration handed to the auth components.

    Resolved once from Settings so that the token manager, logout
    coordinator and provider client never read the environment themselves.
    """

    model_config = ConfigDict(frozen=True)

    issuer_url: str
    client_id: str
    client_secret: str
    post_logout_redirect_uri: str
    http_timeout_seconds: float = 10.0
    discovery_cache_seconds: int = 3600


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # =========================================================================
    # Identity Provider (OIDC)
    # =========================================================================

    OIDC_ISSUER_URL: str = Field(
        ...,
        description="Issuer URL of the identity provider (discovery base)",
        min_length=1,
    )

    OIDC_CLIENT_ID: str = Field(
        ...,
        description="OAuth client ID registered at the identity provider",
        min_length=1,
    )

    OIDC_CLIENT_SECRET: str = Field(
        ...,
        description="OAuth client secret",
        min_length=1,
    )

    OIDC_POST_LOGOUT_REDIRECT_URI: str = Field(
        ...,
        description="Where the identity provider sends the user after logout "
        "(e.g., https://app.example.com/api/auth/logout/callback)",
        min_length=1,
    )

    OIDC_HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Deadline for every call to the identity provider",
        gt=0,
        le=120,
    )

    OIDC_DISCOVERY_CACHE_SECONDS: int = Field(
        default=3600,
        description="Time to cache provider metadata in seconds (0 disables)",
        ge=0,
        le=86400,
    )

    # =========================================================================
    # Session Cookie
    # =========================================================================

    SESSION_SECRET: str = Field(
        ...,
        description="Secret key for signing session cookies (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="Session cookie signing algorithm",
    )

    SESSION_MAX_AGE: int = Field(
        default=3600,
        description="Session lifetime in seconds",
        ge=60,
    )

    SESSION_COOKIE_NAME: str = Field(
        default="session_token",
        description="Name of the session cookie",
    )

    SESSION_ISSUER: str = Field(
        default="oidc-session-gateway",
        description="Issuer claim written into session cookies",
    )

    # =========================================================================
    # Logout / Refresh
    # =========================================================================

    LOGOUT_STATE_MAX_AGE: int = Field(
        default=300,
        description="Lifetime of the logout_state cookie in seconds",
        ge=30,
        le=3600,
    )

    REFRESH_SINGLE_FLIGHT: bool = Field(
        default=True,
        description="Coalesce concurrent refreshes of the same refresh token",
    )

    # =========================================================================
    # Server
    # =========================================================================

    ENVIRONMENT: str = Field(
        default="development",
        description="Deployment environment (development or production)",
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def provider_config(self) -> ProviderConfig:
        """Snapshot of the identity provider settings."""
        return ProviderConfig(
            issuer_url=self.OIDC_ISSUER_URL.rstrip("/"),
            client_id=self.OIDC_CLIENT_ID,
            client_secret=self.OIDC_CLIENT_SECRET,
            post_logout_redirect_uri=self.OIDC_POST_LOGOUT_REDIRECT_URI,
            http_timeout_seconds=self.OIDC_HTTP_TIMEOUT_SECONDS,
            discovery_cache_seconds=self.OIDC_DISCOVERY_CACHE_SECONDS,
        )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate the session algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("OIDC_ISSUER_URL", "OIDC_POST_LOGOUT_REDIRECT_URI")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Expected an http(s) URL, got: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; errors are logged, not raised.

    Returns:
        Dictionary with validation status and any warnings.
    """
    errors = []
    warnings = []

    if len(settings.SESSION_SECRET) < 32:
        errors.append("SESSION_SECRET is too short (minimum 32 characters)")

    if settings.is_production:
        if not settings.OIDC_ISSUER_URL.startswith("https://"):
            errors.append("OIDC_ISSUER_URL must use https in production")
        if not settings.OIDC_POST_LOGOUT_REDIRECT_URI.startswith("https://"):
            warnings.append("OIDC_POST_LOGOUT_REDIRECT_URI is not https")
    else:
        warnings.append(
            f"ENVIRONMENT is '{settings.ENVIRONMENT}': cookies are issued without the Secure flag"
        )

    if settings.OIDC_DISCOVERY_CACHE_SECONDS == 0:
        warnings.append("Discovery cache disabled: every refresh and logout re-fetches provider metadata")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "session_max_age": settings.SESSION_MAX_AGE,
    }
