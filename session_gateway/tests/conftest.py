"""
Shared fixtures for the session gateway tests.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from session_gateway.auth.provider import OIDCProviderClient
from session_gateway.config import Settings
from session_gateway.models import ProviderMetadata, TokenEndpointResponse, TokenSet

ISSUER = "https://idp.example.com"


@pytest.fixture
def mock_settings():
    """Settings for testing, independent of the environment."""
    return Settings(
        _env_file=None,
        OIDC_ISSUER_URL=ISSUER,
        OIDC_CLIENT_ID="test-client",
        OIDC_CLIENT_SECRET="test-client-secret",
        OIDC_POST_LOGOUT_REDIRECT_URI="http://localhost:8080/api/auth/logout/callback",
        SESSION_SECRET="test-session-secret-1234567890123456",
    )


@pytest.fixture
def provider_metadata():
    return ProviderMetadata(
        issuer=ISSUER,
        token_endpoint=f"{ISSUER}/oauth/v2/token",
        authorization_endpoint=f"{ISSUER}/oauth/v2/authorize",
        end_session_endpoint=f"{ISSUER}/oidc/v1/end_session",
        userinfo_endpoint=f"{ISSUER}/oidc/v1/userinfo",
    )


@pytest.fixture
def mock_provider(provider_metadata):
    """Provider client stub; async calls are AsyncMocks so invocations can be asserted."""
    provider = Mock(spec=OIDCProviderClient)
    provider.discover = AsyncMock(return_value=provider_metadata)
    provider.refresh_token_grant = AsyncMock(
        return_value=TokenEndpointResponse(
            access_token="new-access-token",
            refresh_token="new-refresh-token",
            expires_in=1800,
        )
    )
    provider.fetch_userinfo = AsyncMock(return_value={"sub": "user-123"})
    provider.build_end_session_url = Mock(
        return_value=f"{ISSUER}/oidc/v1/end_session?state=fixed"
    )
    return provider


@pytest.fixture
def token_set():
    """A fresh token set expiring at T = 1_700_000_000 s."""
    return TokenSet(
        id_token="idtok-123",
        access_token="access-token",
        refresh_token="refresh-token",
        expires_at=1_700_000_000 * 1000,
    )
