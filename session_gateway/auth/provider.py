"""
OIDC provider client.

This module handles every call the gateway makes to the identity provider:
- Fetching and caching the discovery document
- Exchanging a refresh token for new tokens
- Building the end-session (RP-initiated logout) URL
- Fetching the UserInfo document
"""

import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from pydantic import ValidationError

from ..config import ProviderConfig
from ..models import ProviderMetadata, TokenEndpointResponse

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"


class ProviderError(Exception):
    """Identity provider unreachable, rejected the request, or answered garbage."""

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.error = error


class OIDCProviderClient:
    """
    Thin async client for the identity provider endpoints.

    Discovery metadata is cached for ``config.discovery_cache_seconds``.
    An ``httpx.AsyncClient`` may be injected; otherwise a short-lived client
    is opened per call.
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._http_client = http_client
        self._metadata_cache: Optional[ProviderMetadata] = None
        self._metadata_cache_time: float = 0.0

    # =========================================================================
    # Transport
    # =========================================================================

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        timeout = self.config.http_timeout_seconds
        try:
            if self._http_client is not None:
                return await self._http_client.request(method, url, timeout=timeout, **kwargs)
            async with httpx.AsyncClient(timeout=timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"Request to {url} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from {response.request.url}") from e
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected payload from {response.request.url}")
        return data

    # =========================================================================
    # Discovery
    # =========================================================================

    async def discover(self, force_refresh: bool = False) -> ProviderMetadata:
        """
        Fetch the provider discovery document, with caching.

        Args:
            force_refresh: If True, bypass cache and fetch fresh metadata

        Returns:
            Parsed provider metadata

        Raises:
            ProviderError: If the issuer is unreachable or the document is invalid
        """
        ttl = self.config.discovery_cache_seconds
        now = time.monotonic()

        if (
            not force_refresh
            and ttl > 0
            and self._metadata_cache is not None
            and (now - self._metadata_cache_time) < ttl
        ):
            return self._metadata_cache

        url = f"{self.config.issuer_url}{DISCOVERY_PATH}"
        logger.debug(f"Fetching provider metadata from {url}")

        response = await self._send("GET", url)
        if not response.is_success:
            raise ProviderError(f"Discovery failed with HTTP {response.status_code}")

        try:
            metadata = ProviderMetadata.model_validate(self._json(response))
        except ValidationError as e:
            raise ProviderError(f"Invalid discovery document: {e}") from e

        self._metadata_cache = metadata
        self._metadata_cache_time = now
        return metadata

    def clear_cache(self) -> None:
        self._metadata_cache = None
        self._metadata_cache_time = 0.0

    # =========================================================================
    # Token Endpoint
    # =========================================================================

    async def refresh_token_grant(
        self,
        metadata: ProviderMetadata,
        refresh_token: str,
    ) -> TokenEndpointResponse:
        """
        Exchange a refresh token for a fresh access token.

        Args:
            metadata: Provider metadata (token endpoint)
            refresh_token: Refresh token from the session

        Returns:
            Token endpoint response; refresh_token and expires_in may be absent

        Raises:
            ProviderError: If the grant is rejected or the response is invalid
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }

        response = await self._send(
            "POST",
            metadata.token_endpoint,
            data=payload,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
        )

        if not response.is_success:
            error_data = {}
            if response.headers.get("content-type", "").startswith("application/json"):
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {}
            error_code = error_data.get("error") if isinstance(error_data, dict) else None
            error_msg = (
                (error_data.get("error_description") if isinstance(error_data, dict) else None)
                or error_code
                or f"HTTP {response.status_code}"
            )
            raise ProviderError(f"Refresh token grant failed: {error_msg}", error=error_code)

        try:
            return TokenEndpointResponse.model_validate(self._json(response))
        except ValidationError as e:
            raise ProviderError(f"Invalid token endpoint response: {e}") from e

    # =========================================================================
    # End Session
    # =========================================================================

    def build_end_session_url(
        self,
        metadata: ProviderMetadata,
        id_token_hint: str,
        post_logout_redirect_uri: str,
        state: str,
    ) -> str:
        """
        Build the RP-initiated logout URL.

        Query parameters already present on the endpoint are preserved.

        Raises:
            ProviderError: If the provider does not advertise an end-session endpoint
        """
        if not metadata.end_session_endpoint:
            raise ProviderError("Provider does not advertise an end_session_endpoint")

        scheme, netloc, path, query, fragment = urlsplit(metadata.end_session_endpoint)
        params = parse_qsl(query, keep_blank_values=True)
        params.extend([
            ("client_id", self.config.client_id),
            ("id_token_hint", id_token_hint),
            ("post_logout_redirect_uri", post_logout_redirect_uri),
            ("state", state),
        ])
        return urlunsplit((scheme, netloc, path, urlencode(params), fragment))

    # =========================================================================
    # UserInfo
    # =========================================================================

    async def fetch_userinfo(
        self,
        metadata: ProviderMetadata,
        access_token: str,
    ) -> Dict[str, Any]:
        """
        Fetch the UserInfo document for an access token.

        Raises:
            ProviderError: If the endpoint is missing, unreachable or rejects the token
        """
        if not metadata.userinfo_endpoint:
            raise ProviderError("Provider does not advertise a userinfo_endpoint")

        response = await self._send(
            "GET",
            metadata.userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not response.is_success:
            raise ProviderError(f"UserInfo API error: {response.status_code}")

        return self._json(response)
