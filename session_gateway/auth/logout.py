"""
Logout Coordination
===================

Two-step RP-initiated logout with CSRF protection:

1. ``initiate`` generates an unguessable state, and builds the identity
   provider's end-session URL carrying ``id_token_hint``,
   ``post_logout_redirect_uri`` and ``state``. The caller stores the state in
   a cookie scoped to the callback path.
2. ``validate_callback`` compares the state returned by the provider with
   the stored one. Only an exact match completes the logout.

A single attempt is Initiated -> Validated | Rejected, with no retries.
"""

import logging
import secrets
import uuid
from typing import Optional

from ..config import ProviderConfig
from ..models import LogoutCallbackResult, LogoutInitiation
from .provider import OIDCProviderClient

logger = logging.getLogger(__name__)

STATE_MISMATCH_REASON = "missing or mismatched state"


class NoValidSession(Exception):
    """Logout requested without an authenticated session carrying an ID token."""

    def __init__(self, message: str = "No valid session"):
        super().__init__(message)


def generate_logout_state() -> str:
    # uuid4 carries 122 random bits from os.urandom
    return str(uuid.uuid4())


class LogoutCoordinator:
    """
    Builds the logout redirect and validates the returning state.

    Cookies are left to the caller so this class stays transport-agnostic.
    """

    def __init__(self, provider: OIDCProviderClient, config: ProviderConfig):
        self.provider = provider
        self.config = config

    async def initiate(self, id_token: Optional[str]) -> LogoutInitiation:
        """
        Start a logout round trip.

        Args:
            id_token: ID token of the current session

        Returns:
            Redirect URL for the provider and the state the caller must persist

        Raises:
            NoValidSession: If id_token is absent (no network call is made)
            ProviderError: If discovery fails or no end-session endpoint exists
        """
        if not id_token:
            raise NoValidSession()

        state = generate_logout_state()
        metadata = await self.provider.discover()
        redirect_url = self.provider.build_end_session_url(
            metadata,
            id_token_hint=id_token,
            post_logout_redirect_uri=self.config.post_logout_redirect_uri,
            state=state,
        )

        logger.info("Logout initiated")
        return LogoutInitiation(redirect_url=redirect_url, state=state)

    @staticmethod
    def validate_callback(
        returned_state: Optional[str],
        stored_state: Optional[str],
    ) -> LogoutCallbackResult:
        """
        Validate the state returned on the logout callback.

        Succeeds only when both values are present and exactly equal.
        """
        if returned_state and stored_state and secrets.compare_digest(
            returned_state.encode("utf-8"), stored_state.encode("utf-8")
        ):
            return LogoutCallbackResult.success()

        logger.warning(
            "Logout callback rejected",
            extra={
                "returned_state_present": bool(returned_state),
                "stored_state_present": bool(stored_state),
            },
        )
        return LogoutCallbackResult.failed(STATE_MISMATCH_REASON)
