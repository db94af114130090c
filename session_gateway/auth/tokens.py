"""
Token Lifecycle Management
==========================

Decides whether a session's token set is still fresh and silently refreshes
it against the identity provider when it is not.

Transitions:
    SignInEvent                  -> seeded TokenSet (error cleared)
    TokenSet, now <  expires_at  -> unchanged, no network call
    TokenSet, now >= expires_at  -> refreshed TokenSet, or error=RefreshAccessTokenError

Refresh is lazy: it only happens on the request that observes an expired
token, and a failure is never retried within the same request.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional, Union

from ..models import ErrorKind, SignInEvent, TokenSet
from .provider import OIDCProviderClient, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME_MS = 3600 * 1000

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# Transitions
# =============================================================================

def seed_token_set(event: SignInEvent, now_ms: int) -> TokenSet:
    """
    Build the initial token set from a sign-in token exchange.

    ``expires_at`` on the event is in seconds; the token set stores ms.
    """
    if event.expires_at:
        expires_at = event.expires_at * 1000
    else:
        expires_at = now_ms + DEFAULT_LIFETIME_MS

    return TokenSet(
        id_token=event.id_token,
        access_token=event.access_token,
        refresh_token=event.refresh_token,
        expires_at=expires_at,
        error=None,
    )


def mark_refresh_failed(token_set: TokenSet) -> TokenSet:
    return token_set.model_copy(update={"error": ErrorKind.REFRESH_ACCESS_TOKEN_ERROR})


# =============================================================================
# Single-flight
# =============================================================================

class RefreshSingleFlight:
    """
    Coalesces concurrent refreshes of the same refresh token in this process.

    While a refresh for token R is in flight, later callers for R await the
    same task. The entry is dropped when the task finishes, so results are
    never cached across requests.
    """

    def __init__(self):
        self._inflight: Dict[str, asyncio.Task] = {}

    async def run(
        self,
        key: str,
        factory: Callable[[], Awaitable[TokenSet]],
    ) -> TokenSet:
        # No await between lookup and insert, so this is atomic on the loop.
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        else:
            logger.debug("Joining in-flight token refresh")

        # shield: one cancelled request must not abort the refresh for the others
        return await asyncio.shield(task)

    def __len__(self) -> int:
        return len(self._inflight)


# =============================================================================
# Manager
# =============================================================================

class TokenLifecycleManager:
    """
    Keeps the session token set fresh.

    Args:
        provider: OIDC provider client used for discovery and refresh grants
        clock: Returns the current time in ms since epoch
        single_flight: Optional coalescer for concurrent refreshes
    """

    def __init__(
        self,
        provider: OIDCProviderClient,
        clock: Clock = wall_clock_ms,
        single_flight: Optional[RefreshSingleFlight] = None,
    ):
        self.provider = provider
        self.clock = clock
        self.single_flight = single_flight

    async def reconcile(self, current: Union[TokenSet, SignInEvent]) -> TokenSet:
        """
        Return an up-to-date token set for this request.

        Args:
            current: The decoded session token set, or a sign-in event

        Returns:
            The input unchanged while fresh, otherwise a refreshed token set
            or one flagged with RefreshAccessTokenError
        """
        now = self.clock()

        if isinstance(current, SignInEvent):
            return seed_token_set(current, now)

        if now < current.expires_at:
            return current

        return await self.refresh(current)

    async def refresh(self, token_set: TokenSet) -> TokenSet:
        if not token_set.refresh_token:
            logger.warning("No refresh token available for refresh")
            return mark_refresh_failed(token_set)

        if self.single_flight is None:
            return await self._refresh(token_set)

        return await self.single_flight.run(
            token_set.refresh_token,
            lambda: self._refresh(token_set),
        )

    async def _refresh(self, token_set: TokenSet) -> TokenSet:
        try:
            metadata = await self.provider.discover()
            grant = await self.provider.refresh_token_grant(metadata, token_set.refresh_token)
        except ProviderError as e:
            logger.warning(
                f"Token refresh failed: {e}",
                extra={"provider_error": e.error},
            )
            return mark_refresh_failed(token_set)
        except Exception as e:
            logger.error(f"Unexpected error during token refresh: {e}", exc_info=True)
            return mark_refresh_failed(token_set)

        now = self.clock()
        lifetime_ms = grant.expires_in * 1000 if grant.expires_in else DEFAULT_LIFETIME_MS

        logger.info("Access token refreshed", extra={"rotated": bool(grant.refresh_token)})

        return token_set.model_copy(update={
            "access_token": grant.access_token,
            "expires_at": now + lifetime_ms,
            "refresh_token": grant.refresh_token or token_set.refresh_token,
            "error": None,
        })
