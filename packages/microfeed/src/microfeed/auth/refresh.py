"""
Refresh coordination.

Collapses every authorization failure noticed while a refresh is in flight
into that one refresh, and fans its outcome out to all waiters:

    IDLE -> REFRESHING -> (SUCCEEDED | FAILED) -> IDLE

A refresh that settles after the session was logged out is discarded and
fails; one that settles after a new login yields the login's token.

The coordinator is transient: nothing about it is persisted, and each
client builds a fresh one.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable

from microfeed.auth.models import REMEMBER_TOKEN_KEY, CredentialRecord
from microfeed.auth.session import SessionState
from microfeed.exceptions import AuthorizationError, StorageUnavailable

# Exchanges a refresh token for a new pair; the refresh token of the
# returned record is None when the server did not rotate it.
Refresher = Callable[[str], Awaitable[CredentialRecord]]

logger = logging.getLogger(__name__)


class RefreshState(Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RefreshOutcome:
    """
    Result of a refresh as seen by one caller.

    Attributes:
        token: New access token, None on failure
        error: Why the refresh failed, None on success
        owner: This caller started the refresh. Exactly one caller per
            failed refresh is the owner; it alone forces the logout.
    """

    token: str | None = None
    error: Exception | None = None
    owner: bool = False

    @property
    def succeeded(self) -> bool:
        return self.token is not None


class RefreshCoordinator:
    """
    Guarantees at most one refresh call in flight.

    Attributes:
        state: Current RefreshState. SUCCEEDED or FAILED while the settled
            outcome is being handed to the callers of the burst, then IDLE
        waiters: Callers currently waiting on someone else's refresh
        refresh_calls: Refresh endpoint calls issued so far
        last_result: SUCCEEDED or FAILED for the latest settled refresh

    Example:
        >>> coordinator = RefreshCoordinator(session, api.exchange_refresh_token)
        >>> outcome = await coordinator.refresh(stale_token="old-token")
        >>> if outcome.succeeded:
        ...     retry_with(outcome.token)
    """

    def __init__(self, session: SessionState, refresher: Refresher) -> None:
        self._session = session
        self._refresher = refresher
        self._inflight: asyncio.Future | None = None
        self._rejected_token: str | None = None
        self._pending = 0

        self.state = RefreshState.IDLE
        self.waiters = 0
        self.refresh_calls = 0
        self.last_result: RefreshState | None = None

    async def refresh(self, stale_token: str | None) -> RefreshOutcome:
        """
        Obtain an access token newer than `stale_token`.

        Args:
            stale_token: The access token the failed request was sent with.

        Returns:
            The outcome shared by every caller of this burst.
        """
        current = self._session.access_token
        if current is not None and current != stale_token:
            # A refresh settled after the caller sent its request
            logger.debug("Access token already rotated, reusing it")
            return RefreshOutcome(token=current)

        if stale_token is not None and stale_token == self._rejected_token:
            # The burst this request belongs to already failed
            return RefreshOutcome(error=AuthorizationError("Session already expired"))

        if self.state is RefreshState.REFRESHING and self._inflight is not None:
            self.waiters += 1
            logger.debug(f"Refresh in flight, waiting ({self.waiters} waiters)")
            try:
                return await self._await_inflight()
            finally:
                self.waiters -= 1

        self.state = RefreshState.REFRESHING
        # Runs as its own task so a cancelled owner cannot strand waiters
        self._inflight = asyncio.ensure_future(self._run())
        outcome = await self._await_inflight()
        return replace(outcome, owner=True)

    async def _await_inflight(self) -> RefreshOutcome:
        # The settled state stays visible until every caller of the burst
        # has its outcome
        self._pending += 1
        try:
            return await asyncio.shield(self._inflight)
        finally:
            self._pending -= 1
            if self._pending == 0 and self._inflight is None:
                self._reset()

    def _reset(self) -> None:
        if self.state in (RefreshState.SUCCEEDED, RefreshState.FAILED):
            self.state = RefreshState.IDLE

    async def _run(self) -> RefreshOutcome:
        token_at_start = self._session.access_token
        generation = self._session.generation
        try:
            refresh_token = await self._read_refresh_token()
            if not refresh_token:
                raise AuthorizationError("No refresh token available")

            logger.info("Refreshing access token")
            self.refresh_calls += 1
            record = await self._refresher(refresh_token)
            installed = await self._session.set_tokens(
                record.access_token,
                record.refresh_token or refresh_token,
                generation=generation,
            )
            token = record.access_token if installed else self._superseded_token()
        except Exception as e:
            logger.error(f"Token refresh failed: {e}")
            outcome = RefreshOutcome(error=e)
            self.state = self.last_result = RefreshState.FAILED
            self._rejected_token = token_at_start
        else:
            logger.info("Access token refreshed")
            outcome = RefreshOutcome(token=token)
            self.state = self.last_result = RefreshState.SUCCEEDED

        self._inflight = None
        if self._pending == 0:
            self._reset()
        return outcome

    def _superseded_token(self) -> str:
        """Token of the login that replaced the refreshed session."""
        current = self._session.current
        if current.authenticated and current.access_token:
            return current.access_token
        raise AuthorizationError("Session ended during refresh")

    async def _read_refresh_token(self) -> str | None:
        try:
            stored = await self._session.store.get(REMEMBER_TOKEN_KEY)
        except StorageUnavailable as e:
            logger.warning(f"Falling back to in-memory refresh token: {e}")
            stored = None
        return stored or self._session.refresh_token
