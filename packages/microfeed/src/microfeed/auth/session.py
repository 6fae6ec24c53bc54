"""
# Session State

Single owner of the client's `Session`. The rest of the application reads
the current snapshot or subscribes to transitions; only the operations
below ever produce a new snapshot:

- `initialize()`: rehydrate from the credential store, once
- `login(credentials)`: authenticate and persist the returned tokens
- `logout(forced=False)`: best-effort server logout, then local reset
- `set_tokens(access, refresh)`: install a refreshed credential pair
- `clear_error()`: drop the last login failure

Every transition assigns one immutable snapshot, so concurrent readers see
either the old or the new state and never a mixture.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

from pydantic import ValidationError as SchemaError

from shared_lib.baseclient.exceptions import AuthenticationError, ClientError, ConfigurationError

from microfeed.auth.credential_store import CredentialStore
from microfeed.auth.models import (
    REMEMBER_TOKEN_KEY,
    TOKEN_KEY,
    CredentialRecord,
    LoginCredentials,
    LoginResponse,
    Session,
    SessionResponse,
    UserProfile,
)
from microfeed.exceptions import StorageUnavailable
from microfeed.urls import MicrofeedApiUrls

if TYPE_CHECKING:
    from microfeed.api import ApiClient

SessionListener = Callable[[Session], None]

logger = logging.getLogger(__name__)


class SessionState:
    """
    Process-wide session container backed by a credential store.

    The network side is attached with `attach()` once the request pipeline
    exists (the pipeline itself reads tokens from this object).

    Example:
        >>> state = SessionState(MemoryCredentialStore())
        >>> unsubscribe = state.subscribe(lambda s: print(s.authenticated))
        >>> ApiClient(state)  # attaches itself
        >>> await state.initialize()
    """

    def __init__(self, store: CredentialStore) -> None:
        self.store = store
        self._session = Session()
        self._listeners: list[SessionListener] = []
        self._api: "ApiClient | None" = None
        self._init_task: asyncio.Future | None = None
        self._logout_task: asyncio.Future | None = None
        self._logout_forced = False
        # Bumped whenever the session is replaced by login or ended by logout
        self._generation = 0
        self._store_lock = asyncio.Lock()

    def attach(self, api: "ApiClient") -> None:
        self._api = api

    @property
    def current(self) -> Session:
        return self._session

    @property
    def access_token(self) -> str | None:
        return self._session.access_token

    @property
    def refresh_token(self) -> str | None:
        return self._session.refresh_token

    @property
    def authenticated(self) -> bool:
        return self._session.authenticated

    @property
    def initialized(self) -> bool:
        return self._session.initialized

    @property
    def generation(self) -> int:
        """Identity of the current login; changes on every login and logout."""
        return self._generation

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener called with every new snapshot.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, session: Session, reason: str) -> None:
        self._session = session
        logger.debug(f"Session {reason}: {session!r}")
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception(f"Session listener {listener!r} failed")

    def _require_api(self) -> "ApiClient":
        if self._api is None:
            raise ConfigurationError("SessionState has no ApiClient attached")
        return self._api

    # ------------------------------------------------------------------ #
    # Rehydration
    # ------------------------------------------------------------------ #

    async def initialize(self) -> Session:
        """
        Rehydrate the session from the credential store.

        Runs at most once per instance: later calls return the settled
        snapshot without touching the network, and calls made while the
        first one is running wait for it.

        Returns:
            The session snapshot after rehydration.
        """
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._rehydrate())
        await asyncio.shield(self._init_task)
        return self._session

    async def _rehydrate(self) -> None:
        api = self._require_api()
        record = await self._read_record()

        if record.access_token is None:
            logger.info("No stored credential, starting signed out")
            self._transition(
                self._session.signed_out().evolve(initialized=True), "initialized"
            )
            return

        self._transition(
            Session(
                authenticated=True,
                access_token=record.access_token,
                refresh_token=record.refresh_token,
                loading=True,
            ),
            "rehydrating",
        )

        user: UserProfile | None = None
        try:
            body = await api.get(MicrofeedApiUrls.SESSIONS)
            user = SessionResponse.model_validate(body).user
        except (ClientError, SchemaError) as e:
            logger.warning(f"Session check failed, signing out: {e}")

        if user is None:
            await self._clear_record()
            self._transition(
                self._session.signed_out(expired=self._session.expired).evolve(
                    initialized=True
                ),
                "initialized",
            )
            return

        logger.info(f"Session restored for user {user.id}")
        self._transition(
            self._session.evolve(user=user, loading=False, initialized=True),
            "initialized",
        )

    # ------------------------------------------------------------------ #
    # Login / logout
    # ------------------------------------------------------------------ #

    async def login(self, credentials: LoginCredentials) -> UserProfile | None:
        """
        Authenticate with the server and install the returned session.

        Args:
            credentials: Email, password and remember-me flag.

        Returns:
            The signed-in user's profile (None if the server omitted it).

        Raises:
            ValidationError: The server rejected the submitted fields; its
                `errors` attribute is the server's field -> messages mapping.
            AuthenticationError: The server answered without tokens.
            ClientError: Any other request failure, unchanged.
        """
        api = self._require_api()
        self._transition(self._session.evolve(loading=True, error=None), "login started")

        try:
            body = await api.post(MicrofeedApiUrls.LOGIN, credentials.to_payload())
            response = LoginResponse.model_validate(body)
            if response.tokens is None or response.tokens.access is None:
                raise AuthenticationError("Invalid response from server")
        except SchemaError as e:
            error = AuthenticationError(f"Invalid response from server: {e}")
            self._transition(self._session.signed_out().evolve(error=error), "login failed")
            raise error from e
        except ClientError as e:
            logger.warning(f"Login failed for {credentials.email}: {e}")
            self._transition(self._session.signed_out().evolve(error=e), "login failed")
            raise

        access_token = response.tokens.access.token
        refresh_token = response.tokens.refresh.token if response.tokens.refresh else None

        self._generation += 1
        self._transition(
            Session(
                user=response.user,
                authenticated=True,
                initialized=self._session.initialized,
                access_token=access_token,
                refresh_token=refresh_token,
            ),
            "logged in",
        )
        try:
            async with self._store_lock:
                await self._write_record(CredentialRecord(access_token, refresh_token))
        except StorageUnavailable as e:
            logger.warning(f"Session will not survive a restart: {e}")

        logger.info(f"Logged in as {credentials.email}")
        return response.user

    async def logout(self, forced: bool = False) -> None:
        """
        End the session. Always succeeds locally.

        The server-side logout is best effort; its failure is logged and
        ignored. Credential store entries are removed and the session is
        reset to the signed-out shape, `initialized` unchanged. Concurrent
        calls share one logout; the result is forced if any of them was.

        Args:
            forced: The logout is the consequence of an unrecoverable
                authorization failure; sets `Session.expired`.
        """
        self._logout_forced = self._logout_forced or forced
        if self._logout_task is None:
            self._generation += 1
            self._logout_task = asyncio.ensure_future(self._terminate())
        await asyncio.shield(self._logout_task)

    async def _terminate(self) -> None:
        try:
            if self._api is not None:
                try:
                    await self._api.delete(MicrofeedApiUrls.LOGOUT)
                except Exception as e:
                    logger.warning(f"Server logout failed, continuing locally: {e}")

            async with self._store_lock:
                await self._clear_record()
            forced = self._logout_forced
            self._transition(
                self._session.signed_out(expired=forced),
                "forced logout" if forced else "logged out",
            )
            logger.info("Session expired, user must sign in again" if forced else "Logged out")
        finally:
            self._logout_task = None
            self._logout_forced = False

    # ------------------------------------------------------------------ #
    # Token rotation
    # ------------------------------------------------------------------ #

    async def set_tokens(
        self,
        access_token: str,
        refresh_token: str | None,
        generation: int | None = None,
    ) -> bool:
        """
        Install a new credential pair, memory first, then durable storage.

        Args:
            access_token: New access token.
            refresh_token: New refresh token; None removes the stored one.
            generation: The `generation` the pair was obtained for. When the
                session has been logged out or replaced by a login since,
                the pair is discarded.

        Returns:
            False if the pair was discarded as stale, True otherwise.

        Raises:
            StorageUnavailable: The durable write failed. Memory has been
                rolled back to the previous pair before raising.
        """
        if generation is not None and generation != self._generation:
            logger.info("Discarding credentials obtained for an ended session")
            return False

        previous = self._session
        self._transition(
            previous.evolve(
                access_token=access_token,
                refresh_token=refresh_token,
                authenticated=True,
            ),
            "tokens updated",
        )

        async with self._store_lock:
            if generation is not None and generation != self._generation:
                # A login or logout started after the memory update and
                # owns both memory and the store from here on
                logger.info("Session replaced while storing credentials")
                return False

            try:
                await self._write_record(CredentialRecord(access_token, refresh_token))
            except StorageUnavailable:
                self._transition(
                    self._session.evolve(
                        access_token=previous.access_token,
                        refresh_token=previous.refresh_token,
                        authenticated=previous.authenticated,
                    ),
                    "token update rolled back",
                )
                try:
                    await self._write_record(previous.credentials)
                except StorageUnavailable as e:
                    logger.error(f"Could not restore previous credential record: {e}")
                raise
        return True

    def clear_error(self) -> None:
        self._transition(self._session.evolve(error=None), "error cleared")

    # ------------------------------------------------------------------ #
    # Credential store helpers
    # ------------------------------------------------------------------ #

    async def _read_record(self) -> CredentialRecord:
        try:
            access_token = await self.store.get(TOKEN_KEY)
            refresh_token = await self.store.get(REMEMBER_TOKEN_KEY)
        except StorageUnavailable as e:
            logger.warning(f"Treating unreadable credential store as empty: {e}")
            return CredentialRecord()
        return CredentialRecord(access_token or None, refresh_token or None)

    async def _write_record(self, record: CredentialRecord) -> None:
        for key, value in record.to_dict().items():
            if value is None:
                await self.store.delete(key)
            else:
                await self.store.set(key, value)

    async def _clear_record(self) -> None:
        try:
            await self._write_record(CredentialRecord())
        except StorageUnavailable as e:
            logger.error(f"Could not clear stored credentials: {e}")
