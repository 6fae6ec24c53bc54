"""# Microfeed Client

Entry point wiring the session subsystem together: credential store,
session state, refresh coordinator and request pipeline.

## Basic Usage

```python
from microfeed import MicrofeedClient

async with MicrofeedClient() as client:
    session = await client.initialize()
    if not session.authenticated:
        await client.login("user@example.com", "password", remember_me=True)

    feed = await client.api.get("/feed", params={"page": 1})
```

### Observing the session

```python
unsubscribe = client.subscribe(lambda session: render(session))
```

### Configuration

Settings are read from `MICROFEED_*` environment variables (see
`ClientSettings`); pass `settings=` to override them, and `store=` to
replace the encrypted store, e.g. with `MemoryCredentialStore()` for a
session that must not survive the process.
"""

import logging
from typing import Any, Callable

from shared_lib.logging import setup_logging

from microfeed.api import ApiClient
from microfeed.auth.credential_store import CredentialStore, SecureCredentialStore
from microfeed.auth.models import LoginCredentials, Session, UserProfile
from microfeed.auth.session import SessionListener, SessionState
from microfeed.config import ClientSettings


class MicrofeedClient:
    """
    # Microfeed Client

    ## Attributes

    - `settings` (ClientSettings): Effective configuration
    - `store` (CredentialStore): Durable credential persistence
    - `session` (SessionState): Session owner and observer hub
    - `api` (ApiClient): Authorized request pipeline for collaborators
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        store: CredentialStore | None = None,
        **client_kwargs: Any,
    ) -> None:
        """
        Args:
            settings: Configuration; read from the environment when omitted.
            store: Credential store; an encrypted store in
                `settings.storage_dir` when omitted.
            **client_kwargs: Extra arguments for ApiClient (e.g. transport).
        """
        self.settings = settings or ClientSettings()
        self.store = store or SecureCredentialStore(self.settings.storage_dir)
        self.session = SessionState(self.store)
        self.api = ApiClient(
            self.session,
            base_url=self.settings.resolved_base_url,
            language=self.settings.language,
            timeout=self.settings.timeout,
            retry_limit=self.settings.retry_limit,
            **client_kwargs,
        )

        logging.getLogger("microfeed").setLevel(self.settings.log_level_value)

    @property
    def current(self) -> Session:
        return self.session.current

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        return self.session.subscribe(listener)

    async def initialize(self) -> Session:
        return await self.session.initialize()

    async def login(
        self, email: str, password: str, remember_me: bool = False
    ) -> UserProfile | None:
        credentials = LoginCredentials(
            email=email, password=password, remember_me=remember_me
        )
        return await self.session.login(credentials)

    async def logout(self) -> None:
        await self.session.logout()

    async def close(self) -> None:
        await self.api.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def create_client(
    settings: ClientSettings | None = None,
    store: CredentialStore | None = None,
    configure_logging: bool = False,
    **client_kwargs: Any,
) -> MicrofeedClient:
    """
    Convenience factory for a fully wired client.

    Args:
        settings: Configuration; read from the environment when omitted.
        store: Credential store override.
        configure_logging: Also configure root logging at
            `settings.log_level` (for scripts without their own setup).

    Example:
        >>> client = create_client(ClientSettings(environment="development"))
    """
    settings = settings or ClientSettings()
    if configure_logging:
        setup_logging(settings.log_level_value)
    return MicrofeedClient(settings=settings, store=store, **client_kwargs)
