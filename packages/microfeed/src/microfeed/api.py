"""
# Request Pipeline

`ApiClient` is the single path for every request the application makes.
Around the base client's transient-failure retries it adds:

1. **Pre-send**: the session's credentials as
   `Authorization: Bearer <access-token> <refresh-token>`
2. **Post-receive**: a 401 from anything but the login, refresh or logout
   endpoints is handed to the `RefreshCoordinator`; the request is then
   re-issued exactly once with the new token
3. **Forced logout**: when refresh fails, or the retried request is
   rejected again, the session is logged out and the caller receives an
   `AuthorizationError`

## Example:
```python
session = SessionState(SecureCredentialStore())
api = ApiClient(session, base_url="http://localhost:3000/api")

await session.initialize()
feed = await api.get("/feed", params={"page": 1})
```
"""

import logging
from typing import Any

import httpx

from shared_lib.baseclient import Client
from shared_lib.baseclient.exceptions import HTTPError

from microfeed.auth.models import CredentialRecord, RefreshResponse
from microfeed.auth.refresh import RefreshCoordinator
from microfeed.auth.session import SessionState
from microfeed.exceptions import AuthorizationError, ValidationError
from microfeed.urls import AUTH_ENDPOINTS, MicrofeedApiUrls, MicrofeedBaseUrls

logger = logging.getLogger(__name__)


class ApiClient(Client):
    """
    Authorized HTTP client for the microfeed API.

    Attributes:
        session: Session state the credentials are read from
        refresher: Coordinator collapsing concurrent refreshes into one
    """

    BASE_URL = MicrofeedBaseUrls.PRODUCTION

    def __init__(
        self,
        session: SessionState,
        base_url: str | None = None,
        language: str = "EN",
        **kwargs: Any,
    ):
        """
        Args:
            session: Session state to authorize requests with. The client
                attaches itself to it for login, logout and rehydration.
            base_url: API base URL. Defaults to the production server.
            language: Value of the `x-lang` header.
            **kwargs: Passed to BaseClient (timeout, retry_limit, transport...).
        """
        headers = {"x-lang": language, **(kwargs.pop("headers", None) or {})}
        super().__init__(base_url=base_url, headers=headers, **kwargs)

        self.session = session
        self.refresher = RefreshCoordinator(session, self.exchange_refresh_token)
        session.attach(self)

    def _authorization_headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        merged = dict(headers or {})
        current = self.session.current
        if current.access_token:
            # Server expects "<access> <refresh>"; no trailing space when
            # there is no refresh token
            merged["Authorization"] = " ".join(
                filter(None, ["Bearer", current.access_token, current.refresh_token])
            )
        return merged

    async def _fetch(
        self,
        method: str,
        endpoint: str = "",
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        sent_token = self.session.access_token
        response = await self._send(
            method,
            endpoint,
            params=params,
            payload=payload,
            headers=self._authorization_headers(headers),
            **kwargs,
        )

        if response.status_code == 401 and endpoint not in AUTH_ENDPOINTS:
            response = await self._refresh_and_retry(
                sent_token,
                method,
                endpoint,
                params=params,
                payload=payload,
                headers=headers,
                **kwargs,
            )

        try:
            return self._handle_response(response)
        except HTTPError as e:
            if self._carries_field_errors(endpoint, e.status_code):
                validation = ValidationError.from_response(e)
                if validation is not None:
                    raise validation from e
            raise

    @staticmethod
    def _carries_field_errors(endpoint: str, status_code: int | None) -> bool:
        # Login reports bad credentials as 401 with an error body; other
        # forms (signup, profile edit) answer 422
        if status_code is None:
            return False
        if endpoint == MicrofeedApiUrls.LOGIN:
            return 400 <= status_code < 500
        return status_code == 422

    async def _refresh_and_retry(
        self,
        sent_token: str | None,
        method: str,
        endpoint: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        logger.info(f"{method} {endpoint} unauthorized, refreshing credentials")
        outcome = await self.refresher.refresh(sent_token)

        if not outcome.succeeded:
            if outcome.owner:
                await self._expire_session()
            raise AuthorizationError() from outcome.error

        logger.debug(f"Retrying {method} {endpoint} with refreshed token")
        response = await self._send(
            method,
            endpoint,
            headers=self._authorization_headers(headers),
            **kwargs,
        )
        if response.status_code == 401:
            logger.warning(f"{method} {endpoint} rejected after refresh")
            await self._expire_session()
            raise AuthorizationError()
        return response

    async def _expire_session(self) -> None:
        current = self.session.current
        if current.authenticated or current.access_token:
            await self.session.logout(forced=True)

    async def exchange_refresh_token(self, refresh_token: str) -> CredentialRecord:
        """
        Call the refresh endpoint.

        Sent without credentials and outside the 401 handling; only the
        transient retry policy applies.

        Returns:
            The new pair; its refresh token is None when the server did not
            rotate it.
        """
        response = await self._send(
            "POST",
            MicrofeedApiUrls.REFRESH,
            payload={"refresh_token": refresh_token},
        )
        body = self._handle_response(response)
        access = RefreshResponse.model_validate(body).tokens.access
        return CredentialRecord(access.token, access.remember_token)

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Send an authorized request and return the parsed JSON body.

        Raises:
            AuthorizationError: The session could not be recovered and has
                been logged out.
            ValidationError: Field errors from the login endpoint or a 422.
            TransientNetworkError: Retries exhausted.
            HTTPError: Any other failed status.
        """
        return await self._fetch(
            method.upper(),
            endpoint,
            params=params,
            payload=payload,
            headers=headers,
            **kwargs,
        )

    async def get(self, endpoint: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self._get(endpoint, params=params, **kwargs)

    async def post(self, endpoint: str, payload: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self._post(endpoint, payload=payload, **kwargs)

    async def put(self, endpoint: str, payload: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self._put(endpoint, payload=payload, **kwargs)

    async def patch(self, endpoint: str, payload: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self._patch(endpoint, payload=payload, **kwargs)

    async def delete(self, endpoint: str, **kwargs: Any) -> Any:
        return await self._delete(endpoint, **kwargs)
