"""
Base HTTP client for building API clients.

This module provides an abstract base class for creating async HTTP clients
using httpx. It includes custom headers, a fixed request timeout and a
transient-failure retry policy shared by every request the client sends.
"""

from abc import ABC
from typing import Any
import logging

import httpx

from .exceptions import HTTPError, TransientNetworkError, ConfigurationError


logger = logging.getLogger(__name__)

# Statuses worth another attempt: timeout, payload too large, rate limited
# and the gateway/server family. 401 is left to subclasses.
RETRY_STATUS_CODES = frozenset({408, 413, 429, 500, 502, 503, 504})
DEFAULT_RETRY_LIMIT = 2
DEFAULT_TIMEOUT = 30.0


class BaseClient(ABC):
    """
    Abstract base class for building HTTP API clients.

    This class provides a foundation for creating async HTTP clients with
    built-in support for:
    - Custom headers
    - A fixed timeout bounding every attempt
    - Automatic retry of transient failures (no backoff delay)
    - Automatic JSON response parsing
    - Proper resource cleanup

    Attributes:
        BASE_URL (str): Default base URL for API requests. Should be overridden
                       by subclasses or via constructor.
        client (httpx.AsyncClient): The underlying httpx async client.
        retry_limit (int): Additional attempts granted to a transient failure.

    Example:
        >>> class MyAPIClient(BaseClient):
        ...     BASE_URL = "https://api.example.com"
        ...
        ...     async def get_user(self, user_id: int):
        ...         return await self._fetch("GET", f"/users/{user_id}")
        ...
        >>> async with MyAPIClient(timeout=10.0) as client:
        ...     user = await client.get_user(123)
    """

    BASE_URL: str = "https://api.example.com"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        **kwargs: Any,
    ):
        """
        Initialize the base client.

        Args:
            base_url: Custom base URL to override the class BASE_URL attribute.
            timeout: Request timeout in seconds. Defaults to 30.0.
            retry_limit: Additional attempts for transient failures.
                         Defaults to 2.
            **kwargs: Additional arguments passed to httpx.AsyncClient.
                     Common options include:
                     - headers: Custom headers dict
                     - transport: Custom httpx transport (tests use
                       httpx.MockTransport)
                     - verify: SSL verification (bool or path to cert)

        Raises:
            ConfigurationError: If timeout or retry_limit are invalid.
        """
        if timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {timeout}")
        if retry_limit < 0:
            raise ConfigurationError(
                f"Retry limit must not be negative, got {retry_limit}"
            )

        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.retry_limit = retry_limit

        # Set default timeout
        if "timeout" not in kwargs:
            kwargs["timeout"] = timeout

        # Default headers, overridden by the caller's
        default_headers = {
            "Accept": "application/json",
            "User-Agent": "microfeed/0.1.0",
        }
        user_headers = kwargs.pop("headers", None) or {}
        kwargs["headers"] = {**default_headers, **user_headers}

        # Initialize httpx client
        self.client = httpx.AsyncClient(**kwargs)

        logger.info(f"Client initialized with base URL: {self.base_url}")

    async def _send(
        self,
        method: str,
        endpoint: str = "",
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Connection errors, timeouts and statuses in RETRY_STATUS_CODES are
        retried up to `retry_limit` more times, immediately. Any other
        response, successful or not, is returned as is.

        Returns:
            The raw httpx response.

        Raises:
            TransientNetworkError: If every attempt failed transiently.
        """
        url = f"{self.base_url}{endpoint}"
        attempts = self.retry_limit + 1

        for attempt in range(1, attempts + 1):
            try:
                logger.debug(f"{method} {url} (attempt {attempt}/{attempts})")
                response = await self.client.request(
                    method,
                    url,
                    params=params,
                    json=payload,
                    headers=headers,
                    **kwargs,
                )
            except httpx.TimeoutException as e:
                error = TransientNetworkError(f"Request timed out: {e}")
                error.__cause__ = e
            except httpx.TransportError as e:
                error = TransientNetworkError(f"Connection failed: {e}")
                error.__cause__ = e
            else:
                logger.debug(f"Response status: {response.status_code}")
                if response.status_code not in RETRY_STATUS_CODES:
                    return response
                error = TransientNetworkError(
                    f"Request failed with status {response.status_code}",
                    status_code=response.status_code,
                    response_body=self._parse_body(response),
                )

            if attempt < attempts:
                logger.warning(f"{method} {url} failed: {error.message}; retrying")
                continue

            logger.error(f"{method} {url} gave up after {attempts} attempts: {error}")
            raise error

        # range() above always runs at least once
        raise AssertionError("unreachable")

    async def _fetch(
        self,
        method: str,
        endpoint: str = "",
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Perform an HTTP request and return JSON response.

        This is the core method for making HTTP requests. It handles URL
        construction, transient retries, error handling, and JSON parsing.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH, etc.).
            endpoint: API endpoint path (will be appended to BASE_URL).
            params: Query parameters for the request.
            payload: JSON payload for POST/PUT/PATCH requests.
            headers: Additional headers for this specific request.
            **kwargs: Additional arguments passed to httpx request method.

        Returns:
            Parsed JSON response (an empty dict for an empty body).

        Raises:
            HTTPError: If the request returns an error status code.
            TransientNetworkError: If retries were exhausted.

        Example:
            >>> await self._fetch("GET", "/users", params={"page": 1})
            >>> await self._fetch("POST", "/users", payload={"name": "John"})
        """
        response = await self._send(
            method,
            endpoint,
            params=params,
            payload=payload,
            headers=headers,
            **kwargs,
        )
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> Any:
        """Return the parsed body of a 2xx response, raise HTTPError otherwise."""
        body = self._parse_body(response)
        if response.is_success:
            return body

        logger.error(f"HTTP error {response.status_code}")
        raise HTTPError(
            f"Request failed with status {response.status_code}",
            status_code=response.status_code,
            response_body=body,
        )

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"message": response.text}

    async def _get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """GET `endpoint` with optional query parameters."""
        return await self._fetch("GET", endpoint, params=params, **kwargs)

    async def _post(
        self,
        endpoint: str,
        payload: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """POST `payload` as JSON to `endpoint`."""
        return await self._fetch("POST", endpoint, payload=payload, **kwargs)

    async def _put(
        self,
        endpoint: str,
        payload: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """PUT `payload` as JSON to `endpoint`."""
        return await self._fetch("PUT", endpoint, payload=payload, **kwargs)

    async def _patch(
        self,
        endpoint: str,
        payload: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """PATCH `endpoint` with a JSON `payload`."""
        return await self._fetch("PATCH", endpoint, payload=payload, **kwargs)

    async def _delete(
        self,
        endpoint: str,
        **kwargs: Any,
    ) -> Any:
        """DELETE `endpoint`."""
        return await self._fetch("DELETE", endpoint, **kwargs)

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self.client.aclose()
        logger.info("Client closed")

    async def __aenter__(self):
        """Enable use as async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Ensure client is closed when exiting context."""
        await self.close()
