"""
Unit tests for BaseClient.

Tests cover:
- Client initialization with various configurations
- HTTP methods (_get, _post, _put, _patch, _delete)
- Error handling and custom exceptions
- Transient-failure retry policy
- Context manager usage
"""

import pytest
from unittest.mock import AsyncMock, patch
import httpx

from shared_lib.baseclient import Client as BaseClient, RETRY_STATUS_CODES
from shared_lib.baseclient.exceptions import (
    ConfigurationError,
    HTTPError,
    TransientNetworkError,
)


class _APIClient(BaseClient):
    """Test implementation of BaseClient (not collected by pytest)."""

    BASE_URL = "https://api.test.com"


def _scripted(*responses):
    """AsyncMock for httpx.AsyncClient.request returning/raising in order."""
    return AsyncMock(side_effect=list(responses))


class TestBaseClientInitialization:
    """Tests for BaseClient initialization."""

    def test_init_with_defaults(self):
        """Test client initialization with default values."""
        client = _APIClient()

        assert client.base_url == "https://api.test.com"
        assert client.retry_limit == 2
        assert isinstance(client.client, httpx.AsyncClient)
        assert client.client.headers["Accept"] == "application/json"
        assert "microfeed" in client.client.headers["User-Agent"]

    def test_init_with_custom_base_url(self):
        """Test client initialization with custom base URL."""
        client = _APIClient(base_url="https://custom.api.com/")

        assert client.base_url == "https://custom.api.com"

    def test_init_with_custom_timeout(self):
        """Test client initialization with custom timeout."""
        client = _APIClient(timeout=60.0)

        assert client.client.timeout.read == 60.0

    def test_init_with_custom_headers(self):
        """Test client initialization with custom headers."""
        custom_headers = {"x-lang": "EN", "Accept": "application/vnd.api+json"}
        client = _APIClient(headers=custom_headers)

        assert client.client.headers["x-lang"] == "EN"
        assert client.client.headers["Accept"] == "application/vnd.api+json"

    def test_init_with_invalid_timeout(self):
        """Test client initialization rejects a non-positive timeout."""
        with pytest.raises(ConfigurationError):
            _APIClient(timeout=0)

    def test_init_with_negative_retry_limit(self):
        """Test client initialization rejects a negative retry limit."""
        with pytest.raises(ConfigurationError):
            _APIClient(retry_limit=-1)


class TestBaseClientFetchMethod:
    """Tests for the _fetch method."""

    @pytest.mark.asyncio
    async def test_fetch_get_success(self):
        """Test successful GET request."""
        client = _APIClient()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = httpx.Response(
                200, json={"id": 1, "name": "test"}
            )

            result = await client._fetch("GET", "/users/1")

            assert result == {"id": 1, "name": "test"}
            mock_request.assert_called_once_with(
                "GET",
                "https://api.test.com/users/1",
                params=None,
                json=None,
                headers=None,
            )

        await client.close()

    @pytest.mark.asyncio
    async def test_fetch_post_with_payload(self):
        """Test POST request with payload."""
        client = _APIClient()
        payload = {"name": "test user", "email": "test@example.com"}

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = httpx.Response(
                201, json={"id": 2, "name": "created"}
            )

            result = await client._fetch("POST", "/users", payload=payload)

            assert result == {"id": 2, "name": "created"}
            mock_request.assert_called_once_with(
                "POST",
                "https://api.test.com/users",
                params=None,
                json=payload,
                headers=None,
            )

        await client.close()

    @pytest.mark.asyncio
    async def test_fetch_empty_body(self):
        """Test an empty 204 body is returned as an empty dict."""
        client = _APIClient()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = httpx.Response(204)

            result = await client._fetch("DELETE", "/logout")

            assert result == {}

        await client.close()

    @pytest.mark.asyncio
    async def test_fetch_non_json_body(self):
        """Test a non-JSON body is wrapped in a message dict."""
        client = _APIClient()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = httpx.Response(200, text="pong")

            result = await client._fetch("GET", "/ping")

            assert result == {"message": "pong"}

        await client.close()


class TestBaseClientConvenienceMethods:
    """Tests for the verb helpers delegating to _fetch."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "helper, args, expected_call",
        [
            ("_get", ("/users/1",), (("GET", "/users/1"), {"params": None})),
            ("_post", ("/users", {"name": "x"}), (("POST", "/users"), {"payload": {"name": "x"}})),
            ("_put", ("/users/1", {"name": "y"}), (("PUT", "/users/1"), {"payload": {"name": "y"}})),
            ("_patch", ("/users/1", {"name": "z"}), (("PATCH", "/users/1"), {"payload": {"name": "z"}})),
            ("_delete", ("/users/1",), (("DELETE", "/users/1"), {})),
        ],
    )
    async def test_helper_delegates(self, helper, args, expected_call):
        client = _APIClient()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = {"ok": True}

            assert await getattr(client, helper)(*args) == {"ok": True}

            expected_args, expected_kwargs = expected_call
            mock_fetch.assert_called_once_with(*expected_args, **expected_kwargs)

        await client.close()

    @pytest.mark.asyncio
    async def test_get_forwards_params(self):
        client = _APIClient()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            await client._get("/microposts", params={"page": 2})

            mock_fetch.assert_called_once_with("GET", "/microposts", params={"page": 2})

        await client.close()


class TestBaseClientExceptions:
    """Tests for exception handling."""

    @pytest.mark.asyncio
    async def test_http_error_on_404(self):
        """Test HTTPError raised on 404 response, without retrying."""
        client = _APIClient()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = httpx.Response(404, json={"error": "Not found"})

            with pytest.raises(HTTPError) as exc_info:
                await client._fetch("GET", "/users/999")

            assert exc_info.value.status_code == 404
            assert exc_info.value.response_body == {"error": "Not found"}
            assert "404" in str(exc_info.value.message)
            assert mock_request.call_count == 1

        await client.close()

    @pytest.mark.asyncio
    async def test_unauthorized_is_not_retried(self):
        """Test a 401 is surfaced as HTTPError after a single attempt."""
        client = _APIClient()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = httpx.Response(401)

            with pytest.raises(HTTPError) as exc_info:
                await client._fetch("GET", "/feed")

            assert exc_info.value.status_code == 401
            assert not isinstance(exc_info.value, TransientNetworkError)
            assert mock_request.call_count == 1

        await client.close()

    @pytest.mark.asyncio
    async def test_timeout_error(self):
        """Test TransientNetworkError raised when every attempt times out."""
        client = _APIClient()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.TimeoutException("Request timed out")

            with pytest.raises(TransientNetworkError) as exc_info:
                await client._fetch("GET", "/users")

            assert "timed out" in str(exc_info.value.message).lower()
            assert exc_info.value.status_code is None
            assert mock_request.call_count == 3

        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Test TransientNetworkError raised on repeated connection failures."""
        client = _APIClient(retry_limit=1)

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.ConnectError("Connection refused")

            with pytest.raises(TransientNetworkError) as exc_info:
                await client._fetch("GET", "/users")

            assert "Connection failed" in str(exc_info.value.message)
            assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
            assert mock_request.call_count == 2

        await client.close()


class TestBaseClientRetryPolicy:
    """Tests for the transient-failure retry policy."""

    def test_retry_status_codes(self):
        """Test the fixed set of retryable statuses."""
        assert RETRY_STATUS_CODES == {408, 413, 429, 500, 502, 503, 504}
        assert 401 not in RETRY_STATUS_CODES

    @pytest.mark.asyncio
    async def test_server_error_then_success(self):
        """Test 500, 500, 200 yields the 200 body transparently."""
        client = _APIClient()
        client.client.request = _scripted(
            httpx.Response(500),
            httpx.Response(500),
            httpx.Response(200, json={"items": [1, 2]}),
        )

        result = await client._fetch("GET", "/microposts")

        assert result == {"items": [1, 2]}
        assert client.client.request.call_count == 3

        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self):
        """Test three 503s surface a TransientNetworkError with the status."""
        client = _APIClient()
        client.client.request = _scripted(
            httpx.Response(503),
            httpx.Response(503),
            httpx.Response(503, json={"error": "maintenance"}),
        )

        with pytest.raises(TransientNetworkError) as exc_info:
            await client._fetch("GET", "/microposts")

        assert exc_info.value.status_code == 503
        assert exc_info.value.response_body == {"error": "maintenance"}
        assert client.client.request.call_count == 3

        await client.close()

    @pytest.mark.asyncio
    async def test_timeout_then_success(self):
        """Test a timed out attempt is retried."""
        client = _APIClient()
        client.client.request = _scripted(
            httpx.ReadTimeout("slow"),
            httpx.Response(200, json={"ok": True}),
        )

        result = await client._fetch("GET", "/users")

        assert result == {"ok": True}
        assert client.client.request.call_count == 2

        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [408, 413, 429, 502, 504])
    async def test_each_retryable_status(self, status):
        """Test every retryable status is retried once before success."""
        client = _APIClient()
        client.client.request = _scripted(
            httpx.Response(status),
            httpx.Response(200, json={}),
        )

        assert await client._fetch("POST", "/microposts", payload={}) == {}
        assert client.client.request.call_count == 2

        await client.close()

    @pytest.mark.asyncio
    async def test_retry_limit_zero(self):
        """Test retry_limit=0 disables retries."""
        client = _APIClient(retry_limit=0)
        client.client.request = _scripted(httpx.Response(500))

        with pytest.raises(TransientNetworkError):
            await client._fetch("GET", "/users")

        assert client.client.request.call_count == 1

        await client.close()

    @pytest.mark.asyncio
    async def test_retries_through_transport(self):
        """Test the retry loop with a real httpx transport."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(502)
            return httpx.Response(200, json={"attempt": len(calls)})

        client = _APIClient(transport=httpx.MockTransport(handler))

        assert await client._fetch("GET", "/feed") == {"attempt": 3}
        assert all(str(r.url) == "https://api.test.com/feed" for r in calls)

        await client.close()


class TestBaseClientContextManager:
    """Tests for async context manager functionality."""

    @pytest.mark.asyncio
    async def test_context_manager_usage(self):
        """Test client can be used as async context manager."""
        async with _APIClient() as client:
            assert isinstance(client, _APIClient)
            assert client.client is not None

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self):
        """Test client is closed when exiting context."""
        client = _APIClient()

        with patch.object(client, "close", new_callable=AsyncMock) as mock_close:
            async with client:
                pass

            mock_close.assert_called_once()

    @pytest.mark.asyncio
    async def test_context_manager_with_exception(self):
        """Test client is closed even when exception occurs."""
        client = _APIClient()

        with patch.object(client, "close", new_callable=AsyncMock) as mock_close:
            try:
                async with client:
                    raise ValueError("Test exception")
            except ValueError:
                pass

            mock_close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_method(self):
        """Test close method."""
        client = _APIClient()

        with patch.object(
            client.client, "aclose", new_callable=AsyncMock
        ) as mock_aclose:
            await client.close()

            mock_aclose.assert_called_once()


class TestBaseClientEndpointConstruction:
    """Tests for URL endpoint construction."""

    @pytest.mark.asyncio
    async def test_endpoint_with_leading_slash(self):
        """Test endpoint construction with leading slash."""
        client = _APIClient()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = httpx.Response(200, json={})

            await client._fetch("GET", "/users")

            call_args = mock_request.call_args
            assert call_args[0][1] == "https://api.test.com/users"

        await client.close()

    @pytest.mark.asyncio
    async def test_empty_endpoint(self):
        """Test request with empty endpoint."""
        client = _APIClient()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = httpx.Response(200, json={})

            await client._fetch("GET", "")

            call_args = mock_request.call_args
            assert call_args[0][1] == "https://api.test.com"

        await client.close()
