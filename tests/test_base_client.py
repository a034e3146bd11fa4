"""Tests for BaseArrClient retry and caching functionality."""

import httpx
import pytest
import respx
from httpx import ConnectError, ConnectTimeout, HTTPStatusError, ReadTimeout, Response

from grabarr.clients.base import BaseArrClient, cache_key, is_retryable_error
from grabarr.clients.prowlarr import ProwlarrClient
from grabarr.collaborators import SearchQuery

SEARCH_URL = "http://prowlarr:9696/api/v1/search"

RELEASE = {
    "guid": "abc",
    "title": "Movie.Name.2020.1080p.BluRay.x264-GROUP",
    "indexer": "Test",
    "indexerId": 1,
    "size": 1000,
}


class TestCaching:
    """Tests for TTL caching functionality."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_cache_hit_returns_cached_data(self) -> None:
        """Should return cached data on second call without making HTTP request."""
        route = respx.get(SEARCH_URL, params={"type": "movie"}).mock(
            return_value=Response(200, json=[RELEASE])
        )
        query = SearchQuery(query="Movie Name", search_type="movie")

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key") as client:
            # First call - should hit the API
            results1 = await client.search(query)
            assert route.call_count == 1

            # Second call - should use cache
            results2 = await client.search(query)
            assert route.call_count == 1

            assert results1[0].guid == results2[0].guid

    @respx.mock
    @pytest.mark.asyncio
    async def test_different_params_not_cached(self) -> None:
        """Should make separate requests for different parameters."""
        route = respx.get(SEARCH_URL).mock(return_value=Response(200, json=[RELEASE]))

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key") as client:
            await client.search(SearchQuery(query="Movie One"))
            await client.search(SearchQuery(query="Movie Two"))

        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_rss_never_cached(self) -> None:
        """RSS fetches always hit the API."""
        route = respx.get(SEARCH_URL, params={"limit": "100"}).mock(
            return_value=Response(200, json=[RELEASE])
        )

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key") as client:
            await client.fetch_rss()
            await client.fetch_rss()

        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_invalidate_cache(self) -> None:
        """Should refetch after a cache entry is invalidated."""
        route = respx.get(SEARCH_URL).mock(return_value=Response(200, json=[]))

        async with BaseArrClient("http://prowlarr:9696", "test-api-key") as client:
            await client._get("/api/v1/search", {"query": "x"})
            assert await client.invalidate_cache("/api/v1/search", {"query": "x"}) is True
            assert await client.invalidate_cache("/api/v1/search", {"query": "x"}) is False
            await client._get("/api/v1/search", {"query": "x"})

        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_clear_cache(self) -> None:
        """Should clear all cached entries and report how many there were."""
        respx.get(SEARCH_URL).mock(return_value=Response(200, json=[]))

        async with BaseArrClient("http://prowlarr:9696", "test-api-key") as client:
            await client._get("/api/v1/search", {"query": "a"})
            await client._get("/api/v1/search", {"query": "b"})

            count = await client.clear_cache()
            assert count == 2
            assert await client.clear_cache() == 0


class TestCacheKey:
    """Tests for cache key construction."""

    def test_parameter_order_ignored(self) -> None:
        """Equal queries share a key whatever the parameter order."""
        assert cache_key("/api/v1/search", {"query": "x", "type": "movie"}) == cache_key(
            "/api/v1/search", {"type": "movie", "query": "x"}
        )

    def test_list_values_expanded(self) -> None:
        """Repeated parameters are part of the key."""
        one = cache_key("/api/v1/search", {"categories": [2000]})
        two = cache_key("/api/v1/search", {"categories": [2000, 5000]})

        assert one != two
        assert two == "/api/v1/search?categories=2000&categories=5000"

    def test_no_params(self) -> None:
        """Endpoints without parameters still get a key."""
        assert cache_key("/api/v1/search", None) == "/api/v1/search?"


class TestRetry:
    """Tests for retry functionality."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_retry_on_connect_error(self) -> None:
        """Should retry on connection errors."""
        route = respx.get(SEARCH_URL)
        route.side_effect = [
            ConnectError("Connection refused"),
            Response(200, json=[]),
        ]

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key", max_retries=3) as client:
            results = await client.fetch_rss()
            assert results == []
            assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_retry_on_timeout(self) -> None:
        """Should retry on timeout errors."""
        route = respx.get(SEARCH_URL)
        route.side_effect = [
            ConnectTimeout("Timeout"),
            Response(200, json=[]),
        ]

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key", max_retries=3) as client:
            assert await client.fetch_rss() == []
            assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_retry_on_read_timeout(self) -> None:
        """Should retry on read timeout errors."""
        route = respx.get(SEARCH_URL)
        route.side_effect = [
            ReadTimeout("Read timeout"),
            Response(200, json=[]),
        ]

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key", max_retries=3) as client:
            assert await client.fetch_rss() == []
            assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_retry_on_server_error(self) -> None:
        """Should retry on 5xx responses."""
        route = respx.get(SEARCH_URL)
        route.side_effect = [
            Response(503, json={"error": "Unavailable"}),
            Response(200, json=[RELEASE]),
        ]

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key", max_retries=3) as client:
            results = await client.fetch_rss()

        assert len(results) == 1
        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_rate_limit_exhausts_retries(self) -> None:
        """Should retry 429 until attempts run out, then raise."""
        route = respx.get(SEARCH_URL).mock(return_value=Response(429))

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key", max_retries=2) as client:
            with pytest.raises(HTTPStatusError) as exc_info:
                await client.fetch_rss()

        assert exc_info.value.response.status_code == 429
        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_retry_on_401(self) -> None:
        """Should NOT retry on 401 Unauthorized - fail fast."""
        route = respx.get(SEARCH_URL).mock(
            return_value=Response(401, json={"error": "Unauthorized"})
        )

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key", max_retries=3) as client:
            with pytest.raises(HTTPStatusError) as exc_info:
                await client.fetch_rss()

            assert exc_info.value.response.status_code == 401
            assert route.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_retry_on_404(self) -> None:
        """Should NOT retry on 404 Not Found - fail fast."""
        route = respx.get(SEARCH_URL).mock(return_value=Response(404, json={"error": "Not found"}))

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key", max_retries=3) as client:
            with pytest.raises(HTTPStatusError):
                await client.search(SearchQuery(query="Movie"))

            assert route.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_exhausted_retries_raises(self) -> None:
        """Should raise original exception after exhausting all retry attempts."""
        route = respx.get(SEARCH_URL)
        route.side_effect = ConnectError("Connection refused")

        async with ProwlarrClient("http://prowlarr:9696", "test-api-key", max_retries=3) as client:
            # reraise=True means original exception is raised after retries exhausted
            with pytest.raises(ConnectError):
                await client.fetch_rss()

            assert route.call_count == 3


class TestClientLifecycle:
    """Tests for the async context manager."""

    def test_client_outside_context_raises(self) -> None:
        """Using the client outside the context manager is an error."""
        client = BaseArrClient("http://prowlarr:9696", "key")

        with pytest.raises(RuntimeError, match="async context manager"):
            _ = client.client

    @respx.mock
    @pytest.mark.asyncio
    async def test_api_key_header_and_base_url(self) -> None:
        """Requests carry the API key and strip a trailing slash from the URL."""
        route = respx.get(SEARCH_URL).mock(return_value=Response(200, json=[]))

        async with ProwlarrClient("http://prowlarr:9696/", "secret") as client:
            await client.fetch_rss()

        headers = route.calls.last.request.headers
        assert headers["X-Api-Key"] == "secret"
        assert headers["User-Agent"] == "grabarr"

    @respx.mock
    @pytest.mark.asyncio
    async def test_empty_body_is_none(self) -> None:
        """An empty response body decodes to None."""
        respx.get(SEARCH_URL).mock(return_value=Response(200))

        async with ProwlarrClient("http://prowlarr:9696", "key") as client:
            assert await client.fetch_rss() == []


class TestIsRetryableError:
    """Tests for the retry predicate."""

    def _status_error(self, status: int) -> HTTPStatusError:
        request = httpx.Request("GET", SEARCH_URL)
        return HTTPStatusError("error", request=request, response=Response(status, request=request))

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_retryable_statuses(self, status: int) -> None:
        """Rate limits and server errors are retried."""
        assert is_retryable_error(self._status_error(status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_client_errors_not_retried(self, status: int) -> None:
        """Client errors fail immediately."""
        assert is_retryable_error(self._status_error(status)) is False

    def test_transport_errors(self) -> None:
        """Connection failures and timeouts are retried; other errors are not."""
        assert is_retryable_error(ConnectError("refused")) is True
        assert is_retryable_error(ReadTimeout("slow")) is True
        assert is_retryable_error(ValueError("bad")) is False
