"""Shared HTTP plumbing for indexer manager APIs."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Self

import httpx
from cachetools import TTLCache
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

if TYPE_CHECKING:
    from tenacity import RetryCallState

logger = logging.getLogger(__name__)

RETRYABLE_TRANSPORT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout)

USER_AGENT = "grabarr"


def is_retryable_error(exc: BaseException) -> bool:
    """Check if a request error is transient.

    Connection failures, timeouts, 429 and 5xx responses are retried.
    Every other HTTP error fails immediately.
    """
    if isinstance(exc, RETRYABLE_TRANSPORT_ERRORS):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def cache_key(endpoint: str, params: dict[str, Any] | None) -> str:
    """Build a cache key that ignores parameter order.

    List values (such as repeated ``categories``) are expanded the way
    httpx sends them, so equal queries share one entry.
    """
    items = sorted(httpx.QueryParams(params or {}).multi_items())
    return f"{endpoint}?{httpx.QueryParams(items)}"


class BaseArrClient:
    """Async JSON client for Prowlarr-style APIs.

    Requests carry the ``X-Api-Key`` header and are retried with
    exponential backoff on transient failures. ``_get`` answers repeated
    queries from a TTL cache; ``_get_uncached`` always hits the API.
    Use as an async context manager.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 120.0,
        cache_ttl: int = 300,
        max_retries: int = 3,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Instance URL (e.g., http://localhost:9696)
            api_key: API key for the instance
            timeout: Request timeout in seconds; indexer searches can be slow
            cache_ttl: Seconds a cached response stays valid
            max_retries: Attempts per request, including the first
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.max_retries = max_retries

        self._client: httpx.AsyncClient | None = None
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=256, ttl=cache_ttl)
        self._cache_lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-Api-Key": self.api_key,
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            },
            timeout=self.timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """The open HTTP client.

        Raises:
            RuntimeError: If called outside of async context manager
        """
        if self._client is None:
            raise RuntimeError("Client must be used within async context manager")
        return self._client

    async def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """GET with the response cached for ``cache_ttl`` seconds.

        Raises:
            httpx.HTTPStatusError: On HTTP errors (after retries exhausted)
        """
        key = cache_key(endpoint, params)
        async with self._cache_lock:
            if key in self._cache:
                logger.debug("Cache hit for %s", key)
                return self._cache[key]

        data = await self._get_uncached(endpoint, params)

        async with self._cache_lock:
            self._cache[key] = data
        return data

    async def _get_uncached(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """GET bypassing the cache.

        Returns:
            The decoded JSON body, or None for an empty body

        Raises:
            httpx.HTTPStatusError: On HTTP errors (after retries exhausted)
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(is_retryable_error),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self.client.get(endpoint, params=params)
                response.raise_for_status()

        logger.debug("GET %s -> %d", endpoint, response.status_code)
        if not response.content:
            return None
        return response.json()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Request to %s failed (attempt %d of %d): %s",
            self.base_url,
            retry_state.attempt_number,
            self.max_retries,
            error,
        )

    async def invalidate_cache(self, endpoint: str, params: dict[str, Any] | None = None) -> bool:
        """Drop one cached response.

        Returns:
            True if an entry was removed
        """
        key = cache_key(endpoint, params)
        async with self._cache_lock:
            if key not in self._cache:
                return False
            del self._cache[key]
            return True

    async def clear_cache(self) -> int:
        """Drop every cached response.

        Returns:
            The number of entries removed
        """
        async with self._cache_lock:
            count = len(self._cache)
            self._cache.clear()
            return count
