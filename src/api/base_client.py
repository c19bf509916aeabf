"""
Base API client with common HTTP functionality.

This module provides a base class for asynchronous API clients with shared
functionality:
- HTTP client management with connection pooling
- Retry logic with exponential backoff
- Error handling and logging
- Timeout handling

All market-data clients should inherit from this base class to avoid code
duplication and ensure consistent behavior.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class BaseAPIClient:
    """
    Base class for async API clients with common HTTP functionality.

    This class provides:
    - An ``httpx.AsyncClient`` shared by every request
    - Automatic retry with exponential backoff for transient failures
    - Consistent error handling and logging
    - Request timeout handling

    Subclasses should:
    - Set BASE_URL class attribute
    - Override _handle_error_response() for custom error handling
    - Add domain-specific methods

    Example:
        class MyAPIClient(BaseAPIClient):
            BASE_URL = "https://api.example.com"

            async def get_data(self, resource_id: str) -> Dict[str, Any]:
                response = await self.get(f"/data/{resource_id}")
                return response.json()
    """

    BASE_URL: str = ""  # Subclasses must override this

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30,
    ):
        """
        Initialize base API client.

        Args:
            max_retries: Maximum number of retry attempts for transient errors
            retry_delay: Base delay in seconds between retries (exponential backoff)
            timeout: Request timeout in seconds
        """
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Accept": "application/json",
                "User-Agent": f"{self.__class__.__name__}/1.0",
            },
        )

        logger.info(f"{self.__class__.__name__} initialized")

    def _get_full_url(self, endpoint: str) -> str:
        """
        Construct full API URL from endpoint path.

        Args:
            endpoint: API endpoint path (e.g., "/quote")

        Returns:
            Full URL with base URL
        """
        if not self.BASE_URL:
            raise ValueError(f"{self.__class__.__name__} must set BASE_URL class attribute")

        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"

        return f"{self.BASE_URL.rstrip('/')}{endpoint}"

    async def _make_request_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        retry_count: int = 0,
    ) -> httpx.Response:
        """
        Make HTTP request with exponential backoff retry logic.

        This method handles:
        - Network errors (timeout, connection errors)
        - Transient server errors (5xx)
        - Automatic retry with exponential backoff

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Full request URL
            params: Query parameters
            headers: Additional request headers
            retry_count: Current retry attempt (for internal use)

        Returns:
            HTTP response object

        Raises:
            httpx.HTTPError: If all retry attempts fail
        """
        logger.debug(f"{method} {url}")

        try:
            response = await self.client.request(
                method,
                url,
                params=params,
                headers=headers,
            )

            if response.status_code >= 500:
                if retry_count < self.max_retries:
                    delay = self._calculate_backoff_delay(retry_count)
                    logger.warning(
                        f"Server error ({response.status_code}). "
                        f"Retrying in {delay}s (attempt {retry_count + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    return await self._make_request_with_retry(
                        method, url, params, headers, retry_count + 1
                    )
                logger.error(
                    f"Server error ({response.status_code}) after {self.max_retries} retries"
                )

            logger.debug(f"Response: {response.status_code}")
            return response

        except httpx.TransportError as e:
            if retry_count < self.max_retries:
                delay = self._calculate_backoff_delay(retry_count)
                logger.warning(
                    f"Network error: {e!r}. Retrying in {delay}s "
                    f"(attempt {retry_count + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)
                return await self._make_request_with_retry(
                    method, url, params, headers, retry_count + 1
                )
            logger.error(f"Network error after {self.max_retries} retries: {e!r}")
            raise

    def _calculate_backoff_delay(self, retry_count: int) -> float:
        """Delay in seconds before retry number ``retry_count`` (0-indexed)."""
        return self.retry_delay * (2 ** retry_count)

    def _handle_error_response(self, response: httpx.Response) -> None:
        """
        Handle error responses from API.

        This method can be overridden by subclasses to provide
        custom error handling for specific status codes.

        Raises:
            httpx.HTTPStatusError: For unhandled errors
        """
        response.raise_for_status()

    async def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make a GET request.

        Args:
            endpoint: API endpoint path
            params: Query parameters
            headers: Additional request headers

        Returns:
            HTTP response object

        Raises:
            httpx.HTTPError: For network errors once retries are exhausted
        """
        url = self._get_full_url(endpoint)
        return await self._make_request_with_retry("GET", url, params=params, headers=headers)

    async def aclose(self) -> None:
        """
        Close the HTTP client and cleanup resources.

        Should be called when done using the client, or use the client
        as an async context manager.
        """
        await self.client.aclose()
        logger.info(f"{self.__class__.__name__} closed")

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - ensures cleanup."""
        await self.aclose()
