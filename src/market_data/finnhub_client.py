"""
Finnhub API client for quotes, company profiles and symbol search.

This module provides the Finnhub data provider adapter, handling all
HTTP communication with the Finnhub API.

API Documentation: https://finnhub.io/docs/api

Endpoints used:
- /quote: Current price ("c" field)
- /stock/profile2: Company name and ticker
- /search: Symbol lookup by partial text

Note: Quotes for many non-US symbols require a paid Finnhub subscription.
Free tier either returns 403 Forbidden or a quote with a zero price.
"""

import json
import logging
from typing import Any, Optional

import httpx

from src.api.base_client import BaseAPIClient
from src.config import FinnhubConfig
from src.market_data.models import CompanyProfile, Quote, SymbolMatch

logger = logging.getLogger(__name__)


class FinnhubAPIError(Exception):
    """Custom exception for Finnhub API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class FinnhubClient(BaseAPIClient):
    """
    Async client for interacting with Finnhub API.

    Inherited features from BaseAPIClient:
    - Pooled async HTTP client
    - Retry logic with exponential backoff
    - Error handling and logging

    Example:
        async with FinnhubClient(FinnhubConfig.from_env()) as client:
            quote = await client.get_quote("AAPL")
    """

    BASE_URL = "https://finnhub.io/api/v1"

    def __init__(self, config: FinnhubConfig):
        """
        Initialize client with configuration.

        Args:
            config: FinnhubConfig instance with API credentials and settings
        """
        super().__init__(
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            timeout=config.timeout,
        )
        self.config = config

        if config.base_url:
            self.BASE_URL = config.base_url

    @staticmethod
    def _normalize_symbol(symbol: str) -> str:
        if not symbol or not isinstance(symbol, str) or not symbol.strip():
            raise ValueError(f"Invalid symbol: {symbol!r}")
        return symbol.strip().upper()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Pull a human-readable message out of a provider error response."""
        try:
            data = response.json()
        except ValueError:
            return response.text or "Unknown API error"

        if isinstance(data, dict):
            message = data.get("error") or data.get("message")
            if message:
                return str(message)
        if data:
            return json.dumps(data)
        return "Unknown API error"

    def _handle_error_response(self, response: httpx.Response) -> None:
        """
        Translate a non-2xx response into FinnhubAPIError.

        Raises:
            FinnhubAPIError: Always, for any non-success status
        """
        status = response.status_code
        if status == 401:
            raise FinnhubAPIError(
                "Authentication failed. Check your API key. "
                "Get a free API key at https://finnhub.io/register",
                status_code=status,
            )
        if status == 403:
            raise FinnhubAPIError(
                f"Access forbidden: {self._error_message(response)}. "
                "This symbol may require a paid Finnhub subscription.",
                status_code=status,
            )
        if status == 429:
            raise FinnhubAPIError(
                "Rate limit exceeded. Finnhub free tier allows 60 calls/minute.",
                status_code=status,
            )
        raise FinnhubAPIError(self._error_message(response), status_code=status)

    async def _request_json(
        self, endpoint: str, params: dict[str, Any], failure_message: str
    ) -> Any:
        """
        GET an endpoint with the API token and decode its JSON body.

        Args:
            endpoint: API endpoint path
            params: Query parameters (token is added here)
            failure_message: Message used when the request never got a response

        Raises:
            FinnhubAPIError: On transport failure, non-2xx status or invalid JSON
        """
        params = {**params, "token": self.config.api_key}

        try:
            response = await self.get(endpoint, params=params)
        except httpx.HTTPError as e:
            raise FinnhubAPIError(f"{failure_message}: {e!r}") from e

        if not response.is_success:
            self._handle_error_response(response)

        try:
            data = response.json()
        except ValueError as e:
            raise FinnhubAPIError(f"Invalid JSON response from API: {e}") from e

        logger.debug(f"{endpoint} response: {data}")
        return data

    async def get_quote(self, symbol: str) -> Quote:
        """
        Retrieve the current quote for a symbol.

        Args:
            symbol: Stock ticker symbol (e.g., "AAPL")

        Returns:
            Quote with the current price. Finnhub answers unknown symbols with
            a price of 0, which callers should treat as unusable.

        Raises:
            FinnhubAPIError: If API request fails or the payload has no price
            ValueError: If symbol is empty
        """
        symbol = self._normalize_symbol(symbol)
        logger.info(f"Fetching quote for {symbol}")

        data = await self._request_json(
            "/quote", {"symbol": symbol}, "Failed to fetch stock price"
        )

        price = data.get("c") if isinstance(data, dict) else None
        if not isinstance(price, (int, float)) or isinstance(price, bool):
            raise FinnhubAPIError(f"Quote for {symbol} has no price")

        return Quote(symbol=symbol, price=float(price))

    async def get_company_profile(self, symbol: str) -> CompanyProfile:
        """
        Retrieve company name and ticker for a symbol.

        Raises:
            FinnhubAPIError: If API request fails or the profile is empty
            ValueError: If symbol is empty
        """
        symbol = self._normalize_symbol(symbol)
        logger.info(f"Fetching company profile for {symbol}")

        data = await self._request_json(
            "/stock/profile2", {"symbol": symbol}, "Failed to fetch company profile"
        )

        # Unknown symbols come back as an empty object
        if not isinstance(data, dict) or not data.get("name"):
            raise FinnhubAPIError(f"No company profile available for {symbol}")

        return CompanyProfile(name=data["name"], ticker=data.get("ticker") or symbol)

    async def search_symbols(self, query: str) -> list[SymbolMatch]:
        """
        Search symbols matching partial text.

        Args:
            query: Text as typed by the user; sent unchanged

        Returns:
            Matches in the order ranked by the provider

        Raises:
            FinnhubAPIError: If API request fails or the payload is malformed
            ValueError: If query is empty
        """
        if not query:
            raise ValueError("Search query cannot be empty")

        logger.info(f"Searching symbols for {query!r}")

        data = await self._request_json(
            "/search", {"q": query}, "Failed to search stock symbols"
        )

        results = data.get("result") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise FinnhubAPIError("Invalid search response: missing result list")

        matches = [
            SymbolMatch(symbol=item["symbol"], description=item.get("description", ""))
            for item in results
            if isinstance(item, dict) and item.get("symbol")
        ]
        logger.debug(f"Found {len(matches)} matches for {query!r}")
        return matches
