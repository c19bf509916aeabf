"""Pytest fixtures for portfolio tracker tests."""

import asyncio
import os
import tempfile
from typing import Optional

import pytest

from src.market_data.finnhub_client import FinnhubAPIError
from src.market_data.models import CompanyProfile, Quote, SymbolMatch
from src.portfolio.storage import MemoryStorage
from src.portfolio.store import PortfolioStore


class FakeMarketDataClient:
    """In-memory stand-in for FinnhubClient.

    Each table maps a symbol (or query) to a result or to an exception
    instance that should be raised instead.
    """

    def __init__(
        self,
        quotes: Optional[dict] = None,
        profiles: Optional[dict] = None,
        search_results: Optional[dict] = None,
        delay: float = 0.0,
    ):
        self.quotes = dict(quotes or {})
        self.profiles = dict(profiles or {})
        self.search_results = dict(search_results or {})
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def _respond(self, kind: str, key: str, table: dict):
        self.calls.append((kind, key))
        if self.delay:
            await asyncio.sleep(self.delay)
        value = table.get(key)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise FinnhubAPIError(f"No {kind} data for {key}")
        return value

    async def get_quote(self, symbol: str) -> Quote:
        price = await self._respond("quote", symbol, self.quotes)
        return Quote(symbol=symbol, price=price)

    async def get_company_profile(self, symbol: str) -> CompanyProfile:
        name = await self._respond("profile", symbol, self.profiles)
        return CompanyProfile(name=name, ticker=symbol)

    async def search_symbols(self, query: str) -> list[SymbolMatch]:
        results = await self._respond("search", query, self.search_results)
        return [SymbolMatch(symbol=s, description=d) for s, d in results]

    def calls_for(self, kind: str) -> list[str]:
        return [key for k, key in self.calls if k == kind]

    async def aclose(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeMarketDataClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


@pytest.fixture
def make_client():
    """Factory for fake market-data clients."""
    return FakeMarketDataClient


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> PortfolioStore:
    return PortfolioStore(storage)


@pytest.fixture
def temp_db() -> str:
    """Create a temporary database file."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    if os.path.exists(path):
        os.unlink(path)
