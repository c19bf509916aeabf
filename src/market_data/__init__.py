"""
Market data fetching package.

This package contains modules for fetching external market data:
- finnhub_client: Finnhub API client (quotes, profiles, symbol search)
- models: Quote, CompanyProfile and SymbolMatch records

All classes are re-exported at the package level for convenience.
"""

from src.market_data.finnhub_client import FinnhubAPIError, FinnhubClient
from src.market_data.models import CompanyProfile, Quote, SymbolMatch

__all__ = [
    # finnhub_client
    "FinnhubAPIError",
    "FinnhubClient",
    # models
    "CompanyProfile",
    "Quote",
    "SymbolMatch",
]
