"""Custom exceptions for portfolio tracking operations."""

from src.market_data.finnhub_client import FinnhubAPIError

# Failures talking to the market-data provider
ProviderError = FinnhubAPIError


class PortfolioError(Exception):
    """Base exception for portfolio operations."""

    pass


class InvalidInputError(PortfolioError):
    """User input for a holding is malformed."""

    pass


class PersistenceError(PortfolioError):
    """Reading or writing persisted portfolio state failed."""

    pass


class InvalidTransitionError(PortfolioError):
    """Add-stock form action not allowed in its current state."""

    pass
