"""Data models returned by the market-data provider."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Quote:
    """Current quote for a symbol."""

    symbol: str
    price: float


@dataclass(frozen=True)
class CompanyProfile:
    """Company name and exchange ticker for a symbol."""

    name: str
    ticker: str


@dataclass(frozen=True)
class SymbolMatch:
    """One hit from a symbol search, in provider ranking order."""

    symbol: str
    description: str
