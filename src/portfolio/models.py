"""Data models for portfolio holdings and live display records."""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class Holding:
    """
    One symbol's recorded quantity and last-known price.

    ``price`` may be stale relative to the market; it is refreshed by the
    holdings refresh cycle.
    """

    symbol: str
    quantity: int
    price: float

    @property
    def value(self) -> float:
        """Market value of the holding at its last-known price."""
        return self.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Holding":
        """
        Build a holding from its persisted form.

        Raises:
            KeyError: If a field is missing
            ValueError: If a field cannot be coerced
        """
        return cls(
            symbol=str(data["symbol"]).upper(),
            quantity=int(data["quantity"]),
            price=float(data["price"]),
        )


@dataclass(frozen=True)
class TickerEntry:
    """Watchlist feed record, replaced wholesale on every refresh."""

    symbol: str
    name: str
    price: float


@dataclass(frozen=True)
class SuggestionEntry:
    """Symbol search suggestion shown under the symbol field."""

    symbol: str
    description: str
