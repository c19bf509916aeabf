"""
Stock Portfolio Tracker - record holdings and keep their prices fresh.

Public API:
    PortfolioStore: Owner of the holdings collection and its persistence
    RefreshScheduler: Periodic watchlist ticker and holdings price refresh
    SymbolSearchDebouncer: Search-as-you-type for the symbol field
    AddStockForm: Validation and quote lookup for adding a holding
    Holding, TickerEntry, SuggestionEntry: Data records
"""

from .exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    PersistenceError,
    PortfolioError,
    ProviderError,
)
from .form import AddResult, AddStockForm, FormState, parse_add_stock_input
from .models import Holding, SuggestionEntry, TickerEntry
from .scheduler import DEFAULT_WATCHLIST, RefreshScheduler
from .search import SymbolSearchDebouncer
from .storage import KeyValueStorage, MemoryStorage, SQLiteStorage
from .store import STORAGE_KEY, PortfolioStore

__all__ = [
    # Core classes
    "PortfolioStore",
    "RefreshScheduler",
    "SymbolSearchDebouncer",
    "AddStockForm",
    # Models
    "Holding",
    "TickerEntry",
    "SuggestionEntry",
    # Form
    "AddResult",
    "FormState",
    "parse_add_stock_input",
    # Storage
    "KeyValueStorage",
    "MemoryStorage",
    "SQLiteStorage",
    "STORAGE_KEY",
    "DEFAULT_WATCHLIST",
    # Exceptions
    "PortfolioError",
    "InvalidInputError",
    "InvalidTransitionError",
    "PersistenceError",
    "ProviderError",
]
