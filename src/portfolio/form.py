"""
Add-stock form: input validation, quote lookup and the form state machine.

The form moves between four states:
- CLOSED: not shown
- OPEN_IDLE: shown, waiting for input or submit
- OPEN_VALIDATING: submit pressed, checking input
- OPEN_LOADING: input valid, quote request in flight

A quote that arrives after the form was cancelled (or closed and reopened)
is discarded instead of being added to the portfolio.
"""

import logging
import re
from enum import Enum
from typing import Callable, Optional

from src.market_data.finnhub_client import FinnhubAPIError, FinnhubClient

from .exceptions import InvalidInputError, InvalidTransitionError
from .search import SymbolSearchDebouncer
from .store import PortfolioStore

logger = logging.getLogger(__name__)

INVALID_INPUT_TITLE = "Invalid Input"
INVALID_INPUT_MESSAGE = "Please enter a valid stock symbol and a quantity greater than 0."
ERROR_TITLE = "Error"
ERROR_MESSAGE = "This stock requires a premium API plan or the stock symbol is invalid."

Notifier = Callable[[str, str], None]

_QUANTITY_RE = re.compile(r"[0-9]+")


class FormState(Enum):
    """States of the add-stock form."""

    CLOSED = "closed"
    OPEN_IDLE = "open_idle"
    OPEN_VALIDATING = "open_validating"
    OPEN_LOADING = "open_loading"


class AddResult(Enum):
    """Outcome of one submit."""

    ADDED = "added"
    INVALID = "invalid"  # Validation failed, nothing requested
    FAILED = "failed"  # Quote lookup failed or had no usable price
    DISCARDED = "discarded"  # Form was cancelled while the quote was in flight


VALID_TRANSITIONS: dict[FormState, dict[str, FormState]] = {
    FormState.CLOSED: {
        "open": FormState.OPEN_IDLE,
    },
    FormState.OPEN_IDLE: {
        "submit": FormState.OPEN_VALIDATING,
        "cancel": FormState.CLOSED,
    },
    FormState.OPEN_VALIDATING: {
        "invalid": FormState.OPEN_IDLE,
        "valid": FormState.OPEN_LOADING,
        "cancel": FormState.CLOSED,
    },
    FormState.OPEN_LOADING: {
        "added": FormState.CLOSED,
        "failed": FormState.OPEN_IDLE,
        "cancel": FormState.CLOSED,
    },
}


def parse_add_stock_input(symbol_text: str, quantity_text: str) -> tuple[str, int]:
    """
    Validate raw form input.

    Args:
        symbol_text: Symbol as typed
        quantity_text: Quantity as typed

    Returns:
        (upper-cased symbol, quantity)

    Raises:
        InvalidInputError: If the symbol is blank or the quantity is not a
            whole number greater than zero
    """
    symbol = (symbol_text or "").strip()
    if not symbol:
        raise InvalidInputError("Symbol is required")

    quantity_text = (quantity_text or "").strip()
    if not _QUANTITY_RE.fullmatch(quantity_text):
        raise InvalidInputError(f"Quantity must be a whole number: {quantity_text!r}")

    quantity = int(quantity_text)
    if quantity <= 0:
        raise InvalidInputError("Quantity must be greater than 0")

    return symbol.upper(), quantity


class AddStockForm:
    """
    Add-stock workflow bound to a store and a market-data client.

    The symbol field is the search debouncer's text; the quantity field is
    held here.

    Attributes:
        client: Market-data client used for the quote
        store: Portfolio store receiving the new holding
        notify: Callable taking (title, message) for user-facing alerts
        search: Debounced symbol search for the symbol field
        quantity_text: Current contents of the quantity field
        state: Current FormState
        error: Message of the last failed lookup, if any
    """

    def __init__(
        self,
        client: FinnhubClient,
        store: PortfolioStore,
        notify: Notifier,
        search: Optional[SymbolSearchDebouncer] = None,
    ):
        self.client = client
        self.store = store
        self.notify = notify
        self.search = search or SymbolSearchDebouncer(client)
        self.quantity_text = ""
        self.state = FormState.CLOSED
        self.error: Optional[str] = None
        # Bumped on open/cancel so late quote results can tell they are stale
        self._session = 0

    @property
    def is_open(self) -> bool:
        return self.state != FormState.CLOSED

    @property
    def loading(self) -> bool:
        return self.state == FormState.OPEN_LOADING

    @property
    def symbol_text(self) -> str:
        return self.search.text

    def _transition(self, action: str) -> None:
        transitions = VALID_TRANSITIONS[self.state]
        if action not in transitions:
            raise InvalidTransitionError(
                f"Invalid action '{action}' from state '{self.state.value}'. "
                f"Valid actions: {list(transitions)}"
            )
        self.state = transitions[action]

    def open(self) -> None:
        """Show the form."""
        self._transition("open")
        self._session += 1
        self.error = None

    def cancel(self) -> None:
        """Close the form from any open state, dropping transient input."""
        self._transition("cancel")
        self._session += 1
        self._clear_inputs()
        self.error = None

    def set_symbol(self, text: str) -> None:
        """Typing in the symbol field; feeds the debounced search."""
        self.search.on_input_change(text)

    def set_quantity(self, text: str) -> None:
        self.quantity_text = text

    def _clear_inputs(self) -> None:
        self.search.reset()
        self.quantity_text = ""

    async def submit(self) -> AddResult:
        """
        Validate input, fetch a quote and add the holding.

        Raises:
            InvalidTransitionError: If the form is not open and idle
        """
        self._transition("submit")

        try:
            symbol, quantity = parse_add_stock_input(self.search.text, self.quantity_text)
        except InvalidInputError as e:
            logger.info(f"Rejected add-stock input: {e}")
            self._transition("invalid")
            self.notify(INVALID_INPUT_TITLE, INVALID_INPUT_MESSAGE)
            return AddResult.INVALID

        self._transition("valid")
        self.error = None
        session = self._session

        try:
            quote = await self.client.get_quote(symbol)
            if not quote.price:
                raise FinnhubAPIError("Invalid stock symbol or no price available.")
        except Exception as e:
            if session != self._session:
                logger.debug(f"Ignoring failed lookup for {symbol}: form was closed")
                return AddResult.DISCARDED
            logger.error(f"Failed to add {symbol}: {e}")
            self.error = str(e)
            self._transition("failed")
            self.notify(ERROR_TITLE, ERROR_MESSAGE)
            return AddResult.FAILED

        if session != self._session:
            logger.info(f"Discarding quote for {symbol}: form was closed")
            return AddResult.DISCARDED

        self.store.add_stock(symbol, quantity, quote.price)
        self._clear_inputs()
        self._transition("added")
        return AddResult.ADDED
