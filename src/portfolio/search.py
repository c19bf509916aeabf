"""Debounced symbol search for the add-stock symbol field."""

import asyncio
import logging
from typing import Callable, Optional

from src.market_data.finnhub_client import FinnhubClient

from .models import SuggestionEntry

logger = logging.getLogger(__name__)

SEARCH_DELAY_S = 0.5
MIN_QUERY_LENGTH = 2

SearchListener = Callable[["SymbolSearchDebouncer"], None]


class SymbolSearchDebouncer:
    """
    Turns keystrokes into at most one symbol search per quiet period.

    Every input change replaces the pending search task: the previous task is
    cancelled whether it is still waiting out the delay or already waiting on
    the provider, so suggestions always belong to the latest text.

    Attributes:
        client: Market-data client used for the lookup
        delay: Quiet period in seconds before a search is issued
        min_length: Shortest text that triggers a search
        text: Current contents of the symbol field
        suggestions: Latest search results in provider order
    """

    def __init__(
        self,
        client: FinnhubClient,
        delay: float = SEARCH_DELAY_S,
        min_length: int = MIN_QUERY_LENGTH,
    ):
        self.client = client
        self.delay = delay
        self.min_length = min_length
        self.text = ""
        self.suggestions: list[SuggestionEntry] = []
        self._pending: Optional[asyncio.Task] = None
        self._listeners: list[SearchListener] = []

    @property
    def pending(self) -> bool:
        """True while a search is armed or in flight."""
        return self._pending is not None and not self._pending.done()

    def on_input_change(self, text: str) -> None:
        """
        Take a new value of the symbol field.

        Must be called from within a running asyncio event loop when the
        text is long enough to search.
        """
        self.text = text
        self._cancel_pending()

        if len(text) < self.min_length:
            self._set_suggestions([])
            return

        self._notify()
        self._pending = asyncio.get_running_loop().create_task(self._search_later(text))

    def set_text(self, text: str) -> None:
        """Replace the field contents without searching."""
        self._cancel_pending()
        self.text = text
        self._set_suggestions([])

    def select_suggestion(self, symbol: str) -> None:
        """Put a suggested symbol in the field and close the suggestion list."""
        self.set_text(symbol)

    def reset(self) -> None:
        """Clear the field and suggestions, dropping any pending search."""
        self.set_text("")

    def subscribe(self, listener: SearchListener) -> Callable[[], None]:
        """Register a listener for text and suggestion changes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait(self) -> None:
        """Wait for the pending search, if any, to settle."""
        if self._pending is not None:
            await asyncio.wait({self._pending})

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _search_later(self, text: str) -> None:
        await asyncio.sleep(self.delay)
        try:
            results = await self.client.search_symbols(text)
        except Exception as e:
            logger.error(f"Error searching symbols for {text!r}: {e}")
            self._set_suggestions([])
            return

        self._set_suggestions(
            [SuggestionEntry(symbol=r.symbol, description=r.description) for r in results]
        )

    def _set_suggestions(self, suggestions: list[SuggestionEntry]) -> None:
        self.suggestions = suggestions
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Search listener failed")
