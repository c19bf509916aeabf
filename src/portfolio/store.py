"""
Portfolio store: the single owner of the user's holdings.

All holdings mutations go through PortfolioStore. Each mutation runs to
completion synchronously, notifies subscribers, and schedules a full-state
write to the key-value storage. Inside an event loop the snapshot is taken
on the loop thread and written by a single background worker, so storage
I/O never blocks the loop and writes land in mutation order. Persisted state is loaded back on
construction and fails open to an empty portfolio.
"""

import asyncio
import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, Iterator, Optional

from .exceptions import PersistenceError
from .models import Holding
from .storage import KeyValueStorage, MemoryStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "stock-portfolio"
STATE_VERSION = 0

StoreListener = Callable[["PortfolioStore"], None]


class PortfolioStore:
    """
    Holdings keyed by symbol, in insertion order.

    Attributes:
        storage: Backend receiving full-state snapshots
        storage_key: Key the snapshot is written under
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        storage_key: str = STORAGE_KEY,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self.storage_key = storage_key
        self._holdings: dict[str, Holding] = {}
        self._listeners: list[StoreListener] = []
        self._persist_pending = False
        self._writer: Optional[ThreadPoolExecutor] = None
        self._last_write: Optional[Future] = None
        self.hydrate()

    # Read access

    @property
    def holdings(self) -> list[Holding]:
        """Copies of the holdings in display order."""
        return [replace(h) for h in self._holdings.values()]

    def get(self, symbol: str) -> Optional[Holding]:
        holding = self._holdings.get(symbol)
        return replace(holding) if holding else None

    def __len__(self) -> int:
        return len(self._holdings)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._holdings

    def __iter__(self) -> Iterator[Holding]:
        return iter(self.holdings)

    @property
    def total_value(self) -> float:
        """Sum of price x quantity over all holdings."""
        return sum(h.value for h in self._holdings.values())

    def filter_holdings(self, query: str = "") -> list[Holding]:
        """Holdings whose symbol contains query, case-insensitively."""
        needle = query.strip().lower()
        return [replace(h) for h in self._holdings.values() if needle in h.symbol.lower()]

    # Mutations

    def add_stock(self, symbol: str, quantity: int, price: float) -> Holding:
        """
        Add shares of a symbol.

        The symbol is expected to be upper-cased already. An existing holding
        has the quantity summed in and keeps its current price.

        Returns:
            The resulting holding.
        """
        existing = self._holdings.get(symbol)
        if existing:
            existing.quantity += quantity
            holding = existing
            logger.info(f"Merged {quantity} shares into {symbol} (now {holding.quantity})")
        else:
            holding = Holding(symbol=symbol, quantity=quantity, price=price)
            self._holdings[symbol] = holding
            logger.info(f"Added {quantity} shares of {symbol} at ${price:.2f}")
        self._changed()
        return replace(holding)

    def remove_stock(self, symbol: str) -> None:
        """Delete the holding for symbol; no-op if absent."""
        if self._holdings.pop(symbol, None) is None:
            logger.debug(f"remove_stock: {symbol} not held")
            return
        logger.info(f"Removed {symbol}")
        self._changed()

    def update_stock_price(self, symbol: str, price: float) -> None:
        """Replace the last-known price for symbol; no-op if absent."""
        holding = self._holdings.get(symbol)
        if holding is None:
            logger.debug(f"update_stock_price: {symbol} not held, ignoring")
            return
        holding.price = price
        self._changed()

    def clear_portfolio(self) -> None:
        """Remove every holding."""
        self._holdings.clear()
        logger.info("Portfolio cleared")
        self._changed()

    # Subscription

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """
        Register a listener called after every state change.

        Returns:
            Callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Portfolio listener failed")
        self._schedule_persist()

    # Persistence

    def _serialize(self) -> str:
        return json.dumps(
            {
                "state": {"stocks": [h.to_dict() for h in self._holdings.values()]},
                "version": STATE_VERSION,
            }
        )

    def _schedule_persist(self) -> None:
        """Queue a background write on the next loop iteration, or write now if no loop runs."""
        self._persist_pending = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        loop.call_soon(self._persist_if_pending)

    def _persist_if_pending(self) -> None:
        # Several mutations in one loop iteration collapse into one write
        if not self._persist_pending:
            return
        self._persist_pending = False
        if self._writer is None:
            self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="portfolio-writer")
        self._last_write = self._writer.submit(self._write, self._serialize())

    def _write(self, snapshot: str) -> None:
        try:
            self.storage.set_item(self.storage_key, snapshot)
        except PersistenceError as e:
            logger.error(f"Failed to persist portfolio: {e}")

    def _wait_for_writer(self) -> None:
        if self._last_write is not None:
            self._last_write.result()
            self._last_write = None

    async def drain(self) -> None:
        """Wait for the background write in flight, if any."""
        if self._last_write is not None:
            await asyncio.wrap_future(self._last_write)

    def flush(self) -> None:
        """
        Write the current state now, after any background write in flight.

        Failures are logged, not raised.
        """
        self._wait_for_writer()
        self._persist_pending = False
        self._write(self._serialize())

    def close(self) -> None:
        """Flush and stop the background writer."""
        self.flush()
        if self._writer is not None:
            self._writer.shutdown(wait=True)
            self._writer = None

    def hydrate(self) -> None:
        """
        Replace in-memory holdings with the persisted snapshot.

        Missing or unreadable state leaves the portfolio empty.
        """
        self._holdings = {}
        try:
            raw = self.storage.get_item(self.storage_key)
        except PersistenceError as e:
            logger.warning(f"Could not read persisted portfolio, starting empty: {e}")
            return

        if raw is None:
            logger.debug("No persisted portfolio found")
            return

        try:
            data = json.loads(raw)
            entries = data["state"]["stocks"]
            holdings = [Holding.from_dict(entry) for entry in entries]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Persisted portfolio is corrupt, starting empty: {e}")
            return

        for holding in holdings:
            self._holdings[holding.symbol] = holding
        logger.info(f"Loaded {len(self._holdings)} holdings from storage")
