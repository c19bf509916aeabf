"""
Periodic price refresh for the watchlist ticker and the user's holdings.

Two interval jobs run on an APScheduler AsyncIOScheduler:
- watchlist refresh: profile then quote for each watchlist symbol, in order;
  the ticker list is replaced only when a full cycle completes
- holdings refresh: one quote request per holding, all in flight at once,
  each success written back through PortfolioStore.update_stock_price

Both jobs fire immediately on start() and then on their own interval.
A cycle still running when its next run is due is skipped, not doubled.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.market_data.finnhub_client import FinnhubClient

from .models import TickerEntry
from .store import PortfolioStore

logger = logging.getLogger(__name__)

DEFAULT_WATCHLIST = ("AAPL", "GOOGL", "MSFT", "AMZN")
WATCHLIST_INTERVAL_S = 30.0
HOLDINGS_INTERVAL_S = 60.0

TickerListener = Callable[[list[TickerEntry]], None]


class RefreshScheduler:
    """Cancelable pair of periodic refresh jobs.

    Attributes:
        client: Market-data client used for quotes and profiles
        store: Portfolio store receiving holdings price updates
        watchlist: Ordered symbols shown in the ticker feed
        ticker: Result of the last completed watchlist cycle
        scheduler: Underlying APScheduler instance while running
    """

    WATCHLIST_JOB_ID = "watchlist_refresh"
    HOLDINGS_JOB_ID = "holdings_refresh"

    def __init__(
        self,
        client: FinnhubClient,
        store: PortfolioStore,
        watchlist: Sequence[str] = DEFAULT_WATCHLIST,
        watchlist_interval: float = WATCHLIST_INTERVAL_S,
        holdings_interval: float = HOLDINGS_INTERVAL_S,
    ):
        self.client = client
        self.store = store
        self.watchlist = tuple(watchlist)
        self.watchlist_interval = watchlist_interval
        self.holdings_interval = holdings_interval
        self.ticker: list[TickerEntry] = []
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._listeners: list[TickerListener] = []
        # Bumped on stop(); cycles started under an older value drop their results
        self._generation = 0

    @property
    def running(self) -> bool:
        return self.scheduler is not None

    def start(self) -> None:
        """Start both jobs with an immediate first cycle.

        Must be called from within a running asyncio event loop.
        """
        if self.scheduler is not None:
            logger.warning("Refresh scheduler already running")
            return

        scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Skip a cycle while the previous one is in flight
                "misfire_grace_time": 5,
            },
            timezone=timezone.utc,
        )
        now = datetime.now(timezone.utc)
        scheduler.add_job(
            self.refresh_watchlist,
            IntervalTrigger(seconds=self.watchlist_interval, timezone=timezone.utc),
            id=self.WATCHLIST_JOB_ID,
            name="Watchlist ticker refresh",
            next_run_time=now,
        )
        scheduler.add_job(
            self.refresh_holdings,
            IntervalTrigger(seconds=self.holdings_interval, timezone=timezone.utc),
            id=self.HOLDINGS_JOB_ID,
            name="Holdings price refresh",
            next_run_time=now,
        )
        scheduler.start()
        self.scheduler = scheduler
        logger.info(
            f"Refresh scheduler started (watchlist every {self.watchlist_interval}s, "
            f"holdings every {self.holdings_interval}s)"
        )

    def stop(self) -> None:
        """Cancel both jobs.

        Cycles still in flight are cancelled when the scheduler shuts down on
        the next loop iteration; anything they write back before that is dropped.
        """
        if self.scheduler is None:
            return

        scheduler, self.scheduler = self.scheduler, None
        self._generation += 1
        scheduler.remove_all_jobs()
        scheduler.shutdown(wait=False)
        logger.info("Refresh scheduler stopped")

    def subscribe(self, listener: TickerListener) -> Callable[[], None]:
        """Register a listener for completed ticker cycles.

        Returns:
            Callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh_watchlist(self) -> list[TickerEntry]:
        """Run one watchlist cycle.

        Symbols whose profile or quote fails are left out of this cycle.

        Returns:
            The entries fetched in this cycle, in watchlist order.
        """
        generation = self._generation
        entries: list[TickerEntry] = []

        for symbol in self.watchlist:
            try:
                profile = await self.client.get_company_profile(symbol)
                quote = await self.client.get_quote(symbol)
            except Exception as e:
                logger.error(f"Failed to fetch live feed data for {symbol}: {e}")
                continue
            entries.append(TickerEntry(symbol=symbol, name=profile.name, price=quote.price))

        if generation != self._generation:
            logger.debug("Discarding watchlist cycle that finished after stop")
            return entries

        self.ticker = entries
        logger.debug(f"Ticker refreshed: {len(entries)}/{len(self.watchlist)} symbols")
        for listener in list(self._listeners):
            try:
                listener(list(entries))
            except Exception:
                logger.exception("Ticker listener failed")
        return entries

    async def refresh_holdings(self) -> None:
        """Run one holdings cycle, fetching every held symbol concurrently."""
        generation = self._generation
        symbols = [holding.symbol for holding in self.store.holdings]
        if not symbols:
            return

        await asyncio.gather(
            *(self._refresh_holding(symbol, generation) for symbol in symbols)
        )

    async def _refresh_holding(self, symbol: str, generation: int) -> None:
        try:
            quote = await self.client.get_quote(symbol)
        except Exception as e:
            logger.error(f"Failed to update price for {symbol}: {e}")
            return

        if generation != self._generation:
            logger.debug(f"Discarding {symbol} price that arrived after stop")
            return
        if not quote.price:
            logger.warning(f"No usable price for {symbol}, keeping last known price")
            return

        self.store.update_stock_price(symbol, quote.price)
