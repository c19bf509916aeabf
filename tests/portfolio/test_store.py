"""Tests for the portfolio store (holdings state and persistence)."""

import asyncio
import json
import threading
import time

import pytest

from src.portfolio.exceptions import PersistenceError
from src.portfolio.models import Holding
from src.portfolio.storage import MemoryStorage, SQLiteStorage
from src.portfolio.store import STORAGE_KEY, PortfolioStore


class FailingStorage(MemoryStorage):
    """Storage whose reads and writes always fail."""

    def get_item(self, key):
        raise PersistenceError("disk unavailable")

    def set_item(self, key, value):
        raise PersistenceError("disk full")


class TestAddStock:
    """Tests for PortfolioStore.add_stock."""

    def test_add_new_holding(self, store: PortfolioStore) -> None:
        """Adding an unknown symbol inserts a holding."""
        holding = store.add_stock("AAPL", 10, 150.0)

        assert holding == Holding(symbol="AAPL", quantity=10, price=150.0)
        assert len(store) == 1
        assert "AAPL" in store

    def test_merge_sums_quantity_and_keeps_first_price(self, store: PortfolioStore) -> None:
        """Repeated adds sum quantity; the price of the first add is kept."""
        store.add_stock("AAPL", 10, 150.0)
        store.add_stock("AAPL", 5, 175.0)
        store.add_stock("AAPL", 1, 90.0)

        holding = store.get("AAPL")
        assert holding.quantity == 16
        assert holding.price == 150.0
        assert len(store) == 1

    def test_insertion_order_preserved(self, store: PortfolioStore) -> None:
        """Holdings are listed in the order first added."""
        store.add_stock("MSFT", 1, 300.0)
        store.add_stock("AAPL", 1, 150.0)
        store.add_stock("MSFT", 2, 310.0)

        assert [h.symbol for h in store.holdings] == ["MSFT", "AAPL"]

    def test_holdings_are_copies(self, store: PortfolioStore) -> None:
        """Mutating a returned holding does not change the store."""
        store.add_stock("AAPL", 10, 150.0)

        store.holdings[0].quantity = 999
        store.get("AAPL").price = 1.0

        assert store.get("AAPL") == Holding("AAPL", 10, 150.0)


class TestRemoveUpdateClear:
    """Tests for remove, price update and clear."""

    def test_remove_existing(self, store: PortfolioStore) -> None:
        store.add_stock("AAPL", 10, 150.0)
        store.add_stock("MSFT", 2, 300.0)

        store.remove_stock("AAPL")

        assert [h.symbol for h in store.holdings] == ["MSFT"]

    def test_remove_absent_is_noop(self, store: PortfolioStore) -> None:
        """Removing an unknown symbol leaves content and size unchanged."""
        store.add_stock("AAPL", 10, 150.0)
        before = store.holdings

        store.remove_stock("TSLA")

        assert store.holdings == before

    def test_update_price(self, store: PortfolioStore) -> None:
        store.add_stock("AAPL", 10, 150.0)

        store.update_stock_price("AAPL", 155.5)

        assert store.get("AAPL").price == 155.5
        assert store.get("AAPL").quantity == 10

    def test_update_price_absent_is_noop(self, store: PortfolioStore) -> None:
        store.add_stock("AAPL", 10, 150.0)

        store.update_stock_price("TSLA", 200.0)

        assert store.holdings == [Holding("AAPL", 10, 150.0)]

    def test_clear_portfolio(self, store: PortfolioStore) -> None:
        store.add_stock("AAPL", 10, 150.0)
        store.add_stock("MSFT", 2, 300.0)

        store.clear_portfolio()

        assert store.holdings == []
        assert len(store) == 0


class TestDerivedValues:
    """Tests for total value and filtering."""

    def test_total_value(self, store: PortfolioStore) -> None:
        store.add_stock("AAPL", 10, 150.0)
        store.add_stock("MSFT", 2, 300.0)

        assert store.total_value == pytest.approx(2100.0)

    def test_total_value_follows_price_and_quantity(self, store: PortfolioStore) -> None:
        store.add_stock("AAPL", 10, 150.0)
        store.update_stock_price("AAPL", 100.0)
        store.add_stock("AAPL", 5, 999.0)

        assert store.total_value == pytest.approx(1500.0)

    def test_total_value_empty(self, store: PortfolioStore) -> None:
        assert store.total_value == 0

    def test_filter_holdings_case_insensitive(self, store: PortfolioStore) -> None:
        store.add_stock("AAPL", 1, 150.0)
        store.add_stock("GOOGL", 1, 140.0)
        store.add_stock("MSFT", 1, 300.0)

        assert [h.symbol for h in store.filter_holdings("aa")] == ["AAPL"]
        assert [h.symbol for h in store.filter_holdings("L")] == ["AAPL", "GOOGL"]
        assert len(store.filter_holdings("")) == 3


class TestSubscribe:
    """Tests for change notification."""

    def test_listener_called_on_change(self, store: PortfolioStore) -> None:
        seen = []
        store.subscribe(lambda s: seen.append(s.total_value))

        store.add_stock("AAPL", 10, 150.0)
        store.update_stock_price("AAPL", 160.0)

        assert seen == [1500.0, 1600.0]

    def test_listener_not_called_for_noop(self, store: PortfolioStore) -> None:
        seen = []
        store.subscribe(seen.append)

        store.remove_stock("AAPL")
        store.update_stock_price("AAPL", 1.0)

        assert seen == []

    def test_unsubscribe(self, store: PortfolioStore) -> None:
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()

        store.add_stock("AAPL", 1, 1.0)

        assert seen == []

    def test_failing_listener_does_not_break_store(self, store: PortfolioStore) -> None:
        def broken(_):
            raise RuntimeError("render failed")

        store.subscribe(broken)
        store.add_stock("AAPL", 1, 1.0)

        assert "AAPL" in store


class TestPersistence:
    """Tests for persisting and restoring holdings."""

    def test_mutation_written_immediately_without_loop(self, storage: MemoryStorage) -> None:
        store = PortfolioStore(storage)
        store.add_stock("AAPL", 10, 150.0)

        data = json.loads(storage.get_item(STORAGE_KEY))
        assert data["state"]["stocks"] == [
            {"symbol": "AAPL", "quantity": 10, "price": 150.0}
        ]

    def test_restart_restores_holdings(self, storage: MemoryStorage) -> None:
        first = PortfolioStore(storage)
        first.add_stock("MSFT", 2, 300.0)
        first.add_stock("AAPL", 10, 150.0)

        second = PortfolioStore(storage)

        assert second.holdings == first.holdings

    def test_restart_with_sqlite(self, temp_db: str) -> None:
        store = PortfolioStore(SQLiteStorage(temp_db))
        store.add_stock("AAPL", 10, 150.0)
        store.remove_stock("AAPL")
        store.add_stock("GOOGL", 3, 140.0)

        reloaded = PortfolioStore(SQLiteStorage(temp_db))

        assert reloaded.holdings == [Holding("GOOGL", 3, 140.0)]

    def test_clear_is_persisted(self, storage: MemoryStorage) -> None:
        store = PortfolioStore(storage)
        store.add_stock("AAPL", 10, 150.0)
        store.clear_portfolio()

        assert PortfolioStore(storage).holdings == []

    def test_first_run_is_empty(self) -> None:
        assert PortfolioStore(MemoryStorage()).holdings == []

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "{}",
            '{"state": {"stocks": [{"symbol": "AAPL"}]}}',
            '{"state": {"stocks": [{"symbol": "AAPL", "quantity": "x", "price": 1}]}}',
            '{"state": {"stocks": null}}',
        ],
    )
    def test_corrupt_state_falls_back_to_empty(self, raw: str) -> None:
        storage = MemoryStorage({STORAGE_KEY: raw})

        assert PortfolioStore(storage).holdings == []

    def test_unreadable_storage_falls_back_to_empty(self) -> None:
        store = PortfolioStore(FailingStorage())

        assert store.holdings == []

    def test_write_failure_is_not_raised(self) -> None:
        store = PortfolioStore(FailingStorage())

        store.add_stock("AAPL", 10, 150.0)

        assert store.get("AAPL").quantity == 10

    def test_custom_storage_key(self, storage: MemoryStorage) -> None:
        store = PortfolioStore(storage, storage_key="other")
        store.add_stock("AAPL", 1, 1.0)

        assert storage.get_item("other") is not None
        assert storage.get_item(STORAGE_KEY) is None

    def test_writes_deferred_inside_event_loop(self, storage: MemoryStorage) -> None:
        """Inside a loop the write happens after the mutation returns."""
        writes = []
        original = storage.set_item

        def recording_set_item(key, value):
            writes.append(json.loads(value))
            original(key, value)

        storage.set_item = recording_set_item

        async def scenario():
            store = PortfolioStore(storage)
            store.add_stock("AAPL", 10, 150.0)
            store.add_stock("AAPL", 5, 150.0)
            assert writes == []
            await asyncio.sleep(0)
            await store.drain()

        asyncio.run(scenario())

        # Both mutations collapse into one snapshot carrying the latest state
        assert len(writes) == 1
        assert writes[0]["state"]["stocks"][0]["quantity"] == 15

    def test_flush_writes_pending_state(self, storage: MemoryStorage) -> None:
        async def scenario():
            store = PortfolioStore(storage)
            store.add_stock("AAPL", 10, 150.0)
            store.flush()
            assert storage.get_item(STORAGE_KEY) is not None

        asyncio.run(scenario())

    def test_background_write_runs_off_loop_thread(self, storage: MemoryStorage) -> None:
        writer_threads = []
        original = storage.set_item

        def recording_set_item(key, value):
            writer_threads.append(threading.current_thread())
            original(key, value)

        storage.set_item = recording_set_item

        async def scenario():
            store = PortfolioStore(storage)
            store.add_stock("AAPL", 10, 150.0)
            await asyncio.sleep(0)
            await store.drain()
            return threading.current_thread()

        loop_thread = asyncio.run(scenario())

        assert len(writer_threads) == 1
        assert writer_threads[0] is not loop_thread

    def test_slow_storage_does_not_block_loop(self, storage: MemoryStorage) -> None:
        original = storage.set_item

        def slow_set_item(key, value):
            time.sleep(0.2)
            original(key, value)

        storage.set_item = slow_set_item

        async def scenario():
            store = PortfolioStore(storage)
            store.add_stock("AAPL", 10, 150.0)
            await asyncio.sleep(0)
            started = time.monotonic()
            await asyncio.sleep(0.01)
            waited = time.monotonic() - started
            await store.drain()
            return waited

        assert asyncio.run(scenario()) < 0.15

    def test_flush_waits_for_background_write(self, storage: MemoryStorage) -> None:
        """A slow earlier snapshot never lands after a newer flushed one."""
        original = storage.set_item

        def slow_set_item(key, value):
            if json.loads(value)["state"]["stocks"][0]["quantity"] == 10:
                time.sleep(0.1)
            original(key, value)

        storage.set_item = slow_set_item

        async def scenario():
            store = PortfolioStore(storage)
            store.add_stock("AAPL", 10, 150.0)
            await asyncio.sleep(0)  # older snapshot now being written
            store.add_stock("AAPL", 5, 150.0)
            store.flush()

        asyncio.run(scenario())

        data = json.loads(storage.get_item(STORAGE_KEY))
        assert data["state"]["stocks"][0]["quantity"] == 15

    def test_close_writes_and_stops_writer(self, storage: MemoryStorage) -> None:
        async def scenario():
            store = PortfolioStore(storage)
            store.add_stock("MSFT", 2, 300.0)
            await asyncio.sleep(0)
            return store

        store = asyncio.run(scenario())
        store.close()

        assert PortfolioStore(storage).holdings == [Holding("MSFT", 2, 300.0)]
        assert store._writer is None
