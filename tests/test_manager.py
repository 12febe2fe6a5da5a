"""
Integration tests for PortfolioManager.

Uses in-memory SQLite storage and a fake quote provider.
"""

from unittest.mock import patch

import pytest

from stock_tracker.data.quote_provider import Quote, QuoteProvider
from stock_tracker.exceptions import (
    OversellError,
    QuoteNotFoundError,
    StorageError,
    TransactionNotFoundError,
    ValidationError,
)
from stock_tracker.portfolio import PortfolioManager, PortfolioStorage, validate_entry


class StaticQuoteProvider(QuoteProvider):
    """Serves fixed prices and remembers the last API key it was given."""

    def __init__(self, prices):
        self.prices = prices
        self.api_key = None

    async def get_quote(self, ticker):
        if ticker not in self.prices:
            raise QuoteNotFoundError(f"No quote for {ticker}", ticker=ticker)
        return Quote(symbol=ticker, price=self.prices[ticker], display_name=f"{ticker} Corp",
                     change_absolute=2.0, change_percent=1.5)

    def set_api_key(self, api_key):
        self.api_key = api_key


@pytest.fixture
def storage():
    storage = PortfolioStorage(":memory:")
    yield storage
    storage.close()


@pytest.fixture
def provider():
    return StaticQuoteProvider({"AAPL": 200.0, "MSFT": 400.0})


@pytest.fixture
def manager(storage, provider):
    manager = PortfolioManager(storage, provider)
    manager.load()
    return manager


class TestValidateEntry:
    """Test raw input validation."""

    def test_strips_ticker(self):
        assert validate_entry("  aapl ", 1, 10.0) == "aapl"

    @pytest.mark.parametrize("ticker,quantity,price,message", [
        ("", 1, 10.0, "Ticker cannot be empty"),
        ("AAPL", 0, 10.0, "Quantity must be a positive number"),
        ("AAPL", -3, 10.0, "Quantity must be a positive number"),
        ("AAPL", 1, 0.0, "Price must be a positive number"),
    ])
    def test_rejects_invalid(self, ticker, quantity, price, message):
        with pytest.raises(ValidationError, match=message):
            validate_entry(ticker, quantity, price)


class TestTransactions:
    """Test adding, editing and deleting transactions."""

    def test_add_buy_persists(self, manager, storage):
        stored = manager.add_transaction("AAPL", 10, 150.0)

        assert stored.id is not None
        assert stored.quantity == 10
        assert stored.last_price == 0.0
        assert storage.get_transaction(stored.id) == stored
        assert manager.get_transaction(stored.id) == stored

    def test_add_sell_stores_negative_quantity(self, manager):
        manager.add_transaction("AAPL", 10, 150.0)

        sell = manager.add_transaction("aapl", 4, 170.0, side="sell")

        assert sell.quantity == -4
        assert manager.net_quantity("AAPL") == 6

    def test_oversell_rejected(self, manager, storage):
        manager.add_transaction("AAPL", 5, 150.0)

        with pytest.raises(OversellError) as exc_info:
            manager.add_transaction("AAPL", 6, 170.0, side="SELL")

        assert exc_info.value.available == 5
        assert len(storage.load_all_transactions()) == 1

    def test_invalid_side_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.add_transaction("AAPL", 1, 10.0, side="HOLD")

    def test_update_keeps_last_price(self, manager):
        stored = manager.add_transaction("AAPL", 10, 150.0)
        manager.ledger.replace(stored.with_last_price(180.0))

        updated = manager.update_transaction(stored.id, "AAPL", 12, 155.0)

        assert updated.quantity == 12
        assert updated.purchase_price == 155.0
        assert updated.last_price == 180.0

    def test_update_sell_excludes_edited_row(self, manager):
        """Editing a sell checks against holdings without that sell."""
        manager.add_transaction("AAPL", 10, 150.0)
        sell = manager.add_transaction("AAPL", 8, 160.0, side="SELL")

        updated = manager.update_transaction(sell.id, "AAPL", 10, 160.0, side="SELL")
        assert updated.quantity == -10

        with pytest.raises(OversellError):
            manager.update_transaction(sell.id, "AAPL", 11, 160.0, side="SELL")

    def test_update_unknown_id(self, manager):
        with pytest.raises(TransactionNotFoundError):
            manager.update_transaction(999, "AAPL", 1, 10.0)

    def test_delete(self, manager, storage):
        stored = manager.add_transaction("AAPL", 10, 150.0)

        assert manager.delete_transaction(stored.id) == 1
        assert manager.delete_transaction(stored.id) == 0
        assert storage.load_all_transactions() == []
        assert manager.transactions() == []

    def test_load_restores_ledger(self, storage, provider):
        first = PortfolioManager(storage, provider)
        first.add_transaction("MSFT", 3, 300.0)

        second = PortfolioManager(storage, provider)
        second.load()

        assert [t.ticker for t in second.transactions()] == ["MSFT"]


class TestValuation:
    """Test summary and price refresh through the manager."""

    def test_summary(self, manager):
        manager.add_transaction("AAPL", 10, 10.0)
        manager.add_transaction("AAPL", 3, 12.0, side="SELL")

        summary = manager.summary()

        assert summary.total_spent == pytest.approx(100.0)
        assert summary.total_sells == pytest.approx(36.0)
        assert summary.realized_pnl == pytest.approx(6.0)
        assert summary.current_value == 0.0

    @pytest.mark.asyncio
    async def test_refresh_persists_prices(self, manager, storage):
        manager.add_transaction("aapl", 10, 150.0)
        manager.add_transaction("TSLA", 2, 250.0)

        result = await manager.refresh_prices()

        assert result.failed_tickers == ["TSLA"]
        assert result.updated_count == 1
        assert [t.last_price for t in storage.load_all_transactions()] == [200.0, 0.0]
        assert manager.summary().current_value == pytest.approx(2000.0)


class TestStorageFailures:
    """A failed write leaves the ledger as it was."""

    def test_add(self, manager, storage):
        with patch.object(storage, "save_transaction", side_effect=StorageError("disk full")):
            with pytest.raises(StorageError):
                manager.add_transaction("AAPL", 10, 150.0)

        assert manager.transactions() == []

    def test_update(self, manager, storage):
        stored = manager.add_transaction("AAPL", 10, 150.0)

        with patch.object(storage, "save_transaction", side_effect=StorageError("disk full")):
            with pytest.raises(StorageError):
                manager.update_transaction(stored.id, "AAPL", 12, 155.0)

        assert manager.get_transaction(stored.id) == stored

    @pytest.mark.asyncio
    async def test_refresh(self, manager, storage):
        manager.add_transaction("AAPL", 10, 150.0)

        with patch.object(storage, "save_transactions", side_effect=StorageError("disk full")):
            with pytest.raises(StorageError):
                await manager.refresh_prices()

        assert [t.last_price for t in manager.transactions()] == [0.0]
        assert [t.last_price for t in storage.load_all_transactions()] == [0.0]


class TestWatchlist:
    """Test watchlist operations."""

    @pytest.mark.asyncio
    async def test_add_to_watchlist(self, manager):
        stock = await manager.add_to_watchlist(" aapl ")

        assert stock.ticker == "AAPL"
        assert stock.name == "AAPL Corp"
        assert stock.change == "2.0 (1.5%)"
        assert [s.ticker for s in manager.watchlist()] == ["AAPL"]

    @pytest.mark.asyncio
    async def test_add_empty_ticker(self, manager):
        with pytest.raises(ValidationError, match="Field cannot be empty"):
            await manager.add_to_watchlist("  ")

    @pytest.mark.asyncio
    async def test_add_unknown_ticker(self, manager):
        with pytest.raises(QuoteNotFoundError):
            await manager.add_to_watchlist("NOPE")

        assert manager.watchlist() == []

    @pytest.mark.asyncio
    async def test_refresh_watchlist(self, manager, storage, provider):
        await manager.add_to_watchlist("AAPL")
        await manager.add_to_watchlist("MSFT")
        provider.prices = {"AAPL": 210.0}

        failed = await manager.refresh_watchlist()

        assert failed == ["MSFT"]
        assert storage.get_stock("AAPL").price == 210.0
        assert storage.get_stock("MSFT").price == 400.0

    def test_remove_from_watchlist(self, manager):
        assert manager.remove_from_watchlist("AAPL") == 0


class TestSettings:
    """Test API key handling."""

    def test_set_api_key(self, manager, storage, provider):
        manager.set_api_key("  new-key ")

        assert storage.get_setting("api_key") == "new-key"
        assert provider.api_key == "new-key"

    def test_empty_api_key_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.set_api_key("")

    def test_dark_mode_preference(self, manager):
        assert manager.dark_mode() is False

        manager.set_dark_mode(True)
        assert manager.dark_mode() is True

        manager.set_dark_mode(False)
        assert manager.dark_mode() is False
