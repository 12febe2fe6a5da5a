"""
Unit tests for SQLite persistence.
"""

import sqlite3
from unittest.mock import patch

import pytest

from stock_tracker.exceptions import StorageError
from stock_tracker.portfolio import PortfolioStorage, StockEntity, Transaction


@pytest.fixture
def storage():
    storage = PortfolioStorage(":memory:")
    yield storage
    storage.close()


class TestTransactionStorage:
    """Test transaction persistence."""

    def test_save_assigns_id(self, storage):
        saved = storage.save_transaction(Transaction("AAPL", 10, 150.0))

        assert saved.id is not None
        assert storage.get_transaction(saved.id) == saved

    def test_load_ordered_by_id(self, storage):
        first = storage.save_transaction(Transaction("AAPL", 10, 150.0))
        second = storage.save_transaction(Transaction("msft", -1, 300.0, last_price=310.0))

        loaded = storage.load_all_transactions()

        assert [t.id for t in loaded] == [first.id, second.id]
        assert loaded[1].ticker == "msft"
        assert loaded[1].last_price == 310.0

    def test_save_existing_replaces(self, storage):
        saved = storage.save_transaction(Transaction("AAPL", 10, 150.0))

        storage.save_transaction(saved.with_last_price(175.0))

        assert len(storage.load_all_transactions()) == 1
        assert storage.get_transaction(saved.id).last_price == 175.0

    def test_save_transactions_rewrites_rows(self, storage):
        first = storage.save_transaction(Transaction("AAPL", 10, 150.0))
        second = storage.save_transaction(Transaction("MSFT", 2, 300.0))

        storage.save_transactions([first.with_last_price(175.0), second.with_last_price(310.0)])

        assert [t.last_price for t in storage.load_all_transactions()] == [175.0, 310.0]

    def test_save_transactions_requires_ids(self, storage):
        with pytest.raises(StorageError):
            storage.save_transactions([Transaction("AAPL", 1, 1.0)])

        assert storage.load_all_transactions() == []

    def test_save_transactions_empty(self, storage):
        storage.save_transactions([])

        assert storage.load_all_transactions() == []

    def test_delete(self, storage):
        saved = storage.save_transaction(Transaction("AAPL", 10, 150.0))

        assert storage.delete_transaction(saved.id) == 1
        assert storage.delete_transaction(saved.id) == 0
        assert storage.get_transaction(saved.id) is None

    def test_ids_not_reused_after_delete(self, storage):
        first = storage.save_transaction(Transaction("AAPL", 1, 1.0))
        storage.delete_transaction(first.id)

        second = storage.save_transaction(Transaction("AAPL", 1, 1.0))

        assert second.id > first.id

    def test_transactions_for_ticker_case_insensitive(self, storage):
        storage.save_transaction(Transaction("aapl", 1, 1.0))
        storage.save_transaction(Transaction("MSFT", 1, 1.0))
        storage.save_transaction(Transaction("AAPL", 2, 1.0))

        assert [t.quantity for t in storage.get_transactions_for_ticker("Aapl")] == [1, 2]

    def test_file_database_round_trip(self, tmp_path):
        db_path = str(tmp_path / "portfolio.db")
        PortfolioStorage(db_path).save_transaction(Transaction("AAPL", 3, 10.0))

        loaded = PortfolioStorage(db_path).load_all_transactions()

        assert len(loaded) == 1
        assert loaded[0].quantity == 3

    def test_sqlite_errors_wrapped(self, storage):
        storage.close()
        storage._connection = sqlite3.connect(":memory:")  # no schema

        with pytest.raises(StorageError, match="Failed to load transactions"):
            storage.load_all_transactions()

    def test_unwritable_path(self, tmp_path):
        with pytest.raises(StorageError):
            PortfolioStorage(str(tmp_path / "missing" / "dir" / "portfolio.db"))


class TestWatchlistStorage:
    """Test watchlist persistence."""

    def test_save_and_get(self, storage):
        storage.save_stock(StockEntity("aapl", "Apple Inc.", 175.0, "1.5 (0.86%)"))

        stock = storage.get_stock("AAPL")

        assert stock.ticker == "AAPL"
        assert stock.name == "Apple Inc."
        assert stock.change == "1.5 (0.86%)"

    def test_save_replaces_by_ticker(self, storage):
        storage.save_stock(StockEntity("AAPL", "Apple Inc.", 175.0, "0 (0%)"))
        storage.save_stocks([StockEntity("AAPL", "Apple Inc.", 180.0, "5 (2.8%)")])

        stocks = storage.get_all_stocks()

        assert len(stocks) == 1
        assert stocks[0].price == 180.0

    def test_delete_stock(self, storage):
        storage.save_stock(StockEntity("AAPL", "Apple Inc.", 175.0, "0 (0%)"))

        assert storage.delete_stock("aapl") == 1
        assert storage.get_stock("AAPL") is None
        assert storage.delete_stock("AAPL") == 0


class TestSettingsStorage:
    """Test the settings table."""

    def test_get_missing_setting(self, storage):
        assert storage.get_setting("api_key") is None
        assert storage.get_setting("api_key", default="x") == "x"

    def test_set_and_overwrite(self, storage):
        storage.set_setting("api_key", "first")
        storage.set_setting("api_key", "second")

        assert storage.get_setting("api_key") == "second"

    def test_setting_error_wrapped(self, storage):
        with patch.object(storage, "_connect", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(StorageError):
                storage.set_setting("api_key", "x")
