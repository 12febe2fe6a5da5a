"""
Persistence layer for portfolio data.

Stores transactions, watchlist entries and user settings in SQLite.
"""

import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional
import structlog

from .transaction import Transaction, normalize_ticker
from .watchlist import StockEntity
from ..exceptions import StorageError

logger = structlog.get_logger(__name__)


class PortfolioStorage:
    """
    Persistent storage for transactions, watchlist and settings using SQLite.

    Example:
        >>> storage = PortfolioStorage(":memory:")
        >>> saved = storage.save_transaction(Transaction("AAPL", 10, 150.0))
        >>> storage.load_all_transactions()[0].id == saved.id
        True
    """

    def __init__(self, db_path: str = "portfolio.db"):
        """
        Initialize portfolio storage.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None

        # For in-memory databases, keep persistent connection
        if db_path == ":memory:":
            self._connection = sqlite3.connect(db_path)

        self._init_database()

        logger.info("portfolio_storage_initialized", db_path=self.db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction; file connections are closed afterwards."""
        if self._connection is not None:
            with self._connection:
                yield self._connection
            return

        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _init_database(self) -> None:
        """Initialize database schema."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS transactions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        ticker TEXT NOT NULL,
                        quantity INTEGER NOT NULL,
                        purchase_price REAL NOT NULL,
                        last_price REAL NOT NULL DEFAULT 0
                    )
                """)

                cursor.execute("""
                    CREATE INDEX IF NOT EXISTS idx_transactions_ticker
                    ON transactions(ticker)
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS stocks (
                        ticker TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        price REAL NOT NULL,
                        change TEXT NOT NULL,
                        quantity INTEGER NOT NULL DEFAULT 0,
                        purchase_price REAL NOT NULL DEFAULT 0
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS settings (
                        key TEXT PRIMARY KEY,
                        value TEXT
                    )
                """)

                logger.debug("database_schema_initialized")

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to initialize database",
                details={"db_path": self.db_path},
                cause=e
            )

    # =========================================================================
    # Transactions
    # =========================================================================

    @staticmethod
    def _row_to_transaction(row) -> Transaction:
        transaction_id, ticker, quantity, purchase_price, last_price = row
        return Transaction(
            id=transaction_id,
            ticker=ticker,
            quantity=int(quantity),
            purchase_price=float(purchase_price),
            last_price=float(last_price),
        )

    def load_all_transactions(self) -> List[Transaction]:
        """
        Load every stored transaction.

        Returns:
            Transactions ordered by id ascending
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT id, ticker, quantity, purchase_price, last_price
                    FROM transactions ORDER BY id ASC
                """)
                transactions = [self._row_to_transaction(row) for row in cursor.fetchall()]

            logger.debug("transactions_loaded", count=len(transactions))
            return transactions

        except sqlite3.Error as e:
            raise StorageError("Failed to load transactions", cause=e)

    def save_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert or replace a transaction.

        Args:
            transaction: Transaction to save; one without an id gets a new id

        Returns:
            The stored transaction, carrying its id
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT OR REPLACE INTO transactions (
                        id, ticker, quantity, purchase_price, last_price
                    ) VALUES (?, ?, ?, ?, ?)
                """, (
                    transaction.id,
                    transaction.ticker,
                    transaction.quantity,
                    transaction.purchase_price,
                    transaction.last_price
                ))
                transaction_id = transaction.id if transaction.id is not None else cursor.lastrowid

            logger.debug("transaction_saved", transaction_id=transaction_id, ticker=transaction.ticker)
            return transaction.with_id(transaction_id)

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to save transaction",
                details={"transaction_id": transaction.id, "ticker": transaction.ticker},
                cause=e
            )

    def save_transactions(self, transactions: List[Transaction]) -> None:
        """
        Replace several existing transactions in one database transaction.

        Either every row is written or none is.

        Raises:
            StorageError: If a row has no id or the write fails
        """
        if not transactions:
            return
        if any(t.id is None for t in transactions):
            raise StorageError("Bulk save requires transactions with ids")

        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.executemany("""
                    INSERT OR REPLACE INTO transactions (
                        id, ticker, quantity, purchase_price, last_price
                    ) VALUES (?, ?, ?, ?, ?)
                """, [
                    (t.id, t.ticker, t.quantity, t.purchase_price, t.last_price)
                    for t in transactions
                ])

            logger.debug("transactions_saved", count=len(transactions))

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to save transactions",
                details={"transaction_ids": [t.id for t in transactions]},
                cause=e
            )

    def delete_transaction(self, transaction_id: int) -> int:
        """
        Delete a transaction.

        Returns:
            Number of deleted rows, 0 or 1
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
                deleted = cursor.rowcount

            if deleted:
                logger.debug("transaction_deleted", transaction_id=transaction_id)
            else:
                logger.warning("transaction_not_found_for_deletion", transaction_id=transaction_id)
            return deleted

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to delete transaction",
                details={"transaction_id": transaction_id},
                cause=e
            )

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT id, ticker, quantity, purchase_price, last_price
                    FROM transactions WHERE id = ?
                """, (transaction_id,))
                row = cursor.fetchone()

            return self._row_to_transaction(row) if row else None

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to get transaction",
                details={"transaction_id": transaction_id},
                cause=e
            )

    def get_transactions_for_ticker(self, ticker: str) -> List[Transaction]:
        """Transactions for a ticker, matched case-insensitively, ordered by id."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT id, ticker, quantity, purchase_price, last_price
                    FROM transactions WHERE UPPER(TRIM(ticker)) = ?
                    ORDER BY id ASC
                """, (normalize_ticker(ticker),))
                return [self._row_to_transaction(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to get transactions",
                details={"ticker": ticker},
                cause=e
            )

    # =========================================================================
    # Watchlist
    # =========================================================================

    @staticmethod
    def _stock_params(stock: StockEntity) -> tuple:
        return (
            stock.ticker,
            stock.name,
            stock.price,
            stock.change,
            stock.quantity,
            stock.purchase_price
        )

    def save_stock(self, stock: StockEntity) -> None:
        """Insert or replace a watchlist entry."""
        self.save_stocks([stock])

    def save_stocks(self, stocks: List[StockEntity]) -> None:
        """Insert or replace several watchlist entries in one transaction."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.executemany("""
                    INSERT OR REPLACE INTO stocks (
                        ticker, name, price, change, quantity, purchase_price
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, [self._stock_params(stock) for stock in stocks])

            logger.debug("stocks_saved", count=len(stocks))

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to save watchlist entries",
                details={"tickers": [s.ticker for s in stocks]},
                cause=e
            )

    def delete_stock(self, ticker: str) -> int:
        """Remove a watchlist entry. Returns the number of deleted rows."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM stocks WHERE ticker = ?", (normalize_ticker(ticker),))
                deleted = cursor.rowcount

            if deleted:
                logger.info("stock_removed_from_watchlist", ticker=ticker)
            return deleted

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to delete watchlist entry",
                details={"ticker": ticker},
                cause=e
            )

    def get_stock(self, ticker: str) -> Optional[StockEntity]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT ticker, name, price, change, quantity, purchase_price
                    FROM stocks WHERE ticker = ? LIMIT 1
                """, (normalize_ticker(ticker),))
                row = cursor.fetchone()

            if not row:
                return None
            ticker, name, price, change, quantity, purchase_price = row
            return StockEntity(ticker, name, price, change, quantity, purchase_price)

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to get watchlist entry",
                details={"ticker": ticker},
                cause=e
            )

    def get_all_stocks(self) -> List[StockEntity]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT ticker, name, price, change, quantity, purchase_price
                    FROM stocks ORDER BY ticker
                """)
                return [StockEntity(*row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise StorageError("Failed to get watchlist", cause=e)

    # =========================================================================
    # Settings
    # =========================================================================

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
                row = cursor.fetchone()
            return row[0] if row and row[0] is not None else default

        except sqlite3.Error as e:
            raise StorageError("Failed to read setting", details={"key": key}, cause=e)

    def set_setting(self, key: str, value: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                    (key, value)
                )
            # Values can be secrets, log the key only
            logger.info("setting_saved", key=key)

        except sqlite3.Error as e:
            raise StorageError("Failed to save setting", details={"key": key}, cause=e)
