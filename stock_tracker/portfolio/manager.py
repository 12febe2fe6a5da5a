"""
Portfolio manager for tracking transactions and the watchlist.

This module provides the PortfolioManager facade used by a presentation
layer: it validates user entries, keeps the in-memory ledger and SQLite
storage in step, computes valuation on demand and runs price refreshes.
"""

from typing import List, Optional, Union
import structlog

from .ledger import TransactionLedger
from .pnl import PortfolioSummary, aggregate
from .refresh import PriceRefreshCoordinator, RefreshResult
from .storage import PortfolioStorage
from .transaction import Transaction, TransactionSide, normalize_ticker
from .watchlist import StockEntity
from ..config import API_KEY_SETTING, DARK_MODE_SETTING, Config
from ..data.quote_provider import CompanyProfile, HistoricalPrice, QuoteProvider
from ..exceptions import OversellError, TransactionNotFoundError, ValidationError

logger = structlog.get_logger(__name__)


def _coerce_side(side: Union[str, TransactionSide]) -> TransactionSide:
    if isinstance(side, TransactionSide):
        return side
    try:
        return TransactionSide(str(side).strip().upper())
    except ValueError:
        raise ValidationError("Transaction type must be BUY or SELL", field="side", value=side)


def validate_entry(ticker: str, quantity: int, purchase_price: float) -> str:
    """
    Validate raw user input for a transaction.

    Args:
        ticker: Ticker as typed
        quantity: Unsigned number of units
        purchase_price: Execution price per unit

    Returns:
        The stripped ticker

    Raises:
        ValidationError: On empty ticker, non-positive quantity or price
    """
    if not ticker or not ticker.strip():
        raise ValidationError("Ticker cannot be empty", field="ticker")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive number", field="quantity", value=quantity)
    if purchase_price is None or purchase_price <= 0:
        raise ValidationError("Price must be a positive number", field="purchase_price", value=purchase_price)
    return ticker.strip()


class PortfolioManager:
    """
    Manages the transaction ledger, its storage and the watchlist.

    Example:
        >>> manager = PortfolioManager(PortfolioStorage(":memory:"), fetcher)
        >>> manager.load()
        >>> manager.add_transaction("AAPL", 10, 150.0)
        >>> manager.add_transaction("AAPL", 4, 170.0, side="SELL")
        >>> summary = manager.summary()
        >>> result = await manager.refresh_prices()
    """

    def __init__(
        self,
        storage: PortfolioStorage,
        quote_provider: QuoteProvider,
        config: Optional[Config] = None
    ):
        """
        Initialize portfolio manager.

        Args:
            storage: Persistence backend
            quote_provider: Source of market quotes
            config: Optional configuration for refresh timeout and concurrency
        """
        self.storage = storage
        self.quote_provider = quote_provider
        self.ledger = TransactionLedger()
        self.coordinator = PriceRefreshCoordinator(
            quote_provider,
            timeout=config.quote_timeout if config else None,
            max_concurrency=config.max_concurrent_quotes if config else None,
        )

    def load(self) -> None:
        """Load the ledger from storage."""
        self.ledger.load(self.storage.load_all_transactions())
        logger.info("portfolio_loaded", transactions=len(self.ledger))

    # =========================================================================
    # Transactions
    # =========================================================================

    def transactions(self) -> List[Transaction]:
        return self.ledger.all()

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self.ledger.get(transaction_id)

    def net_quantity(self, ticker: str) -> int:
        """Units currently held for a ticker, any casing."""
        return self.ledger.net_quantity(ticker)

    def _check_oversell(
        self,
        ticker: str,
        side: TransactionSide,
        quantity: int,
        exclude_id: Optional[int] = None
    ) -> None:
        if side is not TransactionSide.SELL:
            return
        available = self.ledger.net_quantity(ticker, exclude_id=exclude_id)
        if quantity > available:
            logger.warning(
                "oversell_rejected",
                ticker=normalize_ticker(ticker),
                requested=quantity,
                available=available
            )
            raise OversellError(normalize_ticker(ticker), quantity, available)

    def add_transaction(
        self,
        ticker: str,
        quantity: int,
        purchase_price: float,
        side: Union[str, TransactionSide] = TransactionSide.BUY
    ) -> Transaction:
        """
        Record a new buy or sell.

        Args:
            ticker: Ticker symbol
            quantity: Unsigned number of units
            purchase_price: Execution price per unit
            side: BUY or SELL

        Returns:
            The stored transaction with its id

        Raises:
            ValidationError: On invalid input
            OversellError: If a sell exceeds the units held
            StorageError: If persisting fails
        """
        side = _coerce_side(side)
        ticker = validate_entry(ticker, quantity, purchase_price)
        self._check_oversell(ticker, side, quantity)

        transaction = Transaction(
            ticker=ticker,
            quantity=side.signed(quantity),
            purchase_price=purchase_price,
        )

        # Storage assigns the id, the ledger mirrors it
        stored = self.storage.save_transaction(transaction)
        self.ledger.add(stored)

        logger.info(
            "transaction_added",
            transaction_id=stored.id,
            ticker=stored.ticker,
            type=side.value,
            quantity=quantity,
            price=purchase_price
        )
        return stored

    def update_transaction(
        self,
        transaction_id: int,
        ticker: str,
        quantity: int,
        purchase_price: float,
        side: Union[str, TransactionSide] = TransactionSide.BUY
    ) -> Transaction:
        """
        Replace an existing transaction with edited values.

        The oversell check leaves out the row being edited. ``last_price``
        is kept from the existing row.

        Raises:
            TransactionNotFoundError: If the id is unknown
            ValidationError: On invalid input
            OversellError: If the edited sell exceeds the units held
        """
        existing = self.ledger.get(transaction_id)
        if existing is None:
            raise TransactionNotFoundError(transaction_id)

        side = _coerce_side(side)
        ticker = validate_entry(ticker, quantity, purchase_price)
        self._check_oversell(ticker, side, quantity, exclude_id=transaction_id)

        transaction = Transaction(
            id=transaction_id,
            ticker=ticker,
            quantity=side.signed(quantity),
            purchase_price=purchase_price,
            last_price=existing.last_price,
        )

        stored = self.storage.save_transaction(transaction)
        self.ledger.replace(stored)

        logger.info(
            "transaction_updated",
            transaction_id=transaction_id,
            ticker=stored.ticker,
            quantity=stored.quantity,
            price=purchase_price
        )
        return stored

    def delete_transaction(self, transaction_id: int) -> int:
        """
        Delete a transaction permanently.

        Returns:
            Number of removed records, 0 or 1
        """
        self.storage.delete_transaction(transaction_id)
        removed = self.ledger.remove(transaction_id)

        if removed:
            logger.info("transaction_deleted", transaction_id=transaction_id)
        else:
            logger.warning("transaction_not_found", transaction_id=transaction_id)
        return removed

    def summary(self) -> PortfolioSummary:
        """Valuation computed from the current ledger."""
        return aggregate(self.ledger.all())

    async def refresh_prices(self) -> RefreshResult:
        """
        Refresh last prices for every ticker and persist the rewritten rows.

        Returns:
            RefreshResult; failed tickers keep their previous prices

        Raises:
            StorageError: If persisting the refreshed rows fails; the
                ledger keeps its previous prices then
        """
        result = await self.coordinator.plan_refresh(self.ledger)

        # Storage first, the ledger only mirrors persisted rows
        self.storage.save_transactions(result.updated)
        self.coordinator.apply_refresh(self.ledger, result)
        return result

    def cancel_refresh(self) -> None:
        """Cancel a running refresh; nothing is written back."""
        self.coordinator.cancel()

    # =========================================================================
    # Watchlist
    # =========================================================================

    def watchlist(self) -> List[StockEntity]:
        return self.storage.get_all_stocks()

    async def add_to_watchlist(self, ticker: str) -> StockEntity:
        """
        Look up a ticker and store it on the watchlist.

        Raises:
            ValidationError: If the ticker is empty
            QuoteLookupError: If the quote cannot be fetched
        """
        if not ticker or not ticker.strip():
            raise ValidationError("Field cannot be empty", field="ticker")

        quote = await self.quote_provider.get_quote(normalize_ticker(ticker))
        stock = StockEntity.from_quote(quote)
        self.storage.save_stock(stock)

        logger.info("stock_added_to_watchlist", ticker=stock.ticker, price=stock.price)
        return stock

    def remove_from_watchlist(self, ticker: str) -> int:
        return self.storage.delete_stock(ticker)

    async def refresh_watchlist(self) -> List[str]:
        """
        Refresh every watchlist entry.

        Returns:
            Tickers whose refresh failed
        """
        stocks = self.storage.get_all_stocks()
        updated, failed = await self.coordinator.refresh_watchlist(stocks)
        if updated:
            self.storage.save_stocks(updated)
        return failed

    async def get_historical_prices(self, ticker: str) -> List[HistoricalPrice]:
        return await self.quote_provider.get_historical_prices(normalize_ticker(ticker))

    async def get_company_profile(self, ticker: str) -> CompanyProfile:
        return await self.quote_provider.get_company_profile(normalize_ticker(ticker))

    # =========================================================================
    # Settings
    # =========================================================================

    def set_api_key(self, api_key: str) -> None:
        """
        Save a user-supplied API key and hand it to the quote provider.

        Raises:
            ValidationError: If the key is empty
        """
        if not api_key or not api_key.strip():
            raise ValidationError("API key cannot be empty", field="api_key")
        self.storage.set_setting(API_KEY_SETTING, api_key.strip())

        set_key = getattr(self.quote_provider, "set_api_key", None)
        if set_key is not None:
            set_key(api_key.strip())

    def dark_mode(self) -> bool:
        return self.storage.get_setting(DARK_MODE_SETTING) == "1"

    def set_dark_mode(self, enabled: bool) -> None:
        self.storage.set_setting(DARK_MODE_SETTING, "1" if enabled else "0")

    def __repr__(self) -> str:
        """String representation for debugging."""
        summary = self.summary()
        return (
            f"PortfolioManager(transactions={len(self.ledger)}, "
            f"value={summary.current_value:.2f}, "
            f"realized={summary.realized_pnl:+.2f}, unrealized={summary.unrealized_pnl:+.2f})"
        )
