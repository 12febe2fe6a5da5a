"""
Price refresh coordination.

Fetches the latest price for every distinct ticker in the ledger, then writes
the successful prices back into each matching transaction's ``last_price``.
A failed ticker never aborts the refresh; it is reported in
``RefreshResult.failed_tickers`` and its rows keep their previous price.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import structlog

from .ledger import TransactionLedger
from .transaction import Transaction, normalize_ticker
from .watchlist import StockEntity
from ..data.quote_provider import Quote, QuoteProvider, is_valid_price
from ..exceptions import QuoteLookupError, is_retryable

logger = structlog.get_logger(__name__)


@dataclass
class RefreshResult:
    """
    Outcome of a ledger price refresh.

    Attributes:
        updated_count: Number of transaction rows whose last_price was rewritten
        failed_tickers: Tickers whose lookup failed, in ledger order
        prices: Successfully fetched price per normalized ticker
        updated: The rewritten transactions, for persisting; rows not yet
            in the ledger when returned by ``plan_refresh``
    """

    updated_count: int = 0
    failed_tickers: List[str] = field(default_factory=list)
    prices: Dict[str, float] = field(default_factory=dict)
    updated: List[Transaction] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_tickers)

    def failure_message(self) -> Optional[str]:
        """User-facing summary of failed tickers, None when everything succeeded."""
        if not self.failed_tickers:
            return None
        return f"Failed to refresh prices for: {', '.join(self.failed_tickers)}"


@dataclass(eq=False)
class _LookupRun:
    """Tasks of one ``fetch_quotes`` call and whether it was cancelled."""

    tasks: List[asyncio.Task]
    cancelled: bool = False


class PriceRefreshCoordinator:
    """
    Refreshes ledger prices from a quote provider.

    Requests for distinct tickers run concurrently, bounded by
    ``max_concurrency`` and each limited to ``timeout`` seconds. Writebacks
    happen in one sequential pass after every request has settled.

    Example:
        >>> coordinator = PriceRefreshCoordinator(fetcher, timeout=10)
        >>> result = await coordinator.refresh(ledger)
        >>> result.failed_tickers
        []
    """

    DEFAULT_TIMEOUT = 10.0
    DEFAULT_MAX_CONCURRENCY = 5

    def __init__(
        self,
        quote_provider: QuoteProvider,
        timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None
    ):
        self.quote_provider = quote_provider
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.max_concurrency = max_concurrency or self.DEFAULT_MAX_CONCURRENCY
        self._runs: List[_LookupRun] = []

    async def _lookup(self, ticker: str, semaphore: asyncio.Semaphore) -> Optional[Quote]:
        """Fetch one quote; returns None on any per-ticker failure."""
        async with semaphore:
            try:
                quote = await asyncio.wait_for(
                    self.quote_provider.get_quote(ticker),
                    timeout=self.timeout
                )
            except asyncio.TimeoutError:
                logger.warning("quote_lookup_timeout", ticker=ticker, timeout=self.timeout)
                return None
            except QuoteLookupError as e:
                logger.warning(
                    "quote_lookup_failed",
                    ticker=ticker,
                    error_type=type(e).__name__,
                    retryable=is_retryable(e),
                    error=str(e)
                )
                return None
            except Exception as e:
                logger.error(
                    "quote_lookup_error",
                    ticker=ticker,
                    error_type=type(e).__name__,
                    error=str(e)
                )
                return None

        # Only prices a transaction can hold are written back
        price = getattr(quote, "price", None)
        if not is_valid_price(price):
            logger.warning("quote_price_invalid", ticker=ticker, price=price)
            return None
        return quote

    async def fetch_quotes(self, tickers: Sequence[str]) -> Tuple[Dict[str, Quote], List[str]]:
        """
        Fetch quotes for several tickers concurrently.

        Args:
            tickers: Tickers to look up; duplicates by normalized form are merged

        Returns:
            Tuple of (quotes by normalized ticker, failed normalized tickers)

        Raises:
            asyncio.CancelledError: If ``cancel()`` is called while this call is pending
        """
        unique = list(dict.fromkeys(normalize_ticker(t) for t in tickers))
        if not unique:
            return {}, []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        run = _LookupRun([asyncio.ensure_future(self._lookup(t, semaphore)) for t in unique])
        self._runs.append(run)

        try:
            results = await asyncio.gather(*run.tasks)
        finally:
            self._runs.remove(run)

        if run.cancelled:
            raise asyncio.CancelledError()

        quotes: Dict[str, Quote] = {}
        failed: List[str] = []
        for ticker, quote in zip(unique, results):
            if quote is None:
                failed.append(ticker)
            else:
                quotes[ticker] = quote

        return quotes, failed

    async def fetch_prices(self, tickers: Sequence[str]) -> Tuple[Dict[str, float], List[str]]:
        """Like ``fetch_quotes`` but returns only the prices."""
        quotes, failed = await self.fetch_quotes(tickers)
        return {ticker: quote.price for ticker, quote in quotes.items()}, failed

    async def plan_refresh(self, ledger: TransactionLedger) -> RefreshResult:
        """
        Fetch prices and compute the rewritten rows without touching the ledger.

        ``RefreshResult.updated`` holds the rows as they should be stored;
        pass the result to ``apply_refresh`` once they are persisted.

        Raises:
            asyncio.CancelledError: If cancelled while lookups are pending
        """
        tickers = ledger.tickers()
        logger.info("price_refresh_started", tickers=len(tickers))

        prices, failed = await self.fetch_prices(tickers)

        updated = [
            transaction.with_last_price(prices[transaction.normalized_ticker])
            for transaction in ledger.all()
            if transaction.normalized_ticker in prices
        ]

        result = RefreshResult(
            updated_count=len(updated),
            failed_tickers=failed,
            prices=prices,
            updated=updated,
        )

        log = logger.warning if failed else logger.info
        log(
            "price_refresh_completed",
            updated=result.updated_count,
            succeeded=len(prices),
            failed=failed
        )

        return result

    @staticmethod
    def apply_refresh(ledger: TransactionLedger, result: RefreshResult) -> None:
        """Write the planned rows into the ledger in one sequential pass."""
        for transaction in result.updated:
            ledger.replace(transaction)

    async def refresh(self, ledger: TransactionLedger) -> RefreshResult:
        """
        Refresh ``last_price`` on every transaction in the ledger.

        Args:
            ledger: Ledger to read tickers from and write prices into

        Returns:
            RefreshResult with the number of rewritten rows and failed tickers

        Raises:
            asyncio.CancelledError: If cancelled; no writebacks are applied then
        """
        result = await self.plan_refresh(ledger)
        self.apply_refresh(ledger, result)
        return result

    async def refresh_watchlist(
        self,
        stocks: Sequence[StockEntity]
    ) -> Tuple[List[StockEntity], List[str]]:
        """
        Refresh price and change on watchlist entries.

        Returns:
            Tuple of (entries that received a fresh quote, failed tickers)
        """
        quotes, failed = await self.fetch_quotes([s.ticker for s in stocks])
        updated = [
            stock.with_quote(quotes[stock.ticker])
            for stock in stocks
            if stock.ticker in quotes
        ]

        logger.info("watchlist_refresh_completed", updated=len(updated), failed=failed)
        return updated, failed

    def cancel(self) -> None:
        """
        Cancel every lookup pending on this coordinator.

        Each refresh interrupted this way raises ``asyncio.CancelledError`` and
        leaves the ledger untouched. Refreshes started afterwards run normally.
        """
        if not self._runs:
            return
        pending = 0
        for run in self._runs:
            run.cancelled = True
            for task in run.tasks:
                if not task.done():
                    pending += 1
                task.cancel()
        logger.info("price_refresh_cancelled", runs=len(self._runs), pending=pending)
