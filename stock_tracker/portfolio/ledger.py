"""
In-memory transaction ledger.

The ledger is the single owner of transaction state. It keeps records ordered
by id, and that order stands in for trade chronology everywhere else in the
package.
"""

from typing import Dict, Iterable, Iterator, List, Optional
import structlog

from .transaction import Transaction, normalize_ticker
from ..exceptions import ValidationError

logger = structlog.get_logger(__name__)


class TransactionLedger:
    """
    Append/replace/delete log of transactions.

    Example:
        >>> ledger = TransactionLedger()
        >>> txn_id = ledger.add(Transaction("AAPL", 10, 150.0))
        >>> ledger.net_quantity("aapl")
        10
    """

    def __init__(self, transactions: Optional[Iterable[Transaction]] = None):
        self._transactions: Dict[int, Transaction] = {}
        if transactions is not None:
            self.load(transactions)

    def __len__(self) -> int:
        return len(self._transactions)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.all())

    def _next_id(self) -> int:
        return max(self._transactions, default=0) + 1

    def load(self, transactions: Iterable[Transaction]) -> None:
        """Replace the ledger contents with a stored snapshot."""
        snapshot: Dict[int, Transaction] = {}
        for transaction in transactions:
            if transaction.id is None:
                raise ValidationError(
                    "Stored transactions must carry an id",
                    field="id",
                    details={"ticker": transaction.ticker}
                )
            snapshot[transaction.id] = transaction
        self._transactions = snapshot
        logger.debug("ledger_loaded", transactions=len(snapshot))

    def add(self, transaction: Transaction) -> int:
        """
        Append a transaction, assigning a fresh id when it has none.

        Raises:
            ValidationError: If the explicit id is already taken
        """
        if transaction.id is None:
            transaction = transaction.with_id(self._next_id())
        elif transaction.id in self._transactions:
            raise ValidationError(
                f"Transaction id {transaction.id} already exists",
                field="id",
                value=transaction.id
            )

        self._transactions[transaction.id] = transaction

        logger.debug(
            "ledger_transaction_added",
            transaction_id=transaction.id,
            ticker=transaction.ticker,
            quantity=transaction.quantity
        )
        return transaction.id

    def remove(self, transaction_id: int) -> int:
        """Remove a transaction by id. Returns the number of removed records."""
        removed = self._transactions.pop(transaction_id, None)
        if removed is None:
            return 0
        logger.debug("ledger_transaction_removed", transaction_id=transaction_id)
        return 1

    def replace(self, transaction: Transaction) -> None:
        """Upsert a transaction by id."""
        if transaction.id is None:
            raise ValidationError("Cannot replace a transaction without an id", field="id")
        self._transactions[transaction.id] = transaction

    def get(self, transaction_id: int) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def all(self) -> List[Transaction]:
        """All transactions ordered by id ascending."""
        return [self._transactions[key] for key in sorted(self._transactions)]

    def by_ticker(self, ticker: str) -> List[Transaction]:
        """Transactions for one ticker, matched case-insensitively."""
        wanted = normalize_ticker(ticker)
        return [t for t in self.all() if t.normalized_ticker == wanted]

    def tickers(self) -> List[str]:
        """Distinct normalized tickers in order of first appearance."""
        seen: Dict[str, None] = {}
        for transaction in self.all():
            seen.setdefault(transaction.normalized_ticker, None)
        return list(seen)

    def net_quantity(self, ticker: str, exclude_id: Optional[int] = None) -> int:
        """
        Sum of signed quantities for a ticker.

        Args:
            ticker: Ticker to check, any casing
            exclude_id: Transaction to leave out, used when editing a row

        Returns:
            Net units currently held according to the raw ledger
        """
        return sum(
            t.quantity
            for t in self.by_ticker(ticker)
            if exclude_id is None or t.id != exclude_id
        )

    def __repr__(self) -> str:
        return f"TransactionLedger(transactions={len(self)}, tickers={len(self.tickers())})"
