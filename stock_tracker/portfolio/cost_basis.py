"""
Weighted-average cost basis calculation.

Turns one ticker's ordered transactions into realized P&L, open quantity and
the cost basis of the units still held. Everything here is a pure function
of its input.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Sequence
import structlog

from .transaction import Transaction

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CostBasis:
    """
    Result of folding a ticker's transactions.

    Attributes:
        realized_pnl: Profit/loss locked in by sells, against average cost
        open_quantity: Units still held
        open_cost_basis: Total cost of the units still held
    """

    realized_pnl: float = 0.0
    open_quantity: int = 0
    open_cost_basis: float = 0.0

    @property
    def average_cost(self) -> float:
        """Average cost per open unit, 0.0 when the position is flat."""
        if self.open_quantity <= 0:
            return 0.0
        return self.open_cost_basis / self.open_quantity

    @property
    def is_open(self) -> bool:
        return self.open_quantity > 0


def compute_for_ticker(transactions: Sequence[Transaction]) -> CostBasis:
    """
    Fold one ticker's transactions with weighted-average cost accounting.

    Buys add units and cost. A sell that fits in the open quantity realizes
    ``sold * (sell_price - average_cost)`` and removes ``sold * average_cost``
    from the basis. A sell larger than the open quantity is ignored.

    Args:
        transactions: One ticker's transactions in ledger order

    Returns:
        CostBasis for the ticker

    Example:
        >>> compute_for_ticker([
        ...     Transaction("X", 10, 10.0),
        ...     Transaction("X", 10, 20.0),
        ...     Transaction("X", -5, 25.0),
        ... ])
        CostBasis(realized_pnl=50.0, open_quantity=15, open_cost_basis=225.0)
    """
    total_shares = 0
    total_cost = 0.0
    realized_pnl = 0.0

    for transaction in transactions:
        if transaction.quantity > 0:
            total_shares += transaction.quantity
            total_cost += transaction.quantity * transaction.purchase_price
            continue

        sold_shares = -transaction.quantity
        if sold_shares > total_shares:
            # Oversell leaves the position untouched, also covers total_shares == 0
            logger.debug(
                "oversell_ignored",
                ticker=transaction.ticker,
                transaction_id=transaction.id,
                sold_shares=sold_shares,
                open_shares=total_shares
            )
            continue

        average_cost = total_cost / total_shares
        realized_pnl += sold_shares * (transaction.purchase_price - average_cost)
        total_shares -= sold_shares
        total_cost -= sold_shares * average_cost

    return CostBasis(
        realized_pnl=realized_pnl,
        open_quantity=total_shares,
        open_cost_basis=total_cost,
    )


def latest_price(transactions: Sequence[Transaction]) -> float:
    """Last ``last_price`` in ledger order, 0.0 for an empty sequence."""
    if not transactions:
        return 0.0
    return transactions[-1].last_price


def unrealized_pnl(cost_basis: CostBasis, price: float) -> float:
    """Paper P&L of the open units at ``price``, 0.0 when flat."""
    if not cost_basis.is_open:
        return 0.0
    return cost_basis.open_quantity * (price - cost_basis.average_cost)


def group_by_ticker(transactions: Sequence[Transaction]) -> Dict[str, List[Transaction]]:
    """Group transactions by normalized ticker, keeping ledger order within and across groups."""
    grouped: Dict[str, List[Transaction]] = OrderedDict()
    for transaction in transactions:
        grouped.setdefault(transaction.normalized_ticker, []).append(transaction)
    return grouped
