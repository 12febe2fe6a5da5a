"""
Portfolio-level profit & loss aggregation.

Combines per-ticker cost basis results with each ticker's last seen price.
Every call recomputes from the given snapshot; nothing is cached between calls.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence
import structlog

from .cost_basis import compute_for_ticker, group_by_ticker, latest_price, unrealized_pnl
from .transaction import Transaction

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PositionSummary:
    """Valuation of a single ticker."""

    ticker: str
    open_quantity: int
    open_cost_basis: float
    average_cost: float
    latest_price: float
    market_value: float
    realized_pnl: float
    unrealized_pnl: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticker": self.ticker,
            "open_quantity": self.open_quantity,
            "open_cost_basis": self.open_cost_basis,
            "average_cost": self.average_cost,
            "latest_price": self.latest_price,
            "market_value": self.market_value,
            "realized_pnl": self.realized_pnl,
            "unrealized_pnl": self.unrealized_pnl,
        }


@dataclass(frozen=True)
class PortfolioSummary:
    """
    Portfolio valuation metrics.

    Attributes:
        total_spent: Gross amount paid across all buys
        total_sells: Gross proceeds across all sells, not net of cost basis
        current_value: Open units valued at each ticker's last seen price
        realized_pnl: Sum of per-ticker realized P&L
        unrealized_pnl: Sum of per-ticker unrealized P&L
        positions: Per-ticker breakdown in ledger order
    """

    total_spent: float = 0.0
    total_sells: float = 0.0
    current_value: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    positions: List[PositionSummary] = field(default_factory=list)

    @property
    def total_pnl(self) -> float:
        return self.realized_pnl + self.unrealized_pnl

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_spent": self.total_spent,
            "total_sells": self.total_sells,
            "current_value": self.current_value,
            "realized_pnl": self.realized_pnl,
            "unrealized_pnl": self.unrealized_pnl,
            "total_pnl": self.total_pnl,
            "positions": [p.to_dict() for p in self.positions],
        }


def calculate_total_spent(transactions: Sequence[Transaction]) -> float:
    """Sum of ``quantity * purchase_price`` over buys."""
    return sum((t.gross_amount for t in transactions if t.is_buy), 0.0)


def calculate_total_sells(transactions: Sequence[Transaction]) -> float:
    """Sum of ``-quantity * purchase_price`` over sells."""
    return sum((t.gross_amount for t in transactions if t.is_sell), 0.0)


def summarize_positions(transactions: Sequence[Transaction]) -> List[PositionSummary]:
    """Per-ticker valuation, grouped case-insensitively."""
    summaries = []

    for ticker, ticker_transactions in group_by_ticker(transactions).items():
        basis = compute_for_ticker(ticker_transactions)
        price = latest_price(ticker_transactions)

        summaries.append(PositionSummary(
            ticker=ticker,
            open_quantity=basis.open_quantity,
            open_cost_basis=basis.open_cost_basis,
            average_cost=basis.average_cost,
            latest_price=price,
            market_value=basis.open_quantity * price,
            realized_pnl=basis.realized_pnl,
            unrealized_pnl=unrealized_pnl(basis, price),
        ))

    return summaries


def aggregate(transactions: Sequence[Transaction]) -> PortfolioSummary:
    """
    Compute portfolio metrics from a full ledger snapshot.

    Args:
        transactions: All transactions in ledger order

    Returns:
        PortfolioSummary

    Example:
        >>> summary = aggregate([
        ...     Transaction("X", 10, 10.0, 0.0),
        ...     Transaction("X", -3, 12.0, 15.0),
        ... ])
        >>> summary.current_value, summary.unrealized_pnl
        (105.0, 35.0)
    """
    positions = summarize_positions(transactions)

    summary = PortfolioSummary(
        total_spent=calculate_total_spent(transactions),
        total_sells=calculate_total_sells(transactions),
        current_value=sum((p.market_value for p in positions), 0.0),
        realized_pnl=sum((p.realized_pnl for p in positions), 0.0),
        unrealized_pnl=sum((p.unrealized_pnl for p in positions), 0.0),
        positions=positions,
    )

    logger.debug(
        "portfolio_aggregated",
        transactions=len(transactions),
        tickers=len(positions),
        current_value=summary.current_value,
        realized_pnl=summary.realized_pnl,
        unrealized_pnl=summary.unrealized_pnl
    )

    return summary
