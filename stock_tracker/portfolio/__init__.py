"""
Portfolio Tracking Module.

This module provides:
- Transaction recording in an ordered ledger
- Weighted-average cost basis per ticker
- Portfolio valuation (spent, sells, value, realized/unrealized P&L)
- Concurrent price refresh with per-ticker failure reporting
- Persistent storage with SQLite
- Watchlist entries

Example usage:
    >>> from stock_tracker.portfolio import (
    ...     Transaction, TransactionLedger, aggregate, compute_for_ticker
    ... )
    >>>
    >>> ledger = TransactionLedger()
    >>> ledger.add(Transaction("AAPL", 10, 150.0))
    >>> ledger.add(Transaction("aapl", -4, 170.0))
    >>>
    >>> basis = compute_for_ticker(ledger.by_ticker("AAPL"))
    >>> summary = aggregate(ledger.all())
"""

from .transaction import Transaction, TransactionSide, normalize_ticker
from .ledger import TransactionLedger
from .cost_basis import (
    CostBasis,
    compute_for_ticker,
    group_by_ticker,
    latest_price,
    unrealized_pnl
)
from .pnl import (
    PortfolioSummary,
    PositionSummary,
    aggregate,
    calculate_total_sells,
    calculate_total_spent,
    summarize_positions
)
from .refresh import PriceRefreshCoordinator, RefreshResult
from .watchlist import StockEntity, format_change
from .storage import PortfolioStorage
from .manager import PortfolioManager, validate_entry

__all__ = [
    # Transactions
    "Transaction",
    "TransactionSide",
    "normalize_ticker",

    # Ledger
    "TransactionLedger",

    # Cost basis
    "CostBasis",
    "compute_for_ticker",
    "group_by_ticker",
    "latest_price",
    "unrealized_pnl",

    # Aggregation
    "PortfolioSummary",
    "PositionSummary",
    "aggregate",
    "calculate_total_spent",
    "calculate_total_sells",
    "summarize_positions",

    # Price refresh
    "PriceRefreshCoordinator",
    "RefreshResult",

    # Watchlist
    "StockEntity",
    "format_change",

    # Storage
    "PortfolioStorage",

    # Manager
    "PortfolioManager",
    "validate_entry",
]
