"""
Transaction records for portfolio tracking.

A transaction is one executed leg of a trade. The sign of ``quantity`` carries
the side: positive quantities are buys, negative quantities are sells.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Dict, Any
import structlog

from ..exceptions import ValidationError

logger = structlog.get_logger(__name__)


def normalize_ticker(ticker: str) -> str:
    """Normalize a ticker for grouping and lookup."""
    return ticker.strip().upper()


class TransactionSide(Enum):
    """
    Side of a transaction as entered by the user.

    Attributes:
        BUY: Opens or increases a position
        SELL: Reduces a position
    """
    BUY = "BUY"
    SELL = "SELL"

    def __str__(self) -> str:
        return self.value

    def signed(self, quantity: int) -> int:
        """Apply this side's sign to an unsigned quantity."""
        return quantity if self is TransactionSide.BUY else -quantity


@dataclass(frozen=True)
class Transaction:
    """
    Represents a single executed trade leg.

    Attributes:
        ticker: Ticker symbol as entered (original casing is kept)
        quantity: Signed number of units, positive for buys, negative for sells
        purchase_price: Price per unit at which this leg executed
        last_price: Most recently fetched market price for the ticker
        id: Ledger identifier, assigned on insertion

    Example:
        >>> buy = Transaction(ticker="AAPL", quantity=10, purchase_price=150.0)
        >>> buy.is_buy
        True
        >>> sell = Transaction(ticker="aapl", quantity=-4, purchase_price=175.0)
        >>> sell.normalized_ticker
        'AAPL'
    """

    ticker: str
    quantity: int
    purchase_price: float
    last_price: float = 0.0
    id: Optional[int] = None

    def __post_init__(self):
        """Validate transaction data."""
        if not self.ticker or not self.ticker.strip():
            raise ValidationError("Ticker cannot be empty", field="ticker", value=self.ticker)

        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError(
                "Quantity must be an integer",
                field="quantity",
                value=self.quantity
            )

        if self.quantity == 0:
            raise ValidationError("Quantity cannot be zero", field="quantity", value=self.quantity)

        if self.purchase_price < 0:
            raise ValidationError(
                f"Purchase price cannot be negative, got {self.purchase_price}",
                field="purchase_price",
                value=self.purchase_price
            )

        if self.last_price < 0:
            raise ValidationError(
                f"Last price cannot be negative, got {self.last_price}",
                field="last_price",
                value=self.last_price
            )

    @property
    def normalized_ticker(self) -> str:
        """Uppercased ticker used for grouping."""
        return normalize_ticker(self.ticker)

    @property
    def is_buy(self) -> bool:
        return self.quantity > 0

    @property
    def is_sell(self) -> bool:
        return self.quantity < 0

    @property
    def side(self) -> TransactionSide:
        return TransactionSide.BUY if self.is_buy else TransactionSide.SELL

    @property
    def units(self) -> int:
        """Unsigned number of units traded."""
        return abs(self.quantity)

    @property
    def gross_amount(self) -> float:
        """Units times execution price, regardless of side."""
        return self.units * self.purchase_price

    def with_last_price(self, price: float) -> "Transaction":
        """Return a copy with only ``last_price`` replaced."""
        return replace(self, last_price=price)

    def with_id(self, transaction_id: int) -> "Transaction":
        """Return a copy carrying the given ledger id."""
        return replace(self, id=transaction_id)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert transaction to dictionary representation.

        Returns:
            Dictionary with all transaction data, suitable for JSON serialization
        """
        return {
            "id": self.id,
            "ticker": self.ticker,
            "quantity": self.quantity,
            "purchase_price": self.purchase_price,
            "last_price": self.last_price,
            "side": self.side.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """
        Create transaction from dictionary representation.

        Args:
            data: Dictionary with transaction data

        Returns:
            New Transaction instance
        """
        return cls(
            id=data.get("id"),
            ticker=data["ticker"],
            quantity=int(data["quantity"]),
            purchase_price=float(data["purchase_price"]),
            last_price=float(data.get("last_price") or 0.0),
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Transaction(id={self.id}, ticker={self.ticker}, "
            f"type={self.side.value}, units={self.units}, "
            f"price={self.purchase_price:.2f}, last={self.last_price:.2f})"
        )
