"""
Watchlist model for tracking stocks of interest.

A StockEntity is a denormalized quote snapshot keyed by ticker. It is kept
apart from the transaction ledger and does not take part in valuation.
"""

from dataclasses import dataclass, replace
import structlog

from ..data.quote_provider import Quote
from ..exceptions import ValidationError

logger = structlog.get_logger(__name__)


def format_change(change_absolute: float, change_percent: float) -> str:
    """Format a daily change for display, e.g. ``1.25 (0.84%)``."""
    return f"{change_absolute} ({change_percent}%)"


@dataclass(frozen=True)
class StockEntity:
    """
    Represents a stock on the watchlist.

    Attributes:
        ticker: Ticker symbol, unique key
        name: Company display name
        price: Last fetched price
        change: Display string of the daily change
        quantity: Units held, 0 for plain watchlist items
        purchase_price: Purchase price, 0.0 for plain watchlist items

    Example:
        >>> quote = Quote("AAPL", 175.0, "Apple Inc.", 1.5, 0.86)
        >>> StockEntity.from_quote(quote).change
        '1.5 (0.86%)'
    """

    ticker: str
    name: str
    price: float
    change: str
    quantity: int = 0
    purchase_price: float = 0.0

    def __post_init__(self):
        """Validate and normalize watchlist data."""
        if not self.ticker or not self.ticker.strip():
            raise ValidationError("Ticker cannot be empty", field="ticker", value=self.ticker)

        # Frozen dataclass, normalize through object.__setattr__
        object.__setattr__(self, "ticker", self.ticker.strip().upper())

        if self.price < 0:
            logger.warning(
                "invalid_watchlist_price",
                ticker=self.ticker,
                price=self.price,
                msg="Price should not be negative"
            )

    @classmethod
    def from_quote(cls, quote: Quote) -> "StockEntity":
        """Create a watchlist entry from a fresh quote."""
        return cls(
            ticker=quote.symbol,
            name=quote.display_name,
            price=quote.price,
            change=format_change(quote.change_absolute, quote.change_percent),
        )

    def with_quote(self, quote: Quote) -> "StockEntity":
        """Copy with price and change taken from ``quote``; other fields kept."""
        return replace(
            self,
            price=quote.price,
            change=format_change(quote.change_absolute, quote.change_percent),
        )

