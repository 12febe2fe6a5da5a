"""
Quote provider interface.

The valuation engine only needs ``get_quote``. Historical prices and company
profiles are used by the detail views of the watchlist.
"""

from abc import ABC, abstractmethod
import math
from dataclasses import dataclass
from typing import Any, List, Optional


def is_valid_price(price: Any) -> bool:
    """True for a finite, non-negative number usable as a last price."""
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        return False
    return math.isfinite(price) and price >= 0


@dataclass(frozen=True)
class Quote:
    """Latest quote for a ticker."""

    symbol: str
    price: float
    display_name: str
    change_absolute: float = 0.0
    change_percent: float = 0.0


@dataclass(frozen=True)
class HistoricalPrice:
    """One daily bar."""

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: int


@dataclass(frozen=True)
class CompanyProfile:
    """Descriptive company information."""

    symbol: str
    company_name: str
    price: Optional[float] = None
    currency: Optional[str] = None
    industry: Optional[str] = None
    sector: Optional[str] = None
    country: Optional[str] = None
    ceo: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    market_cap: Optional[int] = None
    beta: Optional[float] = None
    image: Optional[str] = None


class QuoteProvider(ABC):
    """
    Abstract source of market quotes.

    Implementations raise ``QuoteLookupError`` subclasses on failure:
    ``QuoteNotFoundError`` for unknown tickers, ``QuoteNetworkError`` when the
    service is unreachable and ``QuoteParsingError`` for malformed responses.
    """

    @abstractmethod
    async def get_quote(self, ticker: str) -> Quote:
        """
        Fetch the latest quote for a ticker.

        Args:
            ticker: The ticker symbol

        Returns:
            Quote for the ticker
        """
        pass

    async def get_historical_prices(self, ticker: str) -> List[HistoricalPrice]:
        raise NotImplementedError(f"{type(self).__name__} does not serve historical prices")

    async def get_company_profile(self, ticker: str) -> CompanyProfile:
        raise NotImplementedError(f"{type(self).__name__} does not serve company profiles")
