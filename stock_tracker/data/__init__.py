"""Market data access: quote provider interface and the FMP client."""

from .quote_provider import CompanyProfile, HistoricalPrice, Quote, QuoteProvider, is_valid_price
from .fmp_fetcher import FMPFetcher, get_fmp_fetcher

__all__ = [
    "Quote",
    "HistoricalPrice",
    "CompanyProfile",
    "QuoteProvider",
    "is_valid_price",
    "FMPFetcher",
    "get_fmp_fetcher",
]
