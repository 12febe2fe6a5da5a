"""
Financial Modeling Prep (FMP) quote client.

Async aiohttp client for the FMP stable endpoints the tracker uses:
- quote: latest price, name and daily change
- historical-price-eod/full: daily bars
- profile: company profile

The API key is passed in explicitly; there is no module-level client state.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from ..config import Config, resolve_api_key
from ..exceptions import (
    ConfigurationError,
    QuoteNetworkError,
    QuoteNotFoundError,
    QuoteParsingError,
)
from .quote_provider import (
    CompanyProfile,
    HistoricalPrice,
    Quote,
    QuoteProvider,
    is_valid_price,
)

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://financialmodelingprep.com/stable"


class FMPFetcher(QuoteProvider):
    """
    Quote provider backed by the FMP REST API.

    Can be used as an async context manager, which owns the aiohttp session.
    Outside a context a session is created lazily and must be released with
    ``close()``.

    Example:
        >>> async with FMPFetcher(api_key="demo") as fetcher:
        ...     quote = await fetcher.get_quote("AAPL")
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "FMPFetcher":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def is_available(self) -> bool:
        """True when an API key is configured."""
        return bool(self.api_key)

    def set_api_key(self, api_key: str) -> None:
        """Swap the API key used for subsequent requests."""
        self.api_key = api_key
        logger.info("fmp_api_key_updated")

    async def _get(self, endpoint: str, ticker: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Perform a GET request against an FMP endpoint.

        Args:
            endpoint: Path relative to the base URL
            ticker: Ticker the request is for, used in errors
            params: Extra query parameters

        Returns:
            Decoded JSON payload

        Raises:
            ConfigurationError: If no API key is configured
            QuoteNotFoundError: On 404
            QuoteNetworkError: On connection errors, timeouts and non-200 statuses
            QuoteParsingError: If the body is not JSON
        """
        if not self.api_key:
            raise ConfigurationError("FMP API key is not configured", setting="FMP_API_KEY")

        query = dict(params or {})
        query["apikey"] = self.api_key
        url = f"{self.base_url}/{endpoint}"
        session = self._ensure_session()

        try:
            async with session.get(url, params=query) as response:
                if response.status == 404:
                    raise QuoteNotFoundError(f"No data for {ticker}", ticker=ticker)
                if response.status in (401, 403):
                    raise QuoteNetworkError(
                        "FMP rejected the API key",
                        ticker=ticker,
                        status=response.status
                    )
                if response.status != 200:
                    raise QuoteNetworkError(
                        f"Unexpected HTTP status {response.status} from FMP",
                        ticker=ticker,
                        status=response.status
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise QuoteParsingError("FMP response is not valid JSON", ticker=ticker, cause=e)

        except aiohttp.ClientError as e:
            logger.warning("fmp_network_error", ticker=ticker, endpoint=endpoint, error=str(e))
            raise QuoteNetworkError("Could not reach FMP", ticker=ticker, cause=e)
        except asyncio.TimeoutError as e:
            logger.warning("fmp_timeout", ticker=ticker, endpoint=endpoint, timeout=self.timeout)
            raise QuoteNetworkError("FMP request timed out", ticker=ticker, cause=e)

        # FMP reports key problems as a 200 with an error body
        if isinstance(data, dict) and "Error Message" in data:
            raise QuoteNetworkError(
                str(data["Error Message"]),
                ticker=ticker,
                status=response.status
            )

        logger.debug("fmp_request_succeeded", endpoint=endpoint, ticker=ticker)
        return data

    async def get_quote(self, ticker: str) -> Quote:
        """
        Fetch the latest quote for ``ticker``.

        Raises:
            QuoteNotFoundError: If FMP has no quote for the ticker
            QuoteParsingError: If the price is missing, negative or not finite
        """
        symbol = ticker.strip().upper()
        data = await self._get("quote", symbol, {"symbol": symbol})

        if not isinstance(data, list):
            raise QuoteParsingError(
                "Expected a list from the quote endpoint",
                ticker=symbol,
                raw_data=str(data)
            )
        if not data:
            raise QuoteNotFoundError(f"No quote for {symbol}", ticker=symbol)

        item = data[0]
        try:
            price = item["price"]
            if price is None:
                raise KeyError("price")
            quote = Quote(
                symbol=item.get("symbol") or symbol,
                price=float(price),
                display_name=item.get("name") or symbol,
                change_absolute=float(item.get("change") or 0.0),
                change_percent=float(
                    item.get("changePercentage") or item.get("changesPercentage") or 0.0
                ),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise QuoteParsingError(
                "Malformed quote payload",
                ticker=symbol,
                raw_data=str(item),
                cause=e
            )

        if not is_valid_price(quote.price):
            raise QuoteParsingError(
                f"Invalid price {quote.price} in quote payload",
                ticker=symbol,
                raw_data=str(item)
            )
        return quote

    async def get_historical_prices(self, ticker: str) -> List[HistoricalPrice]:
        """Fetch daily bars for ``ticker``, most recent first as FMP returns them."""
        symbol = ticker.strip().upper()
        data = await self._get("historical-price-eod/full", symbol, {"symbol": symbol})

        # Older payloads wrap the bars in {"symbol": ..., "historical": [...]}
        if isinstance(data, dict):
            data = data.get("historical")
        if data is not None and not isinstance(data, list):
            raise QuoteParsingError(
                "Expected a list from the historical endpoint",
                ticker=symbol,
                raw_data=str(data)
            )
        if not data:
            raise QuoteNotFoundError(f"No price history for {symbol}", ticker=symbol)

        try:
            return [
                HistoricalPrice(
                    date=bar["date"],
                    open=float(bar["open"]),
                    high=float(bar["high"]),
                    low=float(bar["low"]),
                    close=float(bar["close"]),
                    volume=int(bar.get("volume") or 0),
                )
                for bar in data
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise QuoteParsingError("Malformed price history", ticker=symbol, cause=e)

    async def get_company_profile(self, ticker: str) -> CompanyProfile:
        """Fetch the company profile for ``ticker``."""
        symbol = ticker.strip().upper()
        data = await self._get("profile", symbol, {"symbol": symbol})

        if not isinstance(data, list):
            raise QuoteParsingError(
                "Expected a list from the profile endpoint",
                ticker=symbol,
                raw_data=str(data)
            )
        if not data:
            raise QuoteNotFoundError(f"No profile for {symbol}", ticker=symbol)

        item = data[0]
        market_cap = item.get("marketCap", item.get("mktCap"))
        try:
            return CompanyProfile(
                symbol=item.get("symbol") or symbol,
                company_name=item.get("companyName") or symbol,
                price=_optional_float(item.get("price")),
                currency=item.get("currency"),
                industry=item.get("industry"),
                sector=item.get("sector"),
                country=item.get("country"),
                ceo=item.get("ceo"),
                website=item.get("website"),
                description=item.get("description"),
                market_cap=int(market_cap) if market_cap is not None else None,
                beta=_optional_float(item.get("beta")),
                image=item.get("image"),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise QuoteParsingError("Malformed company profile", ticker=symbol, cause=e)


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def get_fmp_fetcher(config: Config, storage=None) -> FMPFetcher:
    """
    Build an FMPFetcher from configuration.

    Args:
        config: Tracker configuration
        storage: Optional PortfolioStorage; a user-saved key there wins

    Raises:
        ConfigurationError: If no API key is available
    """
    return FMPFetcher(
        api_key=resolve_api_key(config, storage),
        base_url=config.fmp_base_url,
        timeout=config.quote_timeout,
    )
