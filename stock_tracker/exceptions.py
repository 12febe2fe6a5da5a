"""
Custom exception hierarchy for the stock tracker.

Exception Hierarchy:
    StockTrackerError (base)
    ├── ValidationError
    │   └── OversellError
    ├── QuoteLookupError
    │   ├── QuoteNotFoundError
    │   ├── QuoteNetworkError
    │   └── QuoteParsingError
    ├── StorageError
    ├── TransactionNotFoundError
    └── ConfigurationError

Validation errors are raised before any state is mutated. Quote lookup
errors are per-ticker and are recovered by the price refresh coordinator.
Storage errors propagate to the caller untouched.
"""

from typing import Any, Optional, Dict


class StockTrackerError(Exception):
    """
    Base exception for all stock tracker errors.

    Attributes:
        message: Human-readable error description
        details: Additional context (ticker, transaction id, etc.)
        cause: Original exception if this wraps another error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with details."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} [{detail_str}]"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {self.cause})"
        return msg


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationError(StockTrackerError):
    """
    Raised when a transaction or user entry is invalid.

    Examples:
        - Zero quantity
        - Non-positive purchase price at entry time
        - Empty ticker
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details=details, **kwargs)


class OversellError(ValidationError):
    """Raised when a sell requests more units than are currently open."""

    def __init__(self, ticker: str, requested: int, available: int, **kwargs):
        self.ticker = ticker
        self.requested = requested
        self.available = available
        details = kwargs.pop("details", {})
        details["ticker"] = ticker
        details["requested"] = requested
        details["available"] = available
        super().__init__(
            f"Cannot sell more than available quantity ({available})",
            details=details,
            **kwargs
        )


# =============================================================================
# Quote Lookup Exceptions
# =============================================================================

class QuoteLookupError(StockTrackerError):
    """Base exception for per-ticker quote lookup failures."""

    def __init__(self, message: str, ticker: Optional[str] = None, **kwargs):
        self.ticker = ticker
        details = kwargs.pop("details", {})
        if ticker:
            details["ticker"] = ticker
        super().__init__(message, details=details, **kwargs)


class QuoteNotFoundError(QuoteLookupError):
    """Raised when the provider has no quote for the ticker."""
    pass


class QuoteNetworkError(QuoteLookupError):
    """
    Raised when the quote provider cannot be reached or refuses the request.

    Examples:
        - Connection errors and timeouts
        - Invalid API key (401/403)
        - Unexpected HTTP status
    """

    def __init__(
        self,
        message: str,
        ticker: Optional[str] = None,
        status: Optional[int] = None,
        **kwargs
    ):
        self.status = status
        details = kwargs.pop("details", {})
        if status is not None:
            details["status"] = status
        super().__init__(message, ticker=ticker, details=details, **kwargs)


class QuoteParsingError(QuoteLookupError):
    """Raised when a provider response does not have the expected shape."""

    def __init__(
        self,
        message: str,
        ticker: Optional[str] = None,
        raw_data: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if raw_data:
            # Truncate raw data to prevent huge error messages
            details["raw_data"] = raw_data[:200] + "..." if len(raw_data) > 200 else raw_data
        super().__init__(message, ticker=ticker, details=details, **kwargs)


# =============================================================================
# Persistence / Lookup Exceptions
# =============================================================================

class StorageError(StockTrackerError):
    """Raised when a persistence operation fails."""
    pass


class TransactionNotFoundError(StockTrackerError):
    """Raised when a transaction id does not exist in the ledger."""

    def __init__(self, transaction_id: int, **kwargs):
        details = kwargs.pop("details", {})
        details["transaction_id"] = transaction_id
        super().__init__(
            f"No transaction found with id {transaction_id}",
            details=details,
            **kwargs
        )


class ConfigurationError(StockTrackerError):
    """
    Raised when configuration is missing or invalid.

    Examples:
        - Missing FMP API key
        - Invalid numeric environment value
    """

    def __init__(self, message: str, setting: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if setting:
            details["setting"] = setting
        super().__init__(message, details=details, **kwargs)


def is_retryable(error: Exception) -> bool:
    """
    Determine if an error is potentially retryable.

    Args:
        error: The exception to check

    Returns:
        True if the operation might succeed on retry
    """
    if isinstance(error, QuoteNetworkError):
        # Auth failures will not fix themselves
        return error.status not in (401, 403)
    return isinstance(error, (TimeoutError, ConnectionError))
