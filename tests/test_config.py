"""
Unit tests for configuration and the exception hierarchy.
"""

import pytest

from stock_tracker.config import Config, resolve_api_key
from stock_tracker.exceptions import (
    ConfigurationError,
    OversellError,
    QuoteNetworkError,
    QuoteNotFoundError,
    QuoteParsingError,
    StockTrackerError,
    ValidationError,
    is_retryable,
)
from stock_tracker.portfolio import PortfolioStorage


class TestConfig:
    """Test environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        for var in ("QUOTE_TIMEOUT", "MAX_CONCURRENT_QUOTES", "PORTFOLIO_DB_PATH", "LOG_LEVEL", "FMP_BASE_URL"):
            monkeypatch.delenv(var, raising=False)

        config = Config()

        assert config.quote_timeout == 10.0
        assert config.max_concurrent_quotes == 5
        assert config.db_path == "portfolio.db"
        assert config.fmp_base_url == "https://financialmodelingprep.com/stable"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("QUOTE_TIMEOUT", "2.5")
        monkeypatch.setenv("MAX_CONCURRENT_QUOTES", "3")

        config = Config()

        assert config.quote_timeout == 2.5
        assert config.max_concurrent_quotes == 3

    def test_invalid_number(self, monkeypatch):
        monkeypatch.setenv("QUOTE_TIMEOUT", "soon")

        with pytest.raises(ConfigurationError, match="QUOTE_TIMEOUT"):
            Config()

    def test_non_positive_timeout(self, monkeypatch):
        monkeypatch.setenv("QUOTE_TIMEOUT", "0")

        with pytest.raises(ConfigurationError):
            Config()

    def test_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")

        with pytest.raises(ConfigurationError):
            Config()


class TestResolveApiKey:
    """Test API key precedence."""

    def test_environment_key(self):
        assert resolve_api_key(Config(fmp_api_key="env-key")) == "env-key"

    def test_saved_key_wins(self):
        storage = PortfolioStorage(":memory:")
        storage.set_setting("api_key", "saved-key")

        assert resolve_api_key(Config(fmp_api_key="env-key"), storage) == "saved-key"

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            resolve_api_key(Config(fmp_api_key=""), PortfolioStorage(":memory:"))


class TestExceptions:
    """Test exception details and retry classification."""

    def test_hierarchy(self):
        assert issubclass(OversellError, ValidationError)
        assert issubclass(QuoteNotFoundError, StockTrackerError)

    def test_details_in_message(self):
        error = OversellError("AAPL", requested=6, available=5)

        assert error.message == "Cannot sell more than available quantity (5)"
        assert error.details["requested"] == 6
        assert "available=5" in str(error)

    def test_cause_in_message(self):
        error = QuoteNetworkError("Could not reach FMP", ticker="AAPL", cause=OSError("reset"))

        assert "caused by: OSError" in str(error)

    def test_raw_data_truncated(self):
        error = QuoteParsingError("bad", raw_data="x" * 500)

        assert len(error.details["raw_data"]) == 203

    def test_is_retryable(self):
        assert is_retryable(QuoteNetworkError("down", status=503))
        assert is_retryable(QuoteNetworkError("down"))
        assert not is_retryable(QuoteNetworkError("bad key", status=401))
        assert not is_retryable(QuoteNotFoundError("missing"))
        assert is_retryable(TimeoutError())
