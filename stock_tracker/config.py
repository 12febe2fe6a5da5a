from dataclasses import dataclass, field
import os
from dotenv import load_dotenv
import logging
import sys
from typing import Optional, TYPE_CHECKING
import structlog

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .portfolio.storage import PortfolioStorage

# Load environment variables early
load_dotenv()

# Step 1: Configure stdlib logging to use stderr
logging.basicConfig(
    format='%(asctime)s [%(levelname)-8s] %(message)s',
    stream=sys.stderr,
    level=logging.INFO,
)

# Step 2: Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.KeyValueRenderer(key_order=['timestamp', 'level', 'event']),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

API_KEY_SETTING = "api_key"
DARK_MODE_SETTING = "dark_mode"


def _get_env_var(var: str, required: bool = True, default: Optional[str] = None) -> str:
    """Get environment variable with validation."""
    value = os.environ.get(var, default)
    if required and not value:
        logger.error("missing_environment_variable", variable=var)
        return ""
    return value or ""


def _env_number(var: str, default: str, cast):
    raw = os.environ.get(var, default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {var}: {raw!r}",
            setting=var,
            cause=e
        )


@dataclass
class Config:
    """Configuration for the stock tracker, read from the environment."""

    fmp_api_key: str = field(default_factory=lambda: _get_env_var("FMP_API_KEY", required=False))
    fmp_base_url: str = field(
        default_factory=lambda: os.environ.get("FMP_BASE_URL", "https://financialmodelingprep.com/stable")
    )

    # Per-request bound, a timeout counts as a failed ticker
    quote_timeout: float = field(default_factory=lambda: _env_number("QUOTE_TIMEOUT", "10", float))
    max_concurrent_quotes: int = field(default_factory=lambda: _env_number("MAX_CONCURRENT_QUOTES", "5", int))

    db_path: str = field(default_factory=lambda: os.environ.get("PORTFOLIO_DB_PATH", "portfolio.db"))
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))

    def __post_init__(self):
        if self.quote_timeout <= 0:
            raise ConfigurationError("QUOTE_TIMEOUT must be positive", setting="QUOTE_TIMEOUT")
        if self.max_concurrent_quotes < 1:
            raise ConfigurationError(
                "MAX_CONCURRENT_QUOTES must be at least 1",
                setting="MAX_CONCURRENT_QUOTES"
            )

        # Set logging level
        log_level = getattr(logging, self.log_level.upper(), None)
        if not isinstance(log_level, int):
            raise ConfigurationError(f"Unknown log level: {self.log_level}", setting="LOG_LEVEL")
        logging.getLogger().setLevel(log_level)


def resolve_api_key(config: Config, storage: Optional["PortfolioStorage"] = None) -> str:
    """
    Pick the FMP API key to use.

    A key saved by the user in the settings table wins over the one from
    the environment.

    Raises:
        ConfigurationError: If neither source provides a key
    """
    if storage is not None:
        user_key = storage.get_setting(API_KEY_SETTING)
        if user_key:
            logger.debug("api_key_resolved", source="settings")
            return user_key

    if config.fmp_api_key:
        logger.debug("api_key_resolved", source="environment")
        return config.fmp_api_key

    raise ConfigurationError(
        "No FMP API key configured. Set FMP_API_KEY or save one in settings.",
        setting="FMP_API_KEY"
    )
