"""
Configuration module for Weather Agent.

Contains API configurations, city/series mappings, risk limits and
process-level safety switches.
"""

from dataclasses import dataclass, field
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class CityConfig:
    """Configuration for a tradeable city."""
    name: str
    series_ticker: str  # Kalshi KXHIGH series for this city's daily high
    latitude: float
    longitude: float
    timezone: str


# Kalshi settles these series on the NWS Daily Climate Report for the station
CITY_CONFIGS: dict[str, CityConfig] = {
    "nyc": CityConfig(
        name="New York",
        series_ticker="KXHIGHNY",
        latitude=40.7128,
        longitude=-74.0060,
        timezone="America/New_York",
    ),
    "chicago": CityConfig(
        name="Chicago",
        series_ticker="KXHIGHCHI",
        latitude=41.8781,
        longitude=-87.6298,
        timezone="America/Chicago",
    ),
    "miami": CityConfig(
        name="Miami",
        series_ticker="KXHIGHMI",
        latitude=25.7617,
        longitude=-80.1918,
        timezone="America/New_York",
    ),
    "austin": CityConfig(
        name="Austin",
        series_ticker="KXHIGHAT",
        latitude=30.2672,
        longitude=-97.7431,
        timezone="America/Chicago",
    ),
}


@dataclass
class APIConfig:
    """API configuration settings."""
    # Kalshi trade API (prices in cents)
    kalshi_api_base_url: str = field(
        default_factory=lambda: os.getenv(
            "KALSHI_BASE_URL", "https://api.elections.kalshi.com/trade-api/v2"
        )
    )

    # Open-Meteo (no API key required)
    open_meteo_base_url: str = "https://api.open-meteo.com/v1"
    open_meteo_ensemble_url: str = "https://ensemble-api.open-meteo.com/v1"
    ensemble_models: str = "icon_seamless,gfs_seamless,ecmwf_ifs025"

    # NWS API (no API key required, but needs User-Agent)
    nws_base_url: str = "https://api.weather.gov"
    nws_user_agent: str = field(
        default_factory=lambda: os.getenv("NWS_USER_AGENT", "(WeatherAgent, contact@example.com)")
    )

    http_timeout: float = field(
        default_factory=lambda: float(os.getenv("HTTP_TIMEOUT", "10.0"))
    )
    # How long the cycle waits on ensemble/NWS once the deterministic forecast is in
    weather_best_effort_timeout: float = field(
        default_factory=lambda: float(os.getenv("WEATHER_BEST_EFFORT_TIMEOUT", "15.0"))
    )


@dataclass
class KalshiConfig:
    """Kalshi API credentials."""
    key_id: str = field(default_factory=lambda: os.getenv("KALSHI_KEY_ID", ""))
    private_key_path: str = field(
        default_factory=lambda: os.getenv("KALSHI_PRIVATE_KEY_PATH", "./kalshi_private_key.pem")
    )


@dataclass
class TradingConfig:
    """
    Risk limits and decision parameters.

    Money amounts are integer cents; edges are percentage points.
    """

    # ========================
    # HARD RISK LIMITS
    # ========================

    # Ceiling on shares per order, whatever the edge
    max_shares: int = field(
        default_factory=lambda: int(os.getenv("MAX_SHARES", "2"))
    )

    # Do not trade below this balance
    min_balance_cents: int = field(
        default_factory=lambda: int(os.getenv("MIN_BALANCE_CENTS", "500"))
    )

    # Stop for the day once realized losses reach this amount
    max_daily_loss_cents: int = field(
        default_factory=lambda: int(os.getenv("MAX_DAILY_LOSS_CENTS", "1000"))
    )

    # Stop after this many losses in a row
    max_consecutive_losses: int = field(
        default_factory=lambda: int(os.getenv("MAX_CONSECUTIVE_LOSSES", "7"))
    )

    # Skip markets closing sooner than this
    min_minutes_to_expiry: float = field(
        default_factory=lambda: float(os.getenv("MIN_MINUTES_TO_EXPIRY", "30"))
    )

    # ========================
    # DECISION PARAMETERS
    # ========================

    min_edge_pp: float = field(
        default_factory=lambda: float(os.getenv("MIN_EDGE_PP", "5.0"))
    )

    # Never pay more than even money
    max_price_cents: int = field(
        default_factory=lambda: int(os.getenv("MAX_PRICE_CENTS", "50"))
    )

    # At or below this spread we pay the ask, above it we bid the midpoint
    tight_spread_cents: int = field(
        default_factory=lambda: int(os.getenv("TIGHT_SPREAD_CENTS", "4"))
    )

    # ========================
    # BOOKKEEPING
    # ========================

    # Pending ledger entries older than this with no settlement are voided
    pending_timeout_hours: float = field(
        default_factory=lambda: float(os.getenv("PENDING_TIMEOUT_HOURS", "48"))
    )

    def __post_init__(self):
        """Validate configuration values."""
        assert self.max_shares >= 1, "max_shares must be at least 1"
        assert self.min_balance_cents >= 0, "min_balance_cents must be non-negative"
        assert self.max_daily_loss_cents > 0, "max_daily_loss_cents must be positive"
        assert self.max_consecutive_losses > 0, "max_consecutive_losses must be positive"
        assert self.min_minutes_to_expiry >= 0, "min_minutes_to_expiry must be non-negative"
        assert 0 < self.min_edge_pp < 100, "min_edge_pp must be between 0 and 100"
        assert 0 < self.max_price_cents <= 50, "max_price_cents must be in (0, 50]"
        assert self.tight_spread_cents >= 0, "tight_spread_cents must be non-negative"


@dataclass
class AlertConfig:
    """Alert configuration for notifications."""
    discord_webhook_url: Optional[str] = field(
        default_factory=lambda: os.getenv("DISCORD_WEBHOOK_URL") or None
    )
    telegram_bot_token: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGRAM_BOT_TOKEN") or None
    )
    telegram_chat_id: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGRAM_CHAT_ID") or None
    )


@dataclass
class Config:
    """Main configuration container."""
    api: APIConfig = field(default_factory=APIConfig)
    kalshi: KalshiConfig = field(default_factory=KalshiConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)

    city: str = field(default_factory=lambda: os.getenv("CITY", "nyc").lower())

    paper_trade: bool = field(default_factory=lambda: _env_bool("PAPER_TRADE", True))
    confirm_live: bool = field(default_factory=lambda: _env_bool("CONFIRM_LIVE", False))

    lockfile_path: str = field(
        default_factory=lambda: os.getenv("LOCKFILE_PATH", "/tmp/weather-agent.lock")
    )
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "data"))

    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )
    log_dir: str = field(default_factory=lambda: os.getenv("LOG_DIR", "logs"))

    @property
    def live_trading(self) -> bool:
        """Real orders only when paper trading is off AND explicitly confirmed."""
        return not self.paper_trade and self.confirm_live


# Global configuration instance
config = Config()


def get_city_config(city_key: str) -> CityConfig:
    """Get configuration for a specific city."""
    city_key = city_key.lower()
    if city_key not in CITY_CONFIGS:
        raise ValueError(f"Unknown city: {city_key}. Valid options: {list(CITY_CONFIGS.keys())}")
    return CITY_CONFIGS[city_key]


def get_all_cities() -> list[str]:
    """Get list of all configured city keys."""
    return list(CITY_CONFIGS.keys())
