"""
NEUFIN — Central Configuration
All settings are loaded from environment variables with sensible defaults.
Fields with a validation_alias read that variable; the rest read the
group prefix plus the field name (ALPHA_SENTIMENT_WEIGHT, BIAS_LOOKBACK_DAYS).
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional


class DataSourceSettings(BaseSettings):
    """Market data provider keys, endpoints and resolver tuning."""
    yahoo_chart_url: str = Field(
        default="https://query1.finance.yahoo.com/v8/finance/chart", validation_alias="YAHOO_CHART_URL"
    )
    yahoo_search_url: str = Field(
        default="https://query2.finance.yahoo.com/v1/finance/search", validation_alias="YAHOO_SEARCH_URL"
    )
    yahoo_enabled: bool = Field(default=True, validation_alias="YAHOO_ENABLED")

    alpha_vantage_api_key: str = Field(default="", validation_alias="ALPHA_VANTAGE_API_KEY")
    alpha_vantage_url: str = Field(default="https://www.alphavantage.co/query", validation_alias="ALPHA_VANTAGE_URL")
    alpha_vantage_timeout_seconds: float = Field(default=10.0, validation_alias="ALPHA_VANTAGE_TIMEOUT")

    poll_timeout_seconds: float = Field(default=5.0, validation_alias="POLL_TIMEOUT_SECONDS")
    cache_ttl_seconds: int = Field(default=60, validation_alias="CACHE_TTL_SECONDS")
    cache_max_entries: int = Field(default=1000, validation_alias="CACHE_MAX_ENTRIES")
    batch_size: int = Field(default=5, validation_alias="QUOTE_BATCH_SIZE")
    batch_delay_seconds: float = Field(default=0.2, validation_alias="QUOTE_BATCH_DELAY")
    refresh_interval_seconds: float = Field(default=120.0, validation_alias="QUOTE_REFRESH_INTERVAL")

    class Config:
        env_file = ".env"
        env_prefix = "QUOTE_"
        populate_by_name = True
        extra = "ignore"


class LLMSettings(BaseSettings):
    """LLM provider configuration."""
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    model: str = Field(default="gpt-4o-mini", validation_alias="LLM_MODEL")
    timeout_seconds: float = Field(default=10.0, validation_alias="LLM_TIMEOUT")
    temperature: float = Field(default=0.3, validation_alias="LLM_TEMPERATURE")
    max_tokens: int = Field(default=600, validation_alias="LLM_MAX_TOKENS")

    class Config:
        env_file = ".env"
        env_prefix = "LLM_"
        populate_by_name = True
        extra = "ignore"


class AlphaSettings(BaseSettings):
    """Alpha signature weights, windows and signal bands."""
    sentiment_weight: float = 0.4
    volatility_weight: float = 0.3
    momentum_weight: float = 0.3

    history_window: int = 20
    min_volatility_points: int = 5
    min_momentum_points: int = 10
    momentum_window: int = 5

    strong_buy_min: float = 8.5
    buy_min: float = 7.0
    hold_min: float = 4.0
    hold_max: float = 6.0
    sell_min: float = 2.5
    # "literal" keeps the rule order as written, "nearest" maps (hold_max, buy_min) to hold
    signal_gap_policy: str = Field(default="literal", validation_alias="ALPHA_SIGNAL_GAP_POLICY")

    batch_size: int = Field(default=5, validation_alias="ALPHA_BATCH_SIZE")
    batch_delay_seconds: float = Field(default=1.0, validation_alias="ALPHA_BATCH_DELAY")

    class Config:
        env_file = ".env"
        env_prefix = "ALPHA_"
        populate_by_name = True
        extra = "ignore"


class BiasSettings(BaseSettings):
    """Behavioral bias detector thresholds."""
    lookback_days: int = 90
    min_round_trips: int = 3
    quick_win_days: float = 30.0
    quick_win_gain_pct: float = 5.0
    held_loser_days: float = 90.0
    held_loser_loss_pct: float = -10.0
    anchoring_band_pct: float = 0.05
    anchoring_cluster_ratio: float = 0.7
    anchoring_min_trades: int = 3
    herding_window_hours: float = 24.0
    herding_min_sentiment_records: int = 10
    herding_sentiment_score: float = 7.0
    analysis_cache_ttl_seconds: int = Field(default=300, validation_alias="BIAS_CACHE_TTL")

    class Config:
        env_file = ".env"
        env_prefix = "BIAS_"
        populate_by_name = True
        extra = "ignore"


class DatabaseSettings(BaseSettings):
    """Database configuration."""
    db_url: str = Field(default="sqlite+aiosqlite:///neufin.db", validation_alias="DATABASE_URL")
    echo_sql: bool = Field(default=False, validation_alias="DB_ECHO_SQL")
    use_memory_store: bool = Field(default=False, validation_alias="USE_MEMORY_STORE")

    class Config:
        env_file = ".env"
        env_prefix = "DB_"
        populate_by_name = True
        extra = "ignore"


class AppSettings(BaseSettings):
    """Top-level application settings."""
    app_name: str = "NEUFIN"
    version: str = "1.0.0"
    debug: bool = Field(default=False, validation_alias="DEBUG")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=5000, validation_alias="PORT")

    tracked_symbols: List[str] = Field(
        default=["AAPL", "TSLA", "MSFT", "NVDA", "SPY", "BTC-USD"],
        validation_alias="TRACKED_SYMBOLS",
    )
    background_refresh: bool = Field(default=True, validation_alias="BACKGROUND_REFRESH")

    data: DataSourceSettings = DataSourceSettings()
    llm: LLMSettings = LLMSettings()
    alpha: AlphaSettings = AlphaSettings()
    bias: BiasSettings = BiasSettings()
    database: DatabaseSettings = DatabaseSettings()

    class Config:
        env_file = ".env"
        populate_by_name = True
        extra = "ignore"


# Singleton
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def get_api_status() -> dict:
    """Report which external credentials are configured."""
    settings = get_settings()
    return {
        "openai": bool(settings.llm.openai_api_key),
        "alpha_vantage": bool(settings.data.alpha_vantage_api_key),
        "yahoo": settings.data.yahoo_enabled,
        "database": not settings.database.use_memory_store,
    }
