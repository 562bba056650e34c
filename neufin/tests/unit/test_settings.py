"""
NEUFIN — Unit Tests for Environment Configuration
"""
import pytest

from neufin.config.settings import (
    AlphaSettings, AppSettings, BiasSettings, DatabaseSettings, DataSourceSettings, LLMSettings,
)


@pytest.fixture
def env(monkeypatch):
    for name in ("BATCH_SIZE", "QUOTE_BATCH_SIZE", "ALPHA_BATCH_SIZE", "DATABASE_URL", "LLM_MODEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestEnvironmentNames:
    def test_documented_names_are_read(self, env):
        env.setenv("DATABASE_URL", "sqlite+aiosqlite:///other.db")
        env.setenv("DB_ECHO_SQL", "true")
        env.setenv("LLM_MODEL", "gpt-4o")
        env.setenv("LLM_TIMEOUT", "3.5")
        env.setenv("QUOTE_BATCH_SIZE", "7")
        env.setenv("QUOTE_BATCH_DELAY", "0.5")
        env.setenv("QUOTE_REFRESH_INTERVAL", "30")
        env.setenv("ALPHA_VANTAGE_TIMEOUT", "4")
        env.setenv("ALPHA_BATCH_SIZE", "3")
        env.setenv("ALPHA_SIGNAL_GAP_POLICY", "nearest")
        env.setenv("BIAS_CACHE_TTL", "42")

        database = DatabaseSettings()
        assert database.db_url == "sqlite+aiosqlite:///other.db"
        assert database.echo_sql is True

        llm = LLMSettings()
        assert llm.model == "gpt-4o"
        assert llm.timeout_seconds == 3.5

        data = DataSourceSettings()
        assert data.batch_size == 7
        assert data.batch_delay_seconds == 0.5
        assert data.refresh_interval_seconds == 30
        assert data.alpha_vantage_timeout_seconds == 4

        alpha = AlphaSettings()
        assert alpha.batch_size == 3
        assert alpha.signal_gap_policy == "nearest"

        assert BiasSettings().analysis_cache_ttl_seconds == 42

    def test_batch_sizes_do_not_share_a_variable(self, env):
        env.setenv("BATCH_SIZE", "99")
        assert DataSourceSettings().batch_size == 5
        assert AlphaSettings().batch_size == 5

        env.setenv("QUOTE_BATCH_SIZE", "8")
        assert DataSourceSettings().batch_size == 8
        assert AlphaSettings().batch_size == 5

    def test_unaliased_fields_use_group_prefix(self, env):
        env.setenv("ALPHA_SENTIMENT_WEIGHT", "0.5")
        env.setenv("BIAS_LOOKBACK_DAYS", "30")
        assert AlphaSettings().sentiment_weight == 0.5
        assert BiasSettings().lookback_days == 30


class TestConstruction:
    def test_field_names_accepted_as_keywords(self, env):
        settings = DataSourceSettings(batch_size=2, batch_delay_seconds=0)
        assert settings.batch_size == 2
        assert settings.batch_delay_seconds == 0

        app = AppSettings(background_refresh=False, tracked_symbols=["AAPL"], log_level="DEBUG")
        assert app.background_refresh is False
        assert app.tracked_symbols == ["AAPL"]
        assert app.log_level == "DEBUG"
