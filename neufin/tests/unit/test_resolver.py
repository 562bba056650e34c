"""
NEUFIN — Unit Tests for the Quote Resolver, Cache & Synthetic Tier
"""
import random

import pytest

from neufin.config.settings import DataSourceSettings
from neufin.data.adapters.alpha_vantage_adapter import AlphaVantageAdapter
from neufin.data.adapters.synthetic import BASE_PRICES, SyntheticMarketData
from neufin.data.adapters.yahoo_adapter import YahooFinanceAdapter
from neufin.data.cache.quote_cache import QuoteCache
from neufin.data.errors import SymbolValidationError
from neufin.data.models import AssetType, CompanyInfo, NewsItem, QuoteSource
from neufin.data.resolver import QuoteResolver
from neufin.utils.helpers import utc_now


class TestQuoteCache:
    def test_fresh_hit_then_expiry(self, clock):
        cache = QuoteCache(ttl_seconds=60, clock=clock)
        cache.put("AAPL", "quote")
        clock.advance(59)
        assert cache.get("AAPL") == "quote"
        clock.advance(2)
        assert cache.get("AAPL") is None

    def test_known_keys_survive_expiry(self, clock):
        cache = QuoteCache(ttl_seconds=60, clock=clock)
        cache.put("AAPL", "a")
        cache.put("MSFT", "m")
        clock.advance(120)
        assert cache.known_keys() == ["AAPL", "MSFT"]
        assert cache.stats["fresh_entries"] == 0

    def test_last_writer_wins(self, clock):
        cache = QuoteCache(ttl_seconds=60, clock=clock)
        cache.put("AAPL", "first")
        cache.put("AAPL", "second")
        assert cache.get("AAPL") == "second"

    def test_known_keys_are_bounded(self, clock):
        cache = QuoteCache(ttl_seconds=60, maxsize=2, clock=clock)
        cache.put("AAPL", "a")
        cache.put("MSFT", "m")
        clock.advance(120)
        cache.get("AAPL")
        cache.put("TSLA", "t")
        assert cache.known_keys() == ["AAPL", "TSLA"]
        assert cache.stats["known_keys"] == 2

    @pytest.mark.asyncio
    async def test_refresh_only_revisits_remembered_symbols(self, store, clock, provider_factory):
        settings = DataSourceSettings(batch_delay_seconds=0.0, cache_max_entries=2)
        provider = provider_factory(prices={"AAPL": 1.0, "MSFT": 2.0, "TSLA": 3.0})
        resolver = QuoteResolver(providers=[provider], store=store, settings=settings, clock=clock)
        for symbol in ("AAPL", "MSFT", "TSLA"):
            await resolver.resolve_quote(symbol)
        refreshed = await resolver.refresh_cached()
        assert [q.symbol for q in refreshed] == ["MSFT", "TSLA"]


class TestSyntheticTier:
    @pytest.mark.asyncio
    async def test_aapl_without_providers(self, offline_resolver):
        quote = await offline_resolver.resolve_quote("AAPL")
        assert quote.asset_type == AssetType.STOCK
        assert quote.source == QuoteSource.SYNTHETIC
        assert quote.company_name == "Apple Inc."
        assert quote.sector == "Technology"
        assert abs(quote.price - 180.25) <= 180.25 * 0.03 + 0.01

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol", ["BTC-USD", "EURUSD", "GLD", "QQQ", "ZZZZ", "SOLUSD"])
    async def test_always_positive_price(self, offline_resolver, symbol):
        quote = await offline_resolver.resolve_quote(symbol)
        assert quote.price > 0
        assert quote.asset_type in set(AssetType)

    def test_volatility_band_respected(self):
        synthetic = SyntheticMarketData(rng=random.Random(1))
        for _ in range(200):
            quote = synthetic.quote("EURUSD=X", AssetType.FOREX)
            assert abs(quote.change_percent) <= 1.0
            assert abs(quote.price - BASE_PRICES["EURUSD=X"]) <= BASE_PRICES["EURUSD=X"] * 0.0101

    def test_forex_precision(self):
        quote = SyntheticMarketData(rng=random.Random(3)).quote("EURUSD=X", AssetType.FOREX)
        assert round(quote.price, 4) == quote.price

    def test_unknown_company_default(self):
        info = SyntheticMarketData().company_info("QWER")
        assert info == CompanyInfo(name="QWER Corp.", sector="Unknown")

    def test_crypto_uses_formatted_symbol(self):
        quote = SyntheticMarketData(rng=random.Random(5)).quote("BTC-USD", AssetType.CRYPTO)
        assert abs(quote.price - 65420.50) <= 65420.50 * 0.08 + 0.01
        assert quote.company_name == "Bitcoin USD"


class TestResolver:
    @pytest.mark.asyncio
    async def test_invalid_symbol_raises(self, offline_resolver):
        with pytest.raises(SymbolValidationError):
            await offline_resolver.resolve_quote("NOT A SYMBOL")

    @pytest.mark.asyncio
    async def test_cached_quote_is_identical_within_ttl(self, offline_resolver, clock):
        first = await offline_resolver.resolve_quote("AAPL")
        clock.advance(30)
        second = await offline_resolver.resolve_quote("AAPL")
        assert second is first

    @pytest.mark.asyncio
    async def test_cache_expires(self, data_settings, clock, provider_factory):
        provider = provider_factory(prices={"AAPL": 190.0})
        resolver = QuoteResolver(providers=[provider], settings=data_settings, clock=clock)
        await resolver.resolve_quote("AAPL")
        clock.advance(61)
        await resolver.resolve_quote("AAPL")
        assert provider.calls == ["AAPL", "AAPL"]

    @pytest.mark.asyncio
    async def test_primary_provider_wins(self, data_settings, clock, provider_factory):
        primary = provider_factory(prices={"AAPL": 190.0})
        secondary = provider_factory(prices={"AAPL": 1.0}, source=QuoteSource.ALPHA_VANTAGE)
        resolver = QuoteResolver(providers=[primary, secondary], settings=data_settings, clock=clock)
        quote = await resolver.resolve_quote("AAPL")
        assert quote.price == 190.0
        assert quote.source == QuoteSource.YAHOO
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_falls_through_failed_provider(self, data_settings, clock, provider_factory):
        broken = provider_factory(fail=True)
        secondary = provider_factory(prices={"AAPL": 185.5}, source=QuoteSource.ALPHA_VANTAGE)
        resolver = QuoteResolver(providers=[broken, secondary], settings=data_settings, clock=clock)
        quote = await resolver.resolve_quote("AAPL")
        assert quote.price == 185.5
        assert quote.source == QuoteSource.ALPHA_VANTAGE
        # Missing company data is filled from the static table
        assert quote.company_name == "Apple Inc."

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, data_settings, clock, provider_factory):
        slow = provider_factory(prices={"AAPL": 190.0}, delay=2.0)
        resolver = QuoteResolver(providers=[slow], settings=data_settings, clock=clock)
        quote = await resolver.resolve_quote("AAPL")
        assert quote.source == QuoteSource.SYNTHETIC

    @pytest.mark.asyncio
    async def test_skips_unsupported_and_unconfigured(self, data_settings, clock, provider_factory):
        stock_only = provider_factory(prices={"BTC-USD": 1.0}, supported={AssetType.STOCK, AssetType.FOREX})
        unconfigured = provider_factory(prices={"BTC-USD": 2.0}, configured=False)
        resolver = QuoteResolver(providers=[stock_only, unconfigured], settings=data_settings, clock=clock)
        quote = await resolver.resolve_quote("BTC-USD")
        assert stock_only.calls == []
        assert unconfigured.calls == []
        assert quote.source == QuoteSource.SYNTHETIC

    @pytest.mark.asyncio
    async def test_zero_price_is_rejected(self, data_settings, clock, provider_factory):
        provider = provider_factory(prices={"AAPL": 0.0})
        resolver = QuoteResolver(providers=[provider], settings=data_settings, clock=clock)
        quote = await resolver.resolve_quote("AAPL")
        assert quote.source == QuoteSource.SYNTHETIC

    @pytest.mark.asyncio
    async def test_resolve_many_preserves_order_and_drops_invalid(self, offline_resolver):
        symbols = ["AAPL", "bad symbol", "MSFT", "SPY", "TSLA", "NVDA", "BTC-USD", "GLD"]
        quotes = await offline_resolver.resolve_many(symbols)
        assert [q.symbol for q in quotes] == ["AAPL", "MSFT", "SPY", "TSLA", "NVDA", "BTC-USD", "GLD"]

    @pytest.mark.asyncio
    async def test_resolve_map_keys_by_input(self, offline_resolver):
        quotes = await offline_resolver.resolve_map(["BTC", "ETHUSD"])
        assert set(quotes) == {"BTC", "ETHUSD"}
        assert quotes["ETHUSD"].symbol == "ETH-USD"

    @pytest.mark.asyncio
    async def test_refresh_cached_bypasses_freshness(self, data_settings, clock, provider_factory, store):
        provider = provider_factory(prices={"AAPL": 190.0, "MSFT": 400.0})
        resolver = QuoteResolver(providers=[provider], store=store, settings=data_settings, clock=clock)
        await resolver.resolve_many(["AAPL", "MSFT"])
        refreshed = await resolver.refresh_cached()
        assert len(refreshed) == 2
        assert provider.calls.count("AAPL") == 2
        history = await store.get_price_history("AAPL")
        assert len(history) == 1
        assert history[0].price == 190.0

    @pytest.mark.asyncio
    async def test_prices_recorded_under_one_key_per_instrument(self, store, data_settings, chart_yahoo_factory, clock):
        resolver = QuoteResolver(
            providers=[chart_yahoo_factory(data_settings)], store=store, settings=data_settings, clock=clock,
        )
        await resolver.record_price(await resolver.resolve_quote("EURUSD"), "EURUSD")
        av_quote = AlphaVantageAdapter.parse_exchange_rate(
            {"Realtime Currency Exchange Rate": {"5. Exchange Rate": "1.0847"}}, "EURUSD",
        )
        await resolver.record_price(av_quote)
        history = await store.get_price_history("EURUSD=X")
        assert [p.price for p in history] == [1.0847, 100.0]

    @pytest.mark.asyncio
    async def test_refresh_records_under_requested_symbol(self, store, data_settings, chart_yahoo_factory, clock):
        resolver = QuoteResolver(
            providers=[chart_yahoo_factory(data_settings)], store=store, settings=data_settings, clock=clock,
        )
        await resolver.resolve_quote("BTCUSD")
        await resolver.refresh_cached()
        assert [p.price for p in await store.get_price_history("BTC-USD")] == [101.0]

    @pytest.mark.asyncio
    async def test_synthetic_quotes_not_recorded(self, offline_resolver, store):
        quote = await offline_resolver.resolve_quote("AAPL")
        assert await offline_resolver.record_price(quote) is None
        assert await store.get_price_history("AAPL") == []


class TestCompanyAndNews:
    @pytest.mark.asyncio
    async def test_company_from_provider(self, data_settings, provider_factory):
        provider = provider_factory(company=CompanyInfo(name="Acme Corp", sector="Industrials"))
        resolver = QuoteResolver(providers=[provider], settings=data_settings)
        info = await resolver.get_company_info("ACME")
        assert info.name == "Acme Corp"

    @pytest.mark.asyncio
    async def test_company_fallback(self, data_settings, provider_factory):
        resolver = QuoteResolver(providers=[provider_factory(fail=True)], settings=data_settings)
        info = await resolver.get_company_info("TSLA")
        assert info.name == "Tesla Inc."

    @pytest.mark.asyncio
    async def test_news_from_provider(self, data_settings, provider_factory):
        item = NewsItem(headline="h", summary="s", source="x", published_at=utc_now(), symbols=["AAPL"])
        resolver = QuoteResolver(providers=[provider_factory(news=[item] * 5)], settings=data_settings)
        news = await resolver.get_news(["AAPL"], limit=3)
        assert len(news) == 3

    @pytest.mark.asyncio
    async def test_news_fallback_defaults(self, offline_resolver):
        news = await offline_resolver.get_news(limit=6)
        assert len(news) == 6
        assert {n.symbols[0] for n in news} == {"AAPL", "TSLA", "MSFT"}
        assert "{symbol}" not in news[0].headline


class TestProviderParsing:
    def test_yahoo_chart(self):
        payload = {"chart": {"result": [{
            "meta": {"previousClose": 100.0, "longName": "Apple Inc."},
            "indicators": {"quote": [{"close": [101.0, 102.0], "volume": [10, 2000]}]},
        }]}}
        quote = YahooFinanceAdapter.parse_chart(payload, "AAPL", AssetType.STOCK)
        assert quote.price == 102.0
        assert quote.change == 2.0
        assert quote.change_percent == 2.0
        assert quote.volume == 2000
        assert quote.company_name == "Apple Inc."

    def test_yahoo_chart_empty(self):
        assert YahooFinanceAdapter.parse_chart({"chart": {"result": []}}, "AAPL", AssetType.STOCK) is None

    def test_alpha_vantage_global_quote(self):
        payload = {"Global Quote": {
            "05. price": "190.50", "09. change": "1.25", "10. change percent": "0.66%",
            "06. volume": "1234567", "07. latest trading day": "2024-06-03",
        }}
        quote = AlphaVantageAdapter.parse_global_quote(payload, "aapl")
        assert quote.symbol == "AAPL"
        assert quote.price == 190.5
        assert quote.change_percent == 0.66
        assert quote.volume == 1234567

    def test_alpha_vantage_exchange_rate(self):
        payload = {"Realtime Currency Exchange Rate": {"5. Exchange Rate": "1.0847", "6. Last Refreshed": "2024-06-03 10:00:00"}}
        quote = AlphaVantageAdapter.parse_exchange_rate(payload, "EURUSD")
        assert quote.price == 1.0847
        assert quote.asset_type == AssetType.FOREX

    def test_alpha_vantage_rate_limit_payload(self):
        assert AlphaVantageAdapter.parse_global_quote({"Note": "rate limited"}, "AAPL") is None

    def test_alpha_vantage_scope(self):
        adapter = AlphaVantageAdapter()
        assert adapter.supports(AssetType.STOCK)
        assert adapter.supports(AssetType.FOREX)
        assert not adapter.supports(AssetType.CRYPTO)
