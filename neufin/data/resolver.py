"""
NEUFIN — Quote Resolver
Resolves a ticker across the provider waterfall: cache, live providers in
priority order, then synthetic data. Never fails for a valid symbol.
"""
import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from neufin.config.settings import DataSourceSettings, get_settings
from neufin.data.adapters.alpha_vantage_adapter import AlphaVantageAdapter
from neufin.data.adapters.base import BaseQuoteProvider
from neufin.data.adapters.synthetic import DEFAULT_NEWS_SYMBOLS, SyntheticMarketData
from neufin.data.adapters.yahoo_adapter import YahooFinanceAdapter
from neufin.data.cache.quote_cache import Clock, QuoteCache
from neufin.data.models import (
    AssetType, CompanyInfo, NewsItem, PriceHistoryPoint, Quote, QuoteSource,
)
from neufin.data.symbols import canonical_symbol, classify_asset_type, format_for_yahoo, normalize_symbol
from neufin.db.store import PortfolioStore
from neufin.utils.helpers import chunked
from neufin.utils.logger import get_logger

logger = get_logger("resolver")

MAX_NEWS_SYMBOLS = 3


def default_providers(settings: Optional[DataSourceSettings] = None) -> List[BaseQuoteProvider]:
    """Yahoo first, Alpha Vantage second."""
    settings = settings or get_settings().data
    return [YahooFinanceAdapter(settings), AlphaVantageAdapter(settings)]


class QuoteResolver:
    """
    Multi-provider quote resolution with a TTL cache and synthetic fallback.

    Only SymbolValidationError escapes; provider failures are logged with
    the symbol and tier and the next tier is tried.
    """

    def __init__(
        self,
        providers: Optional[Sequence[BaseQuoteProvider]] = None,
        synthetic: Optional[SyntheticMarketData] = None,
        cache: Optional[QuoteCache] = None,
        store: Optional[PortfolioStore] = None,
        settings: Optional[DataSourceSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or get_settings().data
        self.providers: List[BaseQuoteProvider] = (
            list(providers) if providers is not None else default_providers(self.settings)
        )
        self.synthetic = synthetic or SyntheticMarketData()
        self.cache = cache or QuoteCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            maxsize=self.settings.cache_max_entries,
            clock=clock,
        )
        self.store = store
        self.timeout_seconds = self.settings.poll_timeout_seconds

    async def connect(self) -> None:
        for provider in self.providers:
            try:
                await provider.connect()
            except Exception as e:
                logger.warning("provider_connect_failed", provider=provider.name, error=str(e))
        logger.info("resolver_ready", providers=[p.name for p in self.providers])

    async def shutdown(self) -> None:
        for provider in self.providers:
            try:
                await provider.disconnect()
            except Exception as e:
                logger.warning("provider_disconnect_failed", provider=provider.name, error=str(e))

    def _candidates(self, asset_type: AssetType) -> List[BaseQuoteProvider]:
        return [p for p in self.providers if p.configured and p.supports(asset_type)]

    async def resolve_quote(self, symbol: str, use_cache: bool = True) -> Quote:
        """Return a quote for `symbol`, falling back to synthetic data."""
        upper = normalize_symbol(symbol)
        asset_type = classify_asset_type(upper)

        if use_cache:
            cached = self.cache.get(symbol)
            if cached is not None:
                return cached

        quote = await self._from_providers(upper, asset_type)
        if quote is None:
            quote = self.synthetic.quote(format_for_yahoo(upper, asset_type), asset_type)
            logger.info("synthetic_quote", symbol=upper, tier="synthetic", price=quote.price)

        self.cache.put(symbol, quote)
        return quote

    async def _from_providers(self, symbol: str, asset_type: AssetType) -> Optional[Quote]:
        for provider in self._candidates(asset_type):
            try:
                quote = await asyncio.wait_for(
                    provider.get_quote(symbol, asset_type), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError:
                logger.warning("provider_timeout", symbol=symbol, tier=provider.name, timeout=self.timeout_seconds)
                continue
            except Exception as e:
                logger.warning("provider_failed", symbol=symbol, tier=provider.name, error=str(e))
                continue

            if quote is not None and quote.price > 0:
                if quote.company_name is None or quote.sector is None:
                    info = self.synthetic.company_info(quote.symbol)
                    quote = quote.model_copy(update={
                        "company_name": quote.company_name or info.name,
                        "sector": quote.sector or info.sector,
                    })
                logger.debug("quote_resolved", symbol=symbol, tier=provider.name, price=quote.price)
                return quote

            logger.info("provider_empty", symbol=symbol, tier=provider.name)
        return None

    async def resolve_many(self, symbols: Sequence[str], use_cache: bool = True) -> List[Quote]:
        """Resolve in fixed-size concurrent batches; failed entries are dropped, order kept."""
        return [quote for _, quote in await self._resolve_batches(symbols, use_cache)]

    async def resolve_map(self, symbols: Sequence[str], use_cache: bool = True) -> Dict[str, Quote]:
        """Like resolve_many, keyed by the symbol as passed in."""
        return dict(await self._resolve_batches(symbols, use_cache))

    async def _resolve_batches(self, symbols: Sequence[str], use_cache: bool) -> List[Tuple[str, Quote]]:
        resolved: List[Tuple[str, Quote]] = []
        batches = chunked(symbols, self.settings.batch_size)
        for index, batch in enumerate(batches):
            results = await asyncio.gather(
                *(self.resolve_quote(s, use_cache=use_cache) for s in batch),
                return_exceptions=True,
            )
            for symbol, result in zip(batch, results):
                if isinstance(result, Quote):
                    resolved.append((symbol, result))
                else:
                    logger.warning("resolve_failed", symbol=symbol, error=str(result))
            if index < len(batches) - 1:
                await asyncio.sleep(self.settings.batch_delay_seconds)
        return resolved

    async def get_company_info(self, symbol: str) -> CompanyInfo:
        upper = normalize_symbol(symbol)
        for provider in self.providers:
            if not provider.configured:
                continue
            try:
                info = await asyncio.wait_for(provider.get_company_info(upper), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("company_info_timeout", symbol=upper, tier=provider.name)
                continue
            except Exception as e:
                logger.warning("company_info_failed", symbol=upper, tier=provider.name, error=str(e))
                continue
            if info is not None:
                return info
        return self.synthetic.company_info(format_for_yahoo(upper, classify_asset_type(upper)))

    async def get_news(self, symbols: Optional[Sequence[str]] = None, limit: int = 10) -> List[NewsItem]:
        targets = [normalize_symbol(s) for s in (symbols or DEFAULT_NEWS_SYMBOLS[:MAX_NEWS_SYMBOLS])]
        targets = targets[:MAX_NEWS_SYMBOLS]

        for provider in self.providers:
            if not provider.configured:
                continue
            try:
                news = await asyncio.wait_for(provider.get_news(targets, limit), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("news_timeout", symbols=targets, tier=provider.name)
                continue
            except Exception as e:
                logger.warning("news_failed", symbols=targets, tier=provider.name, error=str(e))
                continue
            if news:
                return news[:limit]

        return self.synthetic.news(targets, limit)

    async def record_price(self, quote: Quote, symbol: Optional[str] = None) -> Optional[PriceHistoryPoint]:
        """
        Append a price point for a live quote under the canonical key of
        `symbol` (the requested ticker, defaulting to the quote's own).
        Synthetic quotes are not recorded.
        """
        if self.store is None or quote.source == QuoteSource.SYNTHETIC:
            return None
        point = PriceHistoryPoint(
            symbol=canonical_symbol(symbol or quote.symbol),
            price=quote.price,
            change=quote.change,
            change_percent=quote.change_percent,
            volume=quote.volume,
            timestamp=quote.last_updated,
        )
        return await self.store.append_price_point(point)

    async def refresh_cached(self) -> List[Quote]:
        """Re-resolve every symbol the cache has seen, bypassing freshness."""
        symbols = [str(s) for s in self.cache.known_keys()]
        if not symbols:
            return []
        quotes = await self.resolve_map(symbols, use_cache=False)
        await self.record_prices(quotes)
        logger.info("cache_refreshed", symbols=len(symbols), resolved=len(quotes))
        return list(quotes.values())

    async def record_prices(self, quotes: Dict[str, Quote]) -> None:
        """record_price for each (requested symbol, quote); failures are logged and skipped."""
        for symbol, quote in quotes.items():
            try:
                await self.record_price(quote, symbol)
            except Exception as e:
                logger.warning("price_record_failed", symbol=symbol, error=str(e))

    async def run_refresh_loop(self, interval_seconds: Optional[float] = None) -> None:
        """Refresh cached quotes forever. Cancel the task to stop."""
        interval = interval_seconds or self.settings.refresh_interval_seconds
        logger.info("refresh_loop_started", interval=interval)
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_cached()
            except Exception as e:
                logger.error("refresh_loop_error", error=str(e))
