"""
NEUFIN — Yahoo Finance Adapter
Primary source for quotes, company lookup and news. Keyless.
"""
import math
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from neufin.data.adapters.base import BaseQuoteProvider
from neufin.data.errors import ProviderUnavailable
from neufin.data.models import AssetType, CompanyInfo, NewsItem, Quote, QuoteSource
from neufin.data.symbols import format_for_yahoo, price_precision
from neufin.config.settings import DataSourceSettings, get_settings
from neufin.utils.logger import get_logger
from neufin.utils.helpers import utc_now

logger = get_logger("yahoo_adapter")

_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; neufin/1.0)"}


def _number(value: Any) -> Optional[float]:
    """Return value as a finite float, or None."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class YahooFinanceAdapter(BaseQuoteProvider):
    """Yahoo chart/search endpoints."""

    def __init__(self, settings: Optional[DataSourceSettings] = None):
        self.settings = settings or get_settings().data
        super().__init__(source=QuoteSource.YAHOO, timeout_seconds=self.settings.poll_timeout_seconds)
        self.chart_url = self.settings.yahoo_chart_url
        self.search_url = self.settings.yahoo_search_url

    @property
    def configured(self) -> bool:
        return self.settings.yahoo_enabled

    async def get_quote(self, symbol: str, asset_type: AssetType) -> Optional[Quote]:
        ticker = format_for_yahoo(symbol, asset_type)
        data = await self._get_json(f"{self.chart_url}/{ticker}", symbol=symbol, headers=_HEADERS)
        return self.parse_chart(data, ticker, asset_type)

    @staticmethod
    def parse_chart(data: Dict[str, Any], ticker: str, asset_type: AssetType) -> Optional[Quote]:
        """Normalize a chart payload. None when no usable price is present."""
        results = (data.get("chart") or {}).get("result") or []
        if not results:
            return None
        result = results[0] or {}
        meta = result.get("meta") or {}
        quotes = (result.get("indicators") or {}).get("quote") or []
        if not meta or not quotes:
            return None

        bar = quotes[0] or {}
        closes = bar.get("close") or []
        volumes = bar.get("volume") or []

        last_close = _number(closes[-1]) if closes else None
        price = last_close or _number(meta.get("previousClose")) or _number(meta.get("regularMarketPrice"))
        if not price or price <= 0:
            return None

        previous_close = _number(meta.get("previousClose")) or _number(meta.get("chartPreviousClose"))
        if previous_close:
            change = price - previous_close
            change_percent = change / previous_close * 100
        else:
            change = 0.0
            change_percent = 0.0

        volume = _number(volumes[-1]) if volumes else None

        return Quote(
            symbol=ticker.upper(),
            price=round(price, price_precision(asset_type)),
            change=round(change, 2),
            change_percent=round(change_percent, 2),
            volume=int(volume or 0),
            market_cap=_number(meta.get("marketCap")),
            asset_type=asset_type,
            last_updated=utc_now(),
            company_name=meta.get("longName") or meta.get("shortName"),
            source=QuoteSource.YAHOO,
        )

    async def get_company_info(self, symbol: str) -> Optional[CompanyInfo]:
        upper = symbol.upper()
        data = await self._get_json(self.search_url, params={"q": upper}, symbol=symbol, headers=_HEADERS)
        for item in data.get("quotes") or []:
            if item.get("symbol") == upper:
                return CompanyInfo(
                    name=item.get("longname") or item.get("shortname") or f"{upper} Corp.",
                    sector=item.get("sector") or item.get("industry") or "Unknown",
                )
        return None

    async def get_news(self, symbols: List[str], limit: int = 10) -> List[NewsItem]:
        """Per-symbol news search; a failing symbol is skipped."""
        if not symbols:
            return []
        per_symbol = math.ceil(limit / len(symbols))
        news: List[NewsItem] = []

        for symbol in symbols:
            params = {
                "q": symbol,
                "lang": "en-US",
                "region": "US",
                "quotesCount": 1,
                "newsCount": per_symbol,
            }
            try:
                data = await self._get_json(self.search_url, params=params, symbol=symbol, headers=_HEADERS)
            except ProviderUnavailable as e:
                logger.warning("yahoo_news_failed", symbol=symbol, error=str(e))
                continue

            for article in data.get("news") or []:
                published = _number(article.get("providerPublishTime"))
                news.append(
                    NewsItem(
                        headline=article.get("title") or "Market Update",
                        summary=article.get("summary") or article.get("title") or "Financial news update",
                        source=article.get("publisher") or "Yahoo Finance",
                        published_at=(
                            datetime.fromtimestamp(published, tz=timezone.utc) if published else utc_now()
                        ),
                        symbols=[symbol],
                        url=article.get("link"),
                    )
                )

        return news[:limit]
