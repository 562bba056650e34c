"""
NEUFIN — Test Configuration & Fixtures
Shared fakes and fixtures for all test modules.
"""
import asyncio
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from neufin.config.settings import AlphaSettings, BiasSettings, DataSourceSettings
from neufin.data.adapters.base import ALL_ASSET_TYPES, BaseQuoteProvider
from neufin.data.adapters.synthetic import SyntheticMarketData
from neufin.data.adapters.yahoo_adapter import YahooFinanceAdapter
from neufin.data.errors import LLMFailure, ProviderUnavailable
from neufin.data.models import AssetType, CompanyInfo, NewsItem, PriceHistoryPoint, Quote, QuoteSource
from neufin.data.resolver import QuoteResolver
from neufin.db.store import InMemoryPortfolioStore
from neufin.llm.client import LLMClient

BASE_TIME = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock for TTL caches."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(BaseQuoteProvider):
    """Scriptable quote provider: fixed prices, forced failures or slow responses."""

    def __init__(
        self,
        prices: Optional[Dict[str, float]] = None,
        source: QuoteSource = QuoteSource.YAHOO,
        fail: bool = False,
        delay: float = 0.0,
        supported=ALL_ASSET_TYPES,
        configured: bool = True,
        news: Optional[List[NewsItem]] = None,
        company: Optional[CompanyInfo] = None,
    ):
        super().__init__(source=source, timeout_seconds=1.0)
        self.prices = prices or {}
        self.fail = fail
        self.delay = delay
        self.supported_asset_types = frozenset(supported)
        self._configured = configured
        self.news_items = news or []
        self.company = company
        self.calls: List[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    async def get_quote(self, symbol: str, asset_type: AssetType) -> Optional[Quote]:
        self.calls.append(symbol)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ProviderUnavailable(self.name, symbol, "forced failure")
        price = self.prices.get(symbol)
        if price is None:
            return None
        return Quote(
            symbol=symbol,
            price=price,
            asset_type=asset_type,
            last_updated=BASE_TIME,
            source=self.source,
        )

    async def get_company_info(self, symbol: str) -> Optional[CompanyInfo]:
        if self.fail:
            raise ProviderUnavailable(self.name, symbol, "forced failure")
        return self.company

    async def get_news(self, symbols: List[str], limit: int = 10) -> List[NewsItem]:
        if self.fail:
            raise ProviderUnavailable(self.name, None, "forced failure")
        return self.news_items[:limit]


class ChartYahoo(YahooFinanceAdapter):
    """Real Yahoo chart parsing over canned payloads; each request is priced one step higher."""

    def __init__(self, settings: Optional[DataSourceSettings] = None, start: float = 100.0, step: float = 1.0):
        super().__init__(settings)
        self.price = start
        self.step = step
        self.urls: List[str] = []

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    async def _get_json(self, url, params=None, symbol=None, headers=None):
        self.urls.append(url)
        price = self.price
        self.price += self.step
        return {"chart": {"result": [{
            "meta": {"previousClose": price - self.step},
            "indicators": {"quote": [{"close": [price], "volume": [1000]}]},
        }]}}


class FakeLLM(LLMClient):
    """Returns queued replies in order; an Exception instance in the queue is raised."""

    def __init__(self, replies: Sequence = (), configured: bool = True):
        self.replies = list(replies)
        self._configured = configured
        self.prompts: List[tuple] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append((system_prompt, user_prompt))
        if not self.replies:
            raise LLMFailure("no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_history(symbol: str, prices: Sequence[float], start: datetime = BASE_TIME) -> List[PriceHistoryPoint]:
    """Points in the given order, most recent first (one day apart)."""
    return [
        PriceHistoryPoint(symbol=symbol, price=p, timestamp=start - timedelta(days=i))
        for i, p in enumerate(prices)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryPortfolioStore()


@pytest.fixture
def data_settings():
    return DataSourceSettings(batch_delay_seconds=0.0, poll_timeout_seconds=0.5, cache_ttl_seconds=60)


@pytest.fixture
def alpha_settings():
    return AlphaSettings(batch_delay_seconds=0.0)


@pytest.fixture
def bias_settings():
    return BiasSettings()


@pytest.fixture
def synthetic():
    return SyntheticMarketData(rng=random.Random(7))


@pytest.fixture
def offline_resolver(store, data_settings, synthetic, clock):
    """Resolver with no live providers: every quote is synthetic."""
    return QuoteResolver(
        providers=[], synthetic=synthetic, store=store, settings=data_settings, clock=clock
    )


@pytest.fixture
def provider_factory():
    return FakeProvider


@pytest.fixture
def chart_yahoo_factory():
    return ChartYahoo


@pytest.fixture
def llm_factory():
    return FakeLLM


@pytest.fixture
def history_factory():
    return make_history
