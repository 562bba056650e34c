"""
NEUFIN — Service Container
Builds and owns the long-lived components behind the API.
"""
import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from neufin.config.settings import AppSettings, get_settings
from neufin.data.resolver import QuoteResolver
from neufin.db.store import InMemoryPortfolioStore, PortfolioStore, SQLPortfolioStore
from neufin.engines.alpha_signature import AlphaSignatureEngine
from neufin.engines.chat_analyzer import ChatAnalyzer
from neufin.engines.bias_detector import BehavioralBiasDetector
from neufin.engines.portfolio_analytics import PortfolioAnalytics
from neufin.llm.client import LLMClient, OpenAILLMClient
from neufin.sentiment.scorer import SentimentScorer
from neufin.utils.logger import get_logger

logger = get_logger("container")


@dataclass
class Services:
    store: PortfolioStore
    resolver: QuoteResolver
    scorer: SentimentScorer
    alpha: AlphaSignatureEngine
    bias: BehavioralBiasDetector
    analytics: PortfolioAnalytics
    chat: ChatAnalyzer
    llm: Optional[LLMClient] = None
    tracked_symbols: List[str] = field(default_factory=list)
    background_refresh: bool = False
    _refresh_task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)

    async def start(self) -> None:
        await self.resolver.connect()
        if self.background_refresh and self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self.resolver.run_refresh_loop())

    async def stop(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        await self.resolver.shutdown()
        if self.llm is not None:
            await self.llm.close()
        await self.store.close()


def wire_services(
    store: PortfolioStore,
    resolver: Optional[QuoteResolver] = None,
    llm: Optional[LLMClient] = None,
    settings: Optional[AppSettings] = None,
) -> Services:
    """Assemble components around an existing store."""
    settings = settings or get_settings()
    resolver = resolver or QuoteResolver(store=store, settings=settings.data)
    return Services(
        store=store,
        resolver=resolver,
        scorer=SentimentScorer(llm=llm, store=store),
        alpha=AlphaSignatureEngine(store=store, resolver=resolver, settings=settings.alpha),
        bias=BehavioralBiasDetector(store=store, llm=llm, settings=settings.bias),
        analytics=PortfolioAnalytics(
            store=store, resolver=resolver, llm=llm,
            cache_ttl_seconds=settings.bias.analysis_cache_ttl_seconds,
        ),
        chat=ChatAnalyzer(store=store, llm=llm),
        llm=llm,
        tracked_symbols=list(settings.tracked_symbols),
        background_refresh=settings.background_refresh,
    )


async def build_services(settings: Optional[AppSettings] = None) -> Services:
    """Create the store from configuration and wire everything to it."""
    settings = settings or get_settings()
    if settings.database.use_memory_store:
        store: PortfolioStore = InMemoryPortfolioStore()
    else:
        store = await SQLPortfolioStore.connect(settings.database.db_url, echo=settings.database.echo_sql)
    llm = OpenAILLMClient(settings.llm)
    if not llm.configured:
        logger.warning("llm_not_configured", fallback="rules")
    return wire_services(store, llm=llm, settings=settings)
