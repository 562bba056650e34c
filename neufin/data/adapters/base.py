"""
NEUFIN — Base Quote Provider Interface
All market data providers implement this interface. The resolver tries
providers in priority order and treats any raised error as unavailability.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Optional

import aiohttp

from neufin.data.errors import ProviderUnavailable
from neufin.data.models import AssetType, CompanyInfo, NewsItem, Quote, QuoteSource
from neufin.utils.logger import get_logger

logger = get_logger("quote_provider")

ALL_ASSET_TYPES: FrozenSet[AssetType] = frozenset(AssetType)


class BaseQuoteProvider(ABC):
    """Abstract base class for quote / company-info / news sources."""

    supported_asset_types: FrozenSet[AssetType] = ALL_ASSET_TYPES

    def __init__(self, source: QuoteSource, timeout_seconds: float = 5.0):
        self.source = source
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def name(self) -> str:
        return self.source.value

    @property
    def configured(self) -> bool:
        """Whether credentials/endpoints are present. Unconfigured providers are skipped."""
        return True

    def supports(self, asset_type: AssetType) -> bool:
        return asset_type in self.supported_asset_types

    async def connect(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            logger.info("provider_connected", provider=self.name)

    async def disconnect(self) -> None:
        """Clean up the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
            logger.info("provider_disconnected", provider=self.name)

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        symbol: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """GET a JSON document, raising ProviderUnavailable on any transport or status failure."""
        await self.connect()
        try:
            async with self._session.get(url, params=params, headers=headers) as resp:
                if resp.status != 200:
                    raise ProviderUnavailable(self.name, symbol, f"http {resp.status}")
                data = await resp.json(content_type=None)
        except ProviderUnavailable:
            raise
        except (aiohttp.ClientError, ValueError) as e:
            raise ProviderUnavailable(self.name, symbol, str(e)) from e
        if not isinstance(data, dict):
            raise ProviderUnavailable(self.name, symbol, "unexpected payload")
        return data

    @abstractmethod
    async def get_quote(self, symbol: str, asset_type: AssetType) -> Optional[Quote]:
        """Fetch a normalized quote, or None when the payload has no usable price."""

    async def get_company_info(self, symbol: str) -> Optional[CompanyInfo]:
        """Look up company name/sector. Providers without a lookup return None."""
        return None

    async def get_news(self, symbols: List[str], limit: int = 10) -> List[NewsItem]:
        """Fetch recent news for symbols. Providers without news return []."""
        return []
