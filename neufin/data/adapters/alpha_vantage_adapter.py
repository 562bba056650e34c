"""
NEUFIN — Alpha Vantage Adapter
Secondary quote source for equities and forex. Requires an API key.
"""
from typing import Any, Dict, Optional
from datetime import datetime

from neufin.data.adapters.base import BaseQuoteProvider
from neufin.data.errors import ProviderUnavailable
from neufin.data.models import AssetType, Quote, QuoteSource
from neufin.data.symbols import split_currency_pair
from neufin.config.settings import DataSourceSettings, get_settings
from neufin.utils.helpers import ensure_utc, utc_now


def _parse_timestamp(value: Any) -> datetime:
    """Alpha Vantage dates are "YYYY-MM-DD" or "YYYY-MM-DD HH:MM:SS"."""
    if not value:
        return utc_now()
    try:
        return ensure_utc(datetime.fromisoformat(str(value)))
    except ValueError:
        return utc_now()


class AlphaVantageAdapter(BaseQuoteProvider):
    """GLOBAL_QUOTE for equities, CURRENCY_EXCHANGE_RATE for forex."""

    supported_asset_types = frozenset({AssetType.STOCK, AssetType.FOREX})

    def __init__(self, settings: Optional[DataSourceSettings] = None):
        self.settings = settings or get_settings().data
        super().__init__(
            source=QuoteSource.ALPHA_VANTAGE,
            timeout_seconds=self.settings.alpha_vantage_timeout_seconds,
        )
        self.api_key = self.settings.alpha_vantage_api_key
        self.base_url = self.settings.alpha_vantage_url

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def get_quote(self, symbol: str, asset_type: AssetType) -> Optional[Quote]:
        if not self.api_key:
            raise ProviderUnavailable(self.name, symbol, "no api key")

        if asset_type == AssetType.FOREX:
            from_currency, to_currency = split_currency_pair(symbol)
            params = {
                "function": "CURRENCY_EXCHANGE_RATE",
                "from_currency": from_currency,
                "to_currency": to_currency,
                "apikey": self.api_key,
            }
            data = await self._get_json(self.base_url, params=params, symbol=symbol)
            return self.parse_exchange_rate(data, symbol)

        params = {"function": "GLOBAL_QUOTE", "symbol": symbol.upper(), "apikey": self.api_key}
        data = await self._get_json(self.base_url, params=params, symbol=symbol)
        return self.parse_global_quote(data, symbol)

    @staticmethod
    def parse_exchange_rate(data: Dict[str, Any], symbol: str) -> Optional[Quote]:
        rate = data.get("Realtime Currency Exchange Rate")
        if not rate:
            return None
        try:
            price = float(rate["5. Exchange Rate"])
        except (KeyError, TypeError, ValueError):
            return None
        if price <= 0:
            return None
        # No change data on this endpoint
        return Quote(
            symbol=symbol.upper(),
            price=round(price, 4),
            asset_type=AssetType.FOREX,
            last_updated=_parse_timestamp(rate.get("6. Last Refreshed")),
            source=QuoteSource.ALPHA_VANTAGE,
        )

    @staticmethod
    def parse_global_quote(data: Dict[str, Any], symbol: str) -> Optional[Quote]:
        quote = data.get("Global Quote")
        if not quote:
            return None
        try:
            price = float(quote["05. price"])
            change = float(quote.get("09. change") or 0)
            change_percent = float(str(quote.get("10. change percent") or "0").replace("%", ""))
            volume = int(float(quote.get("06. volume") or 0))
        except (KeyError, TypeError, ValueError):
            return None
        if price <= 0:
            return None
        return Quote(
            symbol=symbol.upper(),
            price=price,
            change=change,
            change_percent=change_percent,
            volume=volume,
            asset_type=AssetType.STOCK,
            last_updated=_parse_timestamp(quote.get("07. latest trading day")),
            source=QuoteSource.ALPHA_VANTAGE,
        )
