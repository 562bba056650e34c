"""
NEUFIN — Synthetic Market Data
Last-resort tier used when every live provider fails. Static reference
tables plus bounded random variation; never raises.
"""
import random
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from neufin.data.models import AssetType, CompanyInfo, NewsItem, Quote, QuoteSource
from neufin.data.symbols import price_precision
from neufin.utils.helpers import utc_now

# Keyed by provider-formatted symbol (BTC-USD, EURUSD=X)
BASE_PRICES: Dict[str, float] = {
    # Stocks
    "AAPL": 180.25, "TSLA": 252.30, "NVDA": 487.23, "MSFT": 378.95,
    "GOOGL": 142.89, "AMZN": 151.45, "META": 324.67, "AMD": 156.78,
    "NFLX": 445.32, "BABA": 89.45, "TSM": 103.67, "ASML": 789.23,
    # ETFs
    "SPY": 451.23, "QQQ": 384.56, "IWM": 198.45, "VTI": 234.67,
    "VOO": 401.23, "VEA": 48.92, "VWO": 42.34, "IEMG": 52.11,
    # Crypto
    "BTC-USD": 65420.50, "ETH-USD": 3456.78, "ADA-USD": 0.45,
    "SOL-USD": 142.34, "DOT-USD": 6.78, "MATIC-USD": 0.89,
    # Commodities
    "GLD": 201.45, "SLV": 23.67, "USO": 78.23, "UNG": 12.34,
    # Forex
    "EURUSD=X": 1.0845, "GBPUSD=X": 1.2634, "USDJPY=X": 149.23,
    "AUDUSD=X": 0.6789, "USDCAD=X": 1.3456, "USDCHF=X": 0.8912,
}

# (low, span) for symbols missing from BASE_PRICES
DEFAULT_PRICE_RANGES: Dict[AssetType, Tuple[float, float]] = {
    AssetType.CRYPTO: (1000.0, 50000.0),
    AssetType.FOREX: (0.5, 1.5),
    AssetType.COMMODITY: (50.0, 200.0),
    AssetType.ETF: (100.0, 400.0),
    AssetType.STOCK: (50.0, 500.0),
}

# Max absolute daily move in percent
VOLATILITY_BANDS: Dict[AssetType, float] = {
    AssetType.CRYPTO: 8.0,
    AssetType.FOREX: 1.0,
    AssetType.COMMODITY: 4.0,
    AssetType.ETF: 2.0,
    AssetType.STOCK: 3.0,
}

COMPANIES: Dict[str, CompanyInfo] = {
    "AAPL": CompanyInfo(name="Apple Inc.", sector="Technology"),
    "TSLA": CompanyInfo(name="Tesla Inc.", sector="Automotive"),
    "MSFT": CompanyInfo(name="Microsoft Corp.", sector="Technology"),
    "NVDA": CompanyInfo(name="NVIDIA Corporation", sector="Technology"),
    "GOOGL": CompanyInfo(name="Alphabet Inc.", sector="Technology"),
    "AMD": CompanyInfo(name="Advanced Micro Devices", sector="Technology"),
    "AMZN": CompanyInfo(name="Amazon.com Inc.", sector="Technology"),
    "META": CompanyInfo(name="Meta Platforms Inc.", sector="Technology"),
    "NFLX": CompanyInfo(name="Netflix Inc.", sector="Communication Services"),
    "SPY": CompanyInfo(name="SPDR S&P 500 ETF", sector="ETF"),
    "QQQ": CompanyInfo(name="Invesco QQQ Trust", sector="ETF"),
    "BTC-USD": CompanyInfo(name="Bitcoin USD", sector="Cryptocurrency"),
    "ETH-USD": CompanyInfo(name="Ethereum USD", sector="Cryptocurrency"),
    "GLD": CompanyInfo(name="SPDR Gold Shares", sector="Commodities"),
    "EURUSD=X": CompanyInfo(name="EUR/USD", sector="Currency"),
}

NEWS_TEMPLATES: List[Dict[str, str]] = [
    {
        "headline": "{symbol} Reports Strong Q4 Earnings, Beats Wall Street Expectations",
        "summary": "{symbol} exceeded analyst expectations with robust revenue growth and improved profit margins.",
        "source": "Reuters",
    },
    {
        "headline": "Analysts Upgrade {symbol} Price Target Following Innovation Announcement",
        "summary": "Major investment firms raise price targets for {symbol} citing strong competitive positioning.",
        "source": "Bloomberg",
    },
    {
        "headline": "{symbol} Faces Regulatory Scrutiny in Key Markets",
        "summary": "Regulatory authorities announce investigation into {symbol}'s business practices.",
        "source": "Financial Times",
    },
    {
        "headline": "Institutional Investors Increase {symbol} Holdings by 15%",
        "summary": "Major pension funds and hedge funds significantly boost their {symbol} positions.",
        "source": "MarketWatch",
    },
    {
        "headline": "{symbol} CEO Discusses Future Growth Strategy at Industry Conference",
        "summary": "Leadership outlines ambitious expansion plans and technological innovation roadmap.",
        "source": "CNBC",
    },
]

DEFAULT_NEWS_SYMBOLS = ["AAPL", "TSLA", "MSFT", "NVDA"]


class SyntheticMarketData:
    """Generates plausible quotes, company info and news from static tables."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def company_info(self, symbol: str) -> CompanyInfo:
        upper = symbol.upper()
        return COMPANIES.get(upper) or CompanyInfo(name=f"{upper} Corp.", sector="Unknown")

    def base_price(self, symbol: str, asset_type: AssetType) -> float:
        price = BASE_PRICES.get(symbol.upper())
        if price is not None:
            return price
        low, span = DEFAULT_PRICE_RANGES[asset_type]
        return low + self.rng.random() * span

    def quote(self, symbol: str, asset_type: AssetType) -> Quote:
        base = self.base_price(symbol, asset_type)
        band = VOLATILITY_BANDS[asset_type]
        change_percent = (self.rng.random() - 0.5) * band * 2
        change = base * (change_percent / 100)
        info = self.company_info(symbol)

        return Quote(
            symbol=symbol.upper(),
            price=round(base + change, price_precision(asset_type)),
            change=round(change, 2),
            change_percent=round(change_percent, 2),
            volume=self.rng.randint(1_000_000, 11_000_000),
            asset_type=asset_type,
            last_updated=utc_now(),
            company_name=info.name,
            sector=info.sector,
            source=QuoteSource.SYNTHETIC,
        )

    def news(self, symbols: List[str], limit: int) -> List[NewsItem]:
        targets = symbols or DEFAULT_NEWS_SYMBOLS
        now = utc_now()
        items: List[NewsItem] = []
        for i in range(limit):
            template = NEWS_TEMPLATES[i % len(NEWS_TEMPLATES)]
            symbol = targets[i % len(targets)]
            items.append(
                NewsItem(
                    headline=template["headline"].replace("{symbol}", symbol),
                    summary=template["summary"].replace("{symbol}", symbol),
                    source=template["source"],
                    published_at=now - timedelta(seconds=self.rng.random() * 86400),
                    symbols=[symbol],
                )
            )
        return items
