"""
NEUFIN — Symbol Classification & Provider Formatting
Pattern-based asset typing and per-provider ticker formats.
"""
import re
from typing import FrozenSet

from neufin.data.errors import SymbolValidationError
from neufin.data.models import AssetType

CRYPTO_ROOTS: FrozenSet[str] = frozenset(
    {"BTC", "ETH", "ADA", "SOL", "DOT", "MATIC", "DOGE", "XRP", "LTC", "AVAX", "LINK"}
)
MAJOR_CURRENCIES: FrozenSet[str] = frozenset({"EUR", "GBP", "JPY"})
COMMODITY_TICKERS: FrozenSet[str] = frozenset({"GLD", "SLV", "OIL", "USO", "UNG", "GOLD"})
ETF_TICKERS: FrozenSet[str] = frozenset({"SPY", "QQQ", "IWM", "VTI", "VOO", "VEA", "VWO", "IEMG"})

FOREX_MARKER = "=X"
CRYPTO_SUFFIX = "-USD"

_SYMBOL_RE = re.compile(r"^[A-Z0-9.\-=/^]{1,20}$")


def normalize_symbol(symbol: str) -> str:
    """Validate and upper-case a user supplied symbol."""
    if not isinstance(symbol, str):
        raise SymbolValidationError(f"symbol must be a string, got {type(symbol).__name__}")
    upper = symbol.strip().upper()
    if not _SYMBOL_RE.match(upper):
        raise SymbolValidationError(f"invalid symbol: {symbol!r}")
    return upper


def classify_asset_type(symbol: str) -> AssetType:
    """Classify a symbol by pattern. First matching rule wins."""
    upper = symbol.upper()

    if "USD" in upper and any(root in upper for root in CRYPTO_ROOTS):
        return AssetType.CRYPTO

    if (
        FOREX_MARKER in upper
        or (len(upper) == 6 and "USD" in upper)
        or any(code in upper for code in MAJOR_CURRENCIES)
    ):
        return AssetType.FOREX

    if upper in COMMODITY_TICKERS or "COMMODITY" in upper:
        return AssetType.COMMODITY

    if upper in ETF_TICKERS or "ETF" in upper:
        return AssetType.ETF

    return AssetType.STOCK


def format_for_yahoo(symbol: str, asset_type: AssetType) -> str:
    """BTCUSD / BTC/USD -> BTC-USD, EURUSD / EUR/USD -> EURUSD=X, others unchanged."""
    upper = symbol.upper()
    if asset_type == AssetType.CRYPTO:
        pair = upper.replace("/", "-")
        if CRYPTO_SUFFIX in pair:
            return pair
        if pair.endswith("USD"):
            pair = pair[:-3]
        return f"{pair}{CRYPTO_SUFFIX}"
    if asset_type == AssetType.FOREX:
        pair = upper.replace("/", "")
        if FOREX_MARKER not in pair and len(pair) == 6:
            return f"{pair}{FOREX_MARKER}"
    return upper


def canonical_symbol(symbol: str) -> str:
    """
    Storage key for per-symbol history (prices, sentiment, signatures).

    Every spelling of an instrument maps to its Yahoo ticker, so BTCUSD,
    BTC/USD and BTC-USD share one history, as do EURUSD and EURUSD=X.
    """
    upper = normalize_symbol(symbol)
    return format_for_yahoo(upper, classify_asset_type(upper))


def split_currency_pair(symbol: str) -> tuple:
    """EURUSD / EURUSD=X / EUR/USD -> ("EUR", "USD")."""
    pair = symbol.upper().replace(FOREX_MARKER, "").replace("/", "")
    return pair[:3], pair[3:6]


def price_precision(asset_type: AssetType) -> int:
    """Decimal places quoted for an asset type."""
    return 4 if asset_type == AssetType.FOREX else 2
