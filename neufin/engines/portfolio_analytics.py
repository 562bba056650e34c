"""
NEUFIN — Portfolio Analytics
Values holdings at current prices and produces a market-trend summary with
an LLM narrative and a rule-based substitute.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from neufin.config.settings import get_settings
from neufin.data.cache.quote_cache import Clock, TimedCache
from neufin.data.resolver import QuoteResolver
from neufin.data.symbols import canonical_symbol
from neufin.db.store import PortfolioStore
from neufin.engines.bias_detector import diversification_score
from neufin.llm.client import LLMClient
from neufin.llm.json_call import json_completion
from neufin.utils.helpers import safe_divide, utc_timestamp
from neufin.utils.logger import get_logger

logger = get_logger("portfolio_analytics")

MAX_SENTIMENT_SYMBOLS = 5

TREND_SYSTEM_PROMPT = """You are an expert financial analyst providing market trend analysis and investment recommendations. Based on the user's portfolio data and current market conditions, provide a comprehensive analysis.

Current Portfolio Context:
{context}

Respond with JSON in this exact format:
{{
  "overallSentiment": "bullish|bearish|neutral",
  "confidence": 0.85,
  "recommendation": "Main investment recommendation based on portfolio and market analysis",
  "riskLevel": "low|medium|high",
  "marketContext": {{
    "marketTrend": "up|down|sideways",
    "volatilityLevel": "low|medium|high",
    "keyFactors": ["Factor 1", "Factor 2", "Factor 3"]
  }},
  "actionItems": ["Action 1", "Action 2", "Action 3"]
}}"""

TREND_USER_PROMPT = "Provide a comprehensive market trend analysis for this portfolio."


@dataclass
class HoldingValuation:
    symbol: str
    shares: float
    avg_cost: float
    current_price: float
    current_value: float
    cost_basis: float
    gain_loss: float
    gain_loss_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "shares": self.shares,
            "avg_cost": self.avg_cost,
            "current_price": round(self.current_price, 4),
            "current_value": round(self.current_value, 2),
            "cost_basis": round(self.cost_basis, 2),
            "gain_loss": round(self.gain_loss, 2),
            "gain_loss_percent": round(self.gain_loss_percent, 2),
        }


@dataclass
class PortfolioValuation:
    user_id: str
    holdings: List[HoldingValuation] = field(default_factory=list)
    total_value: float = 0.0
    total_cost_basis: float = 0.0
    total_gain_loss: float = 0.0
    top_performer: str = "N/A"

    @property
    def total_gain_loss_percent(self) -> float:
        return safe_divide(self.total_gain_loss, self.total_cost_basis) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "holdings": [h.to_dict() for h in self.holdings],
            "total_value": round(self.total_value, 2),
            "total_cost_basis": round(self.total_cost_basis, 2),
            "total_gain_loss": round(self.total_gain_loss, 2),
            "total_gain_loss_percent": round(self.total_gain_loss_percent, 2),
            "top_performer": self.top_performer,
        }


async def average_sentiment(store: PortfolioStore, symbols: List[str]) -> float:
    """Mean latest sentiment over the first few symbols; 5 when none is recorded."""
    scores = []
    for symbol in symbols[:MAX_SENTIMENT_SYMBOLS]:
        latest = await store.get_latest_sentiment(canonical_symbol(symbol))
        if latest is not None:
            scores.append(latest.score)
    return sum(scores) / len(scores) if scores else 5.0


class PortfolioAnalytics:
    """Valuation and market-trend summaries per user."""

    def __init__(
        self,
        store: PortfolioStore,
        resolver: QuoteResolver,
        llm: Optional[LLMClient] = None,
        cache_ttl_seconds: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.llm = llm
        ttl = cache_ttl_seconds or get_settings().bias.analysis_cache_ttl_seconds
        self.cache: TimedCache[Dict[str, Any]] = TimedCache(ttl_seconds=ttl, clock=clock)

    async def value_portfolio(self, user_id: str) -> PortfolioValuation:
        """Price every holding, refreshing the stored current_price snapshot."""
        holdings = await self.store.get_holdings(user_id)
        valuation = PortfolioValuation(user_id=user_id)
        if not holdings:
            return valuation

        quotes = await self.resolver.resolve_map([h.symbol for h in holdings])

        best_pct: Optional[float] = None
        for holding in holdings:
            quote = quotes.get(holding.symbol)
            if quote is not None:
                price = quote.price
                await self.store.update_holding_price(holding.id, price)
            else:
                price = holding.current_price or 0.0

            value = holding.shares * price
            cost = holding.shares * holding.avg_cost
            gain = (price - holding.avg_cost) * holding.shares
            gain_pct = safe_divide(price - holding.avg_cost, holding.avg_cost) * 100

            valuation.holdings.append(HoldingValuation(
                symbol=holding.symbol,
                shares=holding.shares,
                avg_cost=holding.avg_cost,
                current_price=price,
                current_value=value,
                cost_basis=cost,
                gain_loss=gain,
                gain_loss_percent=gain_pct,
            ))
            valuation.total_value += value
            valuation.total_cost_basis += cost
            valuation.total_gain_loss += gain
            if best_pct is None or gain_pct > best_pct:
                best_pct = gain_pct
                valuation.top_performer = holding.symbol

        return valuation

    @staticmethod
    def rule_based_trend(avg_sentiment: float) -> Dict[str, Any]:
        if avg_sentiment > 6:
            sentiment = "bullish"
        elif avg_sentiment < 4:
            sentiment = "bearish"
        else:
            sentiment = "neutral"
        return {
            "overallSentiment": sentiment,
            "confidence": 0.6,
            "recommendation": "Review portfolio allocation against current market conditions",
            "riskLevel": "medium",
            "marketContext": {
                "marketTrend": "sideways",
                "volatilityLevel": "medium",
                "keyFactors": ["Market analysis pending"],
            },
            "actionItems": ["Review portfolio balance", "Monitor market conditions"],
        }

    async def market_trend(self, user_id: str, refresh: bool = False) -> Dict[str, Any]:
        """Cached per user; `refresh` forces recomputation."""
        if not refresh:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        valuation = await self.value_portfolio(user_id)
        holdings = await self.store.get_holdings(user_id)
        watchlist = await self.store.get_watchlist(user_id)
        avg_sentiment = await average_sentiment(self.store, [h.symbol for h in holdings])
        diversification = diversification_score(holdings)

        context = "\n".join([
            "Portfolio Summary:",
            f"- Total Holdings: {len(holdings)}",
            f"- Total Value: ${valuation.total_value:.2f}",
            f"- Total Gain/Loss: ${valuation.total_gain_loss:.2f} ({valuation.total_gain_loss_percent:.2f}%)",
            f"- Top Performer: {valuation.top_performer}",
            f"- Diversification Score: {diversification:.1f}/10",
            "- Holdings: " + ", ".join(f"{h.symbol} ({h.gain_loss_percent:.1f}%)" for h in valuation.holdings),
            f"- Average Sentiment Score: {avg_sentiment:.1f}/10",
            "",
            "Watchlist: " + (", ".join(w.symbol for w in watchlist) or "None"),
        ])

        completion = await json_completion(
            self.llm,
            TREND_SYSTEM_PROMPT.format(context=context),
            TREND_USER_PROMPT,
            fallback=lambda: self.rule_based_trend(avg_sentiment),
            purpose="market_trend",
        )
        data = completion.data
        market = data.get("marketContext") if isinstance(data.get("marketContext"), dict) else {}

        analysis = {
            "overall_sentiment": data.get("overallSentiment") or "neutral",
            "confidence": data.get("confidence") or 0.5,
            "recommendation": data.get("recommendation") or "Unable to generate recommendation at this time.",
            "portfolio": valuation.to_dict(),
            "risk_level": data.get("riskLevel") or "medium",
            "diversification_score": diversification,
            "average_sentiment": round(avg_sentiment, 2),
            "market_context": {
                "market_trend": market.get("marketTrend") or "sideways",
                "volatility_level": market.get("volatilityLevel") or "medium",
                "key_factors": market.get("keyFactors") or ["Market analysis pending"],
            },
            "action_items": data.get("actionItems") or ["Review portfolio balance", "Monitor market conditions"],
            "source": completion.source,
            "last_updated": utc_timestamp(),
        }
        self.cache.put(user_id, analysis)
        logger.info("market_trend_generated", user_id=user_id, source=completion.source)
        return analysis
