"""
NEUFIN — Portfolio Chat Analyzer
Answers free-form investor questions with the user's holdings and watchlist
as context. The LLM replies in JSON; without it a keyword-routed rule answer
is built from the same context.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from neufin.db.store import PortfolioStore
from neufin.engines.bias_detector import diversification_score
from neufin.engines.portfolio_analytics import average_sentiment
from neufin.llm.client import LLMClient
from neufin.llm.json_call import json_completion
from neufin.utils.logger import get_logger

logger = get_logger("chat_analyzer")

MAX_MESSAGE_LENGTH = 2000

EMPTY_REPLY = "I apologize, but I'm having trouble processing your request right now. Please try again."
UNAVAILABLE_CONTEXT = "AI analysis temporarily unavailable"

CHAT_SYSTEM_PROMPT = """You are an expert AI financial advisor for Neufin, a retail investor platform. You provide personalized investment insights based on user's portfolio data and market intelligence.

Current User Context:
{context}

Your role is to:
1. Analyze the user's portfolio composition and performance
2. Provide market insights and sentiment analysis
3. Suggest optimization strategies and risk management
4. Answer investment-related questions with data-driven insights
5. Offer personalized recommendations based on their current holdings

Respond in a professional, helpful tone. Provide specific, actionable advice when possible. If asked about specific stocks, reference current market trends and sentiment data.

Respond with JSON in this exact format:
{{
  "response": "Your main response to the user's question",
  "analysis": {{
    "portfolioInsights": "Brief insights about their portfolio (if relevant)",
    "marketContext": "Current market context relevant to their question",
    "recommendations": ["Specific actionable recommendation 1", "Specific actionable recommendation 2"]
  }}
}}"""

# First matching topic wins
TOPIC_KEYWORDS = (
    ("risk", ("risk", "diversif", "allocation", "balance", "concentrat", "hedge")),
    ("performance", ("perform", "gain", "loss", "return", "profit", "worth", "value")),
    ("market", ("market", "sentiment", "trend", "outlook", "news")),
)


def detect_topic(message: str) -> str:
    lowered = message.lower()
    for topic, keywords in TOPIC_KEYWORDS:
        if any(k in lowered for k in keywords):
            return topic
    return "general"


def sentiment_label(score: float) -> str:
    if score > 6:
        return "bullish"
    if score < 4:
        return "bearish"
    return "neutral"


@dataclass
class ChatContext:
    """What the analyzer knows about the user when answering."""
    holdings: List[str] = field(default_factory=list)
    holding_lines: List[str] = field(default_factory=list)
    watchlist: List[str] = field(default_factory=list)
    total_value: float = 0.0
    diversification: float = 0.0
    avg_sentiment: float = 5.0

    def render(self) -> str:
        portfolio = (
            "Portfolio Holdings: " + ", ".join(self.holding_lines)
            if self.holding_lines else "No portfolio holdings"
        )
        watchlist = "Watchlist: " + ", ".join(self.watchlist) if self.watchlist else "No watchlist items"
        return "\n".join([
            portfolio,
            watchlist,
            f"Total Portfolio Value: ${self.total_value:.2f}",
            f"Diversification Score: {self.diversification:.1f}/10",
            f"Average Sentiment Score: {self.avg_sentiment:.1f}/10",
        ])


@dataclass
class ChatAnalysis:
    response: str
    portfolio_insights: Optional[str] = None
    market_context: Optional[str] = None
    recommendations: List[str] = field(default_factory=list)
    topic: str = "general"
    source: str = "rules"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "analysis": {
                "portfolio_insights": self.portfolio_insights,
                "market_context": self.market_context,
                "recommendations": self.recommendations,
            },
            "topic": self.topic,
            "source": self.source,
        }


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class ChatAnalyzer:
    """Portfolio-aware Q&A for a single user."""

    def __init__(self, store: PortfolioStore, llm: Optional[LLMClient] = None):
        self.store = store
        self.llm = llm

    async def build_context(self, user_id: str) -> ChatContext:
        holdings = await self.store.get_holdings(user_id)
        watchlist = await self.store.get_watchlist(user_id)
        symbols = [h.symbol for h in holdings]
        return ChatContext(
            holdings=symbols,
            holding_lines=[f"{h.symbol} ({h.shares:g} shares, avg cost: ${h.avg_cost:.2f})" for h in holdings],
            watchlist=[f"{w.symbol} ({w.asset_type.value})" for w in watchlist],
            total_value=sum(h.shares * h.avg_cost for h in holdings),
            diversification=diversification_score(holdings),
            avg_sentiment=await average_sentiment(self.store, symbols),
        )

    @staticmethod
    def rule_based_reply(message: str, context: ChatContext) -> Dict[str, Any]:
        """Answer shaped like the LLM reply, routed on keywords in the message."""
        topic = detect_topic(message)
        count = len(context.holdings)
        insights = (
            f"You have {count} different holdings with a total value of ${context.total_value:.2f}"
            if count else None
        )
        market_context = UNAVAILABLE_CONTEXT

        if topic == "risk":
            response = f"Your diversification score is {context.diversification:.1f}/10 across {count} holdings."
            if context.diversification < 5:
                response += " Concentration is high; spreading across more sectors or asset types would lower risk."
                recommendations = ["Add exposure to under-represented sectors", "Review position sizes against your risk tolerance"]
            else:
                response += " Your allocation already spans several sectors and asset types."
                recommendations = ["Rebalance periodically to keep the current spread", "Review position sizes against your risk tolerance"]
        elif topic == "performance":
            response = (
                f"You hold {count} positions with a combined cost basis of ${context.total_value:.2f}."
                if count else "You have no holdings to measure yet."
            )
            recommendations = ["Compare each holding against its entry price", "Check the portfolio view for live gains and losses"]
        elif topic == "market":
            label = sentiment_label(context.avg_sentiment)
            response = f"Recorded sentiment for your holdings averages {context.avg_sentiment:.1f}/10, which reads as {label}."
            market_context = f"Average sentiment {context.avg_sentiment:.1f}/10 ({label})"
            recommendations = ["Monitor news flow for your largest positions", "Revisit holdings where sentiment diverges from your thesis"]
        else:
            response = (
                "I'm currently experiencing technical difficulties with my AI analysis. However, I can see you have "
                + (f"{count} holdings in your portfolio" if count else "no current holdings")
                + ". Please try your question again in a moment, or feel free to explore your portfolio data manually."
            )
            recommendations = ["Check back in a few minutes for full AI analysis", "Review your portfolio holdings manually in the meantime"]

        return {
            "response": response,
            "analysis": {
                "portfolioInsights": insights,
                "marketContext": market_context,
                "recommendations": recommendations,
            },
        }

    async def analyze_chat_message(self, user_id: str, message: str) -> ChatAnalysis:
        """Answer `message` for `user_id`. Raises ValueError for an empty message."""
        text = message.strip()[:MAX_MESSAGE_LENGTH]
        if not text:
            raise ValueError("message is required")

        context = await self.build_context(user_id)
        completion = await json_completion(
            self.llm,
            CHAT_SYSTEM_PROMPT.format(context=context.render()),
            text,
            fallback=lambda: self.rule_based_reply(text, context),
            purpose="chat_analysis",
        )
        data = completion.data
        analysis = data.get("analysis") if isinstance(data.get("analysis"), dict) else {}
        recommendations = analysis.get("recommendations")

        result = ChatAnalysis(
            response=_text(data.get("response")) or EMPTY_REPLY,
            portfolio_insights=_text(analysis.get("portfolioInsights")),
            market_context=_text(analysis.get("marketContext")),
            recommendations=(
                [str(r) for r in recommendations if r] if isinstance(recommendations, list) else []
            ),
            topic=detect_topic(text),
            source=completion.source,
        )
        logger.info("chat_answered", user_id=user_id, topic=result.topic, source=result.source)
        return result
