"""
NEUFIN — Sentiment Scorer
Scores financial text with an LLM in JSON mode and falls back to a keyword
heuristic on any failure. Results are always within range.
"""
import asyncio
import random
from typing import List, Optional, Sequence, Tuple

from neufin.data.models import SentimentLabel, SentimentRecord, SentimentResult
from neufin.data.symbols import canonical_symbol
from neufin.db.store import PortfolioStore
from neufin.llm.client import LLMClient
from neufin.llm.json_call import json_completion
from neufin.utils.logger import get_logger

logger = get_logger("sentiment")

POSITIVE_WORDS = ("beat", "strong", "growth", "profit", "increase", "boost", "success", "gain")
NEGATIVE_WORDS = ("loss", "decline", "fall", "drop", "challenge", "struggle", "weakness", "concern")

SYSTEM_PROMPT = (
    "You are a financial sentiment analysis expert. Analyze the sentiment of financial news and provide:\n"
    '1. sentiment: "positive", "negative", or "neutral"\n'
    "2. score: numerical sentiment score from 0 (very negative) to 10 (very positive), where 5 is neutral\n"
    "3. confidence: confidence level from 0 to 1\n\n"
    "Consider financial implications, market impact, and investor sentiment.\n"
    'Respond with JSON in this exact format: {"sentiment": "positive|negative|neutral", '
    '"score": number, "confidence": number}'
)

BATCH_STAGGER_SECONDS = 0.1


class SentimentScorer:
    """LLM-backed sentiment scoring with a deterministic-label keyword fallback."""

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        store: Optional[PortfolioStore] = None,
        rng: Optional[random.Random] = None,
        stagger_seconds: float = BATCH_STAGGER_SECONDS,
    ):
        self.llm = llm
        self.store = store
        self.rng = rng or random.Random()
        self.stagger_seconds = stagger_seconds

    @staticmethod
    def build_prompt(text: str, symbol: Optional[str] = None) -> str:
        if symbol:
            return f'Analyze the sentiment of this financial news about {symbol}: "{text}"'
        return f'Analyze the sentiment of this financial news: "{text}"'

    def keyword_sentiment(self, text: str) -> SentimentResult:
        """Count distinct positive/negative keywords present in the text."""
        lower = text.lower()
        positives = sum(1 for word in POSITIVE_WORDS if word in lower)
        negatives = sum(1 for word in NEGATIVE_WORDS if word in lower)

        if positives > negatives:
            label, score = SentimentLabel.POSITIVE, 6 + min(positives, 4)
        elif negatives > positives:
            label, score = SentimentLabel.NEGATIVE, 4 - min(negatives, 4)
        else:
            label, score = SentimentLabel.NEUTRAL, 5

        return SentimentResult(
            sentiment=label,
            score=score,
            confidence=0.7 + self.rng.random() * 0.2,
        )

    async def score_sentiment(self, text: str, symbol: Optional[str] = None) -> SentimentResult:
        completion = await json_completion(
            self.llm,
            SYSTEM_PROMPT,
            self.build_prompt(text, symbol),
            fallback=lambda: self.keyword_sentiment(text).model_dump(),
            purpose="sentiment",
        )
        data = completion.data
        # Validators coerce the label and clamp score/confidence
        result = SentimentResult(
            sentiment=data.get("sentiment"),
            score=data.get("score"),
            confidence=data.get("confidence"),
        )
        logger.debug(
            "sentiment_scored",
            symbol=symbol,
            source=completion.source,
            sentiment=result.sentiment.value,
            score=result.score,
        )
        return result

    async def batch_score(self, items: Sequence[Tuple[str, Optional[str]]]) -> List[SentimentResult]:
        """Score (text, symbol) pairs concurrently, every call after the first delayed by the stagger."""

        async def _score(index: int, text: str, symbol: Optional[str]) -> SentimentResult:
            if index > 0:
                await asyncio.sleep(self.stagger_seconds)
            return await self.score_sentiment(text, symbol)

        return list(await asyncio.gather(*(
            _score(i, text, symbol) for i, (text, symbol) in enumerate(items)
        )))

    async def analyze_and_record(
        self, symbol: str, text: str, source: Optional[str] = None
    ) -> SentimentRecord:
        """Score text for a symbol and append the observation to the store."""
        result = await self.score_sentiment(text, symbol)
        record = SentimentRecord(
            symbol=canonical_symbol(symbol),
            sentiment=result.sentiment,
            score=result.score,
            confidence=result.confidence,
            source_text=text,
            source=source,
        )
        if self.store is not None:
            await self.store.append_sentiment(record)
            logger.info("sentiment_recorded", symbol=record.symbol, score=record.score, source=source)
        return record
