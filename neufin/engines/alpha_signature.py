"""
NEUFIN — Alpha Signature Engine
Blends sentiment, volatility and momentum into a 0-10 composite score and a
five-level signal. Signatures are appended, never updated.
"""
import asyncio
from typing import List, Optional, Sequence

import numpy as np

from neufin.config.settings import AlphaSettings, get_settings
from neufin.data.errors import DataInsufficient
from neufin.data.models import AlphaSignature, PriceHistoryPoint, Signal
from neufin.data.resolver import QuoteResolver
from neufin.data.symbols import canonical_symbol
from neufin.db.store import PortfolioStore
from neufin.utils.helpers import chunked, clamp
from neufin.utils.logger import get_logger

logger = get_logger("alpha_signature")

NEUTRAL_SCORE = 5.0

GAP_POLICIES = ("literal", "nearest")


class AlphaSignatureEngine:
    """
    Composite scoring over persisted sentiment and price history.

    Score components:
    - sentiment: latest stored SentimentRecord score (5 when none)
    - volatility: 10 - 2 * (population std of simple returns, in percent)
    - momentum: 5 + 2 * (percent change of the recent mean over the older mean)
    """

    def __init__(
        self,
        store: PortfolioStore,
        resolver: Optional[QuoteResolver] = None,
        settings: Optional[AlphaSettings] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.settings = settings or get_settings().alpha
        if self.settings.signal_gap_policy not in GAP_POLICIES:
            raise ValueError(f"unknown signal_gap_policy: {self.settings.signal_gap_policy}")

    # ─── Components ─────────────────────────────────────────────

    @staticmethod
    def _prices(history: Sequence[PriceHistoryPoint], minimum: int) -> np.ndarray:
        if len(history) < minimum:
            raise DataInsufficient(f"{len(history)} price points, need {minimum}")
        return np.array([p.price for p in history], dtype=float)

    def volatility_score(self, history: Sequence[PriceHistoryPoint]) -> float:
        try:
            prices = self._prices(history, self.settings.min_volatility_points)
        except DataInsufficient:
            return NEUTRAL_SCORE
        # Window is most recent first; returns are taken in that order
        returns = (prices[1:] - prices[:-1]) / prices[:-1]
        volatility_pct = float(np.std(returns)) * 100
        return clamp(10 - volatility_pct * 2)

    def momentum_score(self, history: Sequence[PriceHistoryPoint]) -> float:
        try:
            prices = self._prices(history, self.settings.min_momentum_points)
        except DataInsufficient:
            return NEUTRAL_SCORE
        window = self.settings.momentum_window
        recent = float(np.mean(prices[:window]))
        older = float(np.mean(prices[window:window * 2]))
        momentum_pct = (recent - older) / older * 100
        return clamp(5 + momentum_pct * 2)

    def combine(self, sentiment: float, volatility: float, momentum: float) -> float:
        weighted = (
            sentiment * self.settings.sentiment_weight
            + volatility * self.settings.volatility_weight
            + momentum * self.settings.momentum_weight
        )
        return round(weighted, 1)

    def classify_signal(self, alpha_score: float) -> Signal:
        s = self.settings
        if alpha_score >= s.strong_buy_min:
            return Signal.STRONG_BUY
        if alpha_score >= s.buy_min:
            return Signal.BUY
        if s.hold_min <= alpha_score <= s.hold_max:
            return Signal.HOLD
        if s.signal_gap_policy == "nearest" and s.hold_max < alpha_score < s.buy_min:
            return Signal.HOLD
        if alpha_score >= s.sell_min:
            return Signal.SELL
        return Signal.STRONG_SELL

    @staticmethod
    def neutral(symbol: str) -> AlphaSignature:
        return AlphaSignature(
            symbol=symbol,
            alpha_score=NEUTRAL_SCORE,
            sentiment_score=NEUTRAL_SCORE,
            volatility_score=NEUTRAL_SCORE,
            momentum_score=NEUTRAL_SCORE,
            signal=Signal.HOLD,
        )

    # ─── Operations ─────────────────────────────────────────────

    async def compute_alpha_signature(self, symbol: str) -> AlphaSignature:
        """Compute and append a signature. Any failure yields the unpersisted neutral signature."""
        try:
            key = canonical_symbol(symbol)
            latest = await self.store.get_latest_sentiment(key)
            sentiment = latest.score if latest is not None else NEUTRAL_SCORE

            history = await self.store.get_price_history(key, limit=self.settings.history_window)
            volatility = self.volatility_score(history)
            momentum = self.momentum_score(history)

            alpha = self.combine(sentiment, volatility, momentum)
            signature = AlphaSignature(
                symbol=key,
                alpha_score=alpha,
                sentiment_score=sentiment,
                volatility_score=volatility,
                momentum_score=momentum,
                signal=self.classify_signal(alpha),
            )
            await self.store.append_alpha_signature(signature)
        except Exception as e:
            logger.error("alpha_signature_failed", symbol=symbol, error=str(e))
            return self.neutral(str(symbol).upper())

        logger.info(
            "alpha_signature_computed",
            symbol=signature.symbol,
            alpha=signature.alpha_score,
            signal=signature.signal.value,
            points=len(history),
        )
        return signature

    async def _refresh_prices(self, symbols: Sequence[str]) -> None:
        quotes = await self.resolver.resolve_map(symbols, use_cache=False)
        await self.resolver.record_prices(quotes)

    async def update_all(self, symbols: Sequence[str], refresh_prices: bool = False) -> List[AlphaSignature]:
        """Recompute signatures in fixed-size batches with a pause between batches."""
        logger.info("alpha_update_started", symbols=len(symbols))
        if refresh_prices and self.resolver is not None:
            try:
                await self._refresh_prices(symbols)
            except Exception as e:
                logger.warning("alpha_price_refresh_failed", error=str(e))

        signatures: List[AlphaSignature] = []
        batches = chunked(symbols, self.settings.batch_size)
        for index, batch in enumerate(batches):
            results = await asyncio.gather(
                *(self.compute_alpha_signature(s) for s in batch),
                return_exceptions=True,
            )
            for symbol, result in zip(batch, results):
                if isinstance(result, AlphaSignature):
                    signatures.append(result)
                else:
                    logger.error("alpha_update_failed", symbol=symbol, error=str(result))
            if index < len(batches) - 1:
                await asyncio.sleep(self.settings.batch_delay_seconds)

        logger.info("alpha_update_completed", symbols=len(symbols), computed=len(signatures))
        return signatures

    update_all_alpha_signatures = update_all

    async def get_current(self, symbol: str) -> Optional[AlphaSignature]:
        return await self.store.get_latest_alpha_signature(canonical_symbol(symbol))

    async def get_or_compute(self, symbol: str) -> AlphaSignature:
        """Latest stored signature, computing one when none exists."""
        current = await self.get_current(symbol)
        if current is not None:
            return current
        return await self.compute_alpha_signature(symbol)

    async def get_history(self, symbol: str, limit: int = 30) -> List[AlphaSignature]:
        return await self.store.get_alpha_history(canonical_symbol(symbol), limit=limit)

    async def get_top(self, limit: int = 10) -> List[AlphaSignature]:
        return await self.store.get_top_alpha_signatures(limit=limit)
