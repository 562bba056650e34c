"""
NEUFIN — Behavioral Bias Detector
Rule-based detection of cognitive biases in a user's trade history, a
behavioral profile, and an LLM narrative with a rule-based substitute.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from neufin.config.settings import BiasSettings, get_settings
from neufin.data.cache.quote_cache import Clock, TimedCache
from neufin.data.models import (
    AssetType, BehavioralProfile, BiasFinding, BiasReport, BiasType, Holding,
    RiskAssessment, SentimentLabel, SentimentRecord, Severity, Transaction,
    TransactionType,
)
from neufin.data.symbols import canonical_symbol
from neufin.db.store import PortfolioStore
from neufin.llm.client import LLMClient
from neufin.llm.json_call import json_completion
from neufin.utils.helpers import ensure_utc, safe_divide, severity_for, utc_now
from neufin.utils.logger import get_logger

logger = get_logger("bias_detector")

SEVERITY_WEIGHTS = {Severity.HIGH: 8.0, Severity.MEDIUM: 5.0, Severity.LOW: 2.0}
BASELINE_BIAS_SCORE = 2.0
DEFAULT_HOLD_PERIOD_DAYS = 30.0

NARRATIVE_SYSTEM_PROMPT = """You are a behavioral finance expert analyzing trading patterns for cognitive biases. Based on the detected biases and trading data, provide insights and recommendations.

Portfolio: {holdings} holdings
Recent Transactions: {transactions}
Detected Biases: {biases}
Risk Tolerance: {risk_tolerance}
Trading Frequency: {trading_frequency}

Provide analysis in JSON format:
{{
  "recommendations": ["Specific actionable recommendation 1", "Recommendation 2", "Recommendation 3"],
  "riskAssessment": {{
    "level": "low|medium|high",
    "factors": ["Risk factor 1", "Risk factor 2"]
  }},
  "improvementAreas": ["Area 1", "Area 2", "Area 3"]
}}"""

NARRATIVE_USER_PROMPT = "Analyze this behavioral profile and provide recommendations."


@dataclass
class RoundTrip:
    """A sell matched with the most recent earlier buy of the same symbol."""
    symbol: str
    buy_price: float
    sell_price: float
    hold_days: float

    @property
    def gain_pct(self) -> float:
        return (self.sell_price - self.buy_price) / self.buy_price * 100


def match_round_trips(transactions: Sequence[Transaction]) -> List[RoundTrip]:
    buys = [t for t in transactions if t.type == TransactionType.BUY]
    trips: List[RoundTrip] = []
    for sell in (t for t in transactions if t.type == TransactionType.SELL):
        earlier = [
            b for b in buys
            if b.symbol == sell.symbol and ensure_utc(b.timestamp) < ensure_utc(sell.timestamp)
        ]
        if not earlier:
            continue
        buy = max(earlier, key=lambda b: ensure_utc(b.timestamp))
        held = ensure_utc(sell.timestamp) - ensure_utc(buy.timestamp)
        trips.append(RoundTrip(
            symbol=sell.symbol,
            buy_price=buy.price,
            sell_price=sell.price,
            hold_days=held.total_seconds() / 86400,
        ))
    return trips


def synthesize_transactions(holdings: Sequence[Holding]) -> List[Transaction]:
    """One buy per holding at its average cost when no ledger exists."""
    return [
        Transaction(
            user_id=h.user_id,
            symbol=h.symbol,
            type=TransactionType.BUY,
            quantity=h.shares,
            price=h.avg_cost,
            timestamp=h.created_at,
        )
        for h in holdings
        if h.shares > 0 and h.avg_cost > 0
    ]


def diversification_score(holdings: Sequence[Holding]) -> float:
    sectors = {h.sector for h in holdings if h.sector}
    asset_types = {h.asset_type for h in holdings}
    return min(10.0, len(sectors) * 2 + len(asset_types) * 1.5)


def _str_list(value: Any, default: List[str]) -> List[str]:
    if isinstance(value, list):
        items = [str(v) for v in value if v]
        if items:
            return items
    return list(default)


class BehavioralBiasDetector:
    """
    Analyzes holdings, the transaction ledger and sentiment history.

    Detectors:
    - loss aversion: quick-sold winners and long-held losers
    - overconfidence: trade frequency against diversification
    - anchoring: trades clustered around a symbol's mean price
    - herding: buys following strongly positive sentiment
    - confirmation bias: not detectable from available data
    """

    def __init__(
        self,
        store: PortfolioStore,
        llm: Optional[LLMClient] = None,
        settings: Optional[BiasSettings] = None,
        now: Callable[[], datetime] = utc_now,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.llm = llm
        self.settings = settings or get_settings().bias
        self.now = now
        self.cache: TimedCache[BiasReport] = TimedCache(
            ttl_seconds=self.settings.analysis_cache_ttl_seconds, clock=clock
        )

    # ─── Entry point ────────────────────────────────────────────

    async def analyze_biases(self, user_id: str, refresh: bool = False) -> BiasReport:
        if not refresh:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        try:
            report = await self._analyze(user_id)
        except Exception as e:
            logger.error("bias_analysis_failed", user_id=user_id, error=str(e))
            return await self.fallback_report(user_id)

        self.cache.put(user_id, report)
        logger.info(
            "bias_analysis_completed",
            user_id=user_id,
            biases=[f.bias_type.value for f in report.detected_biases],
            overall=report.overall_bias_score,
            synthesized=report.transactions_synthesized,
        )
        return report

    async def _analyze(self, user_id: str) -> BiasReport:
        holdings = await self.store.get_holdings(user_id)
        transactions = await self.store.get_transactions(user_id)
        synthesized = False
        if not transactions:
            transactions = synthesize_transactions(holdings)
            synthesized = bool(transactions)

        sentiment = await self._sentiment_history(transactions)
        profile = self.behavioral_profile(user_id, holdings, transactions)
        findings = self.detect_biases(transactions, sentiment, profile)
        overall = self.overall_bias_score(findings)

        narrative, source = await self.narrative(holdings, transactions, findings, profile)

        return BiasReport(
            user_id=user_id,
            overall_bias_score=overall,
            detected_biases=findings,
            behavioral_profile=profile,
            recommendations=narrative["recommendations"],
            risk_assessment=narrative["risk_assessment"],
            improvement_areas=narrative["improvement_areas"],
            transactions_synthesized=synthesized,
            narrative_source=source,
        )

    async def _sentiment_history(self, transactions: Sequence[Transaction]) -> List[SentimentRecord]:
        records: List[SentimentRecord] = []
        for symbol in sorted({canonical_symbol(t.symbol) for t in transactions}):
            records.extend(await self.store.get_sentiment_history(symbol))
        return records

    # ─── Profile ────────────────────────────────────────────────

    def _recent_count(self, transactions: Sequence[Transaction]) -> int:
        cutoff = self.now() - timedelta(days=self.settings.lookback_days)
        return sum(1 for t in transactions if ensure_utc(t.timestamp) > cutoff)

    def behavioral_profile(
        self, user_id: str, holdings: Sequence[Holding], transactions: Sequence[Transaction]
    ) -> BehavioralProfile:
        recent = self._recent_count(transactions)
        if recent > 30:
            frequency = "high"
        elif recent > 10:
            frequency = "medium"
        else:
            frequency = "low"

        crypto_share = safe_divide(
            sum(1 for h in holdings if h.asset_type == AssetType.CRYPTO), max(len(holdings), 1)
        )
        if crypto_share > 0.3:
            risk_tolerance = "aggressive"
        elif crypto_share > 0.1:
            risk_tolerance = "moderate"
        else:
            risk_tolerance = "conservative"

        trips = match_round_trips(transactions)
        hold_period = (
            sum(t.hold_days for t in trips) / len(trips) if trips else DEFAULT_HOLD_PERIOD_DAYS
        )

        return BehavioralProfile(
            user_id=user_id,
            risk_tolerance=risk_tolerance,
            trading_frequency=frequency,
            average_hold_period=round(hold_period, 1),
            diversification_score=diversification_score(holdings),
            last_analyzed=self.now(),
        )

    # ─── Detectors ──────────────────────────────────────────────

    def detect_biases(
        self,
        transactions: Sequence[Transaction],
        sentiment: Sequence[SentimentRecord],
        profile: BehavioralProfile,
    ) -> List[BiasFinding]:
        candidates = [
            self.detect_loss_aversion(transactions),
            self.detect_overconfidence(transactions, profile),
            self.detect_anchoring(transactions),
            self.detect_herding(transactions, sentiment),
            self.detect_confirmation_bias(transactions, sentiment),
        ]
        return [c for c in candidates if c is not None]

    def _finding(
        self,
        bias_type: BiasType,
        score: float,
        thresholds: Tuple[float, float],
        max_confidence: float,
        description: str,
        evidence: List[str],
        recommendation: str,
    ) -> BiasFinding:
        high, medium = thresholds
        return BiasFinding(
            bias_type=bias_type,
            severity=Severity(severity_for(score, high, medium)),
            confidence=min(max_confidence, score / 10),
            description=description,
            evidence=evidence,
            recommendation=recommendation,
            detected_at=self.now(),
        )

    def detect_loss_aversion(self, transactions: Sequence[Transaction]) -> Optional[BiasFinding]:
        s = self.settings
        trips = match_round_trips(transactions)
        if len(trips) < s.min_round_trips:
            return None

        quick_winners = sum(
            1 for t in trips if t.gain_pct > s.quick_win_gain_pct and t.hold_days < s.quick_win_days
        )
        held_losers = sum(
            1 for t in trips if t.gain_pct < s.held_loser_loss_pct and t.hold_days > s.held_loser_days
        )
        score = (quick_winners + held_losers) / len(trips) * 10
        if score <= 3:
            return None

        return self._finding(
            BiasType.LOSS_AVERSION, score, (7, 5), 0.9,
            "Tendency to sell winning positions too quickly while holding losing positions too long",
            [
                f"{quick_winners} instances of selling winners quickly",
                f"{held_losers} instances of holding losers too long",
                f"Pattern detected across {len(trips)} trades",
            ],
            "Consider setting predetermined price targets and stop-losses to avoid emotional decision-making",
        )

    def detect_overconfidence(
        self, transactions: Sequence[Transaction], profile: BehavioralProfile
    ) -> Optional[BiasFinding]:
        recent = self._recent_count(transactions)
        per_day = recent / self.settings.lookback_days
        diversification = profile.diversification_score
        score = per_day * 2 + (10 - diversification) / 2
        if score <= 4:
            return None

        return self._finding(
            BiasType.OVERCONFIDENCE, score, (8, 6), 0.85,
            "Excessive trading frequency combined with poor diversification suggests overconfidence",
            [
                f"{recent} trades in last {self.settings.lookback_days} days",
                f"Diversification score: {diversification:g}/10",
                f"High trading frequency: {per_day:.2f} trades/day",
            ],
            "Reduce trading frequency and improve portfolio diversification. "
            "Consider index funds for core holdings",
        )

    def detect_anchoring(self, transactions: Sequence[Transaction]) -> Optional[BiasFinding]:
        s = self.settings
        if not transactions:
            return None

        df = pd.DataFrame({
            "symbol": [t.symbol for t in transactions],
            "price": [t.price for t in transactions],
        })
        counts = df.groupby("symbol")["price"].transform("count")
        df = df[counts >= s.anchoring_min_trades]
        if df.empty:
            return None

        mean_price = df.groupby("symbol")["price"].transform("mean")
        df = df.assign(clustered=((df["price"] - mean_price).abs() / mean_price) < s.anchoring_band_pct)
        cluster_share = df.groupby("symbol")["clustered"].mean()

        qualifying = len(cluster_share)
        anchored = int((cluster_share > s.anchoring_cluster_ratio).sum())
        score = anchored / qualifying * 10
        if score <= 3:
            return None

        return self._finding(
            BiasType.ANCHORING, score, (7, 5), 0.8,
            "Trading decisions appear anchored to specific price levels rather than fundamentals",
            [
                f"{anchored} of {qualifying} symbols show price anchoring",
                "Transactions clustered around historical price points",
                "Limited price range exploration in trading decisions",
            ],
            "Focus on fundamental analysis rather than historical price levels. "
            "Use technical indicators beyond simple price anchors",
        )

    def detect_herding(
        self, transactions: Sequence[Transaction], sentiment: Sequence[SentimentRecord]
    ) -> Optional[BiasFinding]:
        s = self.settings
        if len(sentiment) < s.herding_min_sentiment_records:
            return None

        buys = [t for t in transactions if t.type == TransactionType.BUY]
        if not buys:
            return None

        window = timedelta(hours=s.herding_window_hours)
        spikes = [
            r for r in sentiment
            if r.sentiment == SentimentLabel.POSITIVE and r.score > s.herding_sentiment_score
        ]
        herding = sum(
            1 for buy in buys
            if any(
                r.symbol == canonical_symbol(buy.symbol)
                and abs(ensure_utc(r.timestamp) - ensure_utc(buy.timestamp)) < window
                for r in spikes
            )
        )
        score = herding / len(buys) * 10
        if score <= 4:
            return None

        return self._finding(
            BiasType.HERDING, score, (8, 6), 0.75,
            "Tendency to follow market sentiment and popular trends rather than independent analysis",
            [
                f"{herding} of {len(buys)} purchases followed positive sentiment spikes",
                "Trading decisions correlate with market sentiment trends",
                "Limited evidence of contrarian or independent decision-making",
            ],
            "Develop independent investment thesis. Consider contrarian strategies and avoid FOMO-driven decisions",
        )

    def detect_confirmation_bias(
        self, transactions: Sequence[Transaction], sentiment: Sequence[SentimentRecord]
    ) -> Optional[BiasFinding]:
        """Needs information-consumption data that is not collected. Always None."""
        return None

    # ─── Scoring & narrative ────────────────────────────────────

    @staticmethod
    def overall_bias_score(findings: Sequence[BiasFinding]) -> float:
        if not findings:
            return BASELINE_BIAS_SCORE
        total = sum(SEVERITY_WEIGHTS[f.severity] * f.confidence for f in findings)
        return min(10.0, total / len(findings))

    @staticmethod
    def rule_based_narrative(findings: Sequence[BiasFinding]) -> Dict[str, Any]:
        if len(findings) > 2:
            level = Severity.HIGH
        elif findings:
            level = Severity.MEDIUM
        else:
            level = Severity.LOW
        return {
            "recommendations": [
                "Develop systematic investment approach",
                "Set clear entry/exit rules",
                "Practice emotional discipline",
            ],
            "riskAssessment": {
                "level": level.value,
                "factors": [f"{f.bias_type.value} detected" for f in findings],
            },
            "improvementAreas": [
                "Systematic decision-making",
                "Bias awareness",
                "Portfolio diversification",
            ],
        }

    async def narrative(
        self,
        holdings: Sequence[Holding],
        transactions: Sequence[Transaction],
        findings: Sequence[BiasFinding],
        profile: BehavioralProfile,
    ) -> Tuple[Dict[str, Any], str]:
        system_prompt = NARRATIVE_SYSTEM_PROMPT.format(
            holdings=len(holdings),
            transactions=len(transactions),
            biases=", ".join(f"{f.bias_type.value} ({f.severity.value})" for f in findings),
            risk_tolerance=profile.risk_tolerance,
            trading_frequency=profile.trading_frequency,
        )
        completion = await json_completion(
            self.llm,
            system_prompt,
            NARRATIVE_USER_PROMPT,
            fallback=lambda: self.rule_based_narrative(findings),
            purpose="bias_narrative",
        )
        data = completion.data

        risk = data.get("riskAssessment") if isinstance(data.get("riskAssessment"), dict) else {}
        level = str(risk.get("level", "medium")).lower()
        if level not in {s.value for s in Severity}:
            level = Severity.MEDIUM.value

        return {
            "recommendations": _str_list(
                data.get("recommendations"),
                ["Review trading patterns regularly", "Consider systematic investment approach"],
            ),
            "risk_assessment": RiskAssessment(
                level=Severity(level),
                factors=(
                    [str(f) for f in risk["factors"]]
                    if isinstance(risk.get("factors"), list)
                    else ["Multiple biases detected"]
                ),
            ),
            "improvement_areas": _str_list(
                data.get("improvementAreas"), ["Emotional discipline", "Systematic analysis"]
            ),
        }, completion.source

    async def fallback_report(self, user_id: str) -> BiasReport:
        """Static report used when the analysis itself cannot run."""
        try:
            holdings = await self.store.get_holdings(user_id)
        except Exception as e:
            logger.warning("fallback_holdings_unavailable", user_id=user_id, error=str(e))
            holdings = []

        return BiasReport(
            user_id=user_id,
            overall_bias_score=5.0,
            detected_biases=[],
            behavioral_profile=BehavioralProfile(
                user_id=user_id,
                risk_tolerance="moderate",
                trading_frequency="medium",
                average_hold_period=DEFAULT_HOLD_PERIOD_DAYS,
                diversification_score=min(10, len(holdings) * 2),
                last_analyzed=self.now(),
            ),
            recommendations=[
                "Behavioral analysis temporarily unavailable",
                "Review trading patterns manually",
                "Consider systematic investment approach",
            ],
            risk_assessment=RiskAssessment(level=Severity.MEDIUM, factors=["Analysis pending"]),
            improvement_areas=[
                "Check back for updated analysis",
                "Practice emotional discipline",
                "Maintain portfolio diversification",
            ],
        )
