"""
NEUFIN — Data Models
Canonical data structures shared by the resolver, scorers, engines and store.
"""
import math
import uuid
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Any
from datetime import datetime
from enum import Enum

from neufin.utils.helpers import clamp, utc_now


def _new_id() -> str:
    return uuid.uuid4().hex


def _bounded(value: Any, low: float, high: float, default: float) -> float:
    """Coerce to float and clamp; unparseable or NaN input becomes `default`."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return clamp(number, low, high)


class AssetType(str, Enum):
    STOCK = "stock"
    ETF = "etf"
    CRYPTO = "crypto"
    COMMODITY = "commodity"
    FOREX = "forex"


class QuoteSource(str, Enum):
    YAHOO = "yahoo"
    ALPHA_VANTAGE = "alpha_vantage"
    SYNTHETIC = "synthetic"


class Quote(BaseModel):
    """Normalized quote. Frozen: a returned quote is never mutated."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    asset_type: AssetType
    last_updated: datetime
    company_name: Optional[str] = None
    sector: Optional[str] = None
    market_cap: Optional[float] = None
    source: QuoteSource = QuoteSource.SYNTHETIC


class CompanyInfo(BaseModel):
    name: str
    sector: str


class NewsItem(BaseModel):
    headline: str
    summary: str
    source: str
    published_at: datetime
    symbols: List[str] = Field(default_factory=list)
    url: Optional[str] = None


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class SentimentResult(BaseModel):
    """Scored sentiment: label, 0-10 score and 0-1 confidence."""
    sentiment: SentimentLabel = SentimentLabel.NEUTRAL
    score: float = 5.0
    confidence: float = 0.5

    @field_validator("sentiment", mode="before")
    @classmethod
    def coerce_label(cls, value: Any) -> str:
        if isinstance(value, SentimentLabel):
            return value.value
        label = str(value).strip().lower() if value is not None else ""
        if label in {s.value for s in SentimentLabel}:
            return label
        return SentimentLabel.NEUTRAL.value

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: Any) -> float:
        return _bounded(value, 0.0, 10.0, 5.0)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return _bounded(value, 0.0, 1.0, 0.5)


class SentimentRecord(SentimentResult):
    """Persisted sentiment observation. Append-only per symbol."""
    id: str = Field(default_factory=_new_id)
    symbol: str
    source_text: str
    source: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class Signal(str, Enum):
    STRONG_BUY = "strong_buy"
    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"
    STRONG_SELL = "strong_sell"


class AlphaSignature(BaseModel):
    """Composite score for a symbol. Superseded by newer rows, never updated."""
    id: str = Field(default_factory=_new_id)
    symbol: str
    alpha_score: float
    sentiment_score: float
    volatility_score: float
    momentum_score: float
    signal: Signal
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator("alpha_score", "sentiment_score", "volatility_score", "momentum_score", mode="before")
    @classmethod
    def clamp_scores(cls, value: Any) -> float:
        return _bounded(value, 0.0, 10.0, 5.0)


class PriceHistoryPoint(BaseModel):
    id: str = Field(default_factory=_new_id)
    symbol: str
    price: float
    change: Optional[float] = None
    change_percent: Optional[float] = None
    volume: Optional[int] = None
    timestamp: datetime = Field(default_factory=utc_now)


class Holding(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    symbol: str
    shares: float
    avg_cost: float
    asset_type: AssetType = AssetType.STOCK
    sector: Optional[str] = None
    company_name: Optional[str] = None
    current_price: Optional[float] = None
    created_at: datetime = Field(default_factory=utc_now)


class WatchlistItem(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    symbol: str
    company_name: str
    asset_type: AssetType = AssetType.STOCK
    sector: Optional[str] = None
    added_at: datetime = Field(default_factory=utc_now)


class TransactionType(str, Enum):
    BUY = "buy"
    SELL = "sell"


class Transaction(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    symbol: str
    type: TransactionType
    quantity: float = Field(gt=0)
    price: float = Field(gt=0)
    timestamp: datetime = Field(default_factory=utc_now)


class BiasType(str, Enum):
    LOSS_AVERSION = "loss_aversion"
    OVERCONFIDENCE = "overconfidence"
    ANCHORING = "anchoring"
    HERDING = "herding"
    CONFIRMATION_BIAS = "confirmation_bias"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BiasFinding(BaseModel):
    bias_type: BiasType
    severity: Severity
    confidence: float
    description: str
    evidence: List[str] = Field(default_factory=list)
    recommendation: str
    detected_at: datetime = Field(default_factory=utc_now)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return _bounded(value, 0.0, 1.0, 0.5)


class BehavioralProfile(BaseModel):
    user_id: str
    risk_tolerance: str = "moderate"  # conservative / moderate / aggressive
    trading_frequency: str = "medium"  # low / medium / high
    average_hold_period: float = 30.0  # days
    diversification_score: float = 0.0
    last_analyzed: datetime = Field(default_factory=utc_now)

    @field_validator("diversification_score", mode="before")
    @classmethod
    def clamp_diversification(cls, value: Any) -> float:
        return _bounded(value, 0.0, 10.0, 0.0)


class RiskAssessment(BaseModel):
    level: Severity = Severity.MEDIUM
    factors: List[str] = Field(default_factory=list)


class BiasReport(BaseModel):
    user_id: str
    overall_bias_score: float
    detected_biases: List[BiasFinding] = Field(default_factory=list)
    behavioral_profile: BehavioralProfile
    recommendations: List[str] = Field(default_factory=list)
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    improvement_areas: List[str] = Field(default_factory=list)
    transactions_synthesized: bool = False
    narrative_source: str = "rules"  # llm / rules
    generated_at: datetime = Field(default_factory=utc_now)

    @field_validator("overall_bias_score", mode="before")
    @classmethod
    def clamp_overall(cls, value: Any) -> float:
        return _bounded(value, 0.0, 10.0, 5.0)
