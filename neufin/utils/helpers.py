"""
NEUFIN — Common Utility Functions
"""
from datetime import datetime, timezone
from typing import Iterable, List, TypeVar

T = TypeVar("T")


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Return current UTC timestamp as ISO string."""
    return utc_now().isoformat()


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC (SQLite drops tzinfo); aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safe division avoiding ZeroDivisionError."""
    if denominator == 0:
        return default
    return numerator / denominator


def clamp(value: float, min_val: float = 0.0, max_val: float = 10.0) -> float:
    """Clamp a value between min and max."""
    return max(min_val, min(max_val, value))


def chunked(items: Iterable[T], size: int) -> List[List[T]]:
    """Split items into consecutive lists of at most `size` elements."""
    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]


def severity_for(score: float, high: float, medium: float) -> str:
    """Map a 0-10 bias score onto low/medium/high using strict thresholds."""
    if score > high:
        return "high"
    elif score > medium:
        return "medium"
    else:
        return "low"
