"""
NEUFIN — Error Taxonomy
Only SymbolValidationError is meant to reach callers; every other failure
is absorbed by the component that observes it and routed to a fallback.
"""
from typing import Optional


class NeufinError(Exception):
    """Base exception for the platform."""


class ProviderUnavailable(NeufinError):
    """A data source failed: network error, timeout, bad status or malformed payload."""

    def __init__(self, provider: str, symbol: Optional[str] = None, reason: str = ""):
        self.provider = provider
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"{provider} unavailable for {symbol or '-'}: {reason}")


class DataInsufficient(NeufinError):
    """Too little history to compute a statistic; callers use the neutral default."""


class LLMFailure(NeufinError):
    """Missing credential, quota error, timeout or unparseable model output."""


class SymbolValidationError(NeufinError, ValueError):
    """Rejected input symbol."""
