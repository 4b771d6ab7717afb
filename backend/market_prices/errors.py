from typing import Any, Dict, List, Optional


class MarketPriceError(Exception):
    """Base class for market price pipeline errors."""


class UpstreamError(MarketPriceError):
    """A single upstream request failed (bad status or malformed body)."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status_code = status_code


class MarketDataUnavailable(MarketPriceError):
    """Every upstream source and retry was exhausted."""

    def __init__(self, message: str = "Unable to fetch market data", errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])

    @property
    def details(self) -> str:
        if not self.errors:
            return "All upstream market data sources failed"
        return "; ".join(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "details": self.details}
