from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (what the dashboard pages read)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------- Price records ----------

Trend = Literal["up", "down", "stable"]

class PriceRecord(CamelModel):
    id: str
    commodity: str
    variety: str = "Common"
    market: str = "Unknown Market"
    state: str = "Unknown State"
    district: str = "Unknown District"
    min_price: float = Field(0.0, ge=0)
    max_price: float = Field(0.0, ge=0)
    modal_price: float = Field(0.0, ge=0)
    unit: str = "Quintal"
    date: str = Field(..., description="ISO calendar date (YYYY-MM-DD)")
    source: str = Field(..., description="Which upstream path produced this record")
    trend: Trend = "stable"


# ---------- Insights ----------

class MarketEntry(CamelModel):
    market: str
    price: float
    state: str

class PriceRange(CamelModel):
    min: float = 0
    max: float = 0

class MarketInsights(CamelModel):
    avg_price: float = 0
    price_range: PriceRange = Field(default_factory=PriceRange)
    best_markets: List[MarketEntry] = Field(default_factory=list)
    worst_markets: List[MarketEntry] = Field(default_factory=list)
    seasonal_trend: Literal["rising", "falling", "stable"] = "stable"
    recommendation: str = "No data available"


# ---------- Historical (synthetic) ----------

class HistoricalMonth(CamelModel):
    month: str
    price: float
    volume: int
    trend: Literal["up", "down", "current"]

class HistoricalSeries(CamelModel):
    months: List[HistoricalMonth] = Field(default_factory=list)
    avg_price: float = 0
    price_volatility: Literal["Low", "Medium", "High"] = "Low"
    harvest_season: str = "Varies by region"
    best_selling_month: Optional[str] = None


# ---------- Responses ----------

class MarketDataResponse(CamelModel):
    prices: List[PriceRecord] = Field(default_factory=list)
    insights: MarketInsights
    historical: HistoricalSeries
    commodity: str
    state: Optional[str] = None
    district: Optional[str] = None
    total_records: int = 0
    last_updated: str
    source: str = "Government of India Market Data"

class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


# ---------- Filter endpoint ----------

SortBy = Literal["price-asc", "price-desc", "date-asc", "date-desc"]

class PriceFilters(CamelModel):
    commodity: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None
    market: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    sort_by: SortBy = "date-desc"
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1)

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

class FilterResponse(CamelModel):
    prices: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination
    filters: PriceFilters
    cached: bool = False
