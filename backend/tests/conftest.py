"""
Pytest configuration and fixtures for the market price service tests.
"""
import datetime as dt
import os
from typing import Any, Dict, List, Optional

import httpx
import numpy as np
import pytest

# Set test environment before importing app modules
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("MARKET_FALLBACK_SOURCES", "")

from market_prices.errors import MarketDataUnavailable
from market_prices.http import build_http_client
from market_prices.schemas import PriceRecord
from market_prices.services.market_data import MarketDataService
from market_prices.tools.agmarknet import AgmarknetClient, UpstreamSource
from market_prices.tools.normalize import normalize
from market_prices.utils.cache import MemoryCacheStore

FIXED_NOW = dt.datetime(2026, 10, 19, 12, 0, tzinfo=dt.timezone.utc)

PRIMARY = UpstreamSource(name="agmarknet", base_url="https://primary.test/resource/abc", api_key="k1")
FALLBACK = UpstreamSource(name="enam", base_url="https://fallback.test/prices", api_key="k2")


def days_ago(n: int) -> str:
    return (FIXED_NOW.date() - dt.timedelta(days=n)).isoformat()


def make_record(modal: float, market: str = "Azadpur", date: Optional[str] = None, **kw) -> PriceRecord:
    base = {
        "id": f"test-{market}-{modal}",
        "commodity": "Rice",
        "market": market,
        "state": kw.pop("state", "Delhi"),
        "district": "North Delhi",
        "min_price": modal * 0.9,
        "max_price": modal * 1.1,
        "modal_price": modal,
        "date": date or days_ago(1),
        "source": "AGMARKNET",
    }
    base.update(kw)
    return PriceRecord(**base)


def raw_record(modal: Any, **kw) -> Dict[str, Any]:
    rec = {
        "state": "Punjab",
        "district": "Ludhiana",
        "market": "Khanna",
        "commodity": "Rice",
        "variety": "Basmati",
        "arrival_date": "18/10/2026",
        "min_price": str(float(modal) - 100),
        "max_price": str(float(modal) + 100),
        "modal_price": str(modal),
    }
    rec.update(kw)
    return rec


class StubClient:
    """Upstream double that counts calls."""

    def __init__(self, raw: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.raw = raw if raw is not None else [raw_record(2000), raw_record(2200, market="Jagraon")]
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def fetch_prices(self, commodity, state=None, district=None, limit=50, today=None):
        self.calls.append({"commodity": commodity, "state": state, "district": district, "limit": limit, "today": today})
        if self.error is not None:
            raise self.error
        return normalize(self.raw, commodity, today=today or FIXED_NOW.date())


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def stub_client() -> StubClient:
    return StubClient()


@pytest.fixture
def unavailable_client() -> StubClient:
    return StubClient(error=MarketDataUnavailable("Unable to fetch market data", errors=["agmarknet attempt 1: HTTP 500"]))


@pytest.fixture
def service(store, stub_client, clock) -> MarketDataService:
    return MarketDataService(
        cache=store,
        client=stub_client,
        clock=clock,
        rng_factory=lambda: np.random.default_rng(7),
    )


@pytest.fixture
def sleeps() -> List[float]:
    return []


def mock_client(handler, sleeps: List[float], fallbacks=None, **kw) -> AgmarknetClient:
    async def fake_sleep(sec: float):
        sleeps.append(sec)

    http = build_http_client(transport=httpx.MockTransport(handler))
    return AgmarknetClient(
        primary=PRIMARY,
        fallbacks=fallbacks or [],
        http=http,
        max_attempts=kw.get("max_attempts", 3),
        backoff_sec=kw.get("backoff_sec", 1.0),
        sleep=fake_sleep,
    )
