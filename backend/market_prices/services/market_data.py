# backend/market_prices/services/market_data.py
import datetime as dt
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from market_prices.config import settings
from market_prices.schemas import MarketDataResponse, MarketInsights, PriceRecord
from market_prices.tools.agmarknet import AgmarknetClient
from market_prices.tools.historical import synthesize_history
from market_prices.tools.insights import compute_insights
from market_prices.utils.cache import (
    POPULAR_COMMODITIES,
    POPULAR_LOCATIONS,
    CacheStore,
    Effect,
    api_calls_key,
    market_data_key,
    run_best_effort,
    snapshot_key,
    stats_key,
)

log = logging.getLogger(__name__)

def t(): return time.perf_counter()

Clock = Callable[[], dt.datetime]
RngFactory = Callable[[], np.random.Generator]

SOURCE_LABEL = "Government of India Market Data"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class MarketDataService:
    """
    Serves the composed market-prices response.

    CacheCheck -> hit: respond
               -> miss: fetch -> normalize -> insights + history -> populate -> respond
    MarketDataUnavailable from the client propagates untouched and nothing is cached.
    """

    def __init__(
        self,
        cache: CacheStore,
        client: AgmarknetClient,
        clock: Optional[Clock] = None,
        rng_factory: Optional[RngFactory] = None,
    ) -> None:
        self.cache = cache
        self.client = client
        self._clock = clock or _utcnow
        self._rng_factory = rng_factory or np.random.default_rng

    def now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    async def get_market_data(
        self,
        commodity: str,
        state: Optional[str] = None,
        district: Optional[str] = None,
        limit: int = 50,
    ) -> Dict[str, Any]:
        start = t()
        key = market_data_key(commodity, state, district)

        cached = await self.cache.get_json(key)
        if cached is not None:
            log.info("Cache HIT for %s", key)
            await run_best_effort(self._hit_effects(commodity), label="market-data hit")
            return cached

        log.info("Cache MISS for %s", key)
        now = self._clock()
        records = await self.client.fetch_prices(
            commodity, state=state, district=district, limit=limit, today=now.date()
        )

        insights = compute_insights(records, commodity, now=now)
        historical = synthesize_history(commodity, records, rng=self._rng_factory(), today=now.date())

        response = MarketDataResponse(
            prices=records,
            insights=insights,
            historical=historical,
            commodity=commodity,
            state=state,
            district=district,
            total_records=len(records),
            last_updated=now.isoformat(),
            source=_source_label(records),
        ).to_json()

        await self.cache.set_json(key, response, ttl=settings.MARKET_DATA_TTL_SEC)
        await run_best_effort(
            self._miss_effects(commodity, state, district, limit, records, insights),
            label="market-data miss",
        )

        log.info("Market data for %s: %d records in %dms (fresh)",
                 key, len(records), round((t() - start) * 1000))
        return response

    async def record_error(self) -> None:
        await run_best_effort(
            [lambda: self.cache.incr(stats_key("api-errors"), settings.STATS_TTL_SEC)],
            label="error counter",
        )

    # -------------------------------
    # Auxiliary bookkeeping
    # -------------------------------
    def _hit_effects(self, commodity: str) -> List[Effect]:
        ttl = settings.STATS_TTL_SEC
        score = self.now_ms()
        return [
            lambda: self.cache.incr(stats_key("cache-hits"), ttl),
            lambda: self.cache.incr(api_calls_key(commodity), ttl),
            lambda: self.cache.zadd(POPULAR_COMMODITIES, score, commodity, ttl),
        ]

    def _miss_effects(
        self,
        commodity: str,
        state: Optional[str],
        district: Optional[str],
        limit: int,
        records: List[PriceRecord],
        insights: MarketInsights,
    ) -> List[Effect]:
        ttl = settings.STATS_TTL_SEC
        now = self._clock()
        score = self.now_ms()

        latest_query = {
            "commodity": commodity,
            "state": state,
            "district": district,
            "limit": limit,
            "totalRecords": len(records),
            "timestamp": now.isoformat(),
        }
        market_stats = {
            "avgPrice": insights.avg_price,
            "trend": insights.seasonal_trend,
            "totalRecords": len(records),
            "lastUpdated": now.isoformat(),
        }
        price_range = {
            "min": insights.price_range.min,
            "max": insights.price_range.max,
            "avg": insights.avg_price,
        }

        effects: List[Effect] = [
            lambda: self.cache.incr(stats_key("cache-misses"), ttl),
            lambda: self.cache.incr(api_calls_key(commodity), ttl),
            lambda: self.cache.zadd(POPULAR_COMMODITIES, score, commodity, ttl),
            lambda: self.cache.set(snapshot_key("latest-query", commodity), latest_query,
                                   settings.LATEST_QUERY_TTL_SEC),
            lambda: self.cache.set(snapshot_key("market-stats", commodity), market_stats,
                                   settings.MARKET_STATS_TTL_SEC),
            lambda: self.cache.set(snapshot_key("price-range", commodity), price_range,
                                   settings.PRICE_RANGE_TTL_SEC),
        ]
        if state:
            location = f"{state}:{district}" if district else state
            effects.append(lambda: self.cache.zadd(POPULAR_LOCATIONS, score, location, ttl))
        return effects


def _source_label(records: List[PriceRecord]) -> str:
    tags = sorted({r.source for r in records})
    if not tags:
        return SOURCE_LABEL
    return f"{SOURCE_LABEL} ({', '.join(tags)})"
