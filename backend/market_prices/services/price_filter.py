# backend/market_prices/services/price_filter.py
import datetime as dt
import hashlib
import json
import logging
import math
from typing import Any, Dict, List, Optional

from market_prices.config import settings
from market_prices.schemas import FilterResponse, Pagination, PriceFilters
from market_prices.services.market_data import MarketDataService
from market_prices.utils.cache import (
    KEY_PREFIX,
    POPULAR_FILTERS,
    CacheStore,
    market_data_key,
    run_best_effort,
    snapshot_key,
    stats_key,
)

log = logging.getLogger(__name__)


def filter_cache_key(filters: PriceFilters) -> str:
    digest = hashlib.sha256(json.dumps(filters.to_json(), sort_keys=True).encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}:filter:{digest[:32]}"


def _as_date(s: Any) -> Optional[dt.date]:
    try:
        return dt.date.fromisoformat(str(s)[:10])
    except (TypeError, ValueError):
        return None


def apply_filters(prices: List[Dict[str, Any]], filters: PriceFilters) -> List[Dict[str, Any]]:
    date_from = _as_date(filters.date_from) if filters.date_from else None
    date_to = _as_date(filters.date_to) if filters.date_to else None
    needle = filters.market.lower() if filters.market else None

    out = []
    for p in prices:
        modal = float(p.get("modalPrice") or 0)
        if needle and needle not in str(p.get("market", "")).lower():
            continue
        if filters.min_price is not None and modal < filters.min_price:
            continue
        if filters.max_price is not None and modal > filters.max_price:
            continue
        if date_from or date_to:
            d = _as_date(p.get("date"))
            if d is None:
                continue
            if date_from and d < date_from:
                continue
            if date_to and d > date_to:
                continue
        out.append(p)
    return out


def sort_prices(prices: List[Dict[str, Any]], sort_by: str) -> List[Dict[str, Any]]:
    if sort_by in ("price-asc", "price-desc"):
        return sorted(prices, key=lambda p: float(p.get("modalPrice") or 0), reverse=sort_by == "price-desc")
    return sorted(prices, key=lambda p: _as_date(p.get("date")) or dt.date.min, reverse=sort_by != "date-asc")


def paginate(prices: List[Dict[str, Any]], page: int, limit: int) -> tuple[List[Dict[str, Any]], Pagination]:
    total = len(prices)
    start = (page - 1) * limit
    end = start + limit
    return prices[start:end], Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if limit else 0,
        has_next=end < total,
        has_prev=page > 1,
    )


class PriceFilterService:
    """Filter/sort/paginate over the cached market-data response for a commodity."""

    def __init__(self, cache: CacheStore, market_data: MarketDataService) -> None:
        self.cache = cache
        self.market_data = market_data

    async def _source_prices(self, filters: PriceFilters) -> List[Dict[str, Any]]:
        if not filters.commodity:
            return []
        main = await self.cache.get_json(market_data_key(filters.commodity, filters.state, filters.district))
        if isinstance(main, dict) and isinstance(main.get("prices"), list):
            return main["prices"]
        data = await self.market_data.get_market_data(
            filters.commodity, state=filters.state, district=filters.district, limit=settings.DEFAULT_LIMIT
        )
        return list(data.get("prices") or [])

    async def filter_prices(self, filters: PriceFilters) -> Dict[str, Any]:
        ttl = settings.STATS_TTL_SEC
        key = filter_cache_key(filters)
        label = filters.commodity or "all"

        await run_best_effort([lambda: self.cache.incr(stats_key("filter-requests"), ttl)], label="filter stats")

        cached = await self.cache.get_json(key)
        if cached is not None:
            score = self.market_data.now_ms()
            await run_best_effort([
                lambda: self.cache.incr(stats_key("filter-cache-hits"), ttl),
                lambda: self.cache.zadd(POPULAR_FILTERS, score, label, ttl),
            ], label="filter hit")
            return {**cached, "cached": True}

        prices = await self._source_prices(filters)
        selected = sort_prices(apply_filters(prices, filters), filters.sort_by)
        page_items, pagination = paginate(selected, filters.page, filters.limit)

        result = FilterResponse(
            prices=page_items,
            pagination=pagination,
            filters=filters,
            cached=False,
        ).to_json()

        score = self.market_data.now_ms()
        await run_best_effort([
            lambda: self.cache.set(key, result, settings.FILTER_TTL_SEC),
            lambda: self.cache.incr(stats_key("filter-cache-misses"), ttl),
            lambda: self.cache.zadd(POPULAR_FILTERS, score, label, ttl),
            lambda: self.cache.set(snapshot_key("last-filter", label), filters.to_json(),
                                   settings.LAST_FILTER_TTL_SEC),
        ], label="filter miss")
        return result

    async def record_error(self) -> None:
        await run_best_effort(
            [lambda: self.cache.incr(stats_key("filter-errors"), settings.STATS_TTL_SEC)],
            label="filter error counter",
        )
