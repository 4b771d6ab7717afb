# backend/market_prices/services/cache_stats.py
import datetime as dt
from typing import Any, Dict

from market_prices.utils.cache import POPULAR_COMMODITIES, POPULAR_LOCATIONS, CacheStore, stats_key

STAT_NAMES = [
    "cache-hits",
    "cache-misses",
    "filter-requests",
    "filter-cache-hits",
    "filter-cache-misses",
    "filter-errors",
    "api-errors",
]


def _count(v: Any) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0


async def cache_stats(cache: CacheStore) -> Dict[str, Any]:
    """Counters and popularity rankings written by the market-data and filter endpoints."""
    values = await cache.mget([stats_key(n) for n in STAT_NAMES])
    counts = {name: _count(v) for name, v in zip(STAT_NAMES, values)}

    commodities = await cache.zrange(POPULAR_COMMODITIES, 0, 9)
    locations = await cache.zrange(POPULAR_LOCATIONS, 0, 9)

    hits = counts["cache-hits"] + counts["filter-cache-hits"]
    misses = counts["cache-misses"] + counts["filter-cache-misses"]
    total = hits + misses
    hit_rate = f"{(hits / total * 100):.2f}%" if total else "0.00%"

    return {
        "cache": {
            "marketDataCacheHits": counts["cache-hits"],
            "marketDataCacheMisses": counts["cache-misses"],
            "filterCacheHits": counts["filter-cache-hits"],
            "filterCacheMisses": counts["filter-cache-misses"],
            "totalCacheHits": hits,
            "totalCacheMisses": misses,
            "cacheHitRate": hit_rate,
            "totalRequests": total,
        },
        "requests": {
            "filterRequests": counts["filter-requests"],
            "filterErrors": counts["filter-errors"],
            "totalApiErrors": counts["api-errors"],
        },
        "popular": {
            "commodities": commodities,
            "locations": locations,
        },
        "backend": cache.backend,
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
    }
