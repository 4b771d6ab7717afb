"""
/api/analytics endpoints
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from market_prices.di import get_cache_store
from market_prices.services.cache_stats import cache_stats
from market_prices.utils.cache import CacheStore

log = logging.getLogger(__name__)

router = APIRouter(tags=["analytics"], prefix="/api/analytics")


@router.get("/cache-stats")
async def get_cache_stats(cache: CacheStore = Depends(get_cache_store)):
    try:
        return await cache_stats(cache)
    except Exception:
        log.exception("Cache stats error")
        return JSONResponse({"error": "Failed to fetch cache statistics"}, status_code=500)
