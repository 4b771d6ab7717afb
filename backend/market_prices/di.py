"""
Dependency providers for the routers.
Constructs singletons once and hands them to FastAPI `Depends`; tests swap
them through `app.dependency_overrides`.
"""
from typing import Optional

from market_prices.config import settings
from market_prices.services.market_data import MarketDataService
from market_prices.services.price_filter import PriceFilterService
from market_prices.tools.agmarknet import AgmarknetClient
from market_prices.utils.cache import CacheStore, build_cache_store

# Singletons - created once and reused
_cache_store: Optional[CacheStore] = None
_agmarknet_client: Optional[AgmarknetClient] = None
_market_data_service: Optional[MarketDataService] = None
_price_filter_service: Optional[PriceFilterService] = None

def get_cache_store() -> CacheStore:
    """Get singleton cache store (memory or redis, per CACHE_BACKEND)."""
    global _cache_store
    if _cache_store is None:
        _cache_store = build_cache_store(settings.CACHE_BACKEND, settings.REDIS_URL)
    return _cache_store

def get_agmarknet_client() -> AgmarknetClient:
    """Get singleton upstream client."""
    global _agmarknet_client
    if _agmarknet_client is None:
        _agmarknet_client = AgmarknetClient()
    return _agmarknet_client

def get_market_data_service() -> MarketDataService:
    """Get singleton market data service."""
    global _market_data_service
    if _market_data_service is None:
        _market_data_service = MarketDataService(
            cache=get_cache_store(),
            client=get_agmarknet_client(),
        )
    return _market_data_service

def get_price_filter_service() -> PriceFilterService:
    """Get singleton filter service."""
    global _price_filter_service
    if _price_filter_service is None:
        _price_filter_service = PriceFilterService(
            cache=get_cache_store(),
            market_data=get_market_data_service(),
        )
    return _price_filter_service

def reset() -> None:
    """Drop all singletons (used on shutdown and in tests)."""
    global _cache_store, _agmarknet_client, _market_data_service, _price_filter_service
    _cache_store = None
    _agmarknet_client = None
    _market_data_service = None
    _price_filter_service = None
