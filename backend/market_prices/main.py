import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from market_prices import __version__, di
from market_prices.config import settings
from market_prices.http import init_http, close_http
from market_prices.routers import analytics, market_prices
from market_prices.utils.cache import init_cache, close_cache

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("market_prices")

# Single FastAPI instance
app = FastAPI(title="FarmCon Market Prices", version=__version__)

# Single startup event
@app.on_event("startup")
async def startup_event():
    """Initialize cache and HTTP client on startup."""
    await init_cache(di.get_cache_store())
    await init_http()
    log.info("HTTP client initialized")

# Single shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Close HTTP client and cache on shutdown."""
    await close_http()
    await close_cache(di.get_cache_store())
    di.reset()
    log.info("HTTP client and cache closed")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(market_prices.router)
app.include_router(analytics.router)

@app.get("/")
async def root():
    return {"ok": True, "service": "FarmCon Market Prices", "version": app.version}

@app.get("/health")
async def health():
    return {
        "ok": True,
        "cache_backend": settings.CACHE_BACKEND,
        "fallback_sources": [s["name"] for s in settings.MARKET_FALLBACK_SOURCES],
        "upstream_max_attempts": settings.UPSTREAM_MAX_ATTEMPTS,
    }
