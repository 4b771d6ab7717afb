# backend/market_prices/config.py
import os
from dotenv import load_dotenv
from pathlib import Path

dotenv_path = Path(__file__).parents[2] / '.env'
load_dotenv(dotenv_path)


def _parse_sources(raw: str) -> list[dict]:
    """Parse 'name|base_url|api_key,name|base_url|api_key' into source dicts."""
    out = []
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = [p.strip() for p in chunk.split("|")]
        if len(parts) < 2 or not parts[1]:
            continue
        out.append({
            "name": parts[0],
            "base_url": parts[1],
            "api_key": parts[2] if len(parts) > 2 else "",
        })
    return out


class Settings:
    # --- Data.gov.in (AGMARKNET) ---
    DATA_GOV_IN_API_KEY: str = os.getenv(
        "DATA_GOV_IN_API_KEY", "579b464db66ec23bdd000001cdd3946e44ce4aad7209ff7b23ac571b"
    )
    AGMARKNET_RESOURCE_ID: str = os.getenv("AGMARKNET_RESOURCE_ID", "9ef84268-d588-465a-a308-a864a43d0070")
    AGMARKNET_BASE_URL: str = os.getenv("AGMARKNET_BASE_URL", "https://api.data.gov.in/resource")

    # Alternate sources, tried in order once the primary is exhausted.
    # eNAM needs approved credentials, so nothing is configured by default.
    MARKET_FALLBACK_SOURCES: list[dict] = _parse_sources(os.getenv("MARKET_FALLBACK_SOURCES", ""))

    # --- Upstream retry knobs ---
    UPSTREAM_MAX_ATTEMPTS: int = int(os.getenv("UPSTREAM_MAX_ATTEMPTS", "3"))
    UPSTREAM_BACKOFF_SEC: float = float(os.getenv("UPSTREAM_BACKOFF_SEC", "1.0"))

    # --- Outbound HTTP ---
    # data.gov.in answers over HTTP/1.1; HTTP/2 is opt-in for other sources.
    UPSTREAM_HTTP2: bool = os.getenv("UPSTREAM_HTTP2", "false").lower() in ("1", "true", "yes")
    UPSTREAM_CONNECT_TIMEOUT_SEC: float = float(os.getenv("UPSTREAM_CONNECT_TIMEOUT_SEC", "5.0"))
    UPSTREAM_READ_TIMEOUT_SEC: float = float(os.getenv("UPSTREAM_READ_TIMEOUT_SEC", "20.0"))
    UPSTREAM_MAX_CONNECTIONS: int = int(os.getenv("UPSTREAM_MAX_CONNECTIONS", "20"))

    # --- Request defaults ---
    DEFAULT_COMMODITY: str = os.getenv("DEFAULT_COMMODITY", "Rice")
    DEFAULT_LIMIT: int = int(os.getenv("DEFAULT_LIMIT", "50"))

    # --- Cache ---
    CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "memory")  # memory | redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    MARKET_DATA_TTL_SEC: int = int(os.getenv("MARKET_DATA_TTL_SEC", "3600"))
    STATS_TTL_SEC: int = int(os.getenv("STATS_TTL_SEC", "86400"))
    LATEST_QUERY_TTL_SEC: int = int(os.getenv("LATEST_QUERY_TTL_SEC", "1800"))
    MARKET_STATS_TTL_SEC: int = int(os.getenv("MARKET_STATS_TTL_SEC", "7200"))
    PRICE_RANGE_TTL_SEC: int = int(os.getenv("PRICE_RANGE_TTL_SEC", "3600"))
    FILTER_TTL_SEC: int = int(os.getenv("FILTER_TTL_SEC", "1800"))
    LAST_FILTER_TTL_SEC: int = int(os.getenv("LAST_FILTER_TTL_SEC", "3600"))

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
