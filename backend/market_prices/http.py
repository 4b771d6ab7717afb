"""
Shared outbound client for the government price APIs.

One pooled AsyncClient per process, opened on startup and closed on shutdown.
Every upstream request goes to a handful of hosts, so the pool is small and
the read timeout is what matters: the resource endpoint can take well over
ten seconds to page through a large commodity.
"""
import logging
from typing import Optional

import httpx

from market_prices import __version__
from market_prices.config import settings

log = logging.getLogger(__name__)

USER_AGENT = f"FarmCon-Market-Prices/{__version__}"

client: Optional[httpx.AsyncClient] = None


def _http2_enabled() -> bool:
    if not settings.UPSTREAM_HTTP2:
        return False
    try:
        import h2  # noqa: F401
    except ImportError:
        log.warning("UPSTREAM_HTTP2 is set but h2 is missing (pip install httpx[http2]); using HTTP/1.1")
        return False
    return True


def build_http_client(http2: bool = False, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    timeout = httpx.Timeout(
        connect=settings.UPSTREAM_CONNECT_TIMEOUT_SEC,
        read=settings.UPSTREAM_READ_TIMEOUT_SEC,
        write=settings.UPSTREAM_CONNECT_TIMEOUT_SEC,
        pool=settings.UPSTREAM_CONNECT_TIMEOUT_SEC,
    )
    limits = httpx.Limits(
        max_connections=settings.UPSTREAM_MAX_CONNECTIONS,
        max_keepalive_connections=max(1, settings.UPSTREAM_MAX_CONNECTIONS // 2),
        keepalive_expiry=30,
    )
    return httpx.AsyncClient(
        timeout=timeout,
        limits=limits,
        http2=http2,
        transport=transport,
        headers={"Accept": "application/json", "User-Agent": USER_AGENT},
    )


async def init_http() -> None:
    """Open the shared client; a second call keeps the existing one."""
    global client
    if client is not None:
        return
    http2 = _http2_enabled()
    client = build_http_client(http2=http2)
    log.info("HTTP client ready (http2=%s, read timeout %ss)", http2, settings.UPSTREAM_READ_TIMEOUT_SEC)


async def close_http() -> None:
    global client
    if client is not None:
        await client.aclose()
        client = None


def get_http_client() -> httpx.AsyncClient:
    if client is None:
        raise RuntimeError("HTTP client not initialized. Call init_http() first.")
    return client
