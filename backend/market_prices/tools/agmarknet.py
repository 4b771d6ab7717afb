# backend/market_prices/tools/agmarknet.py
import asyncio
import datetime as dt
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from market_prices.config import settings
from market_prices.errors import MarketDataUnavailable, UpstreamError
from market_prices.http import get_http_client
from market_prices.schemas import PriceRecord
from market_prices.tools.normalize import normalize

log = logging.getLogger(__name__)

# InvalidURL is not an HTTPError; a bad configured URL must not escape the ladder
FETCH_ERRORS = (UpstreamError, httpx.HTTPError, httpx.InvalidURL)

def t(): return time.perf_counter()


@dataclass(frozen=True)
class UpstreamSource:
    """One government price API. `base_url` is the full resource URL."""
    name: str
    base_url: str
    api_key: str = ""

    @property
    def tag(self) -> str:
        return self.name.upper()


def primary_source() -> UpstreamSource:
    return UpstreamSource(
        name="agmarknet",
        base_url=f"{settings.AGMARKNET_BASE_URL}/{settings.AGMARKNET_RESOURCE_ID}",
        api_key=settings.DATA_GOV_IN_API_KEY,
    )

def fallback_sources() -> List[UpstreamSource]:
    return [UpstreamSource(**s) for s in settings.MARKET_FALLBACK_SOURCES]


class AgmarknetClient:
    """
    Fetches mandi prices from data.gov.in with a fallback ladder:

      1. primary source with all filters, up to `max_attempts` tries with
         linear backoff (attempt x backoff_sec) between them;
      2. inside an attempt, an empty filtered result is retried once with the
         commodity filter only;
      3. each fallback source in order, commodity-only, double the limit.

    Raises MarketDataUnavailable only when every step has failed.
    """

    def __init__(
        self,
        primary: Optional[UpstreamSource] = None,
        fallbacks: Optional[Sequence[UpstreamSource]] = None,
        http: Optional[httpx.AsyncClient] = None,
        max_attempts: Optional[int] = None,
        backoff_sec: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.primary = primary or primary_source()
        self.fallbacks = list(fallbacks) if fallbacks is not None else fallback_sources()
        self._http = http
        self.max_attempts = max_attempts if max_attempts is not None else settings.UPSTREAM_MAX_ATTEMPTS
        self.backoff_sec = backoff_sec if backoff_sec is not None else settings.UPSTREAM_BACKOFF_SEC
        self._sleep = sleep

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http or get_http_client()

    # -------------------------------
    # Single request
    # -------------------------------
    async def _request(
        self,
        source: UpstreamSource,
        commodity: Optional[str] = None,
        state: Optional[str] = None,
        district: Optional[str] = None,
        market: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        params = {
            "api-key": source.api_key,
            "format": "json",
            "limit": str(limit),
            "offset": str(offset),
        }
        if commodity:
            params["filters[commodity]"] = commodity
        if state:
            params["filters[state]"] = state
        if district:
            params["filters[district]"] = district
        if market:
            params["filters[market]"] = market

        t0 = t()
        r = await self.http.get(source.base_url, params=params, headers={"Accept": "application/json"})
        ms = round((t() - t0) * 1000)
        if r.status_code < 200 or r.status_code >= 300:
            raise UpstreamError(source.name, f"HTTP {r.status_code}", status_code=r.status_code)
        try:
            data = r.json()
        except ValueError:
            raise UpstreamError(source.name, "response body is not JSON", status_code=r.status_code)

        records = data.get("records") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise UpstreamError(source.name, "invalid response format: 'records' is not a list")

        log.info("[%s] %d records in %dms (state=%s district=%s)", source.name, len(records), ms, state, district)
        return records

    async def search(
        self,
        commodity: Optional[str] = None,
        state: Optional[str] = None,
        district: Optional[str] = None,
        market: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """One raw primary-source query, no retries."""
        return await self._request(self.primary, commodity, state, district, market, limit, offset)

    # -------------------------------
    # Fallback ladder
    # -------------------------------
    async def _attempt_primary(
        self, commodity: str, state: Optional[str], district: Optional[str], limit: int
    ) -> List[Dict[str, Any]]:
        raw = await self._request(self.primary, commodity, state, district, limit=limit)
        if not raw and (state or district):
            log.info("[%s] no records for state=%s district=%s, retrying commodity-only", self.primary.name, state, district)
            raw = await self._request(self.primary, commodity, limit=limit)
        if not raw:
            raise UpstreamError(self.primary.name, "no records found")
        return raw

    async def fetch_prices(
        self,
        commodity: str,
        state: Optional[str] = None,
        district: Optional[str] = None,
        limit: int = 50,
        today: Optional[dt.date] = None,
    ) -> List[PriceRecord]:
        start = t()
        errors: List[str] = []

        for attempt in range(1, self.max_attempts + 1):
            try:
                raw = await self._attempt_primary(commodity, state, district, limit)
                recs = normalize(raw, commodity, source=self.primary.tag, today=today)
                log.info("Fetched %d %s records from %s (attempt %d, %dms)",
                         len(recs), commodity, self.primary.name, attempt, round((t() - start) * 1000))
                return recs
            except FETCH_ERRORS as e:
                errors.append(f"{self.primary.name} attempt {attempt}: {e}")
                log.warning("[%s] attempt %d/%d failed: %s", self.primary.name, attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    await self._sleep(attempt * self.backoff_sec)

        for source in self.fallbacks:
            log.info("Falling back to %s for %s", source.name, commodity)
            try:
                raw = await self._request(source, commodity, limit=limit * 2)
            except FETCH_ERRORS as e:
                errors.append(f"{source.name}: {e}")
                log.warning("[%s] fallback failed: %s", source.name, e)
                continue
            if raw:
                return normalize(raw, commodity, source=source.tag, today=today)
            errors.append(f"{source.name}: no records found")

        log.error("All market data sources failed for %s after %dms", commodity, round((t() - start) * 1000))
        raise MarketDataUnavailable("Unable to fetch market data", errors=errors)


# -------------------------------
# Command-Line Interface for Testing
# -------------------------------
async def _cli(commodity: str, state: Optional[str], district: Optional[str], limit: int):
    from market_prices.http import init_http, close_http
    await init_http()
    try:
        recs = await AgmarknetClient().fetch_prices(commodity, state=state, district=district, limit=limit)
        print(json.dumps([r.to_json() for r in recs], indent=2, ensure_ascii=False))
    except MarketDataUnavailable as e:
        print(json.dumps(e.to_dict(), indent=2, ensure_ascii=False))
    finally:
        await close_http()

if __name__ == "__main__":
    import argparse
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    parser = argparse.ArgumentParser(description="Fetch mandi prices from AGMARKNET via data.gov.in")
    parser.add_argument("--commodity", required=True, help="e.g., 'Rice'")
    parser.add_argument("--state", default=None, help="e.g., 'Punjab'")
    parser.add_argument("--district", default=None, help="e.g., 'Ludhiana'")
    parser.add_argument("--limit", type=int, default=50)
    args = parser.parse_args()
    asyncio.run(_cli(args.commodity, args.state, args.district, args.limit))
