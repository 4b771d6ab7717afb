# backend/market_prices/tools/lookups.py
"""
Reference lookups over raw AGMARKNET records (states, districts, markets,
commodities). Upstream failures degrade to empty lists.
"""
import logging
from typing import Any, Dict, List, Optional

from market_prices.tools.agmarknet import FETCH_ERRORS, AgmarknetClient
from market_prices.tools.normalize import to_price

log = logging.getLogger(__name__)

LOOKUP_LIMIT = 1000


async def get_mandi_prices(
    client: AgmarknetClient,
    commodity: Optional[str] = None,
    state: Optional[str] = None,
    district: Optional[str] = None,
    market: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    try:
        return await client.search(commodity, state, district, market, limit=limit, offset=offset)
    except FETCH_ERRORS as e:
        log.warning("AGMARKNET lookup failed: %s", e)
        return []


def _rows(records: List[Any]) -> List[Dict[str, Any]]:
    return [r for r in records if isinstance(r, dict)]


def _distinct(records: List[Any], field: str) -> List[str]:
    return sorted({str(r[field]).strip() for r in _rows(records) if r.get(field)})


async def available_states(client: AgmarknetClient) -> List[str]:
    return _distinct(await get_mandi_prices(client, limit=LOOKUP_LIMIT), "state")

async def districts_by_state(client: AgmarknetClient, state: str) -> List[str]:
    return _distinct(await get_mandi_prices(client, state=state, limit=LOOKUP_LIMIT), "district")

async def available_commodities(client: AgmarknetClient, state: Optional[str] = None) -> List[str]:
    return _distinct(await get_mandi_prices(client, state=state, limit=LOOKUP_LIMIT), "commodity")

async def markets_by_district(client: AgmarknetClient, state: str, district: str) -> List[str]:
    recs = await get_mandi_prices(client, state=state, district=district, limit=LOOKUP_LIMIT)
    return _distinct(recs, "market")

async def commodity_prices(
    client: AgmarknetClient, commodity: str, state: Optional[str] = None, district: Optional[str] = None
) -> List[Dict[str, Any]]:
    return _rows(await get_mandi_prices(client, commodity=commodity, state=state, district=district, limit=50))


def calculate_average_price(records: List[Any]) -> Dict[str, int]:
    """Average min/max/modal over raw records; unparsable prices count as 0."""
    records = _rows(records)
    if not records:
        return {"avgMinPrice": 0, "avgMaxPrice": 0, "avgModalPrice": 0}
    n = len(records)

    def _avg(field: str) -> int:
        return round(sum(to_price(r.get(field)) or 0.0 for r in records) / n)

    return {
        "avgMinPrice": _avg("min_price"),
        "avgMaxPrice": _avg("max_price"),
        "avgModalPrice": _avg("modal_price"),
    }
