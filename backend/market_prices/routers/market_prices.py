"""
/api/market-prices endpoints
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from market_prices.config import settings
from market_prices.di import get_agmarknet_client, get_market_data_service, get_price_filter_service
from market_prices.errors import MarketDataUnavailable
from market_prices.schemas import ErrorResponse, MarketDataResponse, PriceFilters, SortBy
from market_prices.services.market_data import MarketDataService
from market_prices.services.price_filter import PriceFilterService
from market_prices.tools import lookups
from market_prices.tools.agmarknet import AgmarknetClient

log = logging.getLogger(__name__)

router = APIRouter(tags=["market-prices"], prefix="/api/market-prices")

ERROR_RESPONSES = {
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _blank(v: Optional[str]) -> Optional[str]:
    # "?state=" means no state filter
    if v is None:
        return None
    v = v.strip()
    return v or None


@router.get("", response_model=MarketDataResponse, response_model_by_alias=True, responses=ERROR_RESPONSES)
async def market_prices(
    commodity: str = Query(settings.DEFAULT_COMMODITY, description="Commodity name, e.g. 'Rice'"),
    state: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    limit: int = Query(settings.DEFAULT_LIMIT, ge=1, le=1000),
    service: MarketDataService = Depends(get_market_data_service),
):
    """
    Prices, insights and a synthetic 6-month history for a commodity.
    503 only when every upstream source failed; anything unexpected is a 500.
    """
    commodity = _blank(commodity) or settings.DEFAULT_COMMODITY
    try:
        data = await service.get_market_data(commodity, state=_blank(state), district=_blank(district), limit=limit)
        return JSONResponse(data)
    except MarketDataUnavailable as e:
        log.error("Market data unavailable for %s: %s", commodity, e.details)
        return JSONResponse(e.to_dict(), status_code=503)
    except Exception:
        log.exception("Market prices API error")
        await service.record_error()
        return JSONResponse({"error": "Failed to fetch market prices"}, status_code=500)


@router.get("/filter", responses=ERROR_RESPONSES)
async def filter_market_prices(
    commodity: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    market: Optional[str] = Query(None, description="Case-insensitive substring of the market name"),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    sort_by: SortBy = Query("date-desc", alias="sortBy"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    service: PriceFilterService = Depends(get_price_filter_service),
):
    filters = PriceFilters(
        commodity=_blank(commodity),
        state=_blank(state),
        district=_blank(district),
        market=_blank(market),
        min_price=min_price,
        max_price=max_price,
        date_from=_blank(date_from),
        date_to=_blank(date_to),
        sort_by=sort_by,
        page=page,
        limit=limit,
    )
    try:
        return JSONResponse(await service.filter_prices(filters))
    except MarketDataUnavailable as e:
        log.error("Filter source data unavailable: %s", e.details)
        return JSONResponse(e.to_dict(), status_code=503)
    except Exception:
        log.exception("Filter API error")
        await service.record_error()
        return JSONResponse({"error": "Failed to filter market prices"}, status_code=500)


@router.get("/agmarknet", responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def agmarknet_lookup(
    action: str = Query("search"),
    commodity: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    market: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    client: AgmarknetClient = Depends(get_agmarknet_client),
):
    """Raw AGMARKNET reference lookups (states, districts, markets, commodities)."""
    commodity, state, district, market = map(_blank, (commodity, state, district, market))
    try:
        if action == "states":
            return {"states": await lookups.available_states(client)}

        if action == "districts":
            if not state:
                return JSONResponse({"error": "State parameter required"}, status_code=400)
            return {"districts": await lookups.districts_by_state(client, state)}

        if action == "commodities":
            return {"commodities": await lookups.available_commodities(client, state)}

        if action == "markets":
            if not state or not district:
                return JSONResponse({"error": "State and district parameters required"}, status_code=400)
            return {"markets": await lookups.markets_by_district(client, state, district)}

        if action == "commodity-prices":
            if not commodity:
                return JSONResponse({"error": "Commodity parameter required"}, status_code=400)
            prices = await lookups.commodity_prices(client, commodity, state, district)
            return {"prices": prices, "averages": lookups.calculate_average_price(prices)}

        data = await lookups.get_mandi_prices(client, commodity, state, district, market, limit=limit)
        return {"data": data, "count": len(data)}
    except Exception as e:
        log.exception("AGMARKNET lookup error")
        return JSONResponse({"error": str(e) or "Failed to fetch mandi prices"}, status_code=500)
