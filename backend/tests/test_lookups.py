import httpx
import pytest

from conftest import mock_client, raw_record

from market_prices.tools import lookups


def _serving(records):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"records": records})
    return handler


@pytest.mark.asyncio
async def test_non_dict_rows_are_skipped(sleeps):
    rows = [raw_record(2000, district="Ludhiana"), None, "junk", 42, raw_record(2200, district="Amritsar")]
    client = mock_client(_serving(rows), sleeps)

    assert await lookups.districts_by_state(client, "Punjab") == ["Amritsar", "Ludhiana"]
    assert await lookups.available_states(client) == ["Punjab"]

    prices = await lookups.commodity_prices(client, "Rice")
    assert len(prices) == 2
    assert lookups.calculate_average_price(prices) == {
        "avgMinPrice": 2000, "avgMaxPrice": 2200, "avgModalPrice": 2100,
    }


def test_average_of_only_junk_rows_is_zero():
    assert lookups.calculate_average_price([None, "x", 3]) == {
        "avgMinPrice": 0, "avgMaxPrice": 0, "avgModalPrice": 0,
    }


@pytest.mark.asyncio
async def test_upstream_failure_degrades_to_empty(sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    client = mock_client(handler, sleeps)
    assert await lookups.available_commodities(client) == []
    assert await lookups.markets_by_district(client, "Punjab", "Ludhiana") == []
