import httpx
import pytest

from conftest import FALLBACK, PRIMARY, mock_client, raw_record

from market_prices.errors import MarketDataUnavailable
from market_prices.tools.agmarknet import UpstreamSource


def _ok(records):
    return httpx.Response(200, json={"records": records, "total": len(records)})


@pytest.mark.asyncio
async def test_first_attempt_success_sends_filters_and_key(sleeps):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params)
        return _ok([raw_record(2000), raw_record(2100, market="Jagraon")])

    client = mock_client(handler, sleeps)
    recs = await client.fetch_prices("Rice", state="Punjab", district="Ludhiana", limit=25)

    assert len(recs) == 2
    assert recs[0].source == "AGMARKNET"
    assert recs[0].date == "2026-10-18"
    params = seen[0]
    assert params["api-key"] == "k1"
    assert params["format"] == "json"
    assert params["limit"] == "25"
    assert params["filters[commodity]"] == "Rice"
    assert params["filters[state]"] == "Punjab"
    assert params["filters[district]"] == "Ludhiana"
    assert sleeps == []


@pytest.mark.asyncio
async def test_retries_with_linear_backoff(sleeps):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls < 3:
            return httpx.Response(502)
        return _ok([raw_record(1800)])

    client = mock_client(handler, sleeps)
    recs = await client.fetch_prices("Rice")

    assert len(recs) == 1
    assert calls == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_empty_filtered_result_retries_commodity_only(sleeps):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        if "filters[state]" in request.url.params:
            return _ok([])
        return _ok([raw_record(1900, state="Haryana")])

    client = mock_client(handler, sleeps)
    recs = await client.fetch_prices("Rice", state="Punjab")

    assert len(seen) == 2
    assert "filters[state]" not in seen[1]
    assert seen[1]["filters[commodity]"] == "Rice"
    assert recs[0].state == "Haryana"
    assert sleeps == []


@pytest.mark.asyncio
async def test_malformed_body_counts_as_failed_attempt(sleeps):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(200, json={"records": "oops"})
        if calls == 2:
            return httpx.Response(200, text="<html>maintenance</html>")
        return _ok([raw_record(2000)])

    client = mock_client(handler, sleeps)
    recs = await client.fetch_prices("Rice")
    assert len(recs) == 1
    assert calls == 3


@pytest.mark.asyncio
async def test_falls_back_to_alternate_source_with_relaxed_query(sleeps):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.host, dict(request.url.params)))
        if request.url.host == "primary.test":
            return httpx.Response(500)
        return _ok([{"market_name": "eNAM Market", "modal_price": "2300"}])

    client = mock_client(handler, sleeps, fallbacks=[FALLBACK])
    recs = await client.fetch_prices("Rice", state="Punjab", district="Ludhiana", limit=30)

    primary_calls = [p for host, p in seen if host == "primary.test"]
    fallback_calls = [p for host, p in seen if host == "fallback.test"]
    assert len(primary_calls) == 3
    assert len(fallback_calls) == 1
    assert fallback_calls[0]["limit"] == "60"
    assert fallback_calls[0]["api-key"] == "k2"
    assert "filters[state]" not in fallback_calls[0]
    assert "filters[district]" not in fallback_calls[0]
    assert recs[0].source == "ENAM"
    assert recs[0].market == "eNAM Market"


@pytest.mark.asyncio
async def test_exhaustion_raises_unavailable(sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "primary.test":
            return _ok([])
        return httpx.Response(503)

    second = UpstreamSource(name="backup", base_url="https://backup.test/prices")
    client = mock_client(handler, sleeps, fallbacks=[FALLBACK, second])

    with pytest.raises(MarketDataUnavailable) as exc:
        await client.fetch_prices("Rice")

    assert exc.value.message == "Unable to fetch market data"
    assert len(exc.value.errors) == 5
    assert "enam" in exc.value.details
    assert exc.value.to_dict()["error"] == "Unable to fetch market data"
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_transport_errors_are_retried(sleeps):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectTimeout("timed out", request=request)

    client = mock_client(handler, sleeps)
    with pytest.raises(MarketDataUnavailable):
        await client.fetch_prices("Rice")
    assert calls == 3


@pytest.mark.asyncio
async def test_search_is_a_single_raw_query(sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["filters[market]"] == "Khanna"
        return _ok([raw_record(2000)])

    client = mock_client(handler, sleeps)
    rows = await client.search(commodity="Rice", market="Khanna", limit=5)
    assert rows[0]["modal_price"] == "2000"
    assert PRIMARY.tag == "AGMARKNET"


@pytest.mark.asyncio
async def test_malformed_fallback_url_moves_on_to_next_source(sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "primary.test":
            return httpx.Response(500)
        return _ok([raw_record(2400)])

    broken = UpstreamSource(name="broken", base_url="https://bad.test:notaport/prices")
    client = mock_client(handler, sleeps, fallbacks=[broken, FALLBACK])
    recs = await client.fetch_prices("Rice")

    assert recs[0].source == "ENAM"
    assert recs[0].modal_price == 2400.0
