import httpx
import pytest

from market_prices import http
from market_prices.config import settings


@pytest.fixture(autouse=True)
def _fresh_client(monkeypatch):
    monkeypatch.setattr(http, "client", None)


def test_client_is_required_before_startup():
    with pytest.raises(RuntimeError, match="not initialized"):
        http.get_http_client()


@pytest.mark.asyncio
async def test_init_is_idempotent_and_close_resets():
    await http.init_http()
    first = http.get_http_client()
    await http.init_http()
    assert http.get_http_client() is first

    await http.close_http()
    assert first.is_closed
    with pytest.raises(RuntimeError):
        http.get_http_client()


@pytest.mark.asyncio
async def test_built_client_carries_upstream_settings():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, json={"records": []})

    async with http.build_http_client(transport=httpx.MockTransport(handler)) as client:
        assert client.timeout.read == settings.UPSTREAM_READ_TIMEOUT_SEC
        assert client.timeout.connect == settings.UPSTREAM_CONNECT_TIMEOUT_SEC
        await client.get("https://primary.test/resource/abc")

    assert seen["user-agent"].startswith("FarmCon-Market-Prices/")
    assert seen["accept"] == "application/json"


def test_http2_is_off_unless_requested(monkeypatch):
    monkeypatch.setattr(settings, "UPSTREAM_HTTP2", False)
    assert http._http2_enabled() is False
