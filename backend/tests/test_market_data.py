from __future__ import annotations

import asyncio

import httpx
import pytest

from analyst.config import Settings
from analyst.errors import MarketDataError
from analyst.services.market_data import FMPClient, PolygonClient, build_market_data_client, normalize_ticker


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_normalize_ticker():
    assert normalize_ticker(" aapl ") == "AAPL"
    assert normalize_ticker("NASDAQ:nvda") == "NVDA"
    assert normalize_ticker("$tsla") == "TSLA"
    with pytest.raises(ValueError):
        normalize_ticker("")
    with pytest.raises(ValueError):
        normalize_ticker("not a ticker at all")


def test_fmp_quote_and_profile_return_first_row():
    seen: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        if request.url.path.endswith("/quote"):
            return httpx.Response(200, json=[{"symbol": "AAPL", "price": 190.1}])
        return httpx.Response(200, json=[])

    async def _go():
        async with _client(handler) as http:
            fmp = FMPClient("k", "https://fmp.test/stable", client=http)
            return await fmp.get_realtime_snapshot("AAPL"), await fmp.get_ticker_details("AAPL")

    quote, profile = asyncio.run(_go())
    assert quote == {"symbol": "AAPL", "price": 190.1}
    assert profile is None
    assert seen[0].params["apikey"] == "k"
    assert seen[0].params["symbol"] == "AAPL"


@pytest.mark.parametrize(
    "payload",
    [
        [{"date": f"d{idx}", "close": idx} for idx in range(10)],
        {"symbol": "AAPL", "historical": [{"date": f"d{idx}", "close": idx} for idx in range(10)]},
    ],
)
def test_fmp_history_accepts_both_shapes_and_limits_rows(payload):
    async def _go():
        async with _client(lambda request: httpx.Response(200, json=payload)) as http:
            return await FMPClient("k", "https://fmp.test/stable", client=http).get_historical_prices("AAPL", days=3)

    rows = asyncio.run(_go())
    assert [row["date"] for row in rows] == ["d0", "d1", "d2"]


def test_fmp_history_failure_returns_empty_list():
    async def _go():
        async with _client(lambda request: httpx.Response(403, text="premium")) as http:
            return await FMPClient("k", "https://fmp.test/stable", client=http).get_historical_prices("AAPL")

    assert asyncio.run(_go()) == []


def test_rate_limit_and_missing_key_raise():
    async def _limited():
        async with _client(lambda request: httpx.Response(429)) as http:
            return await FMPClient("k", "https://fmp.test/stable", client=http).get_realtime_snapshot("AAPL")

    with pytest.raises(MarketDataError, match="RATE_LIMIT"):
        asyncio.run(_limited())

    with pytest.raises(MarketDataError, match="not configured"):
        asyncio.run(FMPClient("", "https://fmp.test/stable").get_ticker_details("AAPL"))


def test_polygon_snapshot_falls_back_to_previous_close():
    def handler(request: httpx.Request) -> httpx.Response:
        if "/v2/snapshot/" in request.url.path:
            return httpx.Response(403, json={"status": "NOT_AUTHORIZED"})
        if request.url.path.endswith("/prev"):
            return httpx.Response(200, json={"results": [{"o": 1, "h": 3, "l": 0.5, "c": 2.5, "v": 900}]})
        return httpx.Response(404)

    async def _go():
        async with _client(handler) as http:
            return await PolygonClient("k", "https://poly.test", client=http).get_realtime_snapshot("AAPL")

    snapshot = asyncio.run(_go())
    assert snapshot["price"] == 2.5
    assert snapshot["dayHigh"] == 3.0
    assert snapshot["volume"] == 900.0


def test_polygon_history_is_newest_first():
    bars = [{"t": 1767225600000 + idx * 86_400_000, "o": idx, "h": idx, "l": idx, "c": idx, "v": idx} for idx in range(4)]

    async def _go():
        async with _client(lambda request: httpx.Response(200, json={"results": bars})) as http:
            return await PolygonClient("k", "https://poly.test", client=http).get_historical_prices("AAPL", days=30)

    rows = asyncio.run(_go())
    assert [row["close"] for row in rows] == [3.0, 2.0, 1.0, 0.0]
    assert rows[-1]["date"] == "2026-01-01"


def test_provider_selection():
    assert isinstance(build_market_data_client(Settings()), FMPClient)
    assert isinstance(build_market_data_client(Settings(market_data_provider="polygon")), PolygonClient)
