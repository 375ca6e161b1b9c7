"""Tests for weather, stock and news tools."""

import httpx

from lumen.tools import registry
from tests.fakes import FakeSearchClient, route_httpx

FORECAST = {
    "current": {
        "temperature_2m": 18.4,
        "apparent_temperature": 17.9,
        "relative_humidity_2m": 62,
        "wind_speed_10m": 11.2,
        "weather_code": 3,
        "is_day": 1,
    },
    "daily": {"temperature_2m_max": [20.1], "temperature_2m_min": [11.0]},
}

CHART = {
    "chart": {
        "result": [
            {
                "meta": {
                    "regularMarketPrice": 110.0,
                    "chartPreviousClose": 100.0,
                    "currency": "USD",
                    "shortName": "Apple Inc.",
                },
                "timestamp": [1, 2, 3],
                "indicators": {"quote": [{"close": [100.0, None, 110.0]}]},
            }
        ]
    }
}


def _weather_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "nominatim.openstreetmap.org":
        assert request.url.params["q"] == "Paris"
        return httpx.Response(200, json=[{"lat": "48.85", "lon": "2.35", "display_name": "Paris, France"}])
    assert request.url.params["latitude"] == "48.85"
    return httpx.Response(200, json=FORECAST)


def _stock_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/search"):
        return httpx.Response(200, json={"quotes": [{"symbol": "AAPL"}]})
    assert request.url.path.endswith("/chart/AAPL")
    return httpx.Response(200, json=CHART)


# -- Weather -----------------------------------------------------------------


async def test_weather_publishes_widget(ctx, events, monkeypatch):
    route_httpx(monkeypatch, _weather_handler)
    result = await registry.execute("get_weather", {"location": "Paris"}, ctx)

    assert result.success
    assert result.data["temperature"] == 18.4
    assert result.data["location"] == "Paris, France"

    block = events.of_type("block")[0]["block"]
    assert block["data"]["widgetType"] == "weather"
    params = block["data"]["params"]
    assert params["location"] == "Paris"
    assert params["resolvedName"] == "Paris, France"
    assert params["current"]["weather_code"] == 3
    assert params["daily"]["temperature_2m_max"] == [20.1]


async def test_weather_unknown_location(ctx, events, monkeypatch):
    route_httpx(monkeypatch, lambda request: httpx.Response(200, json=[]))
    result = await registry.execute("get_weather", {"location": "Atlantis"}, ctx)

    assert not result.success
    assert "Location not found" in result.error
    assert events.events == []


async def test_weather_upstream_error(ctx, monkeypatch):
    route_httpx(monkeypatch, lambda request: httpx.Response(503))
    result = await registry.execute("get_weather", {"location": "Paris"}, ctx)
    assert not result.success
    assert "Weather lookup failed" in result.error


# -- Stocks ------------------------------------------------------------------


async def test_stock_publishes_widget(ctx, events, monkeypatch):
    route_httpx(monkeypatch, _stock_handler)
    result = await registry.execute("get_stock_info", {"symbol": "apple"}, ctx)

    assert result.success
    assert result.data["symbol"] == "AAPL"
    assert result.data["change_percent"] == 10.0

    params = events.of_type("block")[0]["block"]["data"]["params"]
    assert params["shortName"] == "Apple Inc."
    assert params["regularMarketPrice"] == 110.0
    assert params["chartData"] == [{"t": 1, "close": 100.0}, {"t": 3, "close": 110.0}]


async def test_stock_unknown_symbol(ctx, monkeypatch):
    route_httpx(monkeypatch, lambda request: httpx.Response(200, json={"quotes": []}))
    result = await registry.execute("get_stock_info", {"symbol": "zzzz"}, ctx)
    assert not result.success
    assert "No ticker found" in result.error


async def test_stock_malformed_chart(ctx, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search"):
            return httpx.Response(200, json={"quotes": [{"symbol": "AAPL"}]})
        return httpx.Response(200, json={"chart": {"result": []}})

    route_httpx(monkeypatch, handler)
    result = await registry.execute("get_stock_info", {"symbol": "AAPL"}, ctx)
    assert not result.success
    assert "No market data" in result.error


# -- News --------------------------------------------------------------------


async def test_news_uses_news_category(ctx, events):
    ctx.search_client = FakeSearchClient(
        results=[
            {
                "title": "Chip shortage eases",
                "url": "https://news.example/chips",
                "content": "Supply recovers.",
                "thumbnail_src": "https://img.example/c.png",
                "publishedDate": "2026-10-01",
            }
        ]
    )
    result = await registry.execute("get_latest_news", {"topic": "semiconductors"}, ctx)

    assert result.success
    assert ctx.search_client.searches == [("semiconductors", None, ["news"])]
    article = events.of_type("block")[0]["block"]["data"]["params"]["article"]
    assert article["title"] == "Chip shortage eases"
    assert article["thumbnail"] == "https://img.example/c.png"
    assert article["publishedDate"] == "2026-10-01"


async def test_news_defaults_to_tech(ctx):
    result = await registry.execute("get_latest_news", {}, ctx)
    assert result.data["topic"] == "tech"


async def test_news_empty(ctx, events):
    ctx.search_client = FakeSearchClient(results=[])
    result = await registry.execute("get_latest_news", {"topic": "nothing"}, ctx)
    assert not result.success
    assert events.events == []
