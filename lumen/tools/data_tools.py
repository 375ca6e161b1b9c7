"""Live data tools: weather, stock quotes and news.

All three publish a widget block with the fetched data and return a
compact summary to the model.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import Field

from lumen.errors import RetrievalError
from lumen.tools.base import ToolParams, ToolResult
from lumen.tools.registry import registry
from lumen.tools.widget_tools import publish_widget

if TYPE_CHECKING:
    from lumen.tools.context import ToolContext

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
YAHOO_SEARCH_URL = "https://query2.finance.yahoo.com/v1/finance/search"
YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
DEFAULT_USER_AGENT = "LumenAI/1.0 (Research Assistant)"

CURRENT_FIELDS = (
    "temperature_2m,relative_humidity_2m,apparent_temperature,is_day,"
    "precipitation,weather_code,wind_speed_10m"
)
DAILY_FIELDS = "weather_code,temperature_2m_max,temperature_2m_min,precipitation_probability_max"


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=15, headers={"User-Agent": DEFAULT_USER_AGENT})


# -- Weather -----------------------------------------------------------------


class WeatherParams(ToolParams):
    location: str = Field(description="The city and country/state")


@registry.tool(
    name="get_weather",
    description="Get current weather conditions and a short forecast for a location.",
    category="data",
    params_model=WeatherParams,
)
async def get_weather(location: str, ctx: ToolContext | None = None) -> ToolResult:
    try:
        async with _http_client() as client:
            geo = await client.get(
                NOMINATIM_URL, params={"q": location, "format": "json", "limit": 1}
            )
            geo.raise_for_status()
            places = geo.json()
            if not places:
                return ToolResult(error=f"Location not found: {location}")
            place = places[0]

            resp = await client.get(
                OPEN_METEO_URL,
                params={
                    "latitude": place["lat"],
                    "longitude": place["lon"],
                    "current": CURRENT_FIELDS,
                    "daily": DAILY_FIELDS,
                    "timezone": "auto",
                },
            )
            resp.raise_for_status()
            forecast = resp.json()
    except httpx.HTTPError as exc:
        logger.exception("Weather lookup failed")
        return ToolResult(error=f"Weather lookup failed: {exc}")

    current = forecast.get("current", {})
    params = {
        "location": location,
        "resolvedName": place.get("display_name", location),
        "current": current,
        "daily": forecast.get("daily", {}),
    }
    publish_widget(ctx, "weather", params)
    return ToolResult(
        data={
            "location": params["resolvedName"],
            "temperature": current.get("temperature_2m"),
            "apparent_temperature": current.get("apparent_temperature"),
            "humidity": current.get("relative_humidity_2m"),
            "wind_speed": current.get("wind_speed_10m"),
            "weather_code": current.get("weather_code"),
        }
    )


# -- Stocks ------------------------------------------------------------------


class StockParams(ToolParams):
    symbol: str = Field(description="Ticker symbol or company name (e.g. AAPL, Tesla)")


async def _resolve_ticker(client: httpx.AsyncClient, symbol: str) -> str | None:
    resp = await client.get(YAHOO_SEARCH_URL, params={"q": symbol, "quotesCount": 1, "newsCount": 0})
    resp.raise_for_status()
    quotes = resp.json().get("quotes", [])
    return quotes[0].get("symbol") if quotes else None


@registry.tool(
    name="get_stock_info",
    description="Get real-time stock price and recent market data for a ticker symbol.",
    category="data",
    params_model=StockParams,
)
async def get_stock_info(symbol: str, ctx: ToolContext | None = None) -> ToolResult:
    try:
        async with _http_client() as client:
            ticker = await _resolve_ticker(client, symbol)
            if not ticker:
                return ToolResult(error=f"No ticker found for '{symbol}'")
            resp = await client.get(
                YAHOO_CHART_URL.format(symbol=ticker),
                params={"range": "1mo", "interval": "1d"},
            )
            resp.raise_for_status()
            chart = resp.json()["chart"]["result"][0]
    except httpx.HTTPError as exc:
        logger.exception("Stock lookup failed")
        return ToolResult(error=f"Stock lookup failed: {exc}")
    except (KeyError, IndexError, TypeError):
        return ToolResult(error=f"No market data for '{symbol}'")

    meta = chart.get("meta", {})
    price = meta.get("regularMarketPrice")
    previous = meta.get("chartPreviousClose") or meta.get("previousClose")
    change_pct = ((price - previous) / previous * 100) if price and previous else None
    closes = (chart.get("indicators", {}).get("quote") or [{}])[0].get("close", [])
    points = [
        {"t": ts, "close": close}
        for ts, close in zip(chart.get("timestamp", []), closes, strict=False)
        if close is not None
    ]

    params: dict[str, Any] = {
        "symbol": ticker,
        "shortName": meta.get("shortName") or meta.get("longName") or ticker,
        "regularMarketPrice": price,
        "currency": meta.get("currency"),
        "regularMarketChangePercent": change_pct,
        "chartData": points,
    }
    publish_widget(ctx, "stock", params)
    return ToolResult(
        data={
            "symbol": ticker,
            "price": price,
            "currency": params["currency"],
            "change_percent": change_pct,
        }
    )


# -- News --------------------------------------------------------------------


class NewsParams(ToolParams):
    topic: str = Field(default="tech", description="The topic to get news for (e.g. tech, sports, finance)")


@registry.tool(
    name="get_latest_news",
    description="Retrieve the latest trending news articles on a specific topic.",
    category="data",
    params_model=NewsParams,
)
async def get_latest_news(topic: str = "tech", ctx: ToolContext | None = None) -> ToolResult:
    if ctx is None:
        return ToolResult(error="News is unavailable outside a turn.")
    try:
        response = await ctx.search_client.search(topic, categories=["news"])
    except RetrievalError as exc:
        return ToolResult(error=str(exc))

    articles = [
        {
            "title": r.title,
            "url": r.url,
            "content": r.content,
            "thumbnail": r.thumbnail or r.img_src,
            "publishedDate": r.published_date,
        }
        for r in response.results[:5]
    ]
    if not articles:
        return ToolResult(error=f"No news found for '{topic}'")

    publish_widget(ctx, "news_article", {"article": articles[0]})
    return ToolResult(data={"topic": topic, "articles": articles})
