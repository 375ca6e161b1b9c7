"""Tests for the SearxNG client and page fetcher."""

import httpx
import pytest

from lumen.errors import RetrievalError
from lumen.retrieval.searxng import SearchResult, SearxngClient
from tests.fakes import route_httpx

PAYLOAD = {
    "results": [
        {
            "title": "Attention Is All You Need",
            "url": "https://arxiv.org/abs/1706.03762",
            "content": "The dominant sequence transduction models...",
            "engine": "google scholar",
            "publishedDate": "2017-06-12",
            "score": 3.2,
        },
        {"title": "No snippet", "url": "https://b.example"},
    ],
    "suggestions": ["transformer architecture", 42],
}


# -- Search ------------------------------------------------------------------


async def test_search_builds_query(monkeypatch):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=PAYLOAD)

    route_httpx(monkeypatch, handler)
    response = await SearxngClient("http://searx.local/").search(
        "attention", engines=["google scholar"], categories=["science"]
    )

    params = seen[0].url.params
    assert seen[0].url.path == "/search"
    assert params["q"] == "attention"
    assert params["format"] == "json"
    assert params["engines"] == "google scholar"
    assert params["categories"] == "science"

    assert len(response.results) == 2
    assert response.results[0].published_date == "2017-06-12"
    assert response.suggestions == ["transformer architecture"]


async def test_search_omits_empty_filters(monkeypatch):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"results": []})

    route_httpx(monkeypatch, handler)
    await SearxngClient("http://searx.local").search("weather")
    assert "engines" not in seen[0].url.params
    assert "categories" not in seen[0].url.params


async def test_search_http_error(monkeypatch):
    route_httpx(monkeypatch, lambda request: httpx.Response(500, text="oops"))
    with pytest.raises(RetrievalError, match="500"):
        await SearxngClient("http://searx.local").search("q")


async def test_search_invalid_json(monkeypatch):
    route_httpx(monkeypatch, lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(RetrievalError, match="invalid JSON"):
        await SearxngClient("http://searx.local").search("q")


async def test_search_unreachable(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    route_httpx(monkeypatch, handler)
    with pytest.raises(RetrievalError, match="Search request failed"):
        await SearxngClient("http://searx.local").search("q")


async def test_search_tolerates_null_fields(monkeypatch):
    payload = {
        "results": [
            {"title": "Paper", "url": "https://p.example", "content": None, "engine": None},
            "not a hit",
            {"title": ["bad"], "url": "https://x.example"},
        ]
    }
    route_httpx(monkeypatch, lambda request: httpx.Response(200, json=payload))
    response = await SearxngClient("http://searx.local").search("q")

    assert [r.url for r in response.results] == ["https://p.example"]
    assert response.results[0].content == ""
    assert response.results[0].to_chunk()["content"] == "Paper"


async def test_search_non_object_body(monkeypatch):
    route_httpx(monkeypatch, lambda request: httpx.Response(200, json=[{"title": "x"}]))
    with pytest.raises(RetrievalError, match="non-object"):
        await SearxngClient("http://searx.local").search("q")


def test_result_chunk_falls_back_to_title():
    chunk = SearchResult(title="Only a title", url="https://t.example").to_chunk()
    assert chunk == {"content": "Only a title", "metadata": {"title": "Only a title", "url": "https://t.example"}}


# -- Fetch -------------------------------------------------------------------


async def test_fetch_html(monkeypatch):
    html = "<html><title>Hi</title><body>Hello</body></html>"
    route_httpx(
        monkeypatch,
        lambda request: httpx.Response(
            200, text=html, headers={"content-type": "text/html; charset=utf-8"}
        ),
    )
    page = await SearxngClient().fetch("https://site.example/page")
    assert page.html == html
    assert page.url == "https://site.example/page"
    assert page.content_type.startswith("text/html")


async def test_fetch_rejects_non_html(monkeypatch):
    route_httpx(
        monkeypatch,
        lambda request: httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"}),
    )
    with pytest.raises(RetrievalError, match="Not an HTML page"):
        await SearxngClient().fetch("https://site.example/file.pdf")


async def test_fetch_enforces_size_ceiling(monkeypatch):
    route_httpx(
        monkeypatch,
        lambda request: httpx.Response(200, content=b"x" * 2048, headers={"content-type": "text/html"}),
    )
    with pytest.raises(RetrievalError, match="too large"):
        await SearxngClient().fetch("https://site.example/huge", max_bytes=1024)


async def test_fetch_non_200(monkeypatch):
    route_httpx(monkeypatch, lambda request: httpx.Response(404, headers={"content-type": "text/html"}))
    with pytest.raises(RetrievalError, match="HTTP 404"):
        await SearxngClient().fetch("https://site.example/missing")
