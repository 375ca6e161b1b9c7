"""SearxNG metasearch client and size-capped page fetcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lumen.config import settings
from lumen.errors import RetrievalError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "LumenAI/1.0 (Research Assistant)"


class SearchResult(BaseModel):
    """One SearxNG hit. Unknown fields from the engine are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = ""
    url: str = ""
    content: str = ""
    engine: str = ""
    img_src: str | None = None
    thumbnail: str | None = Field(default=None, alias="thumbnail_src")
    iframe_src: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")

    @field_validator("title", "url", "content", "engine", mode="before")
    @classmethod
    def _null_to_empty(cls, value: object) -> object:
        return "" if value is None else value

    def to_chunk(self) -> dict:
        """Shape used by research substeps and search context."""
        return {
            "content": self.content or self.title,
            "metadata": {"title": self.title, "url": self.url},
        }


@dataclass
class SearchResponse:
    results: list[SearchResult] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass
class FetchedPage:
    url: str
    html: str
    content_type: str


def _is_html(content_type: str) -> bool:
    """Check if a Content-Type header value indicates HTML."""
    ct = content_type.lower().split(";")[0].strip()
    return ct in ("text/html", "application/xhtml+xml")


class SearxngClient:
    """Thin async client over a SearxNG instance's JSON API."""

    def __init__(self, base_url: str | None = None, *, timeout: float = 20.0) -> None:
        self._base_url = (base_url or settings.searxng_url).rstrip("/")
        self._timeout = timeout

    async def search(
        self,
        query: str,
        *,
        engines: list[str] | None = None,
        categories: list[str] | None = None,
    ) -> SearchResponse:
        """Run *query*, optionally restricted to *engines* or *categories*.

        Raises:
            RetrievalError: The instance was unreachable or answered badly.
        """
        params: dict[str, str] = {"q": query, "format": "json"}
        if engines:
            params["engines"] = ",".join(engines)
        if categories:
            params["categories"] = ",".join(categories)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(f"{self._base_url}/search", params=params)
            if resp.status_code != 200:
                msg = f"SearxNG returned {resp.status_code}: {resp.text[:200]}"
                raise RetrievalError(msg)
            data = resp.json()
        except httpx.HTTPError as exc:
            msg = f"Search request failed: {exc}"
            raise RetrievalError(msg) from exc
        except ValueError as exc:
            msg = "SearxNG returned invalid JSON"
            raise RetrievalError(msg) from exc

        if not isinstance(data, dict):
            msg = "SearxNG returned a non-object body"
            raise RetrievalError(msg)

        results: list[SearchResult] = []
        for raw in data.get("results") or []:
            try:
                results.append(SearchResult.model_validate(raw))
            except ValidationError:
                logger.warning("Skipping malformed SearxNG hit: %.200r", raw)
        suggestions = [s for s in data.get("suggestions") or [] if isinstance(s, str)]
        logger.info("SearxNG '%s' (engines=%s): %d results", query[:80], engines, len(results))
        return SearchResponse(results=results, suggestions=suggestions)

    async def fetch(self, url: str, *, max_bytes: int | None = None) -> FetchedPage:
        """Download an HTML page, aborting once it exceeds *max_bytes*.

        Raises:
            RetrievalError: Network failure, non-200 status, non-HTML
                content, or a body over the size ceiling.
        """
        limit = max_bytes or settings.scrape_max_bytes
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers={"User-Agent": DEFAULT_USER_AGENT},
                max_redirects=5,
            ) as client, client.stream("GET", url) as resp:
                if resp.status_code != 200:
                    msg = f"HTTP {resp.status_code} fetching {url}"
                    raise RetrievalError(msg)

                content_type = resp.headers.get("content-type", "")
                if not _is_html(content_type):
                    msg = f"Not an HTML page (Content-Type: {content_type})"
                    raise RetrievalError(msg)

                body = bytearray()
                async for chunk in resp.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > limit:
                        msg = f"Page too large (over {limit} bytes)"
                        raise RetrievalError(msg)
                encoding = resp.encoding or "utf-8"
        except httpx.TimeoutException as exc:
            msg = f"Timeout fetching {url}"
            raise RetrievalError(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"Failed to fetch {url}: {exc}"
            raise RetrievalError(msg) from exc

        return FetchedPage(
            url=url,
            html=bytes(body).decode(encoding, errors="replace"),
            content_type=content_type,
        )
