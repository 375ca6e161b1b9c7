"""Web reading tool: fetch pages and extract their main text."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import trafilatura
from bs4 import BeautifulSoup
from pydantic import Field

from lumen.concurrency import gather_limited
from lumen.config import settings
from lumen.errors import RetrievalError
from lumen.llm.prompt import UNTRUSTED_ENVELOPE
from lumen.tools.base import Capabilities, ToolParams, ToolResult
from lumen.tools.registry import registry

if TYPE_CHECKING:
    from lumen.tools.context import ToolContext

logger = logging.getLogger(__name__)

MAX_URLS = 3


class ScrapeUrlParams(ToolParams):
    urls: list[str] = Field(
        description="URLs to read (1-3)",
        min_length=1,
        max_length=MAX_URLS,
    )


def _page_title(html: str, fallback: str) -> str:
    """Title from trafilatura metadata, else the <title> tag, else *fallback*."""
    metadata = trafilatura.extract_metadata(html)
    if metadata and metadata.title:
        return metadata.title
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return fallback


def _extract(html: str, url: str) -> tuple[str, str]:
    """Main text and title of a page. CPU-bound; run in a thread."""
    content = trafilatura.extract(html) or ""
    if not content:
        soup = BeautifulSoup(html, "html.parser")
        content = soup.get_text(" ", strip=True)
    return content, _page_title(html, url)


def wrap_untrusted(url: str, content: str) -> str:
    """Mark fetched text as data so embedded instructions are ignored."""
    return UNTRUSTED_ENVELOPE.format(url=url, content=content)


def _scrape_gate(caps: Capabilities) -> bool:
    return bool(caps.sources) or "scrape_url" in caps.tools


@registry.tool(
    name="scrape_url",
    description=(
        "Extract and read the full content of specific URLs. Strips navigation, "
        "ads and boilerplate. Use this to read pages found via search."
    ),
    category="research",
    params_model=ScrapeUrlParams,
    gate=_scrape_gate,
)
async def scrape_url(urls: list[str], ctx: ToolContext | None = None) -> ToolResult:
    if ctx is None:
        return ToolResult(error="Reading pages is unavailable outside a turn.")
    urls = urls[:MAX_URLS]
    ctx.research.reading([{"content": "", "metadata": {"url": u, "title": u}} for u in urls])

    async def _read(url: str) -> dict[str, Any]:
        try:
            page = await ctx.search_client.fetch(url, max_bytes=settings.scrape_max_bytes)
        except RetrievalError as exc:
            logger.warning("Failed to read %s: %s", url, exc)
            return {"content": f"Error: {exc}", "metadata": {"url": url, "title": "Error"}}

        content, title = await asyncio.to_thread(_extract, page.html, url)
        truncated = len(content) > settings.scrape_max_chars
        content = content[: settings.scrape_max_chars]
        if truncated:
            content += " [Content truncated]"
        return {
            "content": wrap_untrusted(url, content),
            "metadata": {"url": url, "title": title},
        }

    pages = await gather_limited(urls, _read, limit=MAX_URLS)
    return ToolResult(data={"pages": pages})
