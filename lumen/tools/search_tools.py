"""Search tools over SearxNG: web, academic and social discussions.

All three share :func:`execute_search`, which traces the search in the
turn's research block and optionally re-ranks a long result list with
the fast model.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from pydantic import Field

from lumen.concurrency import gather_limited
from lumen.errors import RetrievalError
from lumen.llm.prompt import RERANK_SYSTEM
from lumen.tools.base import BaseTool, Capabilities, ToolParams, ToolResult
from lumen.tools.registry import registry

if TYPE_CHECKING:
    from lumen.tools.context import ToolContext

logger = logging.getLogger(__name__)

MAX_QUERIES = 3
RERANK_THRESHOLD = 5
RERANK_MIN = 3
RERANK_MAX = 5

# Engine subsets per search source; None means SearxNG's defaults.
SOURCE_ENGINES: dict[str, list[str] | None] = {
    "web": None,
    "academic": ["google scholar"],
    "discussions": ["reddit"],
}


def engines_for_sources(sources: list[str] | frozenset[str]) -> list[str] | None:
    """Engine subset for a turn's explicit sources (academic wins over discussions)."""
    if "academic" in sources:
        return SOURCE_ENGINES["academic"]
    if "discussions" in sources:
        return SOURCE_ENGINES["discussions"]
    return None


class SearchParams(ToolParams):
    queries: list[str] | None = Field(default=None, description="An array of search queries (max 3)")
    query: str | None = Field(default=None, description="A single search query")

    def all_queries(self) -> list[str]:
        if self.queries:
            return [q for q in self.queries if q.strip()]
        return [self.query] if self.query and self.query.strip() else []


def _parse_indices(text: str, count: int) -> list[int]:
    """Distinct in-range integers from the model's reply, in order."""
    picked: list[int] = []
    for match in re.findall(r"\d+", text):
        idx = int(match)
        if idx < count and idx not in picked:
            picked.append(idx)
    return picked


async def rerank(ctx: ToolContext, query: str, results: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Let the fast model keep the 3-5 most relevant results.

    Falls back to the first five when the reply holds no usable index.
    """
    listing = "\n".join(
        f"{i}. {r['metadata']['title']} - {r['content'][:200]}" for i, r in enumerate(results)
    )
    try:
        reply = await ctx.gateway.complete(
            [{"role": "user", "content": f"Query: {query}\n\nResults:\n{listing}"}],
            system=RERANK_SYSTEM,
            max_tokens=50,
        )
    except Exception:
        logger.warning("Re-rank call failed; keeping first %d results", RERANK_MAX, exc_info=True)
        return results[:RERANK_MAX]

    indices = _parse_indices(reply, len(results))[:RERANK_MAX]
    if not indices:
        return results[:RERANK_MAX]
    ranked = [results[i] for i in indices]
    # Top up to the minimum from the original order.
    for r in results:
        if len(ranked) >= RERANK_MIN:
            break
        if r not in ranked:
            ranked.append(r)
    return ranked


async def execute_search(
    queries: list[str],
    engines: list[str] | None,
    ctx: ToolContext,
) -> list[dict[str, Any]]:
    """Run up to three queries concurrently and trace them in the research block.

    A failing sub-query contributes nothing; it does not fail the search.
    Returns result chunks ``{"content", "metadata": {"title", "url"}}``.
    """
    queries = [q[:200] for q in queries if q.strip()][:MAX_QUERIES]
    if not queries:
        logger.warning("Search called with no queries")
        return []

    ctx.research.searching(queries)

    async def _one(q: str) -> list[dict[str, Any]]:
        try:
            response = await ctx.search_client.search(q, engines=engines)
        except RetrievalError:
            logger.warning("Search failed for query '%s'", q, exc_info=True)
            return []
        return [r.to_chunk() for r in response.results]

    batches = await gather_limited(queries, _one, limit=MAX_QUERIES)

    results: list[dict[str, Any]] = []
    seen: set[str] = set()
    for batch in batches:
        for chunk in batch:
            url = chunk["metadata"]["url"]
            if url and url in seen:
                continue
            seen.add(url)
            results.append(chunk)

    if len(results) > RERANK_THRESHOLD:
        results = await rerank(ctx, queries[0], results)

    ctx.research.search_results(results[:RERANK_MAX])
    logger.info("Search complete: %d results for %d queries", len(results), len(queries))
    return results


class SearchTool(BaseTool):
    """A search tool bound to one source's engine subset."""

    category = "research"
    params_model = SearchParams
    source = "web"

    def gate(self, caps: Capabilities) -> bool:
        return self.source in caps.sources or self.name in caps.tools

    async def execute(
        self,
        queries: list[str] | None = None,
        query: str | None = None,
        ctx: ToolContext | None = None,
    ) -> ToolResult:
        if ctx is None:
            return ToolResult(error="Search is unavailable outside a turn.")
        params = SearchParams(queries=queries, query=query)
        results = await execute_search(params.all_queries(), SOURCE_ENGINES[self.source], ctx)
        return ToolResult(data={"results": results, "count": len(results)})


class WebSearchTool(SearchTool):
    name = "web_search"
    description = "Search the web for real-time information."
    source = "web"


class AcademicSearchTool(SearchTool):
    name = "academic_search"
    description = "Search academic papers and scholarly articles."
    source = "academic"


class SocialSearchTool(SearchTool):
    name = "social_search"
    description = "Search for discussions on social platforms."
    source = "discussions"


registry.register(WebSearchTool())
registry.register(AcademicSearchTool())
registry.register(SocialSearchTool())
