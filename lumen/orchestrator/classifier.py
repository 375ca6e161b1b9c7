"""Turn classification and capability planning.

Decides, before any tool runs, whether a turn needs fresh web data and
which tools it may use. Explicit sources and research mode force
search; otherwise a fast model call decides, backed by a deterministic
keyword table that catches obvious tool needs the model missed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lumen.llm.prompt import CLASSIFIER_SYSTEM
from lumen.tools.base import Capabilities

if TYPE_CHECKING:
    from lumen.llm.client import ClaudeGateway
    from lumen.orchestrator.models import TurnRequest

logger = logging.getLogger(__name__)

SEARCH_TOOL_SOURCES = {
    "web_search": "web",
    "academic_search": "academic",
    "social_search": "discussions",
}

UTILITY_TOOLS = frozenset({
    "scrape_url",
    "calculate",
    "get_weather",
    "get_stock_info",
    "get_latest_news",
    "generate_table",
    "generate_chart",
    "search_media",
    "create_document",
})

SAFETY_NET: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(weather|forecast|temperature|rain(ing)?|snow(ing)?)\b", re.I), "get_weather"),
    (re.compile(r"\b(stocks?|ticker|share price|market cap|nasdaq|nyse)\b", re.I), "get_stock_info"),
    (re.compile(r"\b(news|headlines?)\b", re.I), "get_latest_news"),
    (re.compile(r"\b(calculate|compute)\b|\d\s*[-+*/^%]\s*\d", re.I), "calculate"),
    (re.compile(r"\b(chart|graph|plot)\b", re.I), "generate_chart"),
    (re.compile(r"\b(table|compare|comparison)\b", re.I), "generate_table"),
    (re.compile(r"\b(images?|videos?|pictures?|photos?)\b", re.I), "search_media"),
    (re.compile(r"\b(latest|today|current(ly)?|recent(ly)?)\b", re.I), "web_search"),
]


@dataclass
class Classification:
    """Fast-model routing decision. The default is the fail-safe answer."""

    needs_search: bool = False
    needs_tools: bool = False
    tools: frozenset[str] = field(default_factory=frozenset)


@dataclass
class TurnPlan:
    """What the pipeline will do for a turn.

    Attributes:
        search: Run the pre-search before the tool pass.
        sources: Search sources in play.
        tools: Non-search tools the turn may call.
        wants_tools: Some signal asked for a tool pass.
        classified: The classifier ran for this turn.
    """

    search: bool = False
    sources: frozenset[str] = field(default_factory=frozenset)
    tools: frozenset[str] = field(default_factory=frozenset)
    wants_tools: bool = False
    classified: bool = False

    def capabilities(self, space_id: str | None = None) -> Capabilities:
        return Capabilities(sources=self.sources, tools=self.tools, space_id=space_id)


def safety_net(query: str) -> set[str]:
    """Tool names whose keyword pattern matches *query*."""
    return {tool for pattern, tool in SAFETY_NET if pattern.search(query)}


def parse_classification(text: str) -> Classification:
    """Parse the classifier's JSON reply; anything malformed means no search, no tools."""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return Classification()
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return Classification()
    if not isinstance(data, dict):
        return Classification()

    tools = data.get("tools") or []
    if not isinstance(tools, list):
        tools = []
    known = UTILITY_TOOLS | SEARCH_TOOL_SOURCES.keys()
    return Classification(
        needs_search=data.get("needs_search") is True,
        needs_tools=data.get("needs_tools") is True,
        tools=frozenset(t for t in tools if isinstance(t, str) and t in known),
    )


async def classify(gateway: ClaudeGateway, query: str) -> Classification:
    """One fast model call. Never raises."""
    try:
        reply = await gateway.complete(
            [{"role": "user", "content": query}],
            system=CLASSIFIER_SYSTEM,
            max_tokens=200,
        )
    except Exception:
        logger.warning("Classifier call failed; assuming no search and no tools", exc_info=True)
        return Classification()
    result = parse_classification(reply)
    logger.info(
        "Classified: search=%s tools=%s (%s)",
        result.needs_search,
        result.needs_tools,
        ", ".join(sorted(result.tools)) or "none",
    )
    return result


def plan_turn(request: TurnRequest, classification: Classification | None) -> TurnPlan:
    """Combine explicit sources, chat mode and classification into a plan.

    *classification* is None when the classifier did not run.
    """
    if request.sources:
        return TurnPlan(
            search=True,
            sources=frozenset(request.sources),
            tools=UTILITY_TOOLS,
            wants_tools=True,
        )

    if request.chat_mode == "research":
        return TurnPlan(search=True, sources=frozenset({"web"}), tools=UTILITY_TOOLS, wants_tools=True)

    if classification is None:
        return TurnPlan()

    net = safety_net(request.query)
    named = classification.tools | net
    sources = {SEARCH_TOOL_SOURCES[name] for name in named if name in SEARCH_TOOL_SOURCES}
    if classification.needs_search:
        sources.add("web")

    return TurnPlan(
        search=bool(sources),
        sources=frozenset(sources),
        tools=frozenset(name for name in named if name in UTILITY_TOOLS),
        wants_tools=classification.needs_tools or bool(net) or bool(sources),
        classified=True,
    )
