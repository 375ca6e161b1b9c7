"""Auxiliary calls that follow the answer: chat titles and suggested questions."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from lumen.llm.prompt import SUGGESTIONS_SYSTEM, TITLE_SYSTEM

if TYPE_CHECKING:
    from lumen.llm.client import ClaudeGateway

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 100
FALLBACK_TITLE_CHARS = 50
MAX_SUGGESTIONS = 3


async def generate_title(gateway: ClaudeGateway, query: str, response: str) -> str:
    """A 3-6 word chat title; the query preview if the call fails."""
    try:
        text = await gateway.complete(
            [
                {"role": "user", "content": query},
                {"role": "assistant", "content": response[:500]},
                {"role": "user", "content": "Generate a concise title for this conversation."},
            ],
            system=TITLE_SYSTEM,
            max_tokens=30,
        )
    except Exception:
        logger.warning("Title generation failed", exc_info=True)
        return query[:FALLBACK_TITLE_CHARS]
    title = text.strip().strip("\"'").strip()[:MAX_TITLE_CHARS]
    return title or query[:FALLBACK_TITLE_CHARS]


def parse_suggestions(text: str) -> list[str]:
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        return []
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []
    return [s.strip() for s in data if isinstance(s, str) and s.strip()][:MAX_SUGGESTIONS]


async def suggest_followups(gateway: ClaudeGateway, query: str, answer: str) -> list[str]:
    """Up to three follow-up questions. Failures yield none."""
    try:
        reply = await gateway.complete(
            [{"role": "user", "content": f"Question: {query}\n\nAnswer: {answer[:2000]}"}],
            system=SUGGESTIONS_SYSTEM,
            max_tokens=200,
        )
    except Exception:
        logger.warning("Suggestion generation failed", exc_info=True)
        return []
    return parse_suggestions(reply)
