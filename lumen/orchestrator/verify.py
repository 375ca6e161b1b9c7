"""Post-tool verification: did the tools actually answer the query?"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from lumen.llm.prompt import VERIFIER_SYSTEM

if TYPE_CHECKING:
    from lumen.llm.client import ClaudeGateway
    from lumen.tools.base import ToolRun

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 2000


def _summarize(runs: list[ToolRun], search_results: list[dict[str, Any]]) -> str:
    parts = []
    if search_results:
        lines = [f"- {r['metadata']['title']}: {r['content'][:200]}" for r in search_results[:5]]
        parts.append("web_search:\n" + "\n".join(lines))
    for run in runs:
        parts.append(f"{run.name}({run.arguments}):\n{run.result.to_content()[:MAX_OUTPUT_CHARS]}")
    return "\n\n".join(parts)


async def verify(
    gateway: ClaudeGateway,
    query: str,
    runs: list[ToolRun],
    search_results: list[dict[str, Any]],
) -> bool:
    """True unless the fast model answers FAILED.

    A failing verification call counts as PASSED.
    """
    prompt = f"Query: {query}\n\nTool outputs:\n{_summarize(runs, search_results) or '(none)'}"
    try:
        reply = await gateway.complete(
            [{"role": "user", "content": prompt}],
            system=VERIFIER_SYSTEM,
            max_tokens=10,
        )
    except Exception:
        logger.warning("Verification call failed; treating as PASSED", exc_info=True)
        return True
    passed = "FAILED" not in reply.upper()
    logger.info("Verification %s", "PASSED" if passed else "FAILED")
    return passed
