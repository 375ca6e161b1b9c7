"""Document creation tool: write a long-form document into a workspace."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from pydantic import Field

from lumen.llm.models import ModelManager
from lumen.llm.prompt import DOCUMENT_SYSTEM
from lumen.persistence.store import DocumentRecord
from lumen.session.blocks import Block
from lumen.tools.base import Capabilities, ToolParams, ToolResult
from lumen.tools.registry import registry

if TYPE_CHECKING:
    from lumen.tools.context import ToolContext

logger = logging.getLogger(__name__)

_INLINE = re.compile(r"(\*\*[^*]+\*\*|\*[^*]+\*)")
_ORDERED = re.compile(r"^\d+\.\s")
_HEADINGS = (("### ", 3), ("## ", 2), ("# ", 1))


# -- Markdown conversion -----------------------------------------------------


def parse_inline(text: str) -> list[dict[str, Any]]:
    """Split text into runs with bold/italic marks."""
    runs: list[dict[str, Any]] = []
    for part in _INLINE.split(text):
        if not part:
            continue
        if part.startswith("**") and part.endswith("**") and len(part) > 4:
            runs.append({"type": "text", "marks": [{"type": "bold"}], "text": part[2:-2]})
        elif part.startswith("*") and part.endswith("*") and len(part) > 2:
            runs.append({"type": "text", "marks": [{"type": "italic"}], "text": part[1:-1]})
        else:
            runs.append({"type": "text", "text": part})
    return runs or [{"type": "text", "text": text}]


def _append_list_item(content: list[dict[str, Any]], list_type: str, text: str) -> None:
    item = {"type": "listItem", "content": [{"type": "paragraph", "content": parse_inline(text)}]}
    if content and content[-1]["type"] == list_type:
        content[-1]["content"].append(item)
    else:
        content.append({"type": list_type, "content": [item]})


def markdown_to_doc(markdown: str) -> dict[str, Any]:
    """Convert generated markdown into the editor's structured document JSON.

    Supports headings (levels 1-3), bullet and numbered lists, and
    paragraphs with bold/italic runs. Consecutive list items merge into
    one list node.
    """
    content: list[dict[str, Any]] = []
    for line in markdown.splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        heading = next(((p, lvl) for p, lvl in _HEADINGS if stripped.startswith(p)), None)
        if heading:
            prefix, level = heading
            content.append({
                "type": "heading",
                "attrs": {"level": level},
                "content": [{"type": "text", "text": stripped[len(prefix):]}],
            })
        elif stripped.startswith(("- ", "* ")):
            _append_list_item(content, "bulletList", stripped[2:])
        elif _ORDERED.match(stripped):
            _append_list_item(content, "orderedList", _ORDERED.sub("", stripped, count=1))
        else:
            content.append({"type": "paragraph", "content": parse_inline(stripped)})

    return {"type": "doc", "content": content}


# -- Tool --------------------------------------------------------------------


class CreateDocumentParams(ToolParams):
    title: str = Field(description="Document title")
    topic: str | None = Field(default=None, description="What the document is about")
    requirements: str | None = Field(default=None, description="Extra requirements for the content")


def _document_gate(caps: Capabilities) -> bool:
    return "create_document" in caps.tools and caps.space_id is not None


@registry.tool(
    name="create_document",
    description=(
        "Write a comprehensive, well-structured document and save it to the "
        "user's current workspace. Use when the user asks for a report, essay or write-up."
    ),
    category="workspace",
    params_model=CreateDocumentParams,
    gate=_document_gate,
)
async def create_document(
    title: str,
    topic: str | None = None,
    requirements: str | None = None,
    ctx: ToolContext | None = None,
) -> ToolResult:
    if ctx is None or ctx.space_id is None:
        return ToolResult(error="Documents can only be created inside a workspace.")

    if not await ctx.chat_store.space_owned_by(ctx.space_id, ctx.user_id):
        logger.warning("User %s tried to write into space %s", ctx.user_id, ctx.space_id)
        return ToolResult(error="Workspace not found.")

    prompt = f'Create a comprehensive document titled "{title}" about: {topic or title}'
    if requirements:
        prompt += f"\n\nAdditional requirements: {requirements}"

    markdown = await ctx.gateway.complete(
        [{"role": "user", "content": prompt}],
        system=DOCUMENT_SYSTEM,
        model=ModelManager.get().get_chat_model(),
        max_tokens=4096,
    )
    if not markdown.strip():
        return ToolResult(error="Document generation returned no content.")

    doc = await ctx.chat_store.insert_document(
        DocumentRecord(
            space_id=ctx.space_id,
            user_id=ctx.user_id,
            title=title,
            content=markdown_to_doc(markdown),
            plain_text=markdown,
        )
    )
    url = f"/space/{ctx.space_id}/docs/{doc.id}"
    ctx.session.emit_block(
        Block(type="documentCreated", data={"id": doc.id, "title": title, "url": url})
    )
    return ToolResult(data={"id": doc.id, "title": title, "url": url})
