"""Response block models."""

import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field

BlockType = Literal["text", "research", "widget", "source", "suggestion", "documentCreated"]


def new_block_id() -> str:
    """Short random id, unique within a message."""
    return uuid.uuid4().hex[:14]


class Block(BaseModel):
    """An addressable, typed, incrementally patchable unit of a response."""

    id: str = Field(default_factory=new_block_id)
    type: BlockType
    data: Any = None


def text_block(text: str) -> Block:
    return Block(type="text", data=text)


def widget_block(widget_type: str, params: dict[str, Any]) -> Block:
    """A structured artifact (chart, table, weather card...) produced by a tool."""
    return Block(type="widget", data={"widgetType": widget_type, "params": params})


def source_block(sources: list[dict[str, Any]]) -> Block:
    return Block(type="source", data=sources)


def suggestion_block(suggestions: list[str]) -> Block:
    return Block(type="suggestion", data=suggestions)
