"""Base types for the tool-calling framework."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel


@dataclass
class ToolResult:
    """Result of a tool execution.

    Every tool returns one of these. The tool-calling loop serializes it
    into a tool_result content block for the model, so failures reach
    the model as data instead of exceptions.
    """

    data: dict[str, Any] | list[Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_content(self) -> str:
        """Serialize for the tool_result content field."""
        if self.error:
            return json.dumps({"error": self.error})
        return json.dumps(self.data if self.data is not None else {}, default=str)


@dataclass
class ToolRun:
    """One executed tool call, kept for verification and synthesis."""

    name: str
    arguments: dict[str, Any]
    result: ToolResult


@dataclass(frozen=True)
class Capabilities:
    """What a turn is allowed to do, as decided before the tool pass.

    Attributes:
        sources: Search sources in play ("web", "academic", "discussions").
        tools: Names of non-search tools the turn may call.
        space_id: Workspace the chat belongs to, if any.
    """

    sources: frozenset[str] = field(default_factory=frozenset)
    tools: frozenset[str] = field(default_factory=frozenset)
    space_id: str | None = None


class ToolParams(BaseModel):
    """Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is auto-generated
    via model_json_schema() for the model's tool definitions.
    """


def allowed_by_name(name: str):
    """Default gate: the tool is active when its name was allowed."""

    def gate(caps: Capabilities) -> bool:
        return name in caps.tools

    return gate


class BaseTool(ABC):
    """Abstract base for class-based tool implementations.

    Use this when a tool needs initialization state. For simple tools,
    prefer the @registry.tool() decorator instead.

    Example::

        class MyTool(BaseTool):
            name = "my_tool"
            description = "Does a thing"
            category = "custom"
            params_model = MyToolParams

            async def execute(self, **kwargs) -> ToolResult:
                return ToolResult(data={"ok": True})
    """

    name: str = ""
    description: str = ""
    category: str = ""
    params_model: type[ToolParams] | None = None

    def gate(self, caps: Capabilities) -> bool:
        """Whether this tool is active for a turn with *caps*."""
        return self.name in caps.tools

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with validated parameters."""
        ...
