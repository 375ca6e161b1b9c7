"""Tool registry - central catalog for all tools."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from lumen.tools.base import BaseTool, Capabilities, ToolParams, ToolResult, allowed_by_name

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from lumen.tools.context import ToolContext

logger = logging.getLogger(__name__)


@dataclass
class ToolDef:
    """Internal representation of a registered tool."""

    name: str
    description: str
    category: str
    handler: Callable[..., Awaitable[ToolResult]]
    gate: Callable[[Capabilities], bool]
    params_model: type[ToolParams] | None = None


class ToolRegistry:
    """Catalog of every tool the tool pass can offer the model.

    Stateless tools register with the decorator::

        @registry.tool(name="calculate", description="...", category="widget",
                       params_model=CalculateParams)
        async def calculate(expression: str, ctx: ToolContext | None = None) -> ToolResult:
            ...

    Tools sharing behaviour (the three search tools) subclass
    :class:`BaseTool` and go through :meth:`register`. A tool is offered
    for a turn only when its gate admits that turn's :class:`Capabilities`.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def tool(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
        gate: Callable[[Capabilities], bool] | None = None,
    ) -> Callable:
        """Decorator to register an async function as a tool."""

        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{name}' must be an async function"
                raise TypeError(msg)

            self._tools[name] = ToolDef(
                name=name,
                description=description,
                category=category,
                handler=fn,
                gate=gate or allowed_by_name(name),
                params_model=params_model,
            )
            return fn

        return decorator

    def register(self, tool_instance: BaseTool) -> None:
        """Register a class-based tool instance."""
        self._tools[tool_instance.name] = ToolDef(
            name=tool_instance.name,
            description=tool_instance.description,
            category=tool_instance.category,
            handler=tool_instance.execute,
            gate=tool_instance.gate,
            params_model=tool_instance.params_model,
        )

    def get(self, name: str) -> ToolDef | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        """All registered tool names."""
        return list(self._tools.keys())

    def active(self, caps: Capabilities) -> list[ToolDef]:
        """Tools whose gate admits *caps*, in registration order."""
        return [t for t in self._tools.values() if t.gate(caps)]

    def get_schemas(self, names: list[str] | None = None) -> list[dict[str, Any]]:
        """Generate Claude-compatible tool schemas.

        Restricted to *names* when given, otherwise every registered tool.
        """
        tools = self._tools.values()
        if names is not None:
            tools = [t for t in tools if t.name in names]
        return [self._tool_schema(t) for t in tools]

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        ctx: ToolContext | None = None,
    ) -> ToolResult:
        """Execute a tool by name with the given arguments.

        Validates arguments against the params_model if one is defined.
        If the handler accepts a ``ctx`` parameter, the turn's
        :class:`ToolContext` is injected. Never raises: every failure
        comes back as ``ToolResult(error=...)``.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=f"Unknown tool: {name}")

        logger.info("Tool '%s' called with %s", name, arguments)
        t0 = time.monotonic()

        try:
            if tool_def.params_model is not None:
                params = tool_def.params_model(**(arguments or {}))
                kwargs = params.model_dump()
            else:
                kwargs = dict(arguments or {})
        except (ValidationError, TypeError) as exc:
            logger.warning("Tool '%s' rejected arguments: %s", name, exc)
            return ToolResult(error=f"Invalid arguments for '{name}': {_describe(exc)}")

        try:
            if ctx is not None and _accepts_param(tool_def.handler, "ctx"):
                kwargs["ctx"] = ctx

            result = await tool_def.handler(**kwargs)
            elapsed = time.monotonic() - t0
            if result.success:
                logger.info("Tool '%s' succeeded in %.2fs", name, elapsed)
            else:
                logger.warning("Tool '%s' returned error in %.2fs: %s", name, elapsed, result.error)
            return result
        except Exception:
            elapsed = time.monotonic() - t0
            logger.exception("Tool '%s' failed in %.2fs", name, elapsed)
            return ToolResult(error=f"Tool '{name}' failed. Check logs for details.")

    @staticmethod
    def _tool_schema(tool_def: ToolDef) -> dict[str, Any]:
        """Build a single Claude tool schema dict."""
        if tool_def.params_model is not None:
            input_schema = tool_def.params_model.model_json_schema()
        else:
            input_schema = {"type": "object", "properties": {}}

        return {
            "name": tool_def.name,
            "description": tool_def.description,
            "input_schema": input_schema,
        }


def _describe(exc: Exception) -> str:
    """First validation message, terse enough to hand back to the model."""
    if isinstance(exc, ValidationError) and exc.errors():
        err = exc.errors()[0]
        loc = ".".join(str(p) for p in err.get("loc", ()))
        return f"{loc}: {err['msg']}" if loc else err["msg"]
    return str(exc)


def _accepts_param(fn: Callable[..., Any], param_name: str) -> bool:
    """Check whether a callable accepts a given parameter name."""
    return param_name in inspect.signature(fn).parameters


# Global registry: import this from anywhere to register or look up tools.
registry = ToolRegistry()
