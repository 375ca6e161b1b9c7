"""Async Claude gateway: single-shot, streaming and tool-calling calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anthropic

from lumen.config import settings
from lumen.llm.models import ModelManager
from lumen.tools.base import ToolResult, ToolRun

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None
_gateway: ClaudeGateway | None = None


@dataclass
class ToolPassResult:
    """Outcome of an iterative tool-calling pass."""

    text: str = ""
    runs: list[ToolRun] = field(default_factory=list)
    steps: int = 0


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


def _serialize_content(content: list[Any]) -> list[dict[str, Any]]:
    """Convert SDK content blocks to plain dicts for message history."""
    result: list[dict[str, Any]] = []
    for block in content:
        if block.type == "text":
            result.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            result.append({
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            })
    return result


class ClaudeGateway:
    """Language model gateway over the Anthropic Messages API.

    The orchestrator only talks to this narrow surface, so tests swap
    in a fake with the same three coroutines.
    """

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Single-shot call without tools or streaming.

        Used for the auxiliary calls (classification, verification,
        re-ranking, titles, extraction). ``model`` defaults to the fast
        model.
        """
        kwargs: dict[str, Any] = {
            "model": model or ModelManager.get().get_fast_model(),
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system is not None:
            kwargs["system"] = system
        response = await _get_client().messages.create(**kwargs)
        return "".join(b.text for b in response.content if b.type == "text")

    async def stream(
        self,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> AsyncIterator[str]:
        """Stream text deltas from a tool-free call on the chat model."""
        kwargs: dict[str, Any] = {
            "model": model or ModelManager.get().get_chat_model(),
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system is not None:
            kwargs["system"] = system
        async with _get_client().messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text

    async def run_tools(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]],
        execute: Callable[[str, dict[str, Any]], Awaitable[ToolResult]],
        system: str | None = None,
        model: str | None = None,
        max_steps: int | None = None,
    ) -> ToolPassResult:
        """Run an iterative tool-call/observe loop.

        Each round the model may call any of *tools*; every call goes
        through *execute* and its result is fed back. The loop ends when
        a round makes no tool calls or after *max_steps* rounds.

        Returns:
            The model's accumulated text across rounds and every tool run.
        """
        client = _get_client()
        max_steps = max_steps or settings.max_tool_steps
        loop_messages = list(messages)
        outcome = ToolPassResult()

        for round_num in range(max_steps):
            kwargs: dict[str, Any] = {
                "model": model or ModelManager.get().get_chat_model(),
                "max_tokens": 2048,
                "messages": loop_messages,
                "tools": tools,
            }
            if system is not None:
                kwargs["system"] = system

            response = await client.messages.create(**kwargs)
            outcome.steps = round_num + 1

            text = "".join(b.text for b in response.content if b.type == "text")
            if text:
                outcome.text = f"{outcome.text}\n\n{text}" if outcome.text else text

            tool_use_blocks = [b for b in response.content if b.type == "tool_use"]
            if not tool_use_blocks:
                return outcome

            logger.info(
                "Round %d: %d tool call(s): %s",
                round_num + 1,
                len(tool_use_blocks),
                ", ".join(b.name for b in tool_use_blocks),
            )

            loop_messages.append({
                "role": "assistant",
                "content": _serialize_content(response.content),
            })

            tool_results: list[dict[str, Any]] = []
            for block in tool_use_blocks:
                arguments = dict(block.input or {})
                result = await execute(block.name, arguments)
                outcome.runs.append(ToolRun(name=block.name, arguments=arguments, result=result))
                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": result.to_content(),
                    "is_error": not result.success,
                })

            loop_messages.append({"role": "user", "content": tool_results})

        logger.warning("Hit max tool rounds (%d)", max_steps)
        return outcome


def get_gateway() -> ClaudeGateway:
    """Return the shared gateway instance."""
    global _gateway  # noqa: PLW0603
    if _gateway is None:
        _gateway = ClaudeGateway()
    return _gateway
