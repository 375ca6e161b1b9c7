"""Inbound turn request and pipeline states."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SearchSource = Literal["web", "academic", "discussions"]

_ROLE_ALIASES = {"human": "user", "user": "user", "assistant": "assistant", "ai": "assistant"}


class TurnState(str, Enum):
    RECEIVED = "received"
    CLASSIFYING = "classifying"
    MEMORY_WAIT = "memory_wait"
    TOOL_PASS = "tool_pass"
    VERIFY = "verify"
    SYNTHESIZE = "synthesize"
    FINALIZE = "finalize"
    COMPLETED = "completed"
    ERRORED = "errored"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MessageIn(_CamelModel):
    message_id: str = Field(alias="messageId", min_length=1)
    chat_id: str = Field(alias="chatId", min_length=1)
    content: str = Field(min_length=1)


class TurnRequest(_CamelModel):
    """One user turn as posted by the client.

    ``history`` arrives as ``[role, content]`` pairs where role is
    ``human`` or ``assistant``; :attr:`messages` gives the model-ready
    form.
    """

    message: MessageIn
    history: list[tuple[str, str]] = Field(default_factory=list)
    sources: list[SearchSource] = Field(default_factory=list)
    chat_mode: Literal["chat", "research"] = Field(default="chat", alias="chatMode")
    optimization_mode: Literal["speed", "balanced", "quality"] = Field(
        default="balanced", alias="optimizationMode"
    )
    memory_enabled: bool = Field(default=True, alias="memoryEnabled")
    ephemeral: bool = False
    files: list[str] = Field(default_factory=list)
    space_id: str | None = Field(default=None, alias="spaceId")
    system_instructions: str = Field(default="", alias="systemInstructions")
    user_id: str = Field(default="", alias="userId")

    @field_validator("history")
    @classmethod
    def _known_roles(cls, value: list[tuple[str, str]]) -> list[tuple[str, str]]:
        for role, _ in value:
            if role not in _ROLE_ALIASES:
                msg = f"Unknown history role: {role}"
                raise ValueError(msg)
        return value

    @field_validator("system_instructions", mode="before")
    @classmethod
    def _none_to_empty(cls, value: str | None) -> str:
        return value or ""

    @property
    def query(self) -> str:
        return self.message.content

    @property
    def messages(self) -> list[dict[str, str]]:
        """History as ``{"role", "content"}`` dicts."""
        return [{"role": _ROLE_ALIASES[role], "content": content} for role, content in self.history]
