"""Per-turn context handed to tool handlers that declare a ``ctx`` parameter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lumen.llm.client import ClaudeGateway
    from lumen.persistence.store import ChatStore
    from lumen.retrieval.searxng import SearxngClient
    from lumen.session.broadcaster import Session
    from lumen.session.research import ResearchTracker


@dataclass
class ToolContext:
    """Everything a tool may touch while serving one turn."""

    session: Session
    research: ResearchTracker
    user_id: str
    gateway: ClaudeGateway
    search_client: SearxngClient
    chat_store: ChatStore
    space_id: str | None = None
