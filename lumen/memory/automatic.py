"""Automatic ("unconscious") memory extraction.

Every N-th turn of a conversation a background task sends the recent
exchange to the fast model, which decides what (if anything) is worth
remembering about the user. Facts are saved through the memory manager,
so paraphrases of known facts consolidate instead of duplicating.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lumen.config import settings
from lumen.memory.embeddings import embedding_providers
from lumen.memory.manager import MemoryManager
from lumen.memory.store import MemoryStore

if TYPE_CHECKING:
    from lumen.llm.client import ClaudeGateway
    from lumen.memory.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

# Ten turns of user + assistant messages.
EXTRACTION_WINDOW = 20


def turn_number(history: list[dict[str, str]]) -> int:
    """1-based number of the turn that follows *history*."""
    return len(history) // 2 + 1


def should_extract(turn: int) -> bool:
    """Extraction runs on every ``memory_extraction_interval``-th turn."""
    interval = settings.memory_extraction_interval
    return settings.memory_extraction_enabled and interval > 0 and turn % interval == 0


async def extract_and_save(
    gateway: ClaudeGateway,
    user_id: str,
    messages: list[dict[str, str]],
    *,
    providers: list[EmbeddingProvider] | None = None,
    store: MemoryStore | None = None,
) -> int:
    """Background task: extract memories from recent messages and save them.

    Call via ``lumen.concurrency.spawn(extract_and_save(...))``.
    Saves go through the first configured embedding provider so every
    stored vector lives in the same embedding space.

    Returns:
        Number of memories saved or consolidated.
    """
    if not settings.memory_extraction_enabled:
        return 0

    if providers is None:
        providers = embedding_providers()
    if not providers:
        logger.info("No embedding provider configured; skipping memory extraction")
        return 0

    window = messages[-EXTRACTION_WINDOW:]
    extracted = await MemoryManager.extract_memories(gateway, window)
    if not extracted:
        logger.debug("Nothing worth remembering for %s", user_id)
        return 0

    manager = MemoryManager(providers[0], store or MemoryStore.get())
    saved = 0
    for mem in extracted:
        if await manager.save_memory(
            user_id, mem.content, mem.importance, metadata={"source": "automatic"}
        ):
            saved += 1

    logger.info("Memory extraction for %s: %d/%d saved", user_id, saved, len(extracted))
    return saved
