"""Hybrid memory search, consolidation and extraction.

Retrieval ranks a user's memories by a weighted blend of semantic
similarity, recency of access and stated importance. Writes consolidate
near-duplicates instead of piling up paraphrases of the same fact.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import numpy as np

from lumen.config import settings
from lumen.llm.prompt import build_extraction_prompt
from lumen.memory.models import ExtractedMemory, Memory, MemoryEntry
from lumen.memory.store import MemoryStore

if TYPE_CHECKING:
    from lumen.llm.client import ClaudeGateway
    from lumen.memory.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

SIMILARITY_FLOOR = 0.4
CONSOLIDATION_THRESHOLD = 0.85
FALLBACK_SCORE = 0.5

# Final score weights: similarity, recency, importance.
W_SIMILARITY = 0.6
W_RECENCY = 0.25
W_IMPORTANCE = 0.15


def normalize_embedding(vector: list[float], dimension: int | None = None) -> list[float]:
    """Truncate or zero-pad *vector* to the configured dimension."""
    dim = dimension or settings.embedding_dimension
    if len(vector) >= dim:
        return [float(v) for v in vector[:dim]]
    return [float(v) for v in vector] + [0.0] * (dim - len(vector))


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity; 0.0 when either vector is empty or all zeros."""
    if not a or not b:
        return 0.0
    if len(a) != len(b):
        b = normalize_embedding(b, len(a))
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def recency_score(last_accessed_at: datetime, now: datetime) -> float:
    """1 / (1 + days since last access)."""
    days = max((now - last_accessed_at).total_seconds() / 86400, 0.0)
    return 1.0 / (1.0 + days)


class MemoryManager:
    """Memory operations bound to one embedding provider."""

    def __init__(self, embedding: EmbeddingProvider, store: MemoryStore) -> None:
        self._embedding = embedding
        self._store = store

    @property
    def provider(self) -> EmbeddingProvider:
        return self._embedding

    # -- Read ----------------------------------------------------------------

    async def retrieve_relevant(self, user_id: str, query: str, k: int = 5) -> list[MemoryEntry]:
        """Return up to *k* memories for *query*, best first.

        Candidates are memories above the similarity floor or containing
        the query text. With no candidates the most recently used
        memories are returned instead. Every returned memory has its
        access time refreshed.

        Raises:
            ProviderError: The embedding provider failed.
        """
        vector = normalize_embedding(await self._embedding.embed_query(query))
        memories = await self._store.list_for_user(user_id)
        needle = query.strip().lower()

        candidates: list[tuple[Memory, float]] = []
        for mem in memories:
            sim = cosine_similarity(vector, mem.embedding)
            if sim > SIMILARITY_FLOOR:
                candidates.append((mem, sim))
            elif needle and needle in mem.content.lower():
                # Text-only matches rank as an average hit.
                candidates.append((mem, max(sim, FALLBACK_SCORE)))
        candidates.sort(key=lambda c: c[1], reverse=True)
        candidates = candidates[: k * 2]

        now = datetime.now(UTC)
        if not candidates:
            recent = await self._store.recent(user_id, k)
            entries = [
                MemoryEntry(
                    id=mem.id,
                    content=mem.content,
                    importance=mem.importance,
                    score=FALLBACK_SCORE,
                    last_accessed_at=mem.last_accessed_at,
                )
                for mem in recent
            ]
        else:
            entries = [
                MemoryEntry(
                    id=mem.id,
                    content=mem.content,
                    importance=mem.importance,
                    similarity=sim,
                    score=(
                        W_SIMILARITY * sim
                        + W_RECENCY * recency_score(mem.last_accessed_at, now)
                        + W_IMPORTANCE * (mem.importance / 5)
                    ),
                    last_accessed_at=mem.last_accessed_at,
                )
                for mem, sim in candidates
            ]
            entries.sort(key=lambda e: e.score, reverse=True)
            entries = entries[:k]

        await self._store.touch([e.id for e in entries], now)
        logger.info("Retrieved %d memories for %s via %s", len(entries), user_id, self._embedding.name)
        return entries

    # -- Write ---------------------------------------------------------------

    async def save_memory(
        self,
        user_id: str,
        content: str,
        importance: int = 1,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Store *content*, merging into a near-duplicate if one exists.

        Returns False (and logs) on failure instead of raising.
        """
        try:
            vector = normalize_embedding(await self._embedding.embed_passage(content))
            existing = await self._store.list_for_user(user_id)

            best: Memory | None = None
            best_sim = 0.0
            for mem in existing:
                sim = cosine_similarity(vector, mem.embedding)
                if sim > best_sim:
                    best, best_sim = mem, sim

            if best is not None and best_sim > CONSOLIDATION_THRESHOLD:
                await self._store.overwrite(
                    best.id,
                    content=content,
                    embedding=vector,
                    importance=max(best.importance, importance),
                )
                return True

            now = datetime.now(UTC)
            await self._store.insert(
                Memory(
                    id=uuid.uuid4().hex,
                    user_id=user_id,
                    content=content,
                    embedding=vector,
                    importance=importance,
                    metadata=metadata or {},
                    last_accessed_at=now,
                    created_at=now,
                )
            )
            return True
        except Exception:
            logger.exception("Failed to save memory for %s", user_id)
            return False

    # -- Extraction ----------------------------------------------------------

    @staticmethod
    async def extract_memories(
        gateway: ClaudeGateway,
        messages: list[dict[str, str]],
    ) -> list[ExtractedMemory]:
        """Ask the fast model which facts in *messages* are worth keeping.

        Any failure yields an empty list.
        """
        try:
            text = await gateway.complete(
                [{"role": "user", "content": build_extraction_prompt(messages)}],
                max_tokens=1024,
            )
        except Exception:
            logger.exception("Memory extraction call failed")
            return []

        start = text.find("[")
        end = text.rfind("]")
        if start < 0 or end <= start:
            return []
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            logger.warning("Failed to parse extraction JSON")
            return []
        if not isinstance(data, list):
            return []

        extracted = []
        for item in data:
            if not isinstance(item, dict):
                continue
            content = str(item.get("content") or "").strip()
            if not content:
                continue
            try:
                importance = int(item.get("importance", 3))
            except (TypeError, ValueError):
                importance = 3
            extracted.append(ExtractedMemory(content=content, importance=min(max(importance, 1), 5)))
        return extracted


async def retrieve_with_fallback(
    providers: list[EmbeddingProvider],
    user_id: str,
    query: str,
    *,
    k: int = 5,
    store: MemoryStore | None = None,
) -> tuple[MemoryManager | None, list[MemoryEntry]]:
    """Try *providers* in order; the first one that succeeds wins.

    Results are never merged across providers. Returns ``(None, [])``
    when every provider fails or none is configured.
    """
    store = store or MemoryStore.get()
    for provider in providers:
        manager = MemoryManager(provider, store)
        try:
            return manager, await manager.retrieve_relevant(user_id, query, k)
        except Exception:
            logger.warning(
                "Memory retrieval via %s failed; trying next provider",
                provider.name,
                exc_info=True,
            )
    return None, []
