"""Data models for long-term user memory."""

from datetime import datetime

from pydantic import BaseModel, Field


class Memory(BaseModel):
    """A stored fact about a user."""

    id: str
    user_id: str
    content: str
    embedding: list[float] = Field(default_factory=list)
    importance: int = 1  # 1-5
    metadata: dict = Field(default_factory=dict)
    last_accessed_at: datetime
    created_at: datetime


class MemoryEntry(BaseModel):
    """A memory returned by retrieval, with its ranking score."""

    id: str
    content: str
    importance: int = 1
    similarity: float | None = None
    score: float = 0.0
    last_accessed_at: datetime | None = None


class ExtractedMemory(BaseModel):
    """A candidate fact produced by the extraction model."""

    content: str
    importance: int = Field(default=3, ge=1, le=5)
