"""Batched publication of a streaming text block."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from lumen.config import settings
from lumen.session.blocks import text_block

if TYPE_CHECKING:
    from lumen.session.broadcaster import Session

logger = logging.getLogger(__name__)


class TextStreamer:
    """Accumulates model deltas into one text block.

    The first delta creates the block. Later deltas are published as
    ``replace /data`` patches once enough characters are pending or
    after a short debounce, whichever comes first. Flushes are
    serialized, and :meth:`close` always publishes the full text.
    """

    def __init__(
        self,
        session: Session,
        *,
        flush_chars: int | None = None,
        flush_interval: float | None = None,
    ) -> None:
        self._session = session
        self._flush_chars = flush_chars or settings.stream_flush_chars
        self._flush_interval = (
            flush_interval if flush_interval is not None else settings.stream_flush_interval_ms / 1000
        )
        self._text = ""
        self._published = 0
        self._lock = asyncio.Lock()
        self._timer: asyncio.Task[None] | None = None
        self.block_id: str | None = None
        self.flushes = 0

    @property
    def text(self) -> str:
        return self._text

    @property
    def pending(self) -> int:
        return len(self._text) - self._published

    async def push(self, delta: str) -> None:
        if not delta:
            return
        self._text += delta

        if self.block_id is None:
            block = text_block(self._text)
            self.block_id = block.id
            self._published = len(self._text)
            self._session.emit_block(block)
            return

        if self.pending >= self._flush_chars:
            await self.flush()
        elif self._timer is None:
            self._timer = asyncio.create_task(self._debounced())

    async def _debounced(self) -> None:
        await asyncio.sleep(self._flush_interval)
        self._timer = None
        await self.flush()

    async def flush(self) -> None:
        async with self._lock:
            if self.block_id is None or self.pending == 0:
                return
            self._published = len(self._text)
            self.flushes += 1
            self._session.update_block(
                self.block_id, [{"op": "replace", "path": "/data", "value": self._text}]
            )

    async def close(self) -> None:
        """Cancel any pending debounce and publish the remaining text."""
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None
        await self.flush()
