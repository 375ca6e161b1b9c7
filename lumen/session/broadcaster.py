"""Per-message pub/sub channel carrying response blocks and signals."""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any

import jsonpatch

from lumen.session.blocks import Block

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

MESSAGE_END = "messageEnd"


class Session:
    """Broadcast channel for one in-flight assistant message.

    Keeps the message's blocks in emission order and fans every event
    out to subscribers synchronously, so each subscriber sees events in
    the order they were emitted. The pipeline is the only writer.

    Events have the wire shape sent to clients::

        {"type": "block", "block": {...}}
        {"type": "updateBlock", "blockId": "...", "patch": [...]}
        {"type": "<name>", ...payload}

    Once ``messageEnd`` has been emitted the session is closed and
    every later write is dropped.
    """

    def __init__(self, message_id: str) -> None:
        self.id = message_id
        self._blocks: dict[str, dict[str, Any]] = {}
        self._subscribers: dict[int, Callable[[dict[str, Any]], None]] = {}
        self._next_token = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # -- Subscriptions -------------------------------------------------------

    def subscribe(self, callback: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        """Register *callback*; returns an idempotent unsubscribe function."""
        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    def unsubscribe_all(self) -> None:
        self._subscribers.clear()

    # -- Writes --------------------------------------------------------------

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """Send a named non-block signal (status, title, error, messageEnd...)."""
        if self._closed:
            logger.debug("Session %s closed; dropping '%s'", self.id, event)
            return
        self._dispatch({"type": event, **(payload or {})})
        if event == MESSAGE_END:
            self._closed = True

    def emit_block(self, block: Block | dict[str, Any]) -> None:
        """Introduce a new block. Ids must be unique within the message."""
        if self._closed:
            logger.debug("Session %s closed; dropping block", self.id)
            return
        data = block.model_dump() if isinstance(block, Block) else copy.deepcopy(block)
        if data["id"] in self._blocks:
            msg = f"Block '{data['id']}' already exists in message {self.id}"
            raise ValueError(msg)
        self._blocks[data["id"]] = data
        self._dispatch({"type": "block", "block": copy.deepcopy(data)})

    def update_block(self, block_id: str, patch: list[dict[str, Any]]) -> None:
        """Apply an RFC 6902 patch to a block and forward only the patch."""
        if self._closed:
            logger.debug("Session %s closed; dropping patch for %s", self.id, block_id)
            return
        block = self._blocks.get(block_id)
        if block is None:
            msg = f"Unknown block '{block_id}' in message {self.id}"
            raise KeyError(msg)
        self._blocks[block_id] = jsonpatch.apply_patch(block, patch)
        self._dispatch({"type": "updateBlock", "blockId": block_id, "patch": copy.deepcopy(patch)})

    # -- Reads ---------------------------------------------------------------

    def get_block(self, block_id: str) -> dict[str, Any] | None:
        block = self._blocks.get(block_id)
        return copy.deepcopy(block) if block is not None else None

    def get_all_blocks(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(b) for b in self._blocks.values()]

    # -- Internal ------------------------------------------------------------

    def _dispatch(self, event: dict[str, Any]) -> None:
        for callback in list(self._subscribers.values()):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed on session %s", self.id)


def replay(block: dict[str, Any], patches: list[list[dict[str, Any]]]) -> dict[str, Any]:
    """Rebuild a block's final state from its initial form and patch sequence."""
    result = copy.deepcopy(block)
    for patch in patches:
        result = jsonpatch.apply_patch(result, patch)
    return result
