"""Live research trace: one research block per message, grown by substeps."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from lumen.session.blocks import Block, new_block_id

if TYPE_CHECKING:
    from lumen.session.broadcaster import Session


class ResearchTracker:
    """Owns the single research block of a message.

    The block is created on the first substep, so turns that never
    search or call a tool do not show an empty trace. Each later substep
    is appended with a one-operation patch.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self.block_id = new_block_id()
        self._steps: list[dict[str, Any]] = []

    @property
    def started(self) -> bool:
        return bool(self._steps)

    @property
    def steps(self) -> list[dict[str, Any]]:
        return list(self._steps)

    def add_step(self, step_type: str, **fields: Any) -> str:
        """Append a substep and return its id."""
        step = {"id": new_block_id(), "type": step_type, **fields}
        if not self._steps:
            self._steps.append(step)
            self._session.emit_block(
                Block(id=self.block_id, type="research", data={"subSteps": [step]})
            )
        else:
            self._steps.append(step)
            self._session.update_block(
                self.block_id,
                [{"op": "add", "path": "/data/subSteps/-", "value": step}],
            )
        return step["id"]

    # -- Convenience ---------------------------------------------------------

    def searching(self, queries: list[str]) -> str:
        return self.add_step("searching", searching=queries)

    def search_results(self, results: list[dict[str, Any]]) -> str:
        return self.add_step("search_results", reading=results)

    def reading(self, pages: list[dict[str, Any]]) -> str:
        """Pages are ``{"content": ..., "metadata": {"url": ..., "title": ...}}``."""
        return self.add_step("reading", reading=pages)

    def reasoning(self, text: str) -> str:
        return self.add_step("reasoning", reasoning=text)
