"""SessionRegistry - singleton lookup of in-flight message sessions."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from lumen.session.broadcaster import Session

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps message ids to live sessions so transports can subscribe.

    Singleton accessed via ``SessionRegistry.get()``.
    """

    _instance: SessionRegistry | None = None

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    @classmethod
    def get(cls) -> SessionRegistry:
        """Return the singleton instance, creating it if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton, for tests only."""
        cls._instance = None

    def register(self, session: Session) -> None:
        """Register a session. Raises ValueError on duplicate message id."""
        if session.id in self._sessions:
            msg = f"Session '{session.id}' is already registered"
            raise ValueError(msg)
        self._sessions[session.id] = session

    def unregister(self, message_id: str) -> Session | None:
        return self._sessions.pop(message_id, None)

    def lookup(self, message_id: str) -> Session | None:
        return self._sessions.get(message_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._sessions

    @contextmanager
    def acquire(self, message_id: str) -> Iterator[Session]:
        """Create and register a session for the lifetime of the block.

        The session is always released, even if the turn raised.
        """
        session = Session(message_id)
        self.register(session)
        try:
            yield session
        finally:
            session.unsubscribe_all()
            self.unregister(message_id)
            logger.debug("Released session %s", message_id)
