"""Shared test fixtures."""

from __future__ import annotations

import pytest

from lumen.llm.models import ModelManager
from lumen.memory.store import MemoryStore
from lumen.persistence.store import ChatStore
from lumen.session.broadcaster import Session
from lumen.session.registry import SessionRegistry
from lumen.session.research import ResearchTracker
from lumen.tools.context import ToolContext
from tests.fakes import EventLog, FakeGateway, FakeSearchClient


@pytest.fixture(autouse=True)
def _fresh_singletons():
    SessionRegistry._reset()
    MemoryStore._reset()
    ChatStore._reset()
    ModelManager._reset()
    yield
    SessionRegistry._reset()
    MemoryStore._reset()
    ChatStore._reset()
    ModelManager._reset()


@pytest.fixture
def chat_store(tmp_path) -> ChatStore:
    return ChatStore(db_path=tmp_path / "chat.db")


@pytest.fixture
def memory_store(tmp_path) -> MemoryStore:
    return MemoryStore(db_path=tmp_path / "memory.db")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def search_client() -> FakeSearchClient:
    return FakeSearchClient()


@pytest.fixture
def session() -> Session:
    return Session("msg-1")


@pytest.fixture
def events(session: Session) -> EventLog:
    log = EventLog()
    session.subscribe(log)
    return log


@pytest.fixture
def ctx(session, gateway, search_client, chat_store) -> ToolContext:
    return ToolContext(
        session=session,
        research=ResearchTracker(session),
        user_id="user-1",
        gateway=gateway,
        search_client=search_client,
        chat_store=chat_store,
    )
