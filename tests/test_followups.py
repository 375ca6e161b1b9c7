"""Tests for chat titles, follow-up suggestions and verification."""

from lumen.llm.prompt import TITLE_SYSTEM, VERIFIER_SYSTEM
from lumen.orchestrator.followups import generate_title, parse_suggestions, suggest_followups
from lumen.orchestrator.verify import verify
from lumen.tools.base import ToolResult, ToolRun
from tests.fakes import FakeGateway

# -- Titles ------------------------------------------------------------------


async def test_title_strips_quotes():
    gateway = FakeGateway(title='  "Paris Weather Today"\n')
    assert await generate_title(gateway, "weather in paris?", "Sunny.") == "Paris Weather Today"
    assert gateway.calls_for(TITLE_SYSTEM) == 1


async def test_title_capped():
    gateway = FakeGateway(title="word " * 40)
    title = await generate_title(gateway, "q", "a")
    assert len(title) <= 100


async def test_title_falls_back_to_query_on_error():
    gateway = FakeGateway(title=RuntimeError("overloaded"))
    query = "How do I keep basil alive indoors during a long northern winter?"
    assert await generate_title(gateway, query, "Light.") == query[:50]


async def test_empty_title_falls_back_to_query():
    gateway = FakeGateway(title='""')
    assert await generate_title(gateway, "short question", "a") == "short question"


# -- Suggestions -------------------------------------------------------------


def test_parse_suggestions_caps_at_three():
    reply = 'Here you go: ["One?", "Two?", "  ", "Three?", "Four?"]'
    assert parse_suggestions(reply) == ["One?", "Two?", "Three?"]


def test_parse_suggestions_garbage():
    assert parse_suggestions("no list here") == []
    assert parse_suggestions("[not, json]") == []


async def test_suggestion_failure_yields_none():
    gateway = FakeGateway(suggestions=RuntimeError("boom"))
    assert await suggest_followups(gateway, "q", "a") == []


# -- Verification ------------------------------------------------------------


def _runs() -> list[ToolRun]:
    return [ToolRun(name="get_weather", arguments={"location": "Paris"}, result=ToolResult(data={"temp": 18}))]


async def test_verify_passed():
    gateway = FakeGateway(verifier="PASSED")
    assert await verify(gateway, "weather in Paris", _runs(), [])
    prompt = gateway.complete_calls[0][1][0]["content"]
    assert "get_weather" in prompt


async def test_verify_failed_is_case_insensitive():
    assert not await verify(FakeGateway(verifier="failed"), "weather", _runs(), [])


async def test_verify_error_counts_as_passed():
    gateway = FakeGateway(verifier=TimeoutError())
    assert await verify(gateway, "weather", _runs(), [])
    assert gateway.calls_for(VERIFIER_SYSTEM) == 1


async def test_verify_includes_search_results():
    gateway = FakeGateway()
    results = [{"content": "Alpha", "metadata": {"title": "Result A", "url": "https://a.example"}}]
    await verify(gateway, "q", [], results)
    assert "Result A: Alpha" in gateway.complete_calls[0][1][0]["content"]
