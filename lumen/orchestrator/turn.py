"""Turn orchestration: one user message in, one streamed answer out.

``run_turn`` walks a fixed state sequence::

    RECEIVED -> CLASSIFYING || MEMORY_WAIT -> TOOL_PASS -> VERIFY
             -> SYNTHESIZE -> FINALIZE -> COMPLETED | ERRORED

Everything the caller sees goes through the :class:`Session`. Steps that
are not needed for a turn are skipped, auxiliary failures degrade to
safe defaults, and any other failure still reaches FINALIZE, which
always emits exactly one ``messageEnd``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from lumen.concurrency import race_with_timeout, spawn
from lumen.config import settings
from lumen.llm.client import get_gateway
from lumen.llm.prompt import CAUTION_NOTE, TOOL_PASS_SYSTEM, UNTRUSTED_ENVELOPE, build_system_prompt
from lumen.memory.automatic import extract_and_save, should_extract, turn_number
from lumen.memory.embeddings import embedding_providers
from lumen.memory.manager import retrieve_with_fallback
from lumen.memory.store import MemoryStore
from lumen.orchestrator.classifier import SEARCH_TOOL_SOURCES, classify, plan_turn
from lumen.orchestrator.followups import generate_title, suggest_followups
from lumen.orchestrator.models import TurnState
from lumen.orchestrator.streaming import TextStreamer
from lumen.orchestrator.verify import verify
from lumen.persistence.store import ChatStore
from lumen.retrieval.searxng import SearxngClient
from lumen.session.blocks import source_block, suggestion_block
from lumen.session.research import ResearchTracker
from lumen.tools import registry as default_registry
from lumen.tools.base import ToolResult, ToolRun
from lumen.tools.context import ToolContext
from lumen.tools.search_tools import engines_for_sources, execute_search

if TYPE_CHECKING:
    from collections.abc import Callable

    from lumen.llm.client import ClaudeGateway
    from lumen.memory.embeddings import EmbeddingProvider
    from lumen.memory.manager import MemoryManager
    from lumen.memory.models import MemoryEntry
    from lumen.orchestrator.classifier import Classification
    from lumen.orchestrator.models import TurnRequest
    from lumen.session.broadcaster import Session
    from lumen.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

FATAL_MESSAGE = "Something went wrong while generating the response."
MAX_CONTEXT_RESULTS = 5
MAX_TOOL_OUTPUT_CHARS = 4000
SEARCH_QUERY_CHARS = 200

# Tools that trace themselves in the research block.
_SELF_TRACING = frozenset(SEARCH_TOOL_SOURCES) | {"scrape_url"}


def format_search_context(results: list[dict[str, Any]]) -> str:
    """Numbered search results, wrapped as untrusted web content."""
    body = "\n\n".join(
        f"[{i}] {r['metadata']['title']}\nURL: {r['metadata']['url']}\n{r['content']}"
        for i, r in enumerate(results[:MAX_CONTEXT_RESULTS], start=1)
    )
    return UNTRUSTED_ENVELOPE.format(url="web search", content=f"<search_results>\n{body}\n</search_results>")


def _synthesis_input(
    query: str,
    search_results: list[dict[str, Any]],
    runs: list[ToolRun],
    reasoning: str,
) -> str:
    parts = [query]
    if search_results:
        parts.append(
            format_search_context(search_results)
            + "\n\nUse the above search results to inform your response. Cite sources when relevant."
        )
    outputs = [
        f"{run.name}: {run.result.to_content()[:MAX_TOOL_OUTPUT_CHARS]}" for run in runs
    ]
    if outputs:
        parts.append("<tool_results>\n" + "\n".join(outputs) + "\n</tool_results>")
    if reasoning:
        parts.append(f"<research_notes>\n{reasoning}\n</research_notes>")
    return "\n\n---\n".join(parts)


class TurnOrchestrator:
    """Runs the turn pipeline. Collaborators are injectable for tests."""

    def __init__(
        self,
        *,
        gateway: ClaudeGateway | None = None,
        chat_store: ChatStore | None = None,
        memory_store: MemoryStore | None = None,
        search_client: SearxngClient | None = None,
        providers: Callable[[], list[EmbeddingProvider]] | None = None,
        tool_registry: ToolRegistry | None = None,
    ) -> None:
        self._gateway = gateway or get_gateway()
        self._chat_store = chat_store or ChatStore.get()
        self._memory_store = memory_store or MemoryStore.get()
        self._search = search_client or SearxngClient()
        self._providers = providers or embedding_providers
        self._registry = tool_registry or default_registry

    def handle_turn(self, session: Session, request: TurnRequest) -> asyncio.Task[TurnState]:
        """Schedule the pipeline; all output arrives through *session*."""
        return spawn(self.run_turn(session, request), name=f"turn-{request.message.message_id}")

    # -- Pipeline ------------------------------------------------------------

    async def run_turn(self, session: Session, request: TurnRequest) -> TurnState:
        message = request.message
        research = ResearchTracker(session)
        streamer = TextStreamer(session)
        final_state = TurnState.COMPLETED
        manager: MemoryManager | None = None

        self._enter(session, TurnState.RECEIVED)
        try:
            if not request.ephemeral:
                await self._chat_store.ensure_chat(
                    message.chat_id,
                    request.user_id,
                    query=request.query,
                    sources=list(request.sources),
                    files=request.files,
                    chat_mode=request.chat_mode,
                    space_id=request.space_id,
                )
                await self._chat_store.ensure_message(
                    message.message_id, message.chat_id, request.user_id, request.query
                )

            classification, (manager, memories) = await asyncio.gather(
                self._classify(session, request),
                self._retrieve_memories(session, request),
            )
            plan = plan_turn(request, classification)
            ctx = ToolContext(
                session=session,
                research=research,
                user_id=request.user_id,
                gateway=self._gateway,
                search_client=self._search,
                chat_store=self._chat_store,
                space_id=request.space_id,
            )

            search_results: list[dict[str, Any]] = []
            if plan.search:
                search_results = await execute_search(
                    [request.query[:SEARCH_QUERY_CHARS]], engines_for_sources(plan.sources), ctx
                )
                if search_results:
                    session.emit_block(
                        source_block([r["metadata"] for r in search_results[:MAX_CONTEXT_RESULTS]])
                    )

            runs: list[ToolRun] = []
            reasoning = ""
            active = self._registry.active(plan.capabilities(request.space_id))
            if plan.wants_tools and active:
                self._enter(session, TurnState.TOOL_PASS)
                outcome = await self._gateway.run_tools(
                    [*request.messages, {"role": "user", "content": self._tool_pass_input(request, search_results)}],
                    tools=self._registry.get_schemas([t.name for t in active]),
                    execute=self._executor(ctx, {t.name for t in active}),
                    system=TOOL_PASS_SYSTEM,
                    max_steps=settings.max_tool_steps,
                )
                runs = outcome.runs
                logger.info("Tool pass for %s: %d run(s) in %d step(s)", session.id, len(runs), outcome.steps)
                reasoning = outcome.text.strip()

            caution = False
            if runs or plan.search:
                self._enter(session, TurnState.VERIFY)
                if await verify(self._gateway, request.query, runs, search_results):
                    if reasoning:
                        research.reasoning(reasoning)
                else:
                    caution = True
                    reasoning = ""

            self._enter(session, TurnState.SYNTHESIZE)
            used = sorted({run.name for run in runs} | ({"web_search"} if search_results else set()))
            system = build_system_prompt(
                optimization_mode=request.optimization_mode,
                capabilities=used,
                memories=memories,
                system_instructions=request.system_instructions,
            )
            if caution:
                system = f"{system}\n\n{CAUTION_NOTE}"
                content = request.query
            else:
                content = _synthesis_input(request.query, search_results, runs, reasoning)

            async for delta in self._gateway.stream(
                [*request.messages, {"role": "user", "content": content}], system=system
            ):
                await streamer.push(delta)
            await streamer.close()

            if settings.suggestions_enabled and streamer.text:
                suggestions = await suggest_followups(self._gateway, request.query, streamer.text)
                if suggestions:
                    session.emit_block(suggestion_block(suggestions))
        except Exception:
            logger.exception("Turn %s failed", message.message_id)
            final_state = TurnState.ERRORED
            await streamer.close()
            session.emit("error", {"message": FATAL_MESSAGE})
        finally:
            await self._finalize(session, request, streamer.text, final_state, manager)

        return final_state

    # -- Steps ---------------------------------------------------------------

    def _enter(self, session: Session, state: TurnState) -> None:
        logger.info("Turn %s -> %s", session.id, state.value)
        session.emit("status", {"state": state.value})

    async def _classify(self, session: Session, request: TurnRequest) -> Classification | None:
        if request.sources or request.chat_mode != "chat":
            return None
        self._enter(session, TurnState.CLASSIFYING)
        return await classify(self._gateway, request.query)

    async def _retrieve_memories(
        self, session: Session, request: TurnRequest
    ) -> tuple[MemoryManager | None, list[MemoryEntry]]:
        if not request.memory_enabled:
            return None, []
        self._enter(session, TurnState.MEMORY_WAIT)
        providers = self._providers()
        if not providers:
            return None, []
        return await race_with_timeout(
            retrieve_with_fallback(providers, request.user_id, request.query, store=self._memory_store),
            settings.memory_timeout_seconds,
            (None, []),
        )

    @staticmethod
    def _tool_pass_input(request: TurnRequest, search_results: list[dict[str, Any]]) -> str:
        if not search_results:
            return request.query
        return f"{request.query}\n\n---\n{format_search_context(search_results)}"

    def _executor(self, ctx: ToolContext, allowed: set[str]):
        async def execute(name: str, arguments: dict[str, Any]) -> ToolResult:
            if name not in allowed:
                return ToolResult(error=f"Tool '{name}' is not available for this request.")
            result = await self._registry.execute(name, arguments, ctx)
            if name not in _SELF_TRACING:
                note = f"Used {name}" if result.success else f"{name} failed: {result.error}"
                ctx.research.reasoning(note)
            return result

        return execute

    async def _finalize(
        self,
        session: Session,
        request: TurnRequest,
        answer: str,
        final_state: TurnState,
        manager: MemoryManager | None,
    ) -> None:
        self._enter(session, TurnState.FINALIZE)
        status = "completed" if final_state is TurnState.COMPLETED else "error"

        if not request.ephemeral:
            # Started before the persist so a fast title can still reach the open session.
            if not request.history and answer:
                spawn(self._title_job(session, request, answer), name=f"title-{request.message.chat_id}")
            try:
                await self._chat_store.finalize_message(
                    request.message.message_id, status=status, blocks=session.get_all_blocks()
                )
            except Exception:
                logger.exception("Failed to persist message %s", request.message.message_id)

        if request.memory_enabled and answer and should_extract(turn_number(request.messages)):
            conversation = [
                *request.messages,
                {"role": "user", "content": request.query},
                {"role": "assistant", "content": answer},
            ]
            spawn(
                extract_and_save(
                    self._gateway,
                    request.user_id,
                    conversation,
                    providers=[manager.provider] if manager else self._providers(),
                    store=self._memory_store,
                ),
                name=f"extract-{request.message.message_id}",
            )

        self._enter(session, final_state)
        session.emit("messageEnd")

    async def _title_job(self, session: Session, request: TurnRequest, answer: str) -> None:
        title = await generate_title(self._gateway, request.query, answer)
        if not session.closed:
            session.emit("title", {"title": title})
        await self._chat_store.update_title(request.message.chat_id, title)
        logger.info("Titled chat %s: %s", request.message.chat_id, title)
