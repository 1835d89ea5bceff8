"""
Agent Pipeline (Orchestrator)
=============================

The orchestrator is the "conductor" of the multi-agent system. It runs one
message through an explicit state machine, one handler per stage.

PIPELINE FLOW:

    ┌─────────┐
    │ Message │
    └────┬────┘
         │
    ┌────▼────┐  no credential
    │  ROUTE  │ ──────────────► Terminate(canned offline answer + KB sources)
    └────┬────┘
         │ needsRAG or extra context
    ┌────▼─────┐
    │ RETRIEVE │ ──► knowledge base + web context, KBn labels
    └────┬─────┘
         │
    ┌────▼────┐
    │  DRAFT  │ ──► specialist persona for the routed mode
    └────┬────┘
         │
    ┌────▼────┐
    │ VERIFY  │ ──► JSON verdict, unusable → cautious revise
    └────┬────┘
         │
    ┌────▼─────┐
    │ FINALIZE │ ──► merged answer with reference list
    └────┬─────┘
         │
    ┌────▼────┐
    │  DONE   │ ──► Terminate(PipelineResult)
    └─────────┘

Each handler returns Continue(next_stage) or Terminate(result). State is
private to one call of run_pipeline; only the vector store and the
embedding cache are shared between requests.

An empty reply from the chat backend flows on as "" instead of aborting.
The only hard failure is an unexpected exception, surfaced as
TransportFailure for the transport layer to turn into one error event.
"""

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from campus_rag.agents.base_agent import HistoryItem
from campus_rag.agents.finalizer_agent import FinalizerAgent
from campus_rag.agents.router_agent import QueryRouter
from campus_rag.agents.specialist_agent import SpecialistAgent
from campus_rag.agents.verifier_agent import VerifierAgent
from campus_rag.config import Settings, get_settings
from campus_rag.exceptions import InputError, TransportFailure
from campus_rag.schemas.models import (
    AgentMode,
    PipelineEvent,
    PipelineResult,
    PipelineStage,
    RoutingDecision,
    Source,
    VerificationStatus,
    VerificationVerdict,
)
from campus_rag.services.llm_gateway import LLMGateway
from campus_rag.services.rag_service import RAGService
from campus_rag.tools.search_tool import WebSearchClient
from campus_rag.vectorstore.memory_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

EventSink = Callable[[PipelineEvent], Union[None, Awaitable[None]]]

MAX_CITED_SOURCES = 5
WEB_CONTEXT_MAX_CHARS = 6000


OFFLINE_RESPONSES = {
    AgentMode.KNOWLEDGE: """📚 【知识库检索结果】

根据校园知识库的信息，我来回答您的问题：

这是一个模拟响应。在实际使用中，系统会：
1. 从向量数据库检索相关知识
2. 结合 RAG 技术增强回答准确性
3. 提供来源引用

请配置 GLM_API_KEY 以获得完整体验！""",

    AgentMode.TUTOR: """🎓 【AI 导师模式已激活】

您好！我是您的 AI 导师小云。

这是模拟响应。在实际使用中，我会：
1. 根据您选择的场景进入角色
2. 提出专业的面试/考核问题
3. 给出详细的【评测建议】

请配置 GLM_API_KEY 开始真正的陪练体验！""",

    AgentMode.GENERAL: """👋 你好呀！我是小云~

这是模拟响应。请配置 GLM_API_KEY 以获得完整的 AI 对话体验！

配置完成后，我可以：
- 💬 和你聊天解闷
- 📖 解答校园问题（使用 RAG 知识库）
- 🎯 进行面试陪练（Multi-Agent 模式）""",
}


def get_offline_response(mode: AgentMode) -> str:
    """Canned demonstration answer used when no chat backend is configured."""
    return OFFLINE_RESPONSES.get(mode, OFFLINE_RESPONSES[AgentMode.GENERAL])


def build_kb_context(
    rag_context: str,
    sources: Sequence[Source],
    extra_context: Optional[str] = None,
) -> str:
    """
    Assemble the context block shared by draft, verify and finalize.

    Knowledge base hits come first with their citation labels (KB1..KB5 in
    rank order); web context follows as WEB1. Both empty → "".
    """
    has_rag = bool(rag_context and rag_context.strip())
    has_extra = bool(extra_context and extra_context.strip())
    if not has_rag and not has_extra:
        return ""

    blocks = []

    if has_rag:
        source_lines = "\n".join(
            f"KB{index}: {source.question or source.id}"
            for index, source in enumerate(sources[:MAX_CITED_SOURCES], 1)
        )
        blocks.append(
            "## Knowledge Base Context\n\n"
            "下面是从校园知识库检索到的参考资料（请优先使用并在回答中引用 [KB1]/[KB2]...）：\n\n"
            f"{rag_context}\n\n"
            f"可用引用标签：\n{source_lines}".strip()
        )

    if has_extra:
        blocks.append(
            "## Web Context\n\n"
            "下面是联网搜索到的补充背景信息（可能不完全可靠；涉及校园具体规定仍以学校官方为准）：\n\n"
            f"{extra_context[:WEB_CONTEXT_MAX_CHARS]}\n\n"
            "可用引用标签：\nWEB1"
        )

    return "\n\n".join(blocks)


# =============================================================================
# State machine
# =============================================================================

@dataclass
class Continue:
    """Move on to another stage."""
    next_stage: PipelineStage


@dataclass
class Terminate:
    """Stop with a result."""
    result: PipelineResult


Transition = Union[Continue, Terminate]


@dataclass
class PipelineState:
    """Everything one request accumulates on its way through the stages."""
    message: str
    history: list = field(default_factory=list)
    extra_context: Optional[str] = None
    on_event: Optional[EventSink] = None

    online: bool = True
    routing: Optional[RoutingDecision] = None
    sources: list[Source] = field(default_factory=list)
    kb_context: str = ""
    draft: str = ""
    verification: Optional[VerificationVerdict] = None
    final_text: str = ""
    trace: list[PipelineEvent] = field(default_factory=list)


def verification_status_of(verification: Optional[VerificationVerdict]) -> VerificationStatus:
    """Map a verdict to the status reported to the client."""
    if verification is None:
        return VerificationStatus.SKIPPED
    if not verification.parsed:
        return VerificationStatus.UNVERIFIED
    if verification.passed:
        return VerificationStatus.VERIFIED
    return VerificationStatus.REVISED


class AgentPipeline:
    """
    Runs messages through ROUTE → RETRIEVE → DRAFT → VERIFY → FINALIZE.

    Usage:
        pipeline = AgentPipeline(vector_store)
        result = await pipeline.run_pipeline("图书馆几点开门", history=[])
        print(result.final_text)
    """

    def __init__(
        self,
        vector_store: InMemoryVectorStore,
        settings: Optional[Settings] = None,
        gateway: Optional[LLMGateway] = None,
        rag_service: Optional[RAGService] = None,
        web_search: Optional[WebSearchClient] = None,
        router: Optional[QueryRouter] = None,
    ):
        """
        Args:
            vector_store: The application's knowledge store
            settings: Override settings
            gateway: Shared chat gateway (created from settings if not provided)
            rag_service: Retrieval front-end over vector_store
            web_search: Supplementary web search client
            router: Routing strategy
        """
        self._settings = settings or get_settings()
        self._vector_store = vector_store
        self._gateway = gateway or LLMGateway(settings=self._settings)
        self._rag = rag_service or RAGService(vector_store, settings=self._settings)
        self._web_search = web_search or WebSearchClient(settings=self._settings)

        self._router = router or QueryRouter(gateway=self._gateway, settings=self._settings)
        self._specialist = SpecialistAgent(gateway=self._gateway, settings=self._settings)
        self._verifier = VerifierAgent(gateway=self._gateway, settings=self._settings)
        self._finalizer = FinalizerAgent(gateway=self._gateway, settings=self._settings)

        self._handlers = {
            PipelineStage.ROUTE: self._route,
            PipelineStage.RETRIEVE: self._retrieve,
            PipelineStage.DRAFT: self._draft,
            PipelineStage.VERIFY: self._verify,
            PipelineStage.FINALIZE: self._finalize,
            PipelineStage.DONE: self._done,
        }

        logger.info("Agent pipeline initialized")

    async def run_pipeline(
        self,
        message: str,
        history: Optional[Sequence[HistoryItem]] = None,
        extra_context: Optional[str] = None,
        on_event: Optional[EventSink] = None,
    ) -> PipelineResult:
        """
        Answer one message.

        Args:
            message: The user's message
            history: Prior turns, oldest first
            extra_context: Supplementary context folded into the context
                block (web search is skipped when this is given)
            on_event: Observer called with every trace event, sync or async

        Returns:
            PipelineResult

        Raises:
            InputError: If the message is empty
            TransportFailure: If a stage raised unexpectedly
        """
        if not isinstance(message, str) or not message.strip():
            raise InputError("Message is required")

        start_time = time.time()
        state = PipelineState(
            message=message,
            history=list(history or []),
            extra_context=extra_context,
            on_event=on_event,
        )

        logger.info(f"Processing message: {message[:100]}...")

        stage = PipelineStage.ROUTE
        while True:
            handler = self._handlers[stage]
            try:
                transition = await handler(state)
            except TransportFailure:
                raise
            except Exception as e:
                logger.error(f"Pipeline error in {stage.value} stage: {e}", exc_info=True)
                raise TransportFailure(f"{stage.value} stage failed: {e}") from e

            if isinstance(transition, Terminate):
                result = transition.result
                logger.info(
                    f"Message processed in {(time.time() - start_time) * 1000:.2f}ms, "
                    f"agent={result.routing.agent.value}, offline={result.offline}, "
                    f"verification={result.verification_status.value}"
                )
                return result

            stage = transition.next_stage

    # -------------------------------------------------------------------------
    # Stage handlers
    # -------------------------------------------------------------------------

    async def _route(self, state: PipelineState) -> Transition:
        state.online = self._gateway.has_credential

        outcome = await self._router.route(state.message, state.history)
        state.routing = outcome.decision

        if outcome.planner_raw is not None:
            await self._emit(state, "planner", outcome.planner_raw)
        await self._emit(
            state,
            "routing",
            state.routing.model_dump(mode="json", by_alias=True, include={"agent", "needs_retrieval", "confidence", "reason"}),
        )

        logger.info(
            f"Routing: agent={state.routing.agent.value}, "
            f"needsRAG={state.routing.needs_retrieval}, "
            f"confidence={state.routing.confidence:.2f} ({state.routing.strategy})"
        )

        if not state.online:
            logger.info("No chat credential configured, returning offline response")
            if state.routing.needs_retrieval:
                await self._retrieve_knowledge(state)
            return Terminate(PipelineResult(
                routing=state.routing,
                sources=state.sources,
                final_text=get_offline_response(state.routing.agent),
                offline=True,
                verification_status=VerificationStatus.SKIPPED,
                trace=state.trace,
            ))

        if state.routing.needs_retrieval or state.extra_context:
            return Continue(PipelineStage.RETRIEVE)
        return Continue(PipelineStage.DRAFT)

    async def _retrieve_knowledge(self, state: PipelineState) -> str:
        """Run RAG, record the sources and return the knowledge base context."""
        rag_result = await self._rag.perform_rag(state.message)
        rag_context = ""
        if rag_result.used_rag:
            rag_context = rag_result.context
            state.sources = list(rag_result.sources)
        await self._emit(
            state,
            "rag",
            f"RAG used. sources={len(state.sources)}"
            if rag_result.used_rag
            else f"RAG skipped or no hits. usedRAG={rag_result.used_rag}",
        )
        return rag_context

    async def _retrieve(self, state: PipelineState) -> Transition:
        rag_context = ""
        if state.routing.needs_retrieval:
            rag_context = await self._retrieve_knowledge(state)

        extra_context = state.extra_context
        if not extra_context and state.routing.agent == AgentMode.KNOWLEDGE and self._web_search.is_configured:
            extra_context = await self._web_search.search(state.message)

        state.kb_context = build_kb_context(rag_context, state.sources, extra_context)
        return Continue(PipelineStage.DRAFT)

    async def _draft(self, state: PipelineState) -> Transition:
        state.draft = await self._specialist.draft(
            state.routing.agent,
            state.message,
            state.history,
            state.kb_context,
        )
        await self._emit(state, "draft", state.draft)
        return Continue(PipelineStage.VERIFY)

    async def _verify(self, state: PipelineState) -> Transition:
        raw = await self._verifier.review(state.draft, state.kb_context)
        await self._emit(state, "verifier", raw)
        state.verification = self._verifier.parse_verdict(raw)
        return Continue(PipelineStage.FINALIZE)

    async def _finalize(self, state: PipelineState) -> Transition:
        state.final_text = await self._finalizer.finalize(
            state.routing.agent,
            state.message,
            state.draft,
            state.verification,
            state.kb_context,
        )
        await self._emit(state, "final", state.final_text)
        return Continue(PipelineStage.DONE)

    async def _done(self, state: PipelineState) -> Transition:
        return Terminate(PipelineResult(
            routing=state.routing,
            sources=state.sources,
            final_text=state.final_text,
            offline=False,
            verification_status=verification_status_of(state.verification),
            trace=state.trace,
        ))

    async def _emit(self, state: PipelineState, step: str, content: Any) -> None:
        """Record a trace event and hand it to the observer, if any."""
        event = PipelineEvent(step=step, content=content)
        state.trace.append(event)

        if state.on_event is None:
            return

        try:
            outcome = state.on_event(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Trace observer failed on '{step}' event: {e}")

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        """Check if the knowledge base is loaded."""
        return self._vector_store.is_ready

    @property
    def document_count(self) -> int:
        """Get number of entries in the knowledge base."""
        return self._vector_store.document_count

    @property
    def has_credential(self) -> bool:
        return self._gateway.has_credential
