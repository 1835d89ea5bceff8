"""
Shared fixtures.

Nothing here reaches the network: embeddings come from a character-count
fake, chat replies from a scripted model keyed by pipeline role.
"""

import asyncio
from typing import Callable, Optional

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.messages import AIMessage

from campus_rag.config import Settings
from campus_rag.schemas.models import KnowledgeItem
from campus_rag.services.llm_gateway import LLMGateway
from campus_rag.vectorstore.embeddings import EmbeddingProvider
from campus_rag.vectorstore.memory_store import InMemoryVectorStore

TEST_DIMENSION = 256


def make_settings(**overrides) -> Settings:
    values = dict(
        _env_file=None,
        llm_provider="zhipu",
        glm_api_key="",
        openai_api_key="",
        groq_api_key="",
        google_api_key="",
        firecrawl_api_key="",
        embedding_provider="zhipu",
        embedding_dimension=TEST_DIMENSION,
        embedding_batch_delay_seconds=0.0,
    )
    values.update(overrides)
    return Settings(**values)


class CountingEmbeddings(Embeddings):
    """Bag-of-characters vectors; records every backend call."""

    def __init__(self, dimension: int = TEST_DIMENSION, fail: bool = False, delay: float = 0.0):
        self.dimension = dimension
        self.fail = fail
        self.delay = delay
        self.calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for char in text:
            vector[ord(char) % self.dimension] += 1.0
        return vector

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)

    async def aembed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("embedding backend down")
        return self._vector(text)


def role_of(messages) -> str:
    """Which pipeline role a prompt belongs to, from its system message."""
    system = messages[0].content if messages else ""
    for marker, role in (
        ('"FinalizerAgent"', "finalizer"),
        ('"VerifierAgent"', "verifier"),
        ('"PlannerAgent"', "planner"),
        ('"SpecialistAgent"', "specialist"),
    ):
        if marker in system:
            return role
    return "other"


class ScriptedChatModel:
    """
    Stands in for a LangChain chat model.

    ``replies`` maps a role to a string, a callable taking the messages,
    or an exception instance to raise.
    """

    def __init__(self, replies: dict):
        self.replies = replies
        self.calls: list[tuple[str, list]] = []

    async def ainvoke(self, messages):
        role = role_of(messages)
        self.calls.append((role, messages))

        reply = self.replies.get(role, "")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages)
        return AIMessage(content=reply)

    def prompts(self, role: str) -> list[str]:
        """User prompt of every call made for ``role``."""
        return [messages[-1].content for call_role, messages in self.calls if call_role == role]

    def roles(self) -> list[str]:
        return [role for role, _ in self.calls]


class ScriptedLLMFactory:
    """llm_factory for LLMGateway; every model it builds is the same script."""

    def __init__(self, replies: dict):
        self.model = ScriptedChatModel(replies)
        self.created: list[tuple[float, int]] = []

    def __call__(self, temperature: float, max_tokens: int) -> ScriptedChatModel:
        self.created.append((temperature, max_tokens))
        return self.model


@pytest.fixture
def settings() -> Settings:
    """Settings with no credentials at all."""
    return make_settings()


@pytest.fixture
def online_settings() -> Settings:
    """Settings with a chat key configured."""
    return make_settings(glm_api_key="test-glm-key")


@pytest.fixture
def knowledge_items() -> list[KnowledgeItem]:
    return [
        KnowledgeItem(
            id="lib01",
            category="图书馆",
            question="图书馆几点开门？",
            answer="早8点到晚10点。",
            keywords=("图书馆",),
        ),
        KnowledgeItem(
            id="can01",
            category="食堂",
            question="食堂几点开饭？",
            answer="早餐6:30-9:00，午餐11:00-13:00。",
            keywords=("食堂", "吃饭"),
        ),
        KnowledgeItem(
            id="dorm01",
            category="宿舍",
            question="宿舍几点熄灯？",
            answer="晚上11点熄灯，周末延后到12点。",
            keywords=("宿舍", "熄灯"),
        ),
    ]


@pytest.fixture
def counting_embeddings() -> CountingEmbeddings:
    return CountingEmbeddings()


@pytest.fixture
def store_factory(settings, knowledge_items) -> Callable:
    """
    Async factory for initialized stores.

    Usage:
        store = await store_factory()
        store = await store_factory(items=[], backend=CountingEmbeddings())
    """

    async def build(
        items: Optional[list[KnowledgeItem]] = None,
        backend: Optional[Embeddings] = None,
        store_settings: Optional[Settings] = None,
    ) -> InMemoryVectorStore:
        active_settings = store_settings or settings
        loaded = knowledge_items if items is None else items
        embedder = EmbeddingProvider(
            backend=backend or CountingEmbeddings(dimension=active_settings.embedding_dimension),
            settings=active_settings,
        )
        store = InMemoryVectorStore(embedder, loader=lambda: loaded, settings=active_settings)
        await store.initialize()
        return store

    return build


@pytest.fixture
def scripted_llm() -> Callable[[dict], ScriptedLLMFactory]:
    """Build a scripted factory from a role → reply mapping."""
    return ScriptedLLMFactory


@pytest.fixture
def gateway_factory() -> Callable:
    """LLMGateway over a scripted factory."""

    def build(gateway_settings: Settings, factory: ScriptedLLMFactory) -> LLMGateway:
        return LLMGateway(settings=gateway_settings, llm_factory=factory)

    return build
