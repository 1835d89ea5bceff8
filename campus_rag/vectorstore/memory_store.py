"""
In-Memory Vector Store
======================

Holds every knowledge entry with its vector and answers three kinds of
queries by exhaustive scan:

- search: cosine similarity against the query embedding
- keyword_search: literal keyword / question-prefix matching
- hybrid_search: both at once, fused by entry id

The knowledge base is a few hundred facts at most, so a linear scan over
numpy arrays is all the indexing it needs. Nothing is persisted; the store
is rebuilt from the knowledge source at startup.

INITIALIZATION:
initialize() is single-flight. The first caller starts a loading task and
every concurrent caller awaits that same task, so the knowledge source is
read and embedded exactly once. After loading, entries are never mutated,
which is why searches need no locking.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import numpy as np

from campus_rag.config import Settings, get_settings
from campus_rag.schemas.models import InitializationResult, KnowledgeItem, StoreStats
from campus_rag.vectorstore.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

KnowledgeLoader = Callable[[], Iterable[KnowledgeItem]]


@dataclass(frozen=True)
class KnowledgeEntry:
    """A knowledge item together with its embedding."""
    item: KnowledgeItem
    vector: np.ndarray

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def category(self) -> str:
        return self.item.category

    @property
    def question(self) -> str:
        return self.item.question

    @property
    def answer(self) -> str:
        return self.item.answer

    @property
    def keywords(self) -> tuple[str, ...]:
        return self.item.keywords


@dataclass(frozen=True)
class SearchHit:
    """One ranked result. ``score`` is whatever the producing search ranks by."""
    entry: KnowledgeEntry
    score: float

    @property
    def id(self) -> str:
        return self.entry.id


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector is missing or all-zero, or when the
    dimensions differ (e.g. a backend vector against a fallback vector).
    """
    if a is None or b is None:
        return 0.0

    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape:
        return 0.0

    denominator = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denominator == 0:
        return 0.0
    return float(np.dot(a, b) / denominator)


def _rank(scored: list[tuple[int, SearchHit]], top_k: int) -> list[SearchHit]:
    """Sort by score descending, ties by store position, then truncate."""
    scored.sort(key=lambda pair: (-pair[1].score, pair[0]))
    return [hit for _, hit in scored[:top_k]]


class InMemoryVectorStore:
    """
    Knowledge base entries plus vectors, searched by linear scan.

    Usage:
        store = InMemoryVectorStore(embedder, loader=lambda: items)
        await store.initialize()
        hits = await store.hybrid_search("图书馆几点开门", top_k=3)

    Each application builds one store and passes it to the retrieval
    service; tests build their own isolated instances.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        loader: Optional[KnowledgeLoader] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Args:
            embedder: Embedding provider used for entries and queries
            loader: Callable returning the knowledge items to index
            settings: Override settings
        """
        self._embedder = embedder
        self._loader = loader
        self._settings = settings or get_settings()

        self._entries: list[KnowledgeEntry] = []
        self._positions: dict[str, int] = {}
        self._initialized = False
        self._init_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Initialization
    # =========================================================================

    async def initialize(self) -> InitializationResult:
        """
        Load and index the knowledge source once.

        Concurrent callers share the in-flight task. A failed load still
        marks the store initialized so requests are never blocked on it.
        """
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._init_task)

    async def _load(self) -> InitializationResult:
        if self._loader is None:
            self._initialized = True
            return InitializationResult(success=False, message="No knowledge source configured")

        try:
            items = list(self._loader())
            logger.info(f"Loading {len(items)} documents from knowledge base...")

            count = await self.add_documents(items)

            self._initialized = True
            logger.info(f"Vector store initialized with {count} documents")
            return InitializationResult(
                success=True,
                count=count,
                message=f"Indexed {count} documents",
            )

        except Exception as e:
            logger.error(f"Failed to initialize vector store: {e}", exc_info=True)
            self._initialized = True
            return InitializationResult(success=False, count=len(self._entries), message=str(e))

    async def add_documents(self, items: list[KnowledgeItem]) -> int:
        """
        Embed and append knowledge items.

        Items whose id is already stored are skipped.

        Returns:
            Number of items added
        """
        new_items = []
        seen = set(self._positions)
        for item in items:
            if item.id in seen:
                logger.warning(f"Duplicate knowledge id skipped: {item.id}")
                continue
            seen.add(item.id)
            new_items.append(item)

        if not new_items:
            return 0

        vectors = await self._embedder.embed_batch([item.text for item in new_items])

        for item, vector in zip(new_items, vectors):
            self._positions[item.id] = len(self._entries)
            self._entries.append(KnowledgeEntry(item=item, vector=np.asarray(vector, dtype=float)))

        return len(new_items)

    # =========================================================================
    # Search
    # =========================================================================

    async def search(
        self,
        query: str,
        top_k: int = 3,
        threshold: Optional[float] = None,
    ) -> list[SearchHit]:
        """
        Rank entries by cosine similarity to the query.

        Args:
            query: Search text
            top_k: Maximum number of hits
            threshold: Minimum score (default from settings)

        Returns:
            Hits sorted by score descending
        """
        if threshold is None:
            threshold = self._settings.search_threshold

        if not self._entries:
            logger.warning("Vector store is empty")
            return []

        query_vector = np.asarray(await self._embedder.embed(query), dtype=float)

        scored = []
        for position, entry in enumerate(self._entries):
            score = cosine_similarity(query_vector, entry.vector)
            if score >= threshold:
                scored.append((position, SearchHit(entry=entry, score=score)))

        return _rank(scored, top_k)

    def keyword_search(self, query: str, top_k: int = 3) -> list[SearchHit]:
        """
        Rank entries by literal matches in the query.

        Scoring: +1 for each keyword contained in the query (case-insensitive),
        +0.5 if the first 10 characters of the entry's question appear in it.
        Entries scoring 0 are dropped.
        """
        query_lower = query.lower()

        scored = []
        for position, entry in enumerate(self._entries):
            score = 0.0
            for keyword in entry.keywords:
                if keyword and keyword.lower() in query_lower:
                    score += 1

            if entry.question and entry.question[:10].lower() in query_lower:
                score += 0.5

            if score > 0:
                scored.append((position, SearchHit(entry=entry, score=score)))

        return _rank(scored, top_k)

    async def _keyword_search_async(self, query: str, top_k: int) -> list[SearchHit]:
        return self.keyword_search(query, top_k)

    async def hybrid_search(self, query: str, top_k: int = 3) -> list[SearchHit]:
        """
        Fuse vector and keyword results.

        Both searches run concurrently. An entry's fused score is
        ``vector_weight * vector_score + keyword_weight * keyword_score``,
        with a missing side contributing nothing.

        Returns:
            Hits whose score is the fused score, sorted descending
        """
        vector_hits, keyword_hits = await asyncio.gather(
            self.search(query, top_k, self._settings.hybrid_vector_threshold),
            self._keyword_search_async(query, top_k),
        )

        vector_weight = self._settings.hybrid_vector_weight
        keyword_weight = self._settings.hybrid_keyword_weight

        fused: dict[str, float] = {}
        for hit in vector_hits:
            fused[hit.id] = fused.get(hit.id, 0.0) + hit.score * vector_weight
        for hit in keyword_hits:
            fused[hit.id] = fused.get(hit.id, 0.0) + hit.score * keyword_weight

        scored = []
        for entry_id, score in fused.items():
            position = self._positions[entry_id]
            scored.append((position, SearchHit(entry=self._entries[position], score=score)))

        return _rank(scored, top_k)

    # =========================================================================
    # Status
    # =========================================================================

    def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        position = self._positions.get(entry_id)
        return None if position is None else self._entries[position]

    def stats(self) -> StoreStats:
        """Entry count, initialization flag and categories in first-seen order."""
        categories = list(dict.fromkeys(entry.category for entry in self._entries))
        return StoreStats(
            count=len(self._entries),
            initialized=self._initialized,
            categories=categories,
        )

    def reset(self) -> None:
        """
        Remove every entry and forget the previous initialization.

        The next initialize() call loads the knowledge source again. A load
        still in flight is cancelled so it cannot repopulate the store.
        """
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._entries = []
        self._positions = {}
        self._initialized = False
        self._init_task = None
        logger.info("Vector store reset")

    @property
    def is_ready(self) -> bool:
        """True once initialization has finished, successfully or not."""
        return self._initialized

    @property
    def document_count(self) -> int:
        return len(self._entries)

    @property
    def embedder(self) -> EmbeddingProvider:
        return self._embedder
