"""Tests for the in-memory vector store."""

import asyncio

import numpy as np
import pytest

from campus_rag.schemas.models import KnowledgeItem
from campus_rag.vectorstore.embeddings import EmbeddingProvider
from campus_rag.vectorstore.memory_store import InMemoryVectorStore, cosine_similarity

from conftest import CountingEmbeddings


class TestCosineSimilarity:
    def test_identity(self):
        v = np.array([0.3, -1.2, 4.0, 0.0])
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_symmetric(self):
        a = np.array([1.0, 2.0, 3.0])
        b = np.array([-2.0, 0.5, 1.0])
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_dimension_mismatch_is_zero(self):
        assert cosine_similarity(np.ones(3), np.ones(4)) == 0.0

    def test_zero_vector_is_zero(self):
        assert cosine_similarity(np.zeros(3), np.ones(3)) == 0.0

    def test_missing_vector_is_zero(self):
        assert cosine_similarity(None, np.ones(3)) == 0.0


class TestInitialization:
    @pytest.mark.asyncio
    async def test_concurrent_initialize_loads_once(self, settings, knowledge_items):
        load_count = 0

        def loader():
            nonlocal load_count
            load_count += 1
            return knowledge_items

        store = InMemoryVectorStore(
            EmbeddingProvider(backend=CountingEmbeddings(delay=0.01), settings=settings),
            loader=loader,
            settings=settings,
        )

        first, second = await asyncio.gather(store.initialize(), store.initialize())

        assert load_count == 1
        assert first == second
        assert first.success and first.count == 3
        assert store.is_ready and store.document_count == 3

    @pytest.mark.asyncio
    async def test_failed_load_still_marks_ready(self, settings):
        def loader():
            raise OSError("disk gone")

        store = InMemoryVectorStore(EmbeddingProvider(settings=settings), loader=loader, settings=settings)

        result = await store.initialize()

        assert not result.success
        assert "disk gone" in result.message
        assert store.is_ready
        assert store.document_count == 0

    @pytest.mark.asyncio
    async def test_no_loader(self, settings):
        store = InMemoryVectorStore(EmbeddingProvider(settings=settings), settings=settings)

        result = await store.initialize()

        assert not result.success
        assert store.is_ready

    @pytest.mark.asyncio
    async def test_reset_allows_reload(self, store_factory):
        store = await store_factory()

        store.reset()
        assert not store.is_ready and store.document_count == 0

        result = await store.initialize()
        assert result.count == 3

    @pytest.mark.asyncio
    async def test_reset_cancels_load_in_flight(self, settings, knowledge_items):
        backend = CountingEmbeddings(dimension=settings.embedding_dimension, delay=0.05)
        store = InMemoryVectorStore(
            EmbeddingProvider(backend=backend, settings=settings),
            loader=lambda: knowledge_items,
            settings=settings,
        )

        pending = asyncio.ensure_future(store.initialize())
        await asyncio.sleep(0)
        store.reset()

        with pytest.raises(asyncio.CancelledError):
            await pending
        await asyncio.sleep(0.2)

        assert not store.is_ready
        assert store.document_count == 0

        result = await store.initialize()
        assert result.count == 3

    @pytest.mark.asyncio
    async def test_add_documents_skips_duplicates(self, store_factory, knowledge_items):
        store = await store_factory()

        added = await store.add_documents([
            knowledge_items[0],
            KnowledgeItem(id="med01", category="医疗", question="校医院在哪？", answer="北门旁。"),
        ])

        assert added == 1
        assert store.get("med01").answer == "北门旁。"

    @pytest.mark.asyncio
    async def test_stats(self, store_factory):
        store = await store_factory()

        stats = store.stats()

        assert stats.count == 3
        assert stats.initialized
        assert stats.categories == ["图书馆", "食堂", "宿舍"]


class TestSearch:
    @pytest.mark.asyncio
    async def test_vector_search_is_sorted_and_bounded(self, store_factory):
        store = await store_factory()

        hits = await store.search("图书馆几点开门", top_k=2, threshold=0.0)

        assert len(hits) <= 2
        assert hits[0].id == "lib01"
        assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)

    @pytest.mark.asyncio
    async def test_threshold_filters(self, store_factory):
        store = await store_factory()

        hits = await store.search("图书馆几点开门", top_k=3, threshold=1.01)

        assert hits == []

    @pytest.mark.asyncio
    async def test_empty_store(self, store_factory):
        store = await store_factory(items=[])

        assert await store.search("图书馆") == []
        assert await store.hybrid_search("图书馆") == []

    @pytest.mark.asyncio
    async def test_keyword_scoring(self, store_factory):
        store = await store_factory()

        hits = store.keyword_search("宿舍几点熄灯？我想知道")

        # two keywords plus the question prefix
        assert hits[0].id == "dorm01"
        assert hits[0].score == pytest.approx(2.5)

    @pytest.mark.asyncio
    async def test_keyword_case_insensitive(self, store_factory):
        items = [KnowledgeItem(id="net01", category="网络", question="WiFi怎么连？", answer="用学号登录。", keywords=("WiFi",))]
        store = await store_factory(items=items)

        hits = store.keyword_search("宿舍wifi连不上")

        assert [h.id for h in hits] == ["net01"]

    @pytest.mark.asyncio
    async def test_keyword_ties_keep_insertion_order(self, store_factory):
        items = [
            KnowledgeItem(id=f"k{i}", category="c", question=f"问题{i}", answer="答", keywords=("校园卡",))
            for i in range(4)
        ]
        store = await store_factory(items=items)

        hits = store.keyword_search("校园卡", top_k=3)

        assert [h.id for h in hits] == ["k0", "k1", "k2"]


class TestHybridSearch:
    @pytest.mark.asyncio
    async def test_library_question_ranks_lib01_first(self, store_factory):
        store = await store_factory()

        hits = await store.hybrid_search("图书馆几点开门", top_k=3)

        assert hits[0].id == "lib01"
        assert len(hits) <= 3

    @pytest.mark.asyncio
    async def test_keyword_only_match_with_fallback_vectors(self, settings, knowledge_items):
        store = InMemoryVectorStore(
            EmbeddingProvider(settings=settings),
            loader=lambda: knowledge_items,
            settings=settings,
        )
        await store.initialize()

        hits = await store.hybrid_search("图书馆几点开门", top_k=3)

        assert hits[0].id == "lib01"

    @pytest.mark.asyncio
    async def test_fused_score_is_weighted_sum(self, store_factory, settings):
        store = await store_factory()
        query = "图书馆几点开门"

        vector_hits = {h.id: h.score for h in await store.search(query, 10, settings.hybrid_vector_threshold)}
        keyword_hits = {h.id: h.score for h in store.keyword_search(query, 10)}
        fused = {h.id: h.score for h in await store.hybrid_search(query, 10)}

        for entry_id, score in fused.items():
            expected = (
                settings.hybrid_vector_weight * vector_hits.get(entry_id, 0.0)
                + settings.hybrid_keyword_weight * keyword_hits.get(entry_id, 0.0)
            )
            assert score == pytest.approx(expected)
            # dropping either side never raises the score
            assert score >= settings.hybrid_vector_weight * vector_hits.get(entry_id, 0.0)
            assert score >= settings.hybrid_keyword_weight * keyword_hits.get(entry_id, 0.0)

    @pytest.mark.asyncio
    async def test_result_length_bounded(self, store_factory):
        store = await store_factory()

        for top_k in (1, 2, 3):
            assert len(await store.hybrid_search("宿舍 食堂 图书馆", top_k=top_k)) <= top_k
