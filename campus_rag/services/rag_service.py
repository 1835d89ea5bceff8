"""
Retrieval Service (RAG)
=======================

Finds knowledge entries relevant to a message and formats them into a
context block for the generating agents.

RESPONSIBILITIES:
1. Decide cheaply whether a message needs grounding at all
2. Run hybrid search against the vector store
3. Format hits as numbered reference blocks
4. Return sources in the same order, so the n-th source is citation KBn

The gate in needs_retrieval is deliberately coarse: it only has to keep
obvious chit-chat away from the embedding backend.
"""

import logging
from typing import Optional

from campus_rag.config import Settings, get_settings
from campus_rag.schemas.models import RAGResult, RetrievalResult, Source
from campus_rag.vectorstore.memory_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

CONTEXT_DELIMITER = "\n\n---\n\n"

# Facilities, academic processes, campus services and question markers.
CAMPUS_KEYWORDS = (
    "图书馆", "食堂", "宿舍", "教室", "体育馆", "校医院",
    "奖学金", "助学金", "贷款", "补助",
    "选课", "退课", "成绩", "绩点", "挂科", "补考", "重修",
    "报到", "入学", "毕业", "转专业", "休学", "退学",
    "校园卡", "充值", "挂失",
    "快递", "wifi", "网络", "打印",
    "医保", "报销", "就诊",
    "怎么", "如何", "在哪", "什么时候", "流程", "申请", "办理", "规定",
)


def needs_retrieval(query: str) -> bool:
    """True when the query mentions any campus vocabulary term."""
    query_lower = query.lower()
    return any(keyword in query_lower for keyword in CAMPUS_KEYWORDS)


def build_augmented_prompt(user_query: str, context: str) -> str:
    """
    Wrap the user's question with retrieved context.

    Without context the question is returned unchanged.
    """
    if not context or not context.strip():
        return user_query

    return (
        "以下是从校园知识库中检索到的相关参考信息：\n\n"
        f"{context}\n\n"
        "---\n\n"
        "请基于以上参考信息，准确回答用户的问题。如果参考信息不足以回答问题，"
        "可以结合你的知识进行补充，但要明确告知用户哪些是来自知识库的准确信息，哪些是补充说明。\n\n"
        f"用户问题：{user_query}"
    )


class RAGService:
    """
    Retrieval front-end over the vector store.

    Usage:
        rag = RAGService(store)
        result = await rag.perform_rag("图书馆几点开门")
        if result.used_rag:
            print(result.context)
    """

    def __init__(
        self,
        vector_store: InMemoryVectorStore,
        settings: Optional[Settings] = None,
    ):
        self._vector_store = vector_store
        self._settings = settings or get_settings()

    @staticmethod
    def needs_retrieval(query: str) -> bool:
        return needs_retrieval(query)

    async def retrieve_context(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        include_score: bool = False,
    ) -> RetrievalResult:
        """
        Retrieve and format knowledge for a query.

        Args:
            query: User query
            top_k: Maximum number of entries (default from settings)
            min_score: Drop hits whose fused score is below this. Unset by
                default because hybrid search already thresholds the vector side.
            include_score: Show the relevance percentage in each block

        Returns:
            RetrievalResult. success=False means retrieval could not run;
            success=True with empty context means nothing matched.
        """
        if top_k is None:
            top_k = self._settings.retrieval_top_k

        if not self._vector_store.is_ready:
            logger.warning("Vector store not ready, skipping RAG retrieval")
            return RetrievalResult(
                success=False,
                message="Knowledge base not initialized",
            )

        try:
            hits = await self._vector_store.hybrid_search(query, top_k)
        except Exception as e:
            logger.error(f"RAG retrieval error: {e}", exc_info=True)
            return RetrievalResult(success=False, message=str(e))

        if min_score is not None:
            hits = [hit for hit in hits if hit.score >= min_score]

        if not hits:
            return RetrievalResult(
                success=True,
                message="No relevant documents found",
            )

        context_parts = []
        for index, hit in enumerate(hits, 1):
            score_info = f" (相关度: {hit.score * 100:.1f}%)" if include_score else ""
            context_parts.append(
                f"【参考资料 {index}】{hit.entry.category}{score_info}\n"
                f"问：{hit.entry.question}\n"
                f"答：{hit.entry.answer}"
            )

        sources = [
            Source(
                id=hit.entry.id,
                category=hit.entry.category,
                question=hit.entry.question,
                score=hit.score,
            )
            for hit in hits
        ]

        logger.info(
            f"Retrieved {len(sources)} documents, best score: {sources[0].score:.2f}"
        )

        return RetrievalResult(
            success=True,
            context=CONTEXT_DELIMITER.join(context_parts),
            sources=sources,
            message=f"Found {len(sources)} relevant documents",
        )

    async def perform_rag(self, query: str) -> RAGResult:
        """
        Full retrieval step: gate, retrieve, build the augmented prompt.

        used_rag is True only when retrieval ran and found something.
        """
        if not self.needs_retrieval(query):
            return RAGResult(used_rag=False, augmented_prompt=query)

        result = await self.retrieve_context(
            query,
            top_k=self._settings.retrieval_top_k,
            include_score=True,
        )

        return RAGResult(
            used_rag=result.success and bool(result.sources),
            augmented_prompt=build_augmented_prompt(query, result.context),
            context=result.context,
            sources=result.sources,
        )
