"""
Vector Store Module
===================

Text embeddings and the in-memory knowledge vector store.
"""

from campus_rag.vectorstore.embeddings import EmbeddingProvider, fallback_embedding
from campus_rag.vectorstore.memory_store import (
    InMemoryVectorStore,
    KnowledgeEntry,
    SearchHit,
    cosine_similarity,
)

__all__ = [
    "EmbeddingProvider",
    "fallback_embedding",
    "InMemoryVectorStore",
    "KnowledgeEntry",
    "SearchHit",
    "cosine_similarity",
]
