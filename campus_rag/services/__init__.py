"""
Services Module
===============

Business logic services: the chat gateway, knowledge loading and retrieval.

The agent pipeline that ties them together lives in
``campus_rag.services.orchestrator``; it depends on the agents package, which
itself imports the gateway from here, so it is not re-exported.
"""

from campus_rag.services.llm_gateway import LLMGateway
from campus_rag.services.knowledge_service import KnowledgeSource
from campus_rag.services.rag_service import RAGService

__all__ = ["LLMGateway", "KnowledgeSource", "RAGService"]
