"""
Pydantic Schemas
================

Data models for request/response validation and internal data structures.
"""

from campus_rag.schemas.models import (
    AgentMode,
    AgentRole,
    ChatRequest,
    ChatResponse,
    ChatResult,
    ConversationMessage,
    HealthResponse,
    InitializationResult,
    KnowledgeItem,
    PipelineEvent,
    PipelineResult,
    PipelineStage,
    RAGResult,
    RetrievalResult,
    RoutingDecision,
    Source,
    StoreStats,
    VerificationStatus,
    VerificationVerdict,
)

__all__ = [
    "AgentMode",
    "AgentRole",
    "ChatRequest",
    "ChatResponse",
    "ChatResult",
    "ConversationMessage",
    "HealthResponse",
    "InitializationResult",
    "KnowledgeItem",
    "PipelineEvent",
    "PipelineResult",
    "PipelineStage",
    "RAGResult",
    "RetrievalResult",
    "RoutingDecision",
    "Source",
    "StoreStats",
    "VerificationStatus",
    "VerificationVerdict",
]
