"""
Data Models
===========

This module defines the Pydantic models used throughout the application.
Models provide:
- Request/response validation for API endpoints
- Type safety for data flowing between pipeline stages
- Automatic API documentation via OpenAPI

Field names are snake_case in Python. Where the browser client or the
planner prompt uses camelCase (``needsRAG``) the model carries an alias.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class AgentMode(str, Enum):
    """
    Conversation modes a message can be routed to.

    - KNOWLEDGE: campus policy, process, location and schedule questions
    - TUTOR: interview practice, mock assessments, role play
    - GENERAL: chit-chat and non-campus topics
    """
    KNOWLEDGE = "knowledge"
    TUTOR = "tutor"
    GENERAL = "general"


class AgentRole(str, Enum):
    """Roles in the pipeline. All of them talk to the same chat backend."""
    PLANNER = "planner"
    SPECIALIST = "specialist"
    VERIFIER = "verifier"
    FINALIZER = "finalizer"


class PipelineStage(str, Enum):
    """States of the answer pipeline, in execution order."""
    ROUTE = "route"
    RETRIEVE = "retrieve"
    DRAFT = "draft"
    VERIFY = "verify"
    FINALIZE = "finalize"
    DONE = "done"


class VerificationStatus(str, Enum):
    """
    How much the final answer was checked.

    UNVERIFIED means the verifier produced nothing usable and the answer
    was finalized under a generic "be careful" instruction.
    """
    VERIFIED = "verified"
    REVISED = "revised"
    UNVERIFIED = "unverified"
    SKIPPED = "skipped"


# =============================================================================
# Knowledge Models
# =============================================================================

class KnowledgeItem(BaseModel):
    """One question/answer fact as it appears in the knowledge source."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    category: str = Field(default="")
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    keywords: tuple[str, ...] = Field(default_factory=tuple)

    @property
    def text(self) -> str:
        """Text that gets embedded for this item."""
        return f"{self.question}\n{self.answer}"


class InitializationResult(BaseModel):
    """Outcome of loading and indexing the knowledge source."""
    success: bool
    count: int = 0
    message: str = ""


class StoreStats(BaseModel):
    """Vector store status."""
    count: int
    initialized: bool
    categories: list[str] = Field(default_factory=list)


class Source(BaseModel):
    """
    A knowledge entry cited by an answer.

    Sources keep retrieval rank order; the n-th source is citation KBn.
    """
    id: str
    category: str
    question: str
    score: float


class RetrievalResult(BaseModel):
    """Result of retrieve_context."""
    success: bool
    context: str = ""
    sources: list[Source] = Field(default_factory=list)
    message: str = ""


class RAGResult(BaseModel):
    """Result of perform_rag."""
    used_rag: bool
    augmented_prompt: str
    context: str = ""
    sources: list[Source] = Field(default_factory=list)


# =============================================================================
# Conversation Models
# =============================================================================

class ConversationMessage(BaseModel):
    """A single prior turn supplied by the client."""
    role: str = Field(..., description="'user' or 'assistant'")
    content: str = Field(..., description="Message text")


# =============================================================================
# Agent Models
# =============================================================================

class RoutingDecision(BaseModel):
    """
    Which mode handles the message and whether it needs grounding.

    Produced by the heuristic router or by the planner agent; both share
    this shape so the pipeline does not care which one decided.
    """
    model_config = ConfigDict(populate_by_name=True)

    agent: AgentMode
    needs_retrieval: bool = Field(default=False, alias="needsRAG")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reason: str = Field(default="")
    plan: list[str] = Field(default_factory=list)
    strategy: str = Field(default="heuristic", description="'heuristic' or 'planner'")


class VerificationVerdict(BaseModel):
    """Verifier output after normalisation."""
    verdict: str = Field(default="revise", description="'pass' or 'revise'")
    issues: list[str] = Field(default_factory=list)
    missing_citations: list[str] = Field(default_factory=list)
    rewrite_guidance: str = Field(default="")
    parsed: bool = Field(
        default=True,
        description="False when the verifier output was unusable and this verdict was synthesized"
    )

    @property
    def passed(self) -> bool:
        return self.verdict == "pass"


class ChatResult(BaseModel):
    """Normalised outcome of one chat completion call."""
    ok: bool
    content: str = ""


class PipelineEvent(BaseModel):
    """A progress/trace event emitted by the pipeline."""
    step: str
    content: Any = None


class PipelineResult(BaseModel):
    """Everything the transport layer needs to answer a message."""
    routing: RoutingDecision
    sources: list[Source] = Field(default_factory=list)
    final_text: str = ""
    offline: bool = False
    verification_status: VerificationStatus = VerificationStatus.SKIPPED
    trace: list[PipelineEvent] = Field(default_factory=list)


# =============================================================================
# API Request/Response Models
# =============================================================================

class ChatRequest(BaseModel):
    """
    Chat request from the client.

    Example:
        {
            "message": "图书馆几点开门",
            "history": [{"role": "user", "content": "你好"}]
        }
    """
    message: str = Field(default="", max_length=4000, description="The user's message")
    history: list[ConversationMessage] = Field(
        default_factory=list,
        description="Prior turns, oldest first"
    )
    extra_context: Optional[str] = Field(
        default=None,
        description="Supplementary context (for example a web snippet) folded into retrieval"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "图书馆几点开门",
                "history": [],
            }
        }
    )


class ChatResponse(BaseModel):
    """Non-streaming chat response."""
    answer: str
    routing: RoutingDecision
    sources: list[Source] = Field(default_factory=list)
    offline: bool = False
    verification_status: VerificationStatus
    processing_time_ms: float


class HealthResponse(BaseModel):
    """API health check response."""
    status: str = Field(..., description="'ok'")
    version: str
    vector_store_ready: bool
    document_count: int
    llm_configured: bool
    timestamp: str
