"""
API Routes
==========

FastAPI endpoints for the campus assistant.

ENDPOINTS:
- POST /api/chat: Answer a message, streamed as Server-Sent Events
- POST /api/chat/complete: Answer a message as one JSON response
- GET /api/health: Health check endpoint
- GET /api/knowledge/stats: Knowledge base and embedding cache status
- DELETE /api/knowledge/cache: Clear the embedding cache

SSE FRAMING:
Every event is one ``data: {json}\\n\\n`` frame with a ``type`` field:

    routing  → agent, needsRAG, confidence, reason
    trace    → step (planner/rag/draft/verifier/final) and raw content
    sources  → cited knowledge entries, KB1 first (only when non-empty)
    text     → a chunk of the final answer
    done     → offline flag and verification status
    error    → "Internal Server Error", always the last frame
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from campus_rag import __version__
from campus_rag.config import get_settings
from campus_rag.exceptions import InputError, TransportFailure
from campus_rag.schemas.models import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    PipelineEvent,
    PipelineResult,
)
from campus_rag.services.knowledge_service import KnowledgeSource
from campus_rag.services.orchestrator import AgentPipeline
from campus_rag.vectorstore.embeddings import EmbeddingProvider
from campus_rag.vectorstore.memory_store import InMemoryVectorStore

logger = logging.getLogger(__name__)

# Create router with prefix and tags for OpenAPI docs
router = APIRouter(prefix="/api", tags=["chat"])

TEXT_CHUNK_CHARS = 24
ERROR_MESSAGE = "Internal Server Error"

# Lazy initialization of services
# These are created on first use and shared by every request
_vector_store: Optional[InMemoryVectorStore] = None
_pipeline: Optional[AgentPipeline] = None


def get_vector_store() -> InMemoryVectorStore:
    """Get or create the knowledge store."""
    global _vector_store
    if _vector_store is None:
        settings = get_settings()
        _vector_store = InMemoryVectorStore(
            EmbeddingProvider(settings=settings),
            loader=KnowledgeSource(settings=settings),
            settings=settings,
        )
    return _vector_store


def get_pipeline() -> AgentPipeline:
    """Get or create the agent pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = AgentPipeline(get_vector_store(), settings=get_settings())
    return _pipeline


def sse_frame(payload: dict) -> str:
    """Frame one event for the event stream."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _require_message(request: ChatRequest) -> None:
    if not request.message or not request.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")


def _event_payload(event: PipelineEvent) -> dict:
    if event.step == "routing":
        return {"type": "routing", **event.content}
    return {"type": "trace", "step": event.step, "content": event.content}


def _result_frames(result: PipelineResult):
    if result.sources:
        yield sse_frame({
            "type": "sources",
            "sources": [source.model_dump() for source in result.sources],
        })

    text = result.final_text
    for start in range(0, len(text), TEXT_CHUNK_CHARS):
        yield sse_frame({"type": "text", "content": text[start:start + TEXT_CHUNK_CHARS]})

    yield sse_frame({
        "type": "done",
        "offline": result.offline,
        "verification_status": result.verification_status.value,
    })


# =============================================================================
# Health Check
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check if the API is running and the knowledge base is ready",
)
async def health_check(pipeline: AgentPipeline = Depends(get_pipeline)) -> HealthResponse:
    """Returns the API status and whether the knowledge base is ready."""
    return HealthResponse(
        status="ok",
        version=__version__,
        vector_store_ready=pipeline.is_ready,
        document_count=pipeline.document_count,
        llm_configured=pipeline.has_credential,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# =============================================================================
# Chat Endpoints
# =============================================================================

@router.post(
    "/chat",
    summary="Chat (streaming)",
    description="Answer a message through the multi-agent pipeline, streamed as Server-Sent Events",
)
async def chat_stream(
    request: ChatRequest,
    pipeline: AgentPipeline = Depends(get_pipeline),
) -> StreamingResponse:
    """
    Stream progress events and the final answer.

    The pipeline runs in its own task feeding a queue; the response drains
    the queue. If the client disconnects the generator is closed and the
    pipeline task is cancelled with it.
    """
    _require_message(request)
    logger.info(f"Received message (stream): {request.message[:50]}...")

    async def event_generator():
        queue: asyncio.Queue = asyncio.Queue()

        async def produce() -> None:
            try:
                result = await pipeline.run_pipeline(
                    request.message,
                    history=request.history,
                    extra_context=request.extra_context,
                    on_event=lambda event: queue.put_nowait(("event", event)),
                )
                queue.put_nowait(("result", result))
            except Exception as e:
                logger.error(f"Chat stream failed: {e}", exc_info=not isinstance(e, TransportFailure))
                queue.put_nowait(("error", e))

        task = asyncio.create_task(produce())
        try:
            while True:
                kind, payload = await queue.get()

                if kind == "event":
                    yield sse_frame(_event_payload(payload))
                elif kind == "result":
                    for frame in _result_frames(payload):
                        yield frame
                    break
                else:
                    yield sse_frame({"type": "error", "content": ERROR_MESSAGE})
                    break
        finally:
            if not task.done():
                logger.info("Client disconnected, cancelling pipeline")
                task.cancel()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post(
    "/chat/complete",
    response_model=ChatResponse,
    summary="Chat (complete)",
    description="Answer a message through the multi-agent pipeline and return the whole answer",
)
async def chat_complete(
    request: ChatRequest,
    pipeline: AgentPipeline = Depends(get_pipeline),
) -> ChatResponse:
    """
    Process a message and return the final answer in one response.

    Raises:
        HTTPException: 400 for an empty message, 500 if the pipeline fails
    """
    _require_message(request)
    started = datetime.now(timezone.utc)

    try:
        result = await pipeline.run_pipeline(
            request.message,
            history=request.history,
            extra_context=request.extra_context,
        )
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransportFailure as e:
        logger.error(f"Chat processing failed: {e}")
        raise HTTPException(status_code=500, detail=ERROR_MESSAGE)

    processing_time_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000

    logger.info(
        f"Message processed: {request.message[:50]}... -> "
        f"{len(result.final_text)} chars, {len(result.sources)} sources"
    )

    return ChatResponse(
        answer=result.final_text,
        routing=result.routing,
        sources=result.sources,
        offline=result.offline,
        verification_status=result.verification_status,
        processing_time_ms=processing_time_ms,
    )


# =============================================================================
# Knowledge Base Management
# =============================================================================

@router.get(
    "/knowledge/stats",
    summary="Knowledge Base Stats",
    description="Entry count, categories and embedding cache size",
)
async def knowledge_stats(store: InMemoryVectorStore = Depends(get_vector_store)) -> dict:
    """
    Get the current knowledge base status.

    Returns:
        Dictionary with store stats and embedding cache stats
    """
    return {
        **store.stats().model_dump(),
        "embedding_backend": store.embedder.has_backend,
        "cache": store.embedder.cache_stats(),
    }


@router.delete(
    "/knowledge/cache",
    summary="Clear Embedding Cache",
    description="Drop every cached embedding vector",
)
async def clear_embedding_cache(store: InMemoryVectorStore = Depends(get_vector_store)) -> dict:
    """
    Clear the embedding cache.

    Only latency changes; the next lookups call the backend again.
    """
    size = store.embedder.cache_stats()["size"]
    store.embedder.clear_cache()

    return {
        "success": True,
        "message": f"Cleared {size} cached embeddings",
    }
