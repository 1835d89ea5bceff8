"""
Campus Assistant - Main Application
===================================

FastAPI application entry point for the campus assistant.

This module:
- Creates the FastAPI application
- Configures middleware and CORS
- Includes API routes
- Sets up logging
- Starts loading the knowledge base in the background on startup

RUNNING THE APP:
    Development: uvicorn campus_rag.main:app --reload --port 3000
    Production:  uvicorn campus_rag.main:app --host 0.0.0.0 --port 3000

API DOCUMENTATION:
    - Swagger UI: http://localhost:3000/docs
    - ReDoc: http://localhost:3000/redoc
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from campus_rag.api.routes import get_vector_store, router
from campus_rag.config import get_settings
from campus_rag import __version__

logger = logging.getLogger(__name__)

# =============================================================================
# Logging Setup
# =============================================================================

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "langchain")

_console_handler: Optional[logging.Handler] = None


def setup_logging(level: str = "INFO") -> None:
    """
    Route application logs to stdout in the pipe-separated format.

    Calling it again (one app per test, reloads) only adjusts the level;
    the stdout handler is installed once.
    """
    global _console_handler

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if _console_handler is None:
        _console_handler = logging.StreamHandler(sys.stdout)
        _console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        root_logger.addHandler(_console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup logs the configuration and kicks off the knowledge base load in
    the background; shutdown cancels that load if it is still running.

    Requests arriving before the load finishes are answered without
    retrieval rather than blocked.
    """
    settings = get_settings()
    setup_logging(settings.log_level)

    logger.info(f"Starting Campus Assistant v{__version__}")
    logger.info(f"Debug mode: {settings.debug_mode}")
    logger.info(f"LLM provider: {settings.llm_provider} ({settings.get_model_name()})")
    logger.info(f"Knowledge file: {settings.knowledge_path}")

    missing = settings.missing_credentials()
    if missing:
        logger.warning(
            f"Missing credentials: {', '.join(missing)}. "
            "Chat answers use offline demo responses and embeddings use the fallback vectorizer."
        )

    store = get_vector_store()
    init_task = asyncio.create_task(store.initialize())

    yield  # Application runs here

    if not init_task.done():
        init_task.cancel()
    logger.info("Shutting down Campus Assistant")


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title="Campus Assistant",
        description=(
            "A campus question-answering service that routes each message to a "
            "specialised agent, grounds answers in a curated knowledge base and "
            "verifies them before they are shown."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Configure CORS for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify allowed origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/", include_in_schema=False)
    async def root():
        """Redirect root to API documentation."""
        return RedirectResponse(url="/docs")

    return app


app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "campus_rag.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug_mode,
        log_level=settings.log_level.lower(),
    )
