"""
Knowledge Base Assistant Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Startup order
-------------
1. Configure logging.
2. Validate provider credentials (fatal when missing).
3. Verify the embedding width matches the configured vector column
   (fatal on mismatch).
4. Create database tables.
5. Initialise the vector store. A failure leaves the store unavailable
   and is logged; the service still starts.

Shutdown waits for pending knowledge-base writebacks before the database
engine is disposed.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .core.errors import (
    KnowledgeBaseError,
    knowledge_base_exception_handler,
    unhandled_exception_handler,
)
from .core.logging import configure_logging
from .db import async_engine, init_db

from .api import (
    chat_routes,
    document_routes,
    health_routes,
)
from .api.dependencies import get_answer_engine, get_embedder, get_vector_store


logger = logging.getLogger("kb.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level, json_output=settings.log_json)
    logger.info("Starting kb-assistant (provider=%s)", settings.llm_provider)

    # Fail fast on missing credentials, not at the first request
    settings.require_provider_credentials()
    await get_embedder().verify_dimensions(settings.embedding_dimensions)

    await init_db()

    store = get_vector_store()
    if await store.initialize():
        logger.info("Vector store '%s' ready", store.collection_name)
    else:
        logger.error(
            "Vector store '%s' unavailable; knowledge base features are disabled",
            store.collection_name,
        )

    yield

    logger.info("Shutting down kb-assistant")
    await get_answer_engine().wait_for_background_tasks()
    await async_engine.dispose()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="kb-assistant",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(KnowledgeBaseError, knowledge_base_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(chat_routes.router)
    app.include_router(document_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
