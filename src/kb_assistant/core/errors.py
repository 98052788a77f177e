"""
Error Taxonomy & Global Error Handling

This module defines the domain exceptions raised by the answer pipeline and
the FastAPI handlers that translate them into HTTP responses.

Design Goals
------------
- Distinguish "provider misconfigured" from "no relevant data" from
  "invalid input" in every user-visible failure
- Never leak internal exception details for unexpected failures
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("kb.errors")


# ---------------------------------------------------------------------
# Domain Exceptions
# ---------------------------------------------------------------------

class KnowledgeBaseError(RuntimeError):
    """Base class for all expected failures of the answer pipeline."""

    code: str = "knowledge_base_error"
    status_code: int = 500


class InvalidInputError(KnowledgeBaseError):
    """Raised for empty messages, unsupported attachments and similar."""

    code = "invalid_input"
    status_code = 400


class SessionNotFoundError(KnowledgeBaseError):
    code = "session_not_found"
    status_code = 404


class SessionPermissionError(KnowledgeBaseError):
    """Raised when a session is accessed by someone other than its owner."""

    code = "session_forbidden"
    status_code = 403


class ProviderConfigurationError(KnowledgeBaseError):
    """Raised when the active LLM provider lacks credentials or settings."""

    code = "provider_misconfigured"
    status_code = 503


class GenerationError(KnowledgeBaseError):
    """Raised when an LLM generation call fails."""

    code = "generation_failed"
    status_code = 502


class EmbeddingError(KnowledgeBaseError):
    """Raised when embedding generation fails."""

    code = "embedding_failed"
    status_code = 502


class VectorStoreNotReadyError(KnowledgeBaseError):
    """Raised for reads or writes against a vector store that never initialized."""

    code = "vector_store_not_ready"
    status_code = 503


class VectorStoreError(KnowledgeBaseError):
    """Raised when a ready vector store's backend fails a read or write."""

    code = "vector_store_unavailable"
    status_code = 503



# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def knowledge_base_exception_handler(
    request: Request,
    exc: KnowledgeBaseError,
) -> JSONResponse:
    """
    Translate a domain exception into its HTTP status and error code.

    Client errors are logged at WARNING, upstream and server errors at ERROR.
    The exception message is returned as-is since domain exceptions are
    written to be user-facing.
    """
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "%s during request %s %s: %s",
        exc.code,
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": exc.code,
        "detail": str(exc),
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    This handler should be registered with FastAPI as the final safety net
    for any exception not otherwise handled by route-level or domain-level
    handlers.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
