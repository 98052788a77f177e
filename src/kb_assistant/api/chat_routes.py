"""
Chat Routes

HTTP surface of the answer engine and of the user's chat sessions.

Routes
------
- POST   /chat/ask                      answer one question (multipart form)
- POST   /chat/sessions                 create an empty session
- GET    /chat/sessions                 list the caller's sessions
- GET    /chat/sessions/{id}            fetch one session with its history
- POST   /chat/sessions/{id}/clear      drop a session's history
- DELETE /chat/sessions/{id}            delete a session
- GET    /chat/cache/stats              semantic cache usage for the caller

Security Model
--------------
Every route requires a verified bearer JWT. The token's subject is the
owner id for sessions and cache entries; sessions owned by someone else
answer 403.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from .dependencies import get_answer_engine, get_semantic_cache, get_session_manager
from .models import (
    CacheStatsResponse,
    CacheUsageItem,
    OperationResult,
    SessionResponse,
    SessionSummary,
)
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..cache.semantic_cache import SemanticCache
from ..engine.files import FileAttachment
from ..engine.models import AnswerRequest, AnswerResponse
from ..engine.resolver import AnswerEngine
from ..sessions.manager import SessionManager
from ..sessions.store import SessionRecord

router = APIRouter(prefix="/chat", tags=["chat"])

PREVIEW_CHARS = 80


# ---------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------

def _session_response(record: SessionRecord) -> SessionResponse:
    return SessionResponse(
        session_id=record.id,
        messages=record.history,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _session_summary(record: SessionRecord) -> SessionSummary:
    first_user = next((t.content for t in record.history if t.role == "user"), None)
    preview = first_user[:PREVIEW_CHARS] if first_user else None
    return SessionSummary(
        session_id=record.id,
        message_count=len(record.history),
        preview=preview,
        updated_at=record.updated_at,
    )


async def _read_attachment(upload: UploadFile) -> FileAttachment:
    data = await upload.read()
    return FileAttachment(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "application/octet-stream",
        data=data,
    )


# ---------------------------------------------------------------------
# Answering
# ---------------------------------------------------------------------

@router.post(
    "/ask",
    response_model=AnswerResponse,
    summary="Answer a question from cache, knowledge base or the model",
)
async def ask(
    user: Annotated[UserContext, Depends(get_current_user)],
    engine: Annotated[AnswerEngine, Depends(get_answer_engine)],
    message: Annotated[str, Form()] = "",
    session_id: Annotated[Optional[str], Form()] = None,
    include_history: Annotated[bool, Form()] = True,
    top_k: Annotated[Optional[int], Form(ge=1, le=20)] = None,
    model: Annotated[Optional[str], Form()] = None,
    file: Annotated[Optional[UploadFile], File()] = None,
) -> AnswerResponse:
    """
    Resolve one question.

    The response's `responseSource` tells the client where the answer came
    from: "cached", "knowledge_base" or "ai_generated". Domain errors
    (empty message, foreign session, provider failure) are mapped to HTTP
    statuses by the global exception handlers.
    """
    attachment = await _read_attachment(file) if file is not None else None

    request = AnswerRequest(
        message=message,
        session_id=session_id or None,
        include_history=include_history,
        top_k=top_k,
        model=model or None,
        file=attachment,
    )
    return await engine.answer(user.user_id, request)


# ---------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------

@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=201,
    summary="Create an empty chat session",
)
async def create_session(
    user: Annotated[UserContext, Depends(get_current_user)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionResponse:
    record = await sessions.create(user.user_id)
    return _session_response(record)


@router.get(
    "/sessions",
    response_model=List[SessionSummary],
    summary="List the caller's chat sessions",
)
async def list_sessions(
    user: Annotated[UserContext, Depends(get_current_user)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> List[SessionSummary]:
    records = await sessions.list_for_owner(user.user_id)
    return [_session_summary(r) for r in records]


@router.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    summary="Get a chat session with its history",
)
async def get_session(
    session_id: str,
    user: Annotated[UserContext, Depends(get_current_user)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionResponse:
    record = await sessions.get(session_id, user.user_id)
    return _session_response(record)


@router.post(
    "/sessions/{session_id}/clear",
    response_model=SessionResponse,
    summary="Clear a chat session's history",
)
async def clear_session(
    session_id: str,
    user: Annotated[UserContext, Depends(get_current_user)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionResponse:
    record = await sessions.clear(session_id, user.user_id)
    return _session_response(record)


@router.delete(
    "/sessions/{session_id}",
    response_model=OperationResult,
    summary="Delete a chat session",
)
async def delete_session(
    session_id: str,
    user: Annotated[UserContext, Depends(get_current_user)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> OperationResult:
    await sessions.delete(session_id, user.user_id)
    return OperationResult(status="deleted", count=1)


# ---------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------

@router.get(
    "/cache/stats",
    response_model=CacheStatsResponse,
    summary="Semantic cache statistics for the caller",
)
async def cache_stats(
    user: Annotated[UserContext, Depends(get_current_user)],
    cache: Annotated[SemanticCache, Depends(get_semantic_cache)],
) -> CacheStatsResponse:
    stats = await cache.stats(user.user_id)
    return CacheStatsResponse(
        total_cached=stats.total_cached,
        total_usage=stats.total_usage,
        most_used=[
            CacheUsageItem(question=u.question, usage_count=u.usage_count)
            for u in stats.most_used
        ],
    )
