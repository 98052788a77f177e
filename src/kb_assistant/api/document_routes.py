"""
Document Routes

Endpoints for keeping the knowledge base in sync with source documents:
- Ingesting raw text
- Re-indexing a document (delete then recreate under the same id)
- Deleting a document's chunks
- Vector store statistics

Deletion is best effort. The response reports which strategy removed the
chunks, or `succeeded=false` when none did.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_ingestion_service, get_vector_store
from .models import (
    DeletionResponse,
    IngestResponse,
    IngestTextRequest,
    ReindexRequest,
    VectorStats,
)
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..knowledge.ingestion import IngestionService
from ..knowledge.store import DeletionReport, VectorStore

router = APIRouter(prefix="/documents", tags=["documents"])


def _deletion_response(report: DeletionReport) -> DeletionResponse:
    return DeletionResponse(
        document_id=report.document_id,
        deleted=report.deleted,
        strategy=report.strategy,
        succeeded=report.succeeded,
    )


# ---------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------

@router.post(
    "/text",
    response_model=IngestResponse,
    status_code=201,
    summary="Ingest raw text into the knowledge base",
)
async def ingest_text(
    req: IngestTextRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    ingestion: Annotated[IngestionService, Depends(get_ingestion_service)],
) -> IngestResponse:
    result = await ingestion.ingest_text(
        req.text,
        file_name=req.file_name,
        document_id=req.document_id,
        source="text",
        extra_metadata={"userId": user.user_id},
    )
    return IngestResponse(document_id=result.document_id, chunks=result.chunks)


@router.post(
    "/{document_id}/reindex",
    response_model=IngestResponse,
    summary="Replace a document's chunks with freshly embedded text",
)
async def reindex_document(
    document_id: str,
    req: ReindexRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    ingestion: Annotated[IngestionService, Depends(get_ingestion_service)],
) -> IngestResponse:
    """
    Workflow
    --------
    1. Best-effort delete of every chunk with this `documentId`.
    2. Chunk, embed and store the new text under the same `documentId`.

    A failed delete does not block step 2; `previousDeleted` is false in
    that case and stale chunks may remain.
    """
    result = await ingestion.reindex_document(
        document_id,
        req.text,
        file_name=req.file_name,
        extra_metadata={"userId": user.user_id},
    )
    return IngestResponse(
        document_id=result.document_id,
        chunks=result.chunks,
        previous_deleted=result.deletion.succeeded if result.deletion else None,
    )


@router.delete(
    "/{document_id}",
    response_model=DeletionResponse,
    summary="Delete every chunk of a document",
)
async def delete_document(
    document_id: str,
    user: Annotated[UserContext, Depends(get_current_user)],
    ingestion: Annotated[IngestionService, Depends(get_ingestion_service)],
) -> DeletionResponse:
    report = await ingestion.delete_document(document_id)
    return _deletion_response(report)


@router.get(
    "/stats",
    response_model=VectorStats,
    summary="Vector store statistics",
)
async def document_stats(
    user: Annotated[UserContext, Depends(get_current_user)],
    store: Annotated[VectorStore, Depends(get_vector_store)],
) -> VectorStats:
    stats = await store.stats()
    return VectorStats(backend=store.backend_name, **stats)
