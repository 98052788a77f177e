"""
Document Ingestion

Turns raw document text into embedded chunks in the vector store, and
implements delete-then-recreate re-indexing on top of the store's
best-effort deletion.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..core.errors import InvalidInputError
from ..embeddings.embedder import Embedder
from ..embeddings.models import ChunkMetadata, ChunkSource, DocumentChunk
from .store import DeletionReport, VectorStore

logger = logging.getLogger("kb.ingestion")


@dataclass(frozen=True)
class IngestionResult:
    document_id: str
    chunks: int
    deletion: Optional[DeletionReport] = None


class IngestionService:
    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ". ", " ", ""],
        )

    def split(self, text: str) -> List[str]:
        return [c for c in self._splitter.split_text(text) if c.strip()]

    async def ingest_text(
        self,
        text: str,
        file_name: str,
        document_id: Optional[str] = None,
        source: ChunkSource = "text",
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> IngestionResult:
        """
        Chunk, embed and store a document.

        All chunks share one `documentId`; chunk ids are
        `{documentId}_chunk_{index}`.

        Raises
        ------
        InvalidInputError
            If the text yields no chunks.
        EmbeddingError
            If embedding fails. Nothing is written in that case.
        """
        document_id = document_id or str(uuid.uuid4())

        # 1. Chunk
        pieces = self.split(text)
        if not pieces:
            raise InvalidInputError(f"Document '{file_name}' has no text content.")

        processed_at = datetime.now(timezone.utc).isoformat()
        chunks = [
            DocumentChunk(
                id=f"{document_id}_chunk_{index}",
                content=piece,
                metadata=ChunkMetadata(
                    document_id=document_id,
                    file_name=file_name,
                    chunk_index=index,
                    total_chunks=len(pieces),
                    source=source,
                    processedAt=processed_at,
                    **(extra_metadata or {}),
                ),
            )
            for index, piece in enumerate(pieces)
        ]

        # 2. Embed
        vectors = await self._embedder.embed_batch([c.content for c in chunks])

        # 3. Store
        await self._store.upsert(chunks, vectors)

        logger.info(
            "Ingested '%s' as document %s (%d chunks)",
            file_name,
            document_id,
            len(chunks),
        )
        return IngestionResult(document_id=document_id, chunks=len(chunks))

    async def reindex_document(
        self,
        document_id: str,
        text: str,
        file_name: str,
        source: ChunkSource = "upload",
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> IngestionResult:
        """
        Delete a document's chunks, then ingest its text again under the
        same `documentId`. A failed delete does not stop the re-ingest.
        """
        deletion = await self._store.delete_by_document(document_id)
        if not deletion.succeeded:
            logger.warning(
                "Re-indexing %s without a clean delete; duplicates are possible",
                document_id,
            )

        result = await self.ingest_text(
            text,
            file_name=file_name,
            document_id=document_id,
            source=source,
            extra_metadata=extra_metadata,
        )
        return IngestionResult(
            document_id=result.document_id,
            chunks=result.chunks,
            deletion=deletion,
        )

    async def delete_document(self, document_id: str) -> DeletionReport:
        return await self._store.delete_by_document(document_id)
