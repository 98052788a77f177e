"""
Vector Store Adapter

Backend-agnostic facade over a `VectorBackend`. It owns:

- Readiness: a store whose backend failed to initialize reports
  `available=False` from `stats()` and raises `VectorStoreNotReadyError`
  from every read/write, so callers can degrade instead of crash.
- Score semantics: backend cosine distances become similarities in [0, 1]
  before any caller sees them.
- Best-effort deletion: `delete_by_document` walks an ordered list of
  strategies and never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..core.errors import VectorStoreError, VectorStoreNotReadyError
from ..core.similarity import distance_to_similarity
from ..embeddings.models import DocumentChunk, SearchResult
from .backend import VectorBackend, metadata_matches

logger = logging.getLogger("kb.vector")


@dataclass(frozen=True)
class DeletionReport:
    """
    Outcome of a best-effort delete.

    `strategy` names the strategy that succeeded, or is None when every
    strategy failed (duplicates may then remain in the store).
    """

    document_id: str
    strategy: Optional[str]
    deleted: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.strategy is not None


DeleteStrategy = Callable[[Dict[str, Any]], Awaitable[int]]


class VectorStore:
    def __init__(self, backend: VectorBackend, collection_name: str) -> None:
        self._backend = backend
        self.collection_name = collection_name
        self._available = False

    @property
    def available(self) -> bool:
        return self._available

    @property
    def backend_name(self) -> str:
        return self._backend.name

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Initialize the backend. Failure is logged and leaves the store
        unavailable rather than raising.
        """
        try:
            await self._backend.initialize()
        except Exception:
            logger.exception(
                "Vector store '%s' (%s) failed to initialize; running without it",
                self.collection_name,
                self._backend.name,
            )
            self._available = False
            return False

        self._available = True
        logger.info(
            "Vector store '%s' ready (%s backend)",
            self.collection_name,
            self._backend.name,
        )
        return True

    def _require_ready(self) -> None:
        if not self._available:
            raise VectorStoreNotReadyError(
                f"Vector store '{self.collection_name}' is not initialized."
            )

    # ------------------------------------------------------------------
    # Reads / writes
    # ------------------------------------------------------------------

    async def upsert(
        self,
        chunks: Sequence[DocumentChunk],
        vectors: Sequence[Sequence[float]],
    ) -> int:
        """
        Insert or replace chunks with their embeddings.

        Raises
        ------
        ValueError
            If `chunks` and `vectors` differ in length.
        VectorStoreNotReadyError
            If the store is unavailable.
        VectorStoreError
            If the backend rejects the write.
        """
        if len(chunks) != len(vectors):
            raise ValueError(
                f"Chunk count ({len(chunks)}) does not match vector count ({len(vectors)})."
            )
        self._require_ready()

        if not chunks:
            return 0

        try:
            await self._backend.add(
                ids=[c.id for c in chunks],
                embeddings=vectors,
                documents=[c.content for c in chunks],
                metadatas=[c.metadata.to_store() for c in chunks],
            )
        except Exception as exc:
            logger.exception(
                "Upsert of %d chunks into '%s' failed", len(chunks), self.collection_name
            )
            raise VectorStoreError(
                f"Vector store '{self.collection_name}' failed to store chunks."
            ) from exc
        logger.info("Upserted %d chunks into '%s'", len(chunks), self.collection_name)
        return len(chunks)

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: int = 5,
    ) -> List[SearchResult]:
        """
        Return up to `top_k` results ordered by descending similarity.

        An empty store yields an empty list. Backend failures raise
        `VectorStoreError`.
        """
        self._require_ready()
        if top_k < 1:
            return []

        try:
            records = await self._backend.query(query_vector, top_k)
        except Exception as exc:
            logger.exception("Search in '%s' failed", self.collection_name)
            raise VectorStoreError(
                f"Vector store '{self.collection_name}' failed to search."
            ) from exc

        results = [
            SearchResult(
                id=r.id,
                content=r.content,
                metadata=r.metadata,
                score=distance_to_similarity(r.distance if r.distance is not None else 1.0),
            )
            for r in records
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:top_k]

    async def stats(self) -> Dict[str, Any]:
        if not self._available:
            return {
                "count": 0,
                "collection_name": self.collection_name,
                "available": False,
            }

        return {
            "count": await self._backend.count(),
            "collection_name": self.collection_name,
            "available": True,
        }

    # ------------------------------------------------------------------
    # Best-effort deletion
    # ------------------------------------------------------------------

    async def _delete_by_server_filter(self, where: Dict[str, Any]) -> int:
        return await self._backend.delete_where(where)

    async def _delete_by_filtered_ids(self, where: Dict[str, Any]) -> int:
        ids = await self._backend.get_ids(where)
        return await self._backend.delete_ids(ids) if ids else 0

    async def _delete_by_collection_scan(self, where: Dict[str, Any]) -> int:
        records = await self._backend.get_all()
        ids = [r.id for r in records if metadata_matches(r.metadata, where)]
        return await self._backend.delete_ids(ids) if ids else 0

    def deletion_strategies(self) -> List[Tuple[str, DeleteStrategy]]:
        """Ordered fallback ladder used by `delete_by_document`."""
        return [
            ("server_filter", self._delete_by_server_filter),
            ("ids_by_filter", self._delete_by_filtered_ids),
            ("collection_scan", self._delete_by_collection_scan),
        ]

    async def delete_by_document(self, document_id: str) -> DeletionReport:
        """
        Delete every chunk whose metadata `documentId` matches.

        Strategies are tried in order until one succeeds. Failures are
        logged as warnings; this method never raises.
        """
        if not self._available:
            logger.warning(
                "Skipping delete of document %s: vector store not ready",
                document_id,
            )
            return DeletionReport(
                document_id=document_id,
                strategy=None,
                errors=["vector store not ready"],
            )

        where = {"documentId": document_id}
        errors: List[str] = []

        for name, strategy in self.deletion_strategies():
            try:
                deleted = await strategy(where)
            except Exception as exc:
                logger.warning(
                    "Delete strategy '%s' failed for document %s: %s: %s",
                    name,
                    document_id,
                    type(exc).__name__,
                    exc,
                )
                errors.append(f"{name}: {type(exc).__name__}: {exc}")
                continue

            logger.info(
                "Deleted %d chunks of document %s via '%s'",
                deleted,
                document_id,
                name,
            )
            return DeletionReport(
                document_id=document_id,
                strategy=name,
                deleted=deleted,
                errors=errors,
            )

        logger.warning(
            "All delete strategies failed for document %s; duplicate chunks may remain",
            document_id,
        )
        return DeletionReport(document_id=document_id, strategy=None, errors=errors)
