"""
FAISS Vector Backend

This module implements an in-process, optionally persistent FAISS vector
backend for deployments without PostgreSQL.

Key Properties
--------------
- Explicit ID management via IndexIDMap2 (string chunk ids map to int64)
- Cosine similarity via inner product over L2-normalized vectors
- Upsert semantics: re-adding an id replaces the previous vector
- Crash-safe persistence (index + metadata) when paths are configured
- No server-side metadata filter: `delete_where` is unsupported
"""

from __future__ import annotations

import json
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import faiss
import numpy as np

from ..knowledge.backend import VectorRecord, metadata_matches


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class FaissIndexError(RuntimeError):
    """Base error for FAISS index failures."""


class FaissPersistenceError(FaissIndexError):
    """Raised when index persistence fails."""


# ---------------------------------------------------------------------
# FAISS Backend
# ---------------------------------------------------------------------

class FaissVectorBackend:
    """
    FAISS backend with explicit ID mapping.

    All mutations happen under an internal lock, so one instance can be
    shared by concurrent request handlers.
    """

    name = "faiss"

    def __init__(
        self,
        index_path: Optional[str] = None,
        meta_path: Optional[str] = None,
    ) -> None:
        """
        Parameters
        ----------
        index_path : Optional[str]
            Filesystem path of the persisted FAISS index. None keeps the
            index in memory only.

        meta_path : Optional[str]
            Filesystem path of the persisted records (id map + contents).
        """
        self._index_path = index_path
        self._meta_path = meta_path

        self._index: Optional[faiss.IndexIDMap2] = None
        self._records: Dict[int, Tuple[str, str, Dict[str, Any]]] = {}
        self._ids: Dict[str, int] = {}
        self._next_id: int = 0

        self._lock = RLock()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _init_index(self, dim: int) -> None:
        base = faiss.IndexFlatIP(dim)
        self._index = faiss.IndexIDMap2(base)

    def _validate_embeddings(
        self,
        embeddings: Sequence[Sequence[float]],
        count: int,
    ) -> int:
        if len(embeddings) != count:
            raise FaissIndexError("Embedding count does not match document count.")

        dim = len(embeddings[0])
        if dim == 0:
            raise FaissIndexError("Embedding vectors must be non-empty.")

        if self._index is not None and self._index.d != dim:
            raise FaissIndexError(
                f"Embedding dimensionality {dim} does not match index ({self._index.d})."
            )

        for i, emb in enumerate(embeddings):
            if len(emb) != dim:
                raise FaissIndexError(
                    f"Inconsistent embedding dimensionality at index {i}."
                )
        return dim

    def _remove(self, faiss_ids: List[int]) -> int:
        if not faiss_ids or self._index is None:
            return 0

        try:
            self._index.remove_ids(np.asarray(faiss_ids, dtype="int64"))
        except Exception as exc:
            raise FaissIndexError(
                f"Failed to remove IDs from FAISS: {type(exc).__name__}"
            ) from exc

        for faiss_id in faiss_ids:
            chunk_id, _, _ = self._records.pop(faiss_id)
            self._ids.pop(chunk_id, None)
        return len(faiss_ids)

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        self.load()

    async def count(self) -> int:
        with self._lock:
            return len(self._records)

    async def add(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        documents: Sequence[str],
        metadatas: Sequence[Dict[str, Any]],
    ) -> None:
        if not ids:
            return

        if not (len(ids) == len(documents) == len(metadatas)):
            raise FaissIndexError("ids, documents and metadatas must align.")

        with self._lock:
            dim = self._validate_embeddings(embeddings, len(ids))
            if self._index is None:
                self._init_index(dim)

            # Repeated ids within one batch: the last occurrence wins
            latest = {chunk_id: pos for pos, chunk_id in enumerate(ids)}
            if len(latest) != len(ids):
                keep = sorted(latest.values())
                ids = [ids[p] for p in keep]
                embeddings = [embeddings[p] for p in keep]
                documents = [documents[p] for p in keep]
                metadatas = [metadatas[p] for p in keep]

            # Upsert: drop any previous vectors for the same chunk ids
            self._remove([self._ids[i] for i in ids if i in self._ids])

            faiss_ids = np.arange(
                self._next_id,
                self._next_id + len(ids),
                dtype="int64",
            )
            self._next_id += len(ids)

            vectors = np.asarray(embeddings, dtype="float32")
            faiss.normalize_L2(vectors)

            try:
                self._index.add_with_ids(vectors, faiss_ids)
            except Exception as exc:
                raise FaissIndexError(
                    f"Failed to add vectors to FAISS: {type(exc).__name__}"
                ) from exc

            for faiss_id, chunk_id, doc, meta in zip(faiss_ids, ids, documents, metadatas):
                self._records[int(faiss_id)] = (chunk_id, doc, dict(meta))
                self._ids[chunk_id] = int(faiss_id)

            self.save()

    async def query(self, embedding: Sequence[float], k: int) -> List[VectorRecord]:
        with self._lock:
            if self._index is None or not self._records:
                return []

            q = np.asarray([embedding], dtype="float32")
            faiss.normalize_L2(q)

            scores, idxs = self._index.search(q, min(k, len(self._records)))

            results: List[VectorRecord] = []
            for score, idx in zip(scores[0], idxs[0]):
                idx = int(idx)
                if idx == -1 or idx not in self._records:
                    continue

                chunk_id, content, meta = self._records[idx]
                results.append(
                    VectorRecord(
                        id=chunk_id,
                        content=content,
                        metadata=dict(meta),
                        distance=1.0 - float(score),
                    )
                )
            return results

    async def delete_where(self, where: Mapping[str, Any]) -> int:
        raise NotImplementedError("FAISS backend has no server-side metadata filter")

    async def get_ids(self, where: Mapping[str, Any]) -> List[str]:
        with self._lock:
            return [
                chunk_id
                for chunk_id, _, meta in self._records.values()
                if metadata_matches(meta, where)
            ]

    async def get_all(self) -> List[VectorRecord]:
        with self._lock:
            return [
                VectorRecord(id=chunk_id, content=content, metadata=dict(meta))
                for chunk_id, content, meta in self._records.values()
            ]

    async def delete_ids(self, ids: Sequence[str]) -> int:
        with self._lock:
            removed = self._remove([self._ids[i] for i in ids if i in self._ids])
            if removed:
                self.save()
            return removed

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """
        Persist both FAISS index and records to disk.
        """
        with self._lock:
            if self._index is None or not self._index_path or not self._meta_path:
                return

            index_path = Path(self._index_path)
            meta_path = Path(self._meta_path)

            index_path.parent.mkdir(parents=True, exist_ok=True)

            try:
                faiss.write_index(self._index, str(index_path))
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to write FAISS index: {type(exc).__name__}"
                ) from exc

            meta = {
                "next_id": self._next_id,
                "records": {
                    str(faiss_id): {"id": chunk_id, "content": content, "metadata": m}
                    for faiss_id, (chunk_id, content, m) in self._records.items()
                },
            }

            try:
                meta_path.parent.mkdir(parents=True, exist_ok=True)
                with meta_path.open("w", encoding="utf-8") as f:
                    json.dump(meta, f)
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to write FAISS metadata: {type(exc).__name__}"
                ) from exc

    def load(self) -> None:
        """
        Load index and records from disk if available.
        """
        with self._lock:
            if not self._index_path or not self._meta_path:
                return

            index_path = Path(self._index_path)
            meta_path = Path(self._meta_path)

            if not index_path.exists():
                return

            try:
                self._index = faiss.read_index(str(index_path))
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to read FAISS index: {type(exc).__name__}"
                ) from exc

            if not meta_path.exists():
                raise FaissPersistenceError(
                    f"FAISS index present but metadata missing: {meta_path}"
                )

            try:
                with meta_path.open("r", encoding="utf-8") as f:
                    data = json.load(f)

                self._next_id = int(data.get("next_id", 0))
                self._records = {
                    int(k): (v["id"], v["content"], dict(v.get("metadata") or {}))
                    for k, v in data.get("records", {}).items()
                }
                self._ids = {rec[0]: fid for fid, rec in self._records.items()}
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to load FAISS metadata: {type(exc).__name__}"
                ) from exc
