"""
Shared test doubles.

Everything here is in-memory and deterministic: no network, no database.

`FakeProvider` embeds texts registered with `set_vector` to that exact
vector. Any other text gets its own one-hot axis, so unrelated texts are
orthogonal (similarity 0) to each other and to registered vectors.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

import pytest

from kb_assistant.cache.repository import CacheEntry, CacheStats, CacheUsage
from kb_assistant.cache.semantic_cache import SemanticCache
from kb_assistant.core.similarity import cosine_similarity
from kb_assistant.embeddings.embedder import Embedder
from kb_assistant.engine.resolver import AnswerEngine, EngineConfig
from kb_assistant.knowledge.backend import VectorRecord, metadata_matches
from kb_assistant.knowledge.ingestion import IngestionService
from kb_assistant.knowledge.store import VectorStore
from kb_assistant.llm.base import ChatOptions, ChatTurn
from kb_assistant.llm.router import ModelRouter
from kb_assistant.sessions.manager import SessionManager
from kb_assistant.sessions.store import SessionRecord

DIM = 128
AUTO_AXIS_START = 16


def unit(axis: int, dim: int = DIM) -> List[float]:
    vec = [0.0] * dim
    vec[axis] = 1.0
    return vec


def at_similarity(similarity: float, dim: int = DIM) -> List[float]:
    """A unit vector whose cosine similarity with unit(0) is `similarity`."""
    vec = [0.0] * dim
    vec[0] = similarity
    vec[1] = math.sqrt(max(0.0, 1.0 - similarity * similarity))
    return vec


# ---------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------

class FakeProvider:
    name = "openai"

    def __init__(self, answer: str = "Generated answer.") -> None:
        self.answer = answer
        self.suggestions = "What is next?\nHow does it work?\nWhy does it matter?"
        self.image_answer = "An image of a cat."
        self.vectors: Dict[str, List[float]] = {}
        self._auto: Dict[str, int] = {}

        self.embed_calls: List[List[str]] = []
        self.chat_calls: List[Dict[str, Any]] = []
        self.complete_calls: List[str] = []
        self.image_calls: List[Dict[str, Any]] = []

        self.fail_embed = False
        self.fail_complete = False

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def embedding_model(self) -> str:
        return "text-embedding-3-small"

    def is_configured(self) -> bool:
        return True

    def set_vector(self, text: str, vector: Sequence[float]) -> None:
        self.vectors[text] = list(vector)

    def vector_for(self, text: str) -> List[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        if text not in self._auto:
            span = DIM - AUTO_AXIS_START
            self._auto[text] = AUTO_AXIS_START + len(self._auto) % span
        return unit(self._auto[text])

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        self.embed_calls.append(list(texts))
        if self.fail_embed:
            raise RuntimeError("embedding service down")
        return [self.vector_for(t) for t in texts]

    async def chat(
        self,
        message: str,
        context: Optional[str] = None,
        history: Optional[Sequence[ChatTurn]] = None,
        options: Optional[ChatOptions] = None,
        model: Optional[str] = None,
    ) -> str:
        self.chat_calls.append(
            {
                "message": message,
                "context": context,
                "history": list(history or []),
                "options": options,
                "model": model,
            }
        )
        return self.answer

    async def complete(
        self,
        prompt: str,
        options: Optional[ChatOptions] = None,
        model: Optional[str] = None,
    ) -> str:
        self.complete_calls.append(prompt)
        if self.fail_complete:
            raise RuntimeError("completion failed")
        return self.suggestions

    async def analyze_image(
        self,
        data: bytes,
        mime_type: str,
        prompt: str,
        model: Optional[str] = None,
    ) -> str:
        self.image_calls.append(
            {"data": data, "mime_type": mime_type, "prompt": prompt, "model": model}
        )
        return self.image_answer


# ---------------------------------------------------------------------
# Vector backend
# ---------------------------------------------------------------------

class FakeVectorBackend:
    """
    In-memory backend. Put a primitive's name in `failing` to make it raise
    RuntimeError; `supports_filter_delete=False` mimics FAISS.
    """

    name = "memory"

    def __init__(self, supports_filter_delete: bool = True) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}
        self.failing: Set[str] = set()
        self.supports_filter_delete = supports_filter_delete
        self.calls: List[str] = []

    def _enter(self, primitive: str) -> None:
        self.calls.append(primitive)
        if primitive in self.failing:
            raise RuntimeError(f"{primitive} failed")

    async def initialize(self) -> None:
        self._enter("initialize")

    async def count(self) -> int:
        self._enter("count")
        return len(self.records)

    async def add(self, ids, embeddings, documents, metadatas) -> None:
        self._enter("add")
        for i, emb, doc, meta in zip(ids, embeddings, documents, metadatas):
            self.records[i] = {"embedding": list(emb), "content": doc, "metadata": dict(meta)}

    async def query(self, embedding: Sequence[float], k: int) -> List[VectorRecord]:
        self._enter("query")
        scored = [
            VectorRecord(
                id=i,
                content=r["content"],
                metadata=r["metadata"],
                distance=1.0 - cosine_similarity(embedding, r["embedding"]),
            )
            for i, r in self.records.items()
        ]
        scored.sort(key=lambda r: r.distance)
        return scored[:k]

    def _matching(self, where: Mapping[str, Any]) -> List[str]:
        return [i for i, r in self.records.items() if metadata_matches(r["metadata"], where)]

    async def delete_where(self, where: Mapping[str, Any]) -> int:
        self._enter("delete_where")
        if not self.supports_filter_delete:
            raise NotImplementedError("no server-side filter")
        ids = self._matching(where)
        for i in ids:
            del self.records[i]
        return len(ids)

    async def get_ids(self, where: Mapping[str, Any]) -> List[str]:
        self._enter("get_ids")
        return self._matching(where)

    async def get_all(self) -> List[VectorRecord]:
        self._enter("get_all")
        return [
            VectorRecord(id=i, content=r["content"], metadata=r["metadata"])
            for i, r in self.records.items()
        ]

    async def delete_ids(self, ids: Sequence[str]) -> int:
        self._enter("delete_ids")
        removed = 0
        for i in ids:
            if self.records.pop(i, None) is not None:
                removed += 1
        return removed


# ---------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------

class InMemorySessionRepository:
    def __init__(self) -> None:
        self.sessions: Dict[str, SessionRecord] = {}

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        return self.sessions.get(session_id)

    async def create(self, owner: str) -> SessionRecord:
        now = datetime.now(timezone.utc)
        record = SessionRecord(id=str(uuid.uuid4()), owner=owner, created_at=now, updated_at=now)
        self.sessions[record.id] = record
        return record

    async def save_history(self, session_id: str, history: Sequence[ChatTurn]) -> SessionRecord:
        if session_id not in self.sessions:
            raise KeyError(session_id)
        record = self.sessions[session_id].model_copy(
            update={"history": list(history), "updated_at": datetime.now(timezone.utc)}
        )
        self.sessions[session_id] = record
        return record

    async def delete(self, session_id: str) -> bool:
        return self.sessions.pop(session_id, None) is not None

    async def list_for_owner(self, owner: str) -> List[SessionRecord]:
        owned = [s for s in self.sessions.values() if s.owner == owner]
        return sorted(owned, key=lambda s: s.updated_at, reverse=True)


class InMemoryCacheRepository:
    def __init__(self) -> None:
        self.entries: List[CacheEntry] = []
        self.fail_add = False
        self.fail_recent = False

    async def recent_for_owner(self, owner: str, limit: int) -> List[CacheEntry]:
        if self.fail_recent:
            raise RuntimeError("cache table unavailable")
        owned = [e for e in self.entries if e.owner == owner]
        return sorted(owned, key=lambda e: e.last_used_at, reverse=True)[:limit]

    async def add(
        self,
        owner: str,
        question: str,
        answer: str,
        source: str,
        model: str,
        embedding: List[float],
        document_sources: Optional[List[str]] = None,
    ) -> CacheEntry:
        if self.fail_add:
            raise RuntimeError("insert failed")
        now = datetime.now(timezone.utc)
        entry = CacheEntry(
            id=str(uuid.uuid4()),
            owner=owner,
            question=question,
            answer=answer,
            source=source,
            model=model,
            document_sources=document_sources,
            embedding=embedding,
            usage_count=1,
            created_at=now,
            last_used_at=now,
        )
        self.entries.append(entry)
        return entry

    async def touch(self, entry_id: str) -> None:
        for idx, entry in enumerate(self.entries):
            if entry.id == entry_id:
                self.entries[idx] = entry.model_copy(
                    update={
                        "usage_count": entry.usage_count + 1,
                        "last_used_at": datetime.now(timezone.utc),
                    }
                )

    async def delete_older_than(self, cutoff: datetime) -> int:
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.last_used_at >= cutoff]
        return before - len(self.entries)

    async def stats(self, owner: Optional[str] = None) -> CacheStats:
        entries = [e for e in self.entries if owner is None or e.owner == owner]
        top = sorted(entries, key=lambda e: e.usage_count, reverse=True)[:5]
        return CacheStats(
            total_cached=len(entries),
            total_usage=sum(e.usage_count for e in entries),
            most_used=[CacheUsage(question=e.question, usage_count=e.usage_count) for e in top],
        )


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

class Harness:
    """A fully wired answer engine over in-memory collaborators."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.provider = FakeProvider()
        self.backend = FakeVectorBackend()
        self.store = VectorStore(self.backend, "test-docs")
        self.embedder = Embedder(self.provider, batch_size=20, batch_delay=0)
        self.cache_repo = InMemoryCacheRepository()
        self.cache = SemanticCache(self.cache_repo, self.embedder, threshold=0.85, window=100)
        self.session_repo = InMemorySessionRepository()
        self.sessions = SessionManager(self.session_repo, history_limit=10)
        self.router = ModelRouter(self.provider.name, self.provider.default_model)
        self.ingestion = IngestionService(self.store, self.embedder)
        self.engine = AnswerEngine(
            provider=self.provider,
            embedder=self.embedder,
            vector_store=self.store,
            cache=self.cache,
            sessions=self.sessions,
            router=self.router,
            config=config or EngineConfig(),
        )

    async def add_chunk(self, chunk_id: str, content: str, vector: Sequence[float], **meta: Any) -> None:
        metadata = {"documentId": chunk_id, "fileName": f"{chunk_id}.txt", "chunkIndex": 0}
        metadata.update(meta)
        await self.backend.add([chunk_id], [list(vector)], [content], [metadata])


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def backend() -> FakeVectorBackend:
    return FakeVectorBackend()


@pytest.fixture
async def harness():
    h = Harness()
    await h.store.initialize()
    yield h
    await h.engine.wait_for_background_tasks()
