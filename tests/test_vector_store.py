"""
Vector Store Adapter Tests

Readiness, upsert validation, score conversion and the best-effort
deletion ladder.
"""

import pytest

from kb_assistant.core.errors import VectorStoreError, VectorStoreNotReadyError
from kb_assistant.embeddings.index import FaissVectorBackend
from kb_assistant.embeddings.models import ChunkMetadata, DocumentChunk
from kb_assistant.knowledge.store import VectorStore

from conftest import FakeVectorBackend, at_similarity, unit


def _chunk(chunk_id: str, document_id: str, index: int = 0, total: int = 1) -> DocumentChunk:
    return DocumentChunk(
        id=chunk_id,
        content=f"content of {chunk_id}",
        metadata=ChunkMetadata(
            document_id=document_id,
            file_name=f"{document_id}.txt",
            chunk_index=index,
            total_chunks=total,
            source="upload",
        ),
    )


@pytest.fixture
async def store(backend):
    s = VectorStore(backend, "test-docs")
    await s.initialize()
    return s


class TestReadiness:
    async def test_operations_before_initialize_raise_not_ready(self, backend):
        store = VectorStore(backend, "test-docs")

        with pytest.raises(VectorStoreNotReadyError):
            await store.search(unit(0), 5)
        with pytest.raises(VectorStoreNotReadyError):
            await store.upsert([_chunk("a_chunk_0", "a")], [unit(0)])

    async def test_failed_initialize_leaves_store_unavailable(self, backend):
        backend.failing.add("initialize")
        store = VectorStore(backend, "test-docs")

        assert await store.initialize() is False
        assert store.available is False

    async def test_stats_when_unavailable(self, backend):
        store = VectorStore(backend, "test-docs")

        assert await store.stats() == {
            "count": 0,
            "collection_name": "test-docs",
            "available": False,
        }

    async def test_stats_when_ready(self, store):
        await store.upsert([_chunk("a_chunk_0", "a")], [unit(0)])

        assert await store.stats() == {
            "count": 1,
            "collection_name": "test-docs",
            "available": True,
        }


class TestUpsertAndSearch:
    async def test_length_mismatch_raises(self, store):
        with pytest.raises(ValueError):
            await store.upsert([_chunk("a_chunk_0", "a")], [unit(0), unit(1)])

    async def test_upsert_persists_camel_case_metadata(self, store, backend):
        await store.upsert([_chunk("a_chunk_0", "a")], [unit(0)])

        meta = backend.records["a_chunk_0"]["metadata"]
        assert meta["documentId"] == "a"
        assert meta["fileName"] == "a.txt"
        assert meta["chunkIndex"] == 0
        assert meta["totalChunks"] == 1
        assert meta["source"] == "upload"

    async def test_upsert_same_id_replaces(self, store, backend):
        await store.upsert([_chunk("a_chunk_0", "a")], [unit(0)])
        await store.upsert([_chunk("a_chunk_0", "a")], [unit(1)])

        assert len(backend.records) == 1
        assert backend.records["a_chunk_0"]["embedding"] == unit(1)

    async def test_search_empty_store_returns_empty(self, store):
        assert await store.search(unit(0), 5) == []

    async def test_search_sorted_by_descending_score(self, store):
        chunks = [_chunk("low", "d1"), _chunk("high", "d2"), _chunk("mid", "d3")]
        vectors = [at_similarity(0.2), at_similarity(0.9), at_similarity(0.5)]
        await store.upsert(chunks, vectors)

        results = await store.search(unit(0), 3)

        assert [r.id for r in results] == ["high", "mid", "low"]
        assert results[0].score == pytest.approx(0.9)
        assert all(0.0 <= r.score <= 1.0 for r in results)

    async def test_search_respects_top_k(self, store):
        chunks = [_chunk(f"c{i}", "d") for i in range(4)]
        await store.upsert(chunks, [at_similarity(0.1 * (i + 1)) for i in range(4)])

        assert len(await store.search(unit(0), 2)) == 2

    async def test_backend_write_failure_is_wrapped(self, store, backend):
        backend.failing.add("add")

        with pytest.raises(VectorStoreError):
            await store.upsert([_chunk("a_chunk_0", "a")], [unit(0)])

    async def test_backend_query_failure_is_wrapped(self, store, backend):
        backend.failing.add("query")

        with pytest.raises(VectorStoreError):
            await store.search(unit(0), 5)


class TestDeleteByDocument:
    async def _seed(self, store):
        await store.upsert(
            [_chunk("a_chunk_0", "a", 0, 2), _chunk("a_chunk_1", "a", 1, 2), _chunk("b_chunk_0", "b")],
            [unit(0), unit(1), unit(2)],
        )

    async def test_first_strategy_succeeds(self, store, backend):
        await self._seed(store)

        report = await store.delete_by_document("a")

        assert report.succeeded
        assert report.strategy == "server_filter"
        assert report.deleted == 2
        assert set(backend.records) == {"b_chunk_0"}

    async def test_falls_through_to_collection_scan(self, store, backend):
        await self._seed(store)
        backend.failing.update({"delete_where", "get_ids"})

        report = await store.delete_by_document("a")

        assert report.strategy == "collection_scan"
        assert report.deleted == 2
        assert len(report.errors) == 2
        assert set(backend.records) == {"b_chunk_0"}

    async def test_all_strategies_fail_without_raising(self, store, backend):
        await self._seed(store)
        backend.failing.update({"delete_where", "get_ids", "get_all"})

        report = await store.delete_by_document("a")

        assert not report.succeeded
        assert report.strategy is None
        assert len(report.errors) == 3
        assert len(backend.records) == 3

    async def test_unavailable_store_does_not_raise(self, backend):
        store = VectorStore(backend, "test-docs")

        report = await store.delete_by_document("a")

        assert report.strategy is None
        assert "delete_where" not in backend.calls

    async def test_unknown_document_deletes_nothing(self, store):
        await self._seed(store)

        report = await store.delete_by_document("missing")

        assert report.succeeded
        assert report.deleted == 0


class TestFaissBackend:
    @pytest.fixture
    async def faiss_store(self):
        s = VectorStore(FaissVectorBackend(), "test-docs")
        await s.initialize()
        return s

    async def test_search_converts_inner_product_to_score(self, faiss_store):
        await faiss_store.upsert(
            [_chunk("x", "d1"), _chunk("y", "d2")],
            [at_similarity(0.6, dim=8), at_similarity(1.0, dim=8)],
        )

        results = await faiss_store.search(unit(0, dim=8), 2)

        assert [r.id for r in results] == ["y", "x"]
        assert results[0].score == pytest.approx(1.0, abs=1e-5)
        assert results[1].score == pytest.approx(0.6, abs=1e-5)

    async def test_delete_falls_back_to_filtered_ids(self, faiss_store):
        await faiss_store.upsert(
            [_chunk("a_chunk_0", "a"), _chunk("b_chunk_0", "b")],
            [unit(0, dim=8), unit(1, dim=8)],
        )

        report = await faiss_store.delete_by_document("a")

        assert report.strategy == "ids_by_filter"
        assert report.deleted == 1
        assert (await faiss_store.stats())["count"] == 1

    async def test_upsert_replaces_existing_chunk(self, faiss_store):
        await faiss_store.upsert([_chunk("a_chunk_0", "a")], [unit(0, dim=8)])
        await faiss_store.upsert([_chunk("a_chunk_0", "a")], [unit(1, dim=8)])

        results = await faiss_store.search(unit(1, dim=8), 5)

        assert len(results) == 1
        assert results[0].score == pytest.approx(1.0, abs=1e-5)

    async def test_repeated_id_in_one_batch_keeps_last(self, faiss_store):
        await faiss_store.upsert(
            [_chunk("a_chunk_0", "a"), _chunk("a_chunk_0", "a")],
            [unit(0, dim=8), unit(1, dim=8)],
        )

        results = await faiss_store.search(unit(1, dim=8), 5)

        assert (await faiss_store.stats())["count"] == 1
        assert [r.id for r in results] == ["a_chunk_0"]
        assert results[0].score == pytest.approx(1.0, abs=1e-5)
