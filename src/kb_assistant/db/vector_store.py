"""
pgvector Backend

PostgreSQL + pgvector implementation of the vector backend primitives.
Every statement is scoped to one logical collection, and every call runs in
its own short-lived session from the injected session factory.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

from sqlalchemy import select, delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..knowledge.backend import VectorRecord
from .models import VectorChunk


class PgVectorBackend:
    """
    PostgreSQL-backed vector backend using pgvector for similarity search.

    Metadata filters compare JSONB values as text, server side.
    """

    name = "pgvector"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collection: str,
    ) -> None:
        """
        Parameters
        ----------
        session_factory : async_sessionmaker[AsyncSession]
            Factory producing sessions bound to the application engine.

        collection : str
            Logical collection name rows are scoped to.
        """
        self._session_factory = session_factory
        self._collection = collection

    def _filtered(self, stmt, where: Mapping[str, Any]):
        stmt = stmt.where(VectorChunk.collection == self._collection)
        for key, value in where.items():
            stmt = stmt.where(VectorChunk.metadata_[key].astext == str(value))
        return stmt

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        # Fails early if the table or extension is missing
        await self.count()

    async def count(self) -> int:
        stmt = (
            select(func.count())
            .select_from(VectorChunk)
            .where(VectorChunk.collection == self._collection)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def add(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        documents: Sequence[str],
        metadatas: Sequence[Dict[str, Any]],
    ) -> None:
        if not ids:
            return

        rows = [
            {
                "id": chunk_id,
                "collection": self._collection,
                "content": content,
                "metadata": dict(meta),
                "embedding": list(emb),
            }
            for chunk_id, emb, content, meta in zip(ids, embeddings, documents, metadatas)
        ]

        stmt = pg_insert(VectorChunk.__table__).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "collection": stmt.excluded["collection"],
                "content": stmt.excluded["content"],
                "metadata": stmt.excluded["metadata"],
                "embedding": stmt.excluded["embedding"],
            },
        )

        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def query(self, embedding: Sequence[float], k: int) -> List[VectorRecord]:
        # Cosine distance via pgvector's <=> operator
        cosine_distance = VectorChunk.embedding.cosine_distance(list(embedding))

        stmt = (
            select(
                VectorChunk.id,
                VectorChunk.content,
                VectorChunk.metadata_.label("meta"),
                cosine_distance.label("distance"),
            )
            .where(VectorChunk.collection == self._collection)
            .order_by(cosine_distance)
            .limit(k)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            VectorRecord(
                id=row.id,
                content=row.content,
                metadata=dict(row.meta or {}),
                distance=float(row.distance),
            )
            for row in rows
        ]

    async def delete_where(self, where: Mapping[str, Any]) -> int:
        stmt = self._filtered(delete(VectorChunk), where)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def get_ids(self, where: Mapping[str, Any]) -> List[str]:
        stmt = self._filtered(select(VectorChunk.id), where)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [row[0] for row in result.all()]

    async def get_all(self) -> List[VectorRecord]:
        stmt = select(
            VectorChunk.id,
            VectorChunk.content,
            VectorChunk.metadata_.label("meta"),
        ).where(VectorChunk.collection == self._collection)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            VectorRecord(id=row.id, content=row.content, metadata=dict(row.meta or {}))
            for row in rows
        ]

    async def delete_ids(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0

        stmt = delete(VectorChunk).where(
            VectorChunk.collection == self._collection,
            VectorChunk.id.in_(list(ids)),
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0
