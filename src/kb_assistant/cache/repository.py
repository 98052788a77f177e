"""
QA Cache Repository

Persistence contract for semantic cache entries, plus the PostgreSQL
implementation. The semantic cache depends only on `CacheRepository`.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.models import QACacheEntry


# ---------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------

class CacheEntry(BaseModel):
    id: str
    owner: str
    question: str
    answer: str
    source: str
    model: str
    document_sources: Optional[List[str]] = None
    embedding: List[float]
    usage_count: int = Field(default=1, ge=1)
    created_at: datetime
    last_used_at: datetime

    model_config = ConfigDict(extra="forbid")


class CacheUsage(BaseModel):
    question: str
    usage_count: int


class CacheStats(BaseModel):
    total_cached: int = 0
    total_usage: int = 0
    most_used: List[CacheUsage] = Field(default_factory=list)


class CacheRepository(Protocol):
    async def recent_for_owner(self, owner: str, limit: int) -> List[CacheEntry]:
        """Most recently used entries for `owner`, newest first."""
        ...

    async def add(
        self,
        owner: str,
        question: str,
        answer: str,
        source: str,
        model: str,
        embedding: List[float],
        document_sources: Optional[List[str]] = None,
    ) -> CacheEntry: ...

    async def touch(self, entry_id: str) -> None:
        """Increment usage_count and refresh last_used_at."""
        ...

    async def delete_older_than(self, cutoff: datetime) -> int: ...

    async def stats(self, owner: Optional[str] = None) -> CacheStats: ...


# ---------------------------------------------------------------------
# PostgreSQL implementation
# ---------------------------------------------------------------------

def _to_entry(row: QACacheEntry) -> CacheEntry:
    return CacheEntry(
        id=str(row.id),
        owner=row.owner_id,
        question=row.question,
        answer=row.answer,
        source=row.source,
        model=row.model,
        document_sources=row.document_sources,
        embedding=json.loads(row.embedding),
        usage_count=row.usage_count,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
    )


class SqlCacheRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def recent_for_owner(self, owner: str, limit: int) -> List[CacheEntry]:
        stmt = (
            select(QACacheEntry)
            .where(QACacheEntry.owner_id == owner)
            .order_by(desc(QACacheEntry.last_used_at))
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_entry(row) for row in result.scalars().all()]

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
        now = datetime.now(timezone.utc)
        row = QACacheEntry(
            id=uuid.uuid4(),
            owner_id=owner,
            question=question,
            answer=answer,
            source=source,
            model=model,
            document_sources=document_sources,
            embedding=json.dumps(embedding),
            usage_count=1,
            created_at=now,
            last_used_at=now,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return _to_entry(row)

    async def touch(self, entry_id: str) -> None:
        stmt = (
            update(QACacheEntry)
            .where(QACacheEntry.id == uuid.UUID(entry_id))
            .values(
                usage_count=QACacheEntry.usage_count + 1,
                last_used_at=func.now(),
            )
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def delete_older_than(self, cutoff: datetime) -> int:
        stmt = delete(QACacheEntry).where(QACacheEntry.last_used_at < cutoff)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def stats(self, owner: Optional[str] = None) -> CacheStats:
        totals = select(
            func.count(QACacheEntry.id),
            func.coalesce(func.sum(QACacheEntry.usage_count), 0),
        )
        top = (
            select(QACacheEntry.question, QACacheEntry.usage_count)
            .order_by(desc(QACacheEntry.usage_count))
            .limit(5)
        )
        if owner is not None:
            totals = totals.where(QACacheEntry.owner_id == owner)
            top = top.where(QACacheEntry.owner_id == owner)

        async with self._session_factory() as session:
            total_cached, total_usage = (await session.execute(totals)).one()
            top_rows = (await session.execute(top)).all()

        return CacheStats(
            total_cached=total_cached or 0,
            total_usage=int(total_usage or 0),
            most_used=[
                CacheUsage(question=row.question, usage_count=row.usage_count)
                for row in top_rows
            ],
        )
