"""
Session Store

Persistence contract for chat sessions and the PostgreSQL implementation.

Design choices
--------------
- One row per session holding the whole (bounded) history as a JSON array.
- The repository is deliberately dumb: ownership checks and history
  truncation live in `sessions.manager.SessionManager`.
- Unknown or malformed session ids read as "not found", never as errors.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.models import ChatSession
from ..llm.base import ChatTurn


class SessionRecord(BaseModel):
    """A chat session as seen by the answer pipeline."""

    id: str
    owner: str
    history: List[ChatTurn] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")


class SessionRepository(Protocol):
    async def get(self, session_id: str) -> Optional[SessionRecord]: ...

    async def create(self, owner: str) -> SessionRecord: ...

    async def save_history(
        self,
        session_id: str,
        history: Sequence[ChatTurn],
    ) -> SessionRecord: ...

    async def delete(self, session_id: str) -> bool: ...

    async def list_for_owner(self, owner: str) -> List[SessionRecord]: ...


def _parse_id(session_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(session_id))
    except ValueError:
        return None


def _to_record(row: ChatSession) -> SessionRecord:
    return SessionRecord(
        id=str(row.id),
        owner=row.owner_id,
        history=[ChatTurn(**m) for m in (row.messages or [])],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlSessionRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        key = _parse_id(session_id)
        if key is None:
            return None

        async with self._session_factory() as session:
            row = await session.get(ChatSession, key)
            return _to_record(row) if row is not None else None

    async def create(self, owner: str) -> SessionRecord:
        row = ChatSession(id=uuid.uuid4(), owner_id=owner, messages=[])
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
        return _to_record(row)

    async def save_history(
        self,
        session_id: str,
        history: Sequence[ChatTurn],
    ) -> SessionRecord:
        key = _parse_id(session_id)
        if key is None:
            raise KeyError(session_id)

        stmt = (
            update(ChatSession)
            .where(ChatSession.id == key)
            .values(
                messages=[turn.model_dump() for turn in history],
                updated_at=func.now(),
            )
            .returning(ChatSession)
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()

        if row is None:
            raise KeyError(session_id)
        return _to_record(row)

    async def delete(self, session_id: str) -> bool:
        key = _parse_id(session_id)
        if key is None:
            return False

        async with self._session_factory() as session:
            result = await session.execute(delete(ChatSession).where(ChatSession.id == key))
            await session.commit()
            return bool(result.rowcount)

    async def list_for_owner(self, owner: str) -> List[SessionRecord]:
        stmt = (
            select(ChatSession)
            .where(ChatSession.owner_id == owner)
            .order_by(desc(ChatSession.updated_at))
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]
