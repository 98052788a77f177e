"""
SQLAlchemy Models

Defines the database schema for:
- Vector chunks (pgvector storage for the knowledge base)
- Semantic QA cache entries
- Chat sessions with their bounded message history
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    DateTime,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Vector Chunk Model
# ---------------------------------------------------------------------

class VectorChunk(Base):
    """
    One embedded chunk of knowledge-base text.

    Metadata keys follow the chunk contract (`documentId`, `fileName`,
    `chunkIndex`, `totalChunks`, `source`, ...).
    """
    __tablename__ = "vector_chunk"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    collection: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Width must match the embedding model output
    embedding = Column(Vector(settings.embedding_dimensions), nullable=False)

    __table_args__ = (
        Index("idx_vector_chunk_collection", "collection"),
    )


# ---------------------------------------------------------------------
# QA Cache Model
# ---------------------------------------------------------------------

class QACacheEntry(Base):
    """
    A question/answer pair with its own embedding, scoped to an owner.
    """
    __tablename__ = "qa_cache"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)  # ai_generated | document_rag | cached
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    document_sources: Mapped[Optional[List[str]]] = mapped_column(JSONB, nullable=True)
    # JSON-serialized float list
    embedding: Mapped[str] = mapped_column(Text, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_qa_cache_owner_recent", "owner_id", "last_used_at"),
    )


# ---------------------------------------------------------------------
# Chat Session Model
# ---------------------------------------------------------------------

class ChatSession(Base):
    """
    A chat conversation owned by a user.

    `messages` holds the bounded history as an ordered JSON array of
    `{"role": ..., "content": ...}` objects, most recent last.
    """
    __tablename__ = "chat_session"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    messages: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("idx_session_owner", "owner_id", "updated_at"),
    )
