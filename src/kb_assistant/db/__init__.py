"""
Database Package

Provides SQLAlchemy async session management and model definitions
for PostgreSQL with pgvector.
"""

from .session import async_engine, AsyncSessionLocal, init_db
from .models import Base, VectorChunk, QACacheEntry, ChatSession
from .vector_store import PgVectorBackend

__all__ = [
    "async_engine",
    "AsyncSessionLocal",
    "init_db",
    "Base",
    "VectorChunk",
    "QACacheEntry",
    "ChatSession",
    "PgVectorBackend",
]
