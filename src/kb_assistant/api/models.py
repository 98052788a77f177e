"""
API Models

Request and response contracts of the HTTP layer that are not already
defined by the answer engine (`engine.models`). Payloads exchanged with the
browser client use camelCase keys.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..llm.base import ChatTurn


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# ---------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------

class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    Used for create/update/delete-style endpoints.
    """
    status: Literal["updated", "deleted", "created", "ok"]
    count: Optional[int] = Field(default=None, ge=0)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------

class SessionResponse(_CamelModel):
    session_id: str
    messages: List[ChatTurn] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SessionSummary(_CamelModel):
    session_id: str
    message_count: int = Field(..., ge=0)
    preview: Optional[str] = None
    updated_at: datetime


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

class IngestTextRequest(_CamelModel):
    """Raw text to chunk, embed and store."""
    text: str = Field(..., min_length=1)
    file_name: str = Field(default="Text Input", min_length=1)
    document_id: Optional[str] = None


class ReindexRequest(_CamelModel):
    text: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)


class IngestResponse(_CamelModel):
    document_id: str
    chunks: int = Field(..., ge=0)
    previous_deleted: Optional[bool] = None


class DeletionResponse(_CamelModel):
    document_id: str
    deleted: int = Field(..., ge=0)
    strategy: Optional[str] = None
    succeeded: bool


class VectorStats(_CamelModel):
    count: int = Field(..., ge=0)
    collection_name: str
    available: bool
    backend: Optional[str] = None


# ---------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------

class CacheUsageItem(_CamelModel):
    question: str
    usage_count: int


class CacheStatsResponse(_CamelModel):
    total_cached: int = Field(..., ge=0)
    total_usage: int = Field(..., ge=0)
    most_used: List[CacheUsageItem] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------

class HealthResponse(_CamelModel):
    status: Literal["ok", "degraded"]
    provider: str
    provider_configured: bool
    model: str
    vector_store: VectorStats
