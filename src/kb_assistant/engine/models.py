"""
Answer Pipeline Models

Request and response contracts of the answer engine. Responses serialize
with camelCase keys (`sessionId`, `responseSource`, ...) for API clients.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .files import FileAttachment

ResponseSource = Literal["cached", "knowledge_base", "ai_generated"]


class AnswerRequest(BaseModel):
    message: str = ""
    session_id: Optional[str] = None
    include_history: bool = True
    top_k: Optional[int] = Field(default=None, ge=1, le=20)
    model: Optional[str] = None
    file: Optional[FileAttachment] = None

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class SourcePreview(_CamelModel):
    content: str
    file_name: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FileInfo(_CamelModel):
    file_name: str
    mime_type: str
    size: int
    type: Literal["image", "document"]
    extracted_length: Optional[int] = None


class AnswerResponse(_CamelModel):
    session_id: str
    message: str
    answer: str
    sources: List[SourcePreview] = Field(default_factory=list)
    response_source: ResponseSource
    relevance_score: Optional[float] = None
    cache_similarity: Optional[float] = None
    model_used: str
    suggested_questions: Optional[List[str]] = None
    file_processed: Optional[FileInfo] = None
    timestamp: datetime
