"""
Embedding Data Models

This module defines the canonical data models for text stored in, and
retrieved from, the vector store.

Each `DocumentChunk` corresponds to ONE embedding vector and ONE chunk of
text. Metadata is persisted with camelCase keys (`documentId`, `fileName`,
...) so entries stay readable by other tools sharing the collection.
"""

from __future__ import annotations

from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field

ChunkSource = Literal["upload", "ai_generated", "text"]


class ChunkMetadata(BaseModel):
    """
    Metadata stored alongside every chunk.

    Unknown keys are kept (e.g. `question`, `answer`, `userId` for Q&A
    writebacks) and round-trip through `to_store()`.
    """

    document_id: str = Field(
        ...,
        min_length=1,
        alias="documentId",
        description="Identifier shared by every chunk of the same document.",
    )

    file_name: str = Field(
        ...,
        alias="fileName",
        description="Source file name shown in answer citations.",
    )

    chunk_index: int = Field(
        ...,
        ge=0,
        alias="chunkIndex",
        description="Zero-based position of this chunk within its document.",
    )

    total_chunks: int = Field(
        ...,
        ge=1,
        alias="totalChunks",
        description="Number of chunks the owning document was split into.",
    )

    source: ChunkSource = Field(
        ...,
        description="Provenance tag of the chunk.",
    )

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    def to_store(self) -> Dict[str, Any]:
        """Serialize to the flat JSON mapping persisted by vector backends."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class DocumentChunk(BaseModel):
    """A unit of ingested, embeddable text."""

    id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    metadata: ChunkMetadata

    model_config = ConfigDict(extra="forbid", frozen=True)


class SearchResult(BaseModel):
    """
    A single vector query match. Ephemeral, never persisted.

    `score` is a similarity in [0, 1] where 1 means identical.
    """

    id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    score: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def file_name(self) -> str:
        return self.metadata.get("fileName") or "Unknown"
