"""
Vector Backend Interface

The narrow set of primitives a vector database must offer. Backends expose
raw cosine *distances*; conversion to similarity, readiness tracking and the
deletion fallback ladder live in `knowledge.store.VectorStore`.

Backends differ in which primitives work: a backend without server-side
metadata filtering raises `NotImplementedError` from `delete_where`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence


@dataclass(frozen=True)
class VectorRecord:
    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    distance: Optional[float] = None


def metadata_matches(metadata: Mapping[str, Any], where: Mapping[str, Any]) -> bool:
    """Client-side equivalent of an equality metadata filter."""
    return all(
        key in metadata and str(metadata[key]) == str(value)
        for key, value in where.items()
    )


class VectorBackend(Protocol):
    name: str

    async def initialize(self) -> None: ...

    async def count(self) -> int: ...

    async def add(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        documents: Sequence[str],
        metadatas: Sequence[Dict[str, Any]],
    ) -> None: ...

    async def query(self, embedding: Sequence[float], k: int) -> List[VectorRecord]: ...

    async def delete_where(self, where: Mapping[str, Any]) -> int: ...

    async def get_ids(self, where: Mapping[str, Any]) -> List[str]: ...

    async def get_all(self) -> List[VectorRecord]: ...

    async def delete_ids(self, ids: Sequence[str]) -> int: ...
