"""
Semantic QA Cache

Answers a question from a previously stored answer when the new question is
semantically close enough to an old one.

Behavior
--------
- Lookup embeds the question and scans a bounded window of the owner's most
  recently used entries (`window`, default 100). The best match wins if its
  cosine similarity is >= `threshold` (default 0.85). Among equal maxima the
  first one seen wins.
- A hit increments the entry's usage count and refreshes `last_used_at`.
- Any failure during lookup is a miss; any failure during store is logged.
  The cache never fails a request that otherwise produced an answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..core.similarity import cosine_similarity
from ..embeddings.embedder import Embedder
from .repository import CacheEntry, CacheRepository, CacheStats

logger = logging.getLogger("kb.cache")


@dataclass(frozen=True)
class CacheLookup:
    """
    Result of a cache probe.

    `embedding` is the question embedding computed during the probe (None if
    embedding itself failed), so callers can reuse it for vector search.
    """

    found: bool
    answer: Optional[str] = None
    similarity: Optional[float] = None
    entry: Optional[CacheEntry] = None
    embedding: Optional[List[float]] = None


class SemanticCache:
    def __init__(
        self,
        repository: CacheRepository,
        embedder: Embedder,
        threshold: float = 0.85,
        window: int = 100,
    ) -> None:
        self._repository = repository
        self._embedder = embedder
        self.threshold = threshold
        self.window = window

    async def lookup(self, question: str, owner: str) -> CacheLookup:
        try:
            embedding = await self._embedder.embed(question)
        except Exception as exc:
            logger.warning("Cache lookup embedding failed, treating as miss: %s", exc)
            return CacheLookup(found=False)

        try:
            entries = await self._repository.recent_for_owner(owner, self.window)
        except Exception as exc:
            logger.warning("Cache lookup query failed, treating as miss: %s", exc)
            return CacheLookup(found=False, embedding=embedding)

        best: Optional[CacheEntry] = None
        best_similarity = 0.0

        for entry in entries:
            try:
                similarity = cosine_similarity(embedding, entry.embedding)
            except ValueError:
                # Entry embedded by a model with another dimensionality
                continue

            if best is None or similarity > best_similarity:
                best = entry
                best_similarity = similarity

        if best is None or best_similarity < self.threshold:
            logger.info(
                "Cache miss for owner %s (best similarity %.4f over %d entries)",
                owner,
                best_similarity,
                len(entries),
            )
            return CacheLookup(found=False, embedding=embedding)

        try:
            await self._repository.touch(best.id)
        except Exception as exc:
            logger.warning("Failed to record cache usage for %s: %s", best.id, exc)

        logger.info(
            "Cache hit for owner %s (similarity %.4f, entry %s)",
            owner,
            best_similarity,
            best.id,
        )
        hit = best.model_copy(
            update={
                "usage_count": best.usage_count + 1,
                "last_used_at": datetime.now(timezone.utc),
            }
        )
        return CacheLookup(
            found=True,
            answer=hit.answer,
            similarity=best_similarity,
            entry=hit,
            embedding=embedding,
        )

    async def store(
        self,
        owner: str,
        question: str,
        answer: str,
        source: str,
        model: str,
        document_sources: Optional[List[str]] = None,
        embedding: Optional[List[float]] = None,
    ) -> Optional[CacheEntry]:
        """
        Persist a new entry with usage_count=1.

        Returns the stored entry, or None if storing failed (logged only).
        """
        try:
            if embedding is None:
                embedding = await self._embedder.embed(question)
            entry = await self._repository.add(
                owner=owner,
                question=question,
                answer=answer,
                source=source,
                model=model,
                embedding=embedding,
                document_sources=document_sources or None,
            )
        except Exception as exc:
            logger.warning("Failed to save answer to cache: %s", exc)
            return None

        logger.debug("Cached answer %s for owner %s", entry.id, owner)
        return entry

    async def evict_older_than(self, days: int) -> int:
        """Delete entries not used within the last `days` days."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        removed = await self._repository.delete_older_than(cutoff)
        logger.info("Evicted %d cache entries unused since %s", removed, cutoff.isoformat())
        return removed

    async def stats(self, owner: Optional[str] = None) -> CacheStats:
        return await self._repository.stats(owner)
