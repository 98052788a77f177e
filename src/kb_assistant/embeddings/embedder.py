"""
Embedding Adapter

This module wraps the active LLM provider's embedding endpoint with the
batching policy every caller relies on:

- Inputs larger than `batch_size` are split into sequential sub-batches
- A short delay separates sub-batches to respect upstream rate limits
- Output order always matches input order
- Any failure propagates as `EmbeddingError`; there is no degraded mode

The class is stateless and safe to reuse across requests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from ..core.errors import EmbeddingError, ProviderConfigurationError
from ..llm.base import LLMProvider

logger = logging.getLogger("kb.embedder")


class Embedder:
    """
    Asynchronous embedding generator for single texts and batches.

    This class performs no caching and assumes the caller handles
    higher-level caching (see `cache.semantic_cache`).
    """

    def __init__(
        self,
        provider: LLMProvider,
        batch_size: int = 20,
        batch_delay: float = 0.1,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        provider : LLMProvider
            Provider whose `embed_texts` performs one network request per call.

        batch_size : int
            Maximum number of texts per provider request.

        batch_delay : float
            Seconds to wait between consecutive sub-batches.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        self._provider = provider
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Returns
        -------
        List[List[float]]
            One vector per input text, in input order.

        Raises
        ------
        EmbeddingError
            If any sub-batch fails or returns the wrong number of vectors.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []

        for start in range(0, len(texts), self.batch_size):
            if start > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

            batch = list(texts[start : start + self.batch_size])
            embeddings = await self._provider.embed_texts(batch)

            if len(embeddings) != len(batch):
                raise EmbeddingError(
                    f"Provider returned {len(embeddings)} embeddings for "
                    f"{len(batch)} inputs."
                )
            all_embeddings.extend(embeddings)

        if len(texts) > self.batch_size:
            logger.info(
                "Generated %d embeddings in %d batches",
                len(all_embeddings),
                -(-len(texts) // self.batch_size),
            )

        return all_embeddings

    async def verify_dimensions(self, expected: int) -> int:
        """
        Embed a short sample and compare its width with `expected`.

        Run once at startup so a provider/column mismatch fails the boot
        instead of every request.

        Raises
        ------
        ProviderConfigurationError
            If the provider's vectors are not `expected` wide.
        EmbeddingError
            If the sample cannot be embedded.
        """
        actual = len(await self.embed("dimension check"))
        if actual != expected:
            raise ProviderConfigurationError(
                f"Embedding model returns {actual}-dimensional vectors but "
                f"EMBEDDING_DIMENSIONS is {expected}."
            )
        logger.info("Embedding dimensions verified (%d)", actual)
        return actual
