"""
OpenAI Provider

REST client for the OpenAI chat completions and embeddings endpoints.

A fresh `httpx.AsyncClient` is opened per call, so instances are stateless
and safe to share across requests. Transport failures and malformed
responses are translated into `GenerationError` / `EmbeddingError`.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..core.errors import EmbeddingError, GenerationError
from ..prompts import build_system_prompt
from .base import ChatOptions, ChatTurn

logger = logging.getLogger("kb.llm.openai")


class OpenAIProvider:
    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        chat_model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        default_max_tokens: int = 2048,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._chat_model = chat_model
        self._embedding_model = embedding_model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._default_max_tokens = default_max_tokens
        self._transport = transport

    @property
    def default_model(self) -> str:
        return self._chat_model

    @property
    def embedding_model(self) -> str:
        return self._embedding_model

    def is_configured(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed a batch of texts in a single request.

        Raises
        ------
        EmbeddingError
            On transport failure or malformed response.
        """
        if not texts:
            return []

        payload = {"model": self._embedding_model, "input": list(texts)}

        try:
            data = await self._post("/embeddings", payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "Embedding request failed (%s): batch size=%d, error=%s",
                type(exc).__name__,
                len(texts),
                str(exc),
            )
            raise EmbeddingError(
                f"Embedding generation failed: {type(exc).__name__}"
            ) from exc

        embeddings = self._extract_embeddings(data)
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, provider returned {len(embeddings)}."
            )
        return embeddings

    async def chat(
        self,
        message: str,
        context: Optional[str] = None,
        history: Optional[Sequence[ChatTurn]] = None,
        options: Optional[ChatOptions] = None,
        model: Optional[str] = None,
    ) -> str:
        opts = options or ChatOptions()

        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(context)}
        ]
        for turn in history or []:
            messages.append({"role": turn.role, "content": turn.content})
        messages.append({"role": "user", "content": message})

        return await self._chat_completion(
            messages,
            model=model or self._chat_model,
            temperature=opts.temperature,
            max_tokens=opts.max_tokens or self._default_max_tokens,
        )

    async def complete(
        self,
        prompt: str,
        options: Optional[ChatOptions] = None,
        model: Optional[str] = None,
    ) -> str:
        opts = options or ChatOptions()
        return await self._chat_completion(
            [{"role": "user", "content": prompt}],
            model=model or self._chat_model,
            temperature=opts.temperature,
            max_tokens=opts.max_tokens or 1024,
        )

    async def analyze_image(
        self,
        data: bytes,
        mime_type: str,
        prompt: str,
        model: Optional[str] = None,
    ) -> str:
        encoded = base64.b64encode(data).decode("ascii")
        content = [
            {"type": "text", "text": prompt},
            {
                "type": "image_url",
                "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
            },
        ]
        return await self._chat_completion(
            [{"role": "user", "content": content}],
            model=model or self._chat_model,
            temperature=None,
            max_tokens=1024,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(
                f"{self._base_url}{path}",
                json=payload,
                headers=headers,
            )
            response.raise_for_status()
            return response.json()

    async def _chat_completion(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: Optional[float],
        max_tokens: int,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature

        try:
            data = await self._post("/chat/completions", payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "Chat completion failed (%s) with model %s: %s",
                type(exc).__name__,
                model,
                str(exc),
            )
            raise GenerationError(
                f"LLM generation failed with model '{model}': {type(exc).__name__}"
            ) from exc

        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("Malformed chat completion response.") from exc

        logger.info("Generated %d chars using %s", len(text), model)
        return text

    @staticmethod
    def _extract_embeddings(data: Dict[str, Any]) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }
        """
        records = data.get("data")
        if not isinstance(records, list):
            raise EmbeddingError("Embedding response missing 'data' list.")

        # Output order must follow input order
        if all(isinstance(r, dict) and "index" in r for r in records):
            records = sorted(records, key=lambda r: r["index"])

        embeddings: List[List[float]] = []
        for index, record in enumerate(records):
            emb = record.get("embedding") if isinstance(record, dict) else None
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )
            embeddings.append([float(x) for x in emb])

        return embeddings
