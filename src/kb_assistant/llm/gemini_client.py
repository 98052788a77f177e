"""
Gemini Provider

REST client for the Google Generative Language API (`generateContent` and
`batchEmbedContents`). Gemini has no separate system role in this API, so the
context, history and question are assembled into a single user prompt.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..core.errors import EmbeddingError, GenerationError
from ..prompts import ANSWER_INSTRUCTION
from .base import ChatOptions, ChatTurn

logger = logging.getLogger("kb.llm.gemini")


def model_ref(model: str) -> str:
    """Return the `models/<name>` resource path, accepting either form."""
    name = model.strip()
    if name.startswith("models/"):
        name = name[len("models/"):]
    return f"models/{name}"


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        chat_model: str = "gemini-1.5-flash",
        embedding_model: str = "text-embedding-004",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
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
        if not texts:
            return []

        embedding_ref = model_ref(self._embedding_model)
        payload = {
            "requests": [
                {"model": embedding_ref, "content": {"parts": [{"text": text}]}}
                for text in texts
            ]
        }

        try:
            data = await self._post(f"/{embedding_ref}:batchEmbedContents", payload)
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

        records = data.get("embeddings")
        if not isinstance(records, list) or len(records) != len(texts):
            raise EmbeddingError("Malformed Gemini embedding response.")

        embeddings: List[List[float]] = []
        for index, record in enumerate(records):
            values = record.get("values") if isinstance(record, dict) else None
            if not isinstance(values, list):
                raise EmbeddingError(f"Invalid embedding vector at index {index}.")
            embeddings.append([float(x) for x in values])
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

        prompt = ""
        if context:
            prompt += f"Context information:\n{context}\n\n"

        if history:
            prompt += "Previous conversation:\n"
            for turn in history:
                speaker = "User" if turn.role == "user" else "Assistant"
                prompt += f"{speaker}: {turn.content}\n"
            prompt += "\n"

        prompt += f"User question: {message}"
        prompt += ANSWER_INSTRUCTION

        return await self._generate(
            [{"text": prompt}],
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
        return await self._generate(
            [{"text": prompt}],
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
        parts = [
            {"text": prompt},
            {
                "inlineData": {
                    "mimeType": mime_type,
                    "data": base64.b64encode(data).decode("ascii"),
                }
            },
        ]
        return await self._generate(
            parts,
            model=model or self._chat_model,
            temperature=None,
            max_tokens=1024,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"x-goog-api-key": self._api_key or ""}
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

    async def _generate(
        self,
        parts: List[Dict[str, Any]],
        model: str,
        temperature: Optional[float],
        max_tokens: int,
    ) -> str:
        generation_config: Dict[str, Any] = {"maxOutputTokens": max_tokens}
        if temperature is not None:
            generation_config["temperature"] = temperature

        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }

        try:
            data = await self._post(f"/{model_ref(model)}:generateContent", payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "Gemini generation failed (%s) with model %s: %s",
                type(exc).__name__,
                model,
                str(exc),
            )
            raise GenerationError(
                f"LLM generation failed with model '{model}': {type(exc).__name__}"
            ) from exc

        try:
            candidate_parts = data["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in candidate_parts)
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("Malformed Gemini generation response.") from exc

        logger.info("Generated %d chars using %s", len(text), model)
        return text
