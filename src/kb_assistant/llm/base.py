"""
LLM Provider Interface

Every generation and embedding backend implements the `LLMProvider`
protocol. Exactly one implementation is selected at process start (see
`llm.factory.create_provider`); nothing downstream knows which one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class ChatTurn(BaseModel):
    """A single role-tagged message of a conversation history."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True)


@dataclass(frozen=True)
class ChatOptions:
    """
    Per-call generation knobs.

    `max_tokens=None` means "use the provider's default for this call type".
    """

    temperature: float = 0.7
    max_tokens: Optional[int] = None


@runtime_checkable
class LLMProvider(Protocol):
    name: str

    @property
    def default_model(self) -> str: ...

    @property
    def embedding_model(self) -> str: ...

    def is_configured(self) -> bool: ...

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]: ...

    async def chat(
        self,
        message: str,
        context: Optional[str] = None,
        history: Optional[Sequence[ChatTurn]] = None,
        options: Optional[ChatOptions] = None,
        model: Optional[str] = None,
    ) -> str: ...

    async def complete(
        self,
        prompt: str,
        options: Optional[ChatOptions] = None,
        model: Optional[str] = None,
    ) -> str: ...

    async def analyze_image(
        self,
        data: bytes,
        mime_type: str,
        prompt: str,
        model: Optional[str] = None,
    ) -> str: ...
