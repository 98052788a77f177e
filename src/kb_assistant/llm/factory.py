"""Select the single LLM provider implementation for this process."""

from __future__ import annotations

from ..config import Settings
from ..core.errors import ProviderConfigurationError
from .base import LLMProvider
from .gemini_client import GeminiProvider
from .openai_client import OpenAIProvider


def create_provider(cfg: Settings) -> LLMProvider:
    key = cfg.active_api_key()
    api_key = key.get_secret_value() if key is not None else None

    if cfg.llm_provider == "openai":
        return OpenAIProvider(
            api_key=api_key,
            chat_model=cfg.openai_chat_model,
            embedding_model=cfg.openai_embedding_model,
            base_url=cfg.openai_base_url,
            timeout=cfg.provider_timeout,
            default_max_tokens=cfg.chat_max_tokens,
        )

    if cfg.llm_provider == "gemini":
        return GeminiProvider(
            api_key=api_key,
            chat_model=cfg.gemini_chat_model,
            embedding_model=cfg.gemini_embedding_model,
            base_url=cfg.gemini_base_url,
            timeout=cfg.provider_timeout,
            default_max_tokens=cfg.chat_max_tokens,
        )

    raise ProviderConfigurationError(f"Unknown LLM provider: {cfg.llm_provider!r}")
