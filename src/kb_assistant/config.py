"""
Application Configuration

All runtime settings are read from the environment (and an optional `.env`
file) through pydantic-settings. Every field has a default so the package
imports cleanly in tests; provider credentials are validated once at
application startup via `Settings.require_provider_credentials()`.
"""

from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.errors import ProviderConfigurationError

# Output width of the embedding models the providers default to
KNOWN_EMBEDDING_DIMENSIONS: Dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "text-embedding-004": 768,
    "embedding-001": 768,
}
DEFAULT_EMBEDDING_DIMENSIONS = 1536


class Settings(BaseSettings):
    # LLM provider selection (chosen once at process start)
    llm_provider: Literal["openai", "gemini"] = "openai"
    provider_timeout: float = 60.0

    openai_api_key: Optional[SecretStr] = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_chat_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"

    gemini_api_key: Optional[SecretStr] = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_chat_model: str = "gemini-1.5-flash"
    gemini_embedding_model: str = "text-embedding-004"

    # pgvector column width. Derived from the active embedding model when
    # unset; verified against a live embedding at startup.
    embedding_dimensions: Optional[int] = None
    embedding_batch_size: int = 20
    embedding_batch_delay: float = 0.1  # seconds between sub-batches

    # Storage
    database_url: str = "postgresql+asyncpg://kb:kb@localhost:5432/kb_assistant"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_echo: bool = False
    vector_backend: Literal["pgvector", "faiss"] = "pgvector"
    vector_collection: str = "ai-assistant-docs"
    vector_index_path: str = "./data/faiss_index.bin"
    vector_meta_path: str = "./data/index_meta.json"

    # Ingestion
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # Answer pipeline
    top_k: int = 5
    relevance_threshold: float = 0.3
    chat_temperature: float = 0.7
    chat_max_tokens: int = 2048
    enable_suggestions: bool = True
    file_context_max_chars: int = 15000
    session_history_limit: int = 10

    # Semantic cache
    cache_similarity_threshold: float = 0.85
    cache_window: int = 100
    cache_stale_days: int = 30

    # Auth
    jwt_secret: SecretStr = SecretStr("change-me")
    jwt_algo: str = "HS256"
    jwt_audience: str = "kb-assistant"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _derive_embedding_dimensions(self) -> "Settings":
        if self.embedding_dimensions is None:
            self.embedding_dimensions = KNOWN_EMBEDDING_DIMENSIONS.get(
                self.active_embedding_model().removeprefix("models/"),
                DEFAULT_EMBEDDING_DIMENSIONS,
            )
        return self

    def active_embedding_model(self) -> str:
        if self.llm_provider == "gemini":
            return self.gemini_embedding_model
        return self.openai_embedding_model

    def active_api_key(self) -> Optional[SecretStr]:
        """Return the API key of the configured provider, if any."""
        if self.llm_provider == "gemini":
            return self.gemini_api_key
        return self.openai_api_key

    def require_provider_credentials(self) -> None:
        """
        Fail fast when the active provider has no credentials.

        Raises
        ------
        ProviderConfigurationError
            If the active provider's API key is missing or empty.
        """
        key = self.active_api_key()
        if key is None or not key.get_secret_value().strip():
            raise ProviderConfigurationError(
                f"Missing API key for LLM provider '{self.llm_provider}'. "
                f"Set {self.llm_provider.upper()}_API_KEY."
            )


settings = Settings()
