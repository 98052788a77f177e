"""
Process-wide service singletons for route dependencies.

Every getter is cached, so a whole process shares one provider, one vector
store and one answer engine. Tests replace them through
`app.dependency_overrides`.
"""

from functools import lru_cache

from ..cache.repository import SqlCacheRepository
from ..cache.semantic_cache import SemanticCache
from ..config import settings
from ..db import AsyncSessionLocal, PgVectorBackend
from ..embeddings.embedder import Embedder
from ..embeddings.index import FaissVectorBackend
from ..engine.resolver import AnswerEngine, EngineConfig
from ..knowledge.ingestion import IngestionService
from ..knowledge.store import VectorStore
from ..llm.base import LLMProvider
from ..llm.factory import create_provider
from ..llm.router import ModelRouter
from ..sessions.manager import SessionManager
from ..sessions.store import SqlSessionRepository


@lru_cache
def get_provider() -> LLMProvider:
    return create_provider(settings)


@lru_cache
def get_embedder() -> Embedder:
    return Embedder(
        get_provider(),
        batch_size=settings.embedding_batch_size,
        batch_delay=settings.embedding_batch_delay,
    )


@lru_cache
def get_vector_store() -> VectorStore:
    if settings.vector_backend == "faiss":
        backend = FaissVectorBackend(
            index_path=settings.vector_index_path,
            meta_path=settings.vector_meta_path,
        )
    else:
        backend = PgVectorBackend(AsyncSessionLocal, settings.vector_collection)
    return VectorStore(backend, settings.vector_collection)


@lru_cache
def get_semantic_cache() -> SemanticCache:
    return SemanticCache(
        SqlCacheRepository(AsyncSessionLocal),
        get_embedder(),
        threshold=settings.cache_similarity_threshold,
        window=settings.cache_window,
    )


@lru_cache
def get_session_manager() -> SessionManager:
    return SessionManager(
        SqlSessionRepository(AsyncSessionLocal),
        history_limit=settings.session_history_limit,
    )


@lru_cache
def get_model_router() -> ModelRouter:
    provider = get_provider()
    return ModelRouter(provider.name, provider.default_model)


@lru_cache
def get_ingestion_service() -> IngestionService:
    return IngestionService(
        get_vector_store(),
        get_embedder(),
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )


@lru_cache
def get_answer_engine() -> AnswerEngine:
    return AnswerEngine(
        provider=get_provider(),
        embedder=get_embedder(),
        vector_store=get_vector_store(),
        cache=get_semantic_cache(),
        sessions=get_session_manager(),
        router=get_model_router(),
        config=EngineConfig.from_settings(settings),
    )
