from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_provider, get_vector_store
from .models import HealthResponse, VectorStats
from ..knowledge.store import VectorStore
from ..llm.base import LLMProvider

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(
    provider: Annotated[LLMProvider, Depends(get_provider)],
    store: Annotated[VectorStore, Depends(get_vector_store)],
) -> HealthResponse:
    stats = await store.stats()
    configured = provider.is_configured()
    return HealthResponse(
        status="ok" if configured and stats["available"] else "degraded",
        provider=provider.name,
        provider_configured=configured,
        model=provider.default_model,
        vector_store=VectorStats(backend=store.backend_name, **stats),
    )
